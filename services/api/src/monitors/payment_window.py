from datetime import datetime
from typing import Optional

from utils import log

from .base import Monitor

logger = log.get_logger(__name__)


class PaymentWindowMonitor(Monitor):
    """Fails payment attempts whose window passed and moves each cascade on.

    After the sweep it re-drives any ``pending_payment`` auction left without
    a live attempt.
    """

    name = "Payment window monitor"

    async def tick(self, now: Optional[datetime] = None) -> int:
        now = now or self.engine.clock.now()
        processed = 0

        overdue = self.engine.tracker.expire_overdue(now)
        try:
            async for attempt in overdue:
                try:
                    await self.engine.cascade.process_failure(
                        attempt.data.auction_id, attempt.data.attempt_number, now
                    )
                except Exception as e:
                    logger.error(
                        f"Error cascading payment for auction {attempt.data.auction_id}: {e}", exc_info=True
                    )
                processed += 1
                if self.stopping:
                    break
        finally:
            await overdue.aclose()

        if not self.stopping:
            processed += len(await self.engine.cascade.recover_stranded(now))
        return processed

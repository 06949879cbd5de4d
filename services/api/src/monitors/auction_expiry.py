from datetime import datetime
from typing import Optional

from models.entities.couchbase.auctions import AuctionStatus
from utils import log

from .base import Monitor

logger = log.get_logger(__name__)


class AuctionExpiryMonitor(Monitor):
    """Closes bidding on every active auction whose expiry time has passed."""

    name = "Auction expiry monitor"

    async def tick(self, now: Optional[datetime] = None) -> int:
        now = now or self.engine.clock.now()
        expired = await self.engine.store.expired_auctions(now)
        if expired:
            logger.info(f"Found {len(expired)} expired auction(s) to process")

        finalized = 0
        for auction in expired:
            if self.stopping:
                break
            try:
                result = await self.engine.auctions.finalize_expired(auction.id, now)
            except Exception as e:
                logger.error(f"Error processing expired auction {auction.id}: {e}", exc_info=True)
                continue
            if result.data.status is not AuctionStatus.ACTIVE:
                finalized += 1
        return finalized

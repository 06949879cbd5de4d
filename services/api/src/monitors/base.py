import asyncio
from datetime import datetime
from typing import Optional

from models.operations.engine import AuctionEngine
from utils import log

logger = log.get_logger(__name__)


class Monitor:
    """A periodic sweep over the store.

    Ticks are idempotent: whatever a tick leaves undone is picked up by the
    next one. ``stop_event`` is shared by all monitors and checked between
    items, so a shutdown never interrupts an item half-way.
    """

    name = "monitor"

    def __init__(self, engine: AuctionEngine, stop_event: Optional[asyncio.Event] = None):
        self.engine = engine
        self.stop_event = stop_event or asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def stopping(self) -> bool:
        return self.stop_event.is_set()

    async def tick(self, now: Optional[datetime] = None) -> int:
        raise NotImplementedError

    async def run_tick(self) -> None:
        """Scheduler entry point; a failing tick is logged and retried next interval."""
        if self.stopping:
            return
        self._idle.clear()
        try:
            processed = await self.tick()
            if processed:
                logger.info(f"{self.name}: processed {processed} item(s)")
        except Exception as e:
            logger.error(f"{self.name} tick failed: {e}", exc_info=True)
        finally:
            self._idle.set()

    async def wait_idle(self) -> None:
        await self._idle.wait()

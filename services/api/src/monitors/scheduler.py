"""APScheduler setup for the auction expiry and payment window monitors."""

import asyncio
from typing import List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from models.operations.engine import AuctionEngine
from utils import log

from .auction_expiry import AuctionExpiryMonitor
from .base import Monitor
from .payment_window import PaymentWindowMonitor

logger = log.get_logger(__name__)

_scheduler: Optional[AsyncIOScheduler] = None
_monitors: List[Monitor] = []
_stop_event: Optional[asyncio.Event] = None


def init_scheduler(engine: AuctionEngine) -> AsyncIOScheduler:
    """Start both monitors on their own interval. Must run inside the event loop."""
    global _scheduler, _monitors, _stop_event
    _stop_event = asyncio.Event()
    settings = engine.settings
    _monitors = [
        AuctionExpiryMonitor(engine, _stop_event),
        PaymentWindowMonitor(engine, _stop_event),
    ]
    intervals = [
        settings.auction_monitor_interval_seconds,
        settings.payment_monitor_interval_seconds,
    ]

    _scheduler = AsyncIOScheduler()
    for monitor, seconds in zip(_monitors, intervals):
        _scheduler.add_job(
            monitor.run_tick,
            trigger=IntervalTrigger(seconds=seconds),
            id=type(monitor).__name__,
            name=monitor.name,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
    _scheduler.start()
    logger.info(
        f"APScheduler started: auction expiry every {intervals[0]}s, payment window every {intervals[1]}s"
    )
    return _scheduler


async def shutdown_scheduler(timeout: float = 30.0) -> None:
    """Stop scheduling ticks, then wait for in-flight ticks to finish their current item."""
    global _scheduler, _monitors, _stop_event
    if not _scheduler:
        return

    _stop_event.set()
    _scheduler.shutdown(wait=False)
    try:
        await asyncio.wait_for(asyncio.gather(*(m.wait_idle() for m in _monitors)), timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Monitors still busy after {timeout}s, shutting down anyway")

    _scheduler = None
    _monitors = []
    _stop_event = None
    logger.info("APScheduler shut down")

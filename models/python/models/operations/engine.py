from dataclasses import dataclass
from typing import Optional

from clients.notifier import LogNotifier, Notifier
from models.operations.auctions import AuctionStateMachine
from models.operations.bids import BidLedger
from models.operations.clock import Clock, SystemClock
from models.operations.payment_attempts import PaymentAttemptTracker
from models.operations.payment_cascade import PaymentCascadeCoordinator
from models.operations.settings import EngineSettings
from models.stores.base import AuctionStore


@dataclass
class AuctionEngine:
    store: AuctionStore
    clock: Clock
    settings: EngineSettings
    ledger: BidLedger
    auctions: AuctionStateMachine
    tracker: PaymentAttemptTracker
    cascade: PaymentCascadeCoordinator


def build_engine(
    store: AuctionStore,
    clock: Optional[Clock] = None,
    notifier: Optional[Notifier] = None,
    settings: Optional[EngineSettings] = None,
) -> AuctionEngine:
    """Wire the engine components around one store, clock and notifier."""
    clock = clock or SystemClock()
    notifier = notifier or LogNotifier()
    settings = settings or EngineSettings()

    ledger = BidLedger(store)
    auctions = AuctionStateMachine(store, ledger, clock, settings)
    tracker = PaymentAttemptTracker(store, clock, settings)
    cascade = PaymentCascadeCoordinator(store, ledger, tracker, auctions, notifier, clock, settings)
    auctions.cascade = cascade

    return AuctionEngine(
        store=store,
        clock=clock,
        settings=settings,
        ledger=ledger,
        auctions=auctions,
        tracker=tracker,
        cascade=cascade,
    )

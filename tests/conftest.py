"""
Shared fixtures: a frozen clock, the in-memory store and a fully wired engine.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from models.entities.couchbase.products import ProductData
from models.operations.engine import build_engine
from models.operations.products import product_create_with_auction
from models.operations.settings import EngineSettings
from models.stores.memory import InMemoryAuctionStore

T0 = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Clock that only moves when a test moves it"""

    def __init__(self, start: datetime = T0):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


class RecordingNotifier:
    """Notifier that remembers every call"""

    def __init__(self):
        self.required = []
        self.confirmed = []

    async def payment_required(self, recipient_id, auction_id, amount, window_expires_at):
        self.required.append((recipient_id, auction_id, amount, window_expires_at))

    async def payment_confirmed(self, recipient_id, product_name, amount):
        self.confirmed.append((recipient_id, product_name, amount))


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def store(clock):
    return InMemoryAuctionStore(clock)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def settings():
    return EngineSettings()


@pytest.fixture
def engine(store, clock, notifier, settings):
    return build_engine(store, clock=clock, notifier=notifier, settings=settings)


@pytest.fixture
def make_auction(engine, clock):
    """Factory: list a product owned by ``seller`` and open its auction at the clock's time"""

    async def _make(owner_id="seller", starting_price="100.00", duration_minutes=10, name="Vintage lamp"):
        data = ProductData(
            owner_id=owner_id,
            name=name,
            starting_price=Decimal(starting_price),
            auction_duration_minutes=duration_minutes,
        )
        product, auction = await product_create_with_auction(
            engine.store, engine.auctions, owner_id, data, now=clock.now()
        )
        return auction

    return _make

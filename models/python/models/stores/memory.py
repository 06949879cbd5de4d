"""In-process ``AuctionStore`` for local runs and the test-suite.

Documents are kept in their serialized JSON form and every read returns a
fresh entity, so callers can't share mutable state through the store. Each
write bumps a per-document CAS counter and ``replace_*`` checks it, giving
the same optimistic-concurrency behaviour as Couchbase. Document timestamps
come from the injected clock.
"""

import itertools
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Type

from clients.couchbase import BaseModelCouchbase
from models.entities.couchbase.auctions import Auction, AuctionData, AuctionStatus
from models.entities.couchbase.bids import Bid, BidData
from models.entities.couchbase.payment_attempts import PaymentAttempt, PaymentAttemptData, PaymentStatus
from models.entities.couchbase.products import Product, ProductData
from models.operations.clock import Clock, SystemClock
from models.stores.base import DuplicateKeyError, StaleWriteError


class _Collection:
    def __init__(self, entity: Type[BaseModelCouchbase], cas_counter: itertools.count, clock: Clock):
        self.entity = entity
        self.clock = clock
        self._docs: Dict[str, Tuple[Dict[str, Any], int]] = {}
        self._cas = cas_counter

    def get(self, key: str):
        found = self._docs.get(key)
        if found is None:
            return None
        doc, cas = found
        return self.entity(id=key, data=doc, cas=cas)

    def insert(self, data, key: Optional[str] = None):
        key = key or str(uuid.uuid4())
        if key in self._docs:
            raise DuplicateKeyError(f"{self.entity.__name__} {key} already exists")
        now = self.clock.now()
        if data.created_at is None:
            data.created_at = now
        data.updated_at = now
        cas = next(self._cas)
        self._docs[key] = (self.entity.to_document(data), cas)
        return self.get(key)

    def replace(self, item):
        current = self._docs.get(item.id)
        if current is None:
            raise StaleWriteError(f"{self.entity.__name__} {item.id} no longer exists")
        if item.cas is not None and item.cas != current[1]:
            raise StaleWriteError(f"{self.entity.__name__} {item.id} changed concurrently")
        item.data.updated_at = self.clock.now()
        cas = next(self._cas)
        self._docs[item.id] = (self.entity.to_document(item.data), cas)
        item.cas = cas
        return item

    def all(self) -> list:
        return [self.entity(id=key, data=doc, cas=cas) for key, (doc, cas) in self._docs.items()]


class InMemoryAuctionStore:

    def __init__(self, clock: Optional[Clock] = None):
        cas = itertools.count(1)
        clock = clock or SystemClock()
        self.products = _Collection(Product, cas, clock)
        self.auctions = _Collection(Auction, cas, clock)
        self.bids = _Collection(Bid, cas, clock)
        self.attempts = _Collection(PaymentAttempt, cas, clock)

    # Products

    async def get_product(self, product_id: str) -> Optional[Product]:
        return self.products.get(product_id)

    async def insert_product(self, data: ProductData) -> Product:
        return self.products.insert(data)

    # Auctions

    async def get_auction(self, auction_id: str) -> Optional[Auction]:
        return self.auctions.get(auction_id)

    async def get_auction_by_product(self, product_id: str) -> Optional[Auction]:
        for auction in self.auctions.all():
            if auction.data.product_id == product_id:
                return auction
        return None

    async def insert_auction(self, data: AuctionData) -> Auction:
        return self.auctions.insert(data)

    async def replace_auction(self, auction: Auction) -> Auction:
        return self.auctions.replace(auction)

    async def auctions_by_status(self, status: AuctionStatus, limit: Optional[int] = None) -> List[Auction]:
        found = [a for a in self.auctions.all() if a.data.status is status]
        found.sort(key=lambda a: a.data.created_at, reverse=True)
        return found[:limit] if limit is not None else found

    async def expired_auctions(self, now: datetime) -> List[Auction]:
        found = [
            a for a in self.auctions.all()
            if a.data.status is AuctionStatus.ACTIVE and a.data.expiry_time <= now
        ]
        return sorted(found, key=lambda a: a.data.expiry_time)

    async def count_auctions_by_status(self) -> Dict[AuctionStatus, int]:
        counts = {status: 0 for status in AuctionStatus}
        for auction in self.auctions.all():
            counts[auction.data.status] += 1
        return counts

    # Bids

    async def insert_bid(self, data: BidData, key: str) -> Bid:
        return self.bids.insert(data, key=key)

    async def get_bid(self, bid_id: str) -> Optional[Bid]:
        return self.bids.get(bid_id)

    async def bids_for_auction(self, auction_id: str) -> List[Bid]:
        found = [b for b in self.bids.all() if b.data.auction_id == auction_id]
        return sorted(found, key=lambda b: b.data.placed_at)

    # Payment attempts

    async def insert_attempt(self, data: PaymentAttemptData, key: str) -> PaymentAttempt:
        return self.attempts.insert(data, key=key)

    async def get_attempt(self, payment_id: str) -> Optional[PaymentAttempt]:
        return self.attempts.get(payment_id)

    async def replace_attempt(self, attempt: PaymentAttempt) -> PaymentAttempt:
        return self.attempts.replace(attempt)

    async def attempts_for_auction(self, auction_id: str) -> List[PaymentAttempt]:
        found = [p for p in self.attempts.all() if p.data.auction_id == auction_id]
        return sorted(found, key=lambda p: p.data.attempt_number)

    async def pending_attempts(self, auction_id: str) -> List[PaymentAttempt]:
        found = [
            p for p in self.attempts.all()
            if p.data.auction_id == auction_id and p.data.status is PaymentStatus.PENDING
        ]
        return sorted(found, key=lambda p: p.data.attempt_number, reverse=True)

    async def expired_pending_attempts(self, now: datetime) -> List[PaymentAttempt]:
        found = [
            p for p in self.attempts.all()
            if p.data.status is PaymentStatus.PENDING and p.data.window_expiry_time <= now
        ]
        return sorted(found, key=lambda p: p.data.window_expiry_time)

    async def all_attempts(self, limit: Optional[int] = None) -> List[PaymentAttempt]:
        found = sorted(self.attempts.all(), key=lambda p: p.data.attempt_time, reverse=True)
        return found[:limit] if limit is not None else found

"""Durable-store contract the auction engine runs against.

The store is the single source of truth: the engine never caches an auction
or payment attempt between calls. Single-document writes are atomic:
``replace_*`` succeeds only if the document is unchanged since it was read
(``StaleWriteError`` otherwise) and ``insert_*`` fails with
``DuplicateKeyError`` when the key is taken.
"""

from datetime import datetime
from typing import Dict, List, Optional, Protocol

from models.entities.couchbase.auctions import Auction, AuctionData, AuctionStatus
from models.entities.couchbase.bids import Bid, BidData
from models.entities.couchbase.payment_attempts import PaymentAttempt, PaymentAttemptData
from models.entities.couchbase.products import Product, ProductData


class StoreError(Exception):
    """Base exception for store failures the engine reacts to."""
    pass


class StaleWriteError(StoreError):
    """The document changed since it was read (CAS mismatch)."""
    pass


class DuplicateKeyError(StoreError):
    """A document with this key already exists."""
    pass


class AuctionStore(Protocol):
    # Products
    async def get_product(self, product_id: str) -> Optional[Product]: ...
    async def insert_product(self, data: ProductData) -> Product: ...

    # Auctions
    async def get_auction(self, auction_id: str) -> Optional[Auction]: ...
    async def get_auction_by_product(self, product_id: str) -> Optional[Auction]: ...
    async def insert_auction(self, data: AuctionData) -> Auction: ...
    async def replace_auction(self, auction: Auction) -> Auction: ...
    async def auctions_by_status(self, status: AuctionStatus, limit: Optional[int] = None) -> List[Auction]: ...
    async def expired_auctions(self, now: datetime) -> List[Auction]: ...
    async def count_auctions_by_status(self) -> Dict[AuctionStatus, int]: ...

    # Bids
    async def insert_bid(self, data: BidData, key: str) -> Bid: ...
    async def get_bid(self, bid_id: str) -> Optional[Bid]: ...
    async def bids_for_auction(self, auction_id: str) -> List[Bid]: ...

    # Payment attempts
    async def insert_attempt(self, data: PaymentAttemptData, key: str) -> PaymentAttempt: ...
    async def get_attempt(self, payment_id: str) -> Optional[PaymentAttempt]: ...
    async def replace_attempt(self, attempt: PaymentAttempt) -> PaymentAttempt: ...
    async def attempts_for_auction(self, auction_id: str) -> List[PaymentAttempt]: ...
    async def pending_attempts(self, auction_id: str) -> List[PaymentAttempt]: ...
    async def expired_pending_attempts(self, now: datetime) -> List[PaymentAttempt]: ...
    async def all_attempts(self, limit: Optional[int] = None) -> List[PaymentAttempt]: ...

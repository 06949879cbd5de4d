from enum import Enum
from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import Field
from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData


class AuctionStatus(str, Enum):
    ACTIVE = "active"
    PENDING_PAYMENT = "pending_payment"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (AuctionStatus.COMPLETED, AuctionStatus.FAILED)

    def can_transition_to(self, target: "AuctionStatus") -> bool:
        return target in _AUCTION_TRANSITIONS[self]


_AUCTION_TRANSITIONS = {
    AuctionStatus.ACTIVE: {AuctionStatus.PENDING_PAYMENT, AuctionStatus.FAILED},
    AuctionStatus.PENDING_PAYMENT: {AuctionStatus.COMPLETED, AuctionStatus.FAILED},
    AuctionStatus.COMPLETED: set(),
    AuctionStatus.FAILED: set(),
}


class AuctionData(BaseCouchbaseEntityData):
    product_id: str

    # Schedule; only ever pushed back by anti-snipe extensions
    expiry_time: datetime
    extension_count: int = Field(default=0, ge=0)

    status: AuctionStatus = AuctionStatus.ACTIVE

    # Denormalized high-bid (updated atomically via CAS on each bid)
    highest_bid_id: Optional[str] = None
    highest_bid_amount: Optional[Decimal] = None

    # Outcome
    finalized_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    winner_id: Optional[str] = None
    final_amount: Optional[Decimal] = None
    failure_reason: Optional[str] = None


class Auction(BaseModelCouchbase[AuctionData]):
    _collection_name = "auctions"

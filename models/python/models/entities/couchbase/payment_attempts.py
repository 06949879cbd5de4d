from enum import Enum
from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import Field
from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"

    def can_transition_to(self, target: "PaymentStatus") -> bool:
        return self is PaymentStatus.PENDING and target is not PaymentStatus.PENDING


class PaymentAttemptData(BaseCouchbaseEntityData):
    auction_id: str
    bidder_id: str
    # The ranked bid this attempt offers to its bidder
    bid_id: str
    amount_due: Decimal
    status: PaymentStatus = PaymentStatus.PENDING
    attempt_number: int = Field(ge=1)
    attempt_time: datetime
    window_expiry_time: datetime
    confirmed_amount: Optional[Decimal] = None
    completed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None


class PaymentAttempt(BaseModelCouchbase[PaymentAttemptData]):
    _collection_name = "payment_attempts"

    @staticmethod
    def key_for(auction_id: str, attempt_number: int) -> str:
        """Deterministic key: a second insert of the same attempt number fails."""
        return f"{auction_id}::attempt::{attempt_number}"

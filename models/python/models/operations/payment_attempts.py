"""
Payment attempt tracker.

One document per attempt per auction, keyed ``<auction_id>::attempt::<n>``.
An attempt starts ``pending`` and ends ``success`` or ``failed`` exactly
once; only this module writes attempt documents.
"""

import logging
from datetime import datetime, timedelta
from typing import AsyncIterator, List, Optional

from models.entities.couchbase.bids import Bid
from models.entities.couchbase.payment_attempts import PaymentAttempt, PaymentAttemptData, PaymentStatus
from models.operations.auctions import parse_amount
from models.operations.cas import cas_retry
from models.operations.clock import Clock
from models.operations.errors import (
    ConflictError,
    ExpiredError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
)
from models.operations.settings import EngineSettings
from models.stores.base import AuctionStore, DuplicateKeyError

logger = logging.getLogger(__name__)

AMOUNT_MISMATCH = "Confirmed amount does not match the amount due"
WINDOW_EXPIRED = "Payment window expired without confirmation"


def _transition(d: PaymentAttemptData, target: PaymentStatus) -> None:
    if not d.status.can_transition_to(target):
        raise InvalidStateError(f"Payment attempt is already {d.status.value}")
    d.status = target


class PaymentAttemptTracker:

    def __init__(self, store: AuctionStore, clock: Clock, settings: EngineSettings):
        self.store = store
        self.clock = clock
        self.settings = settings

    async def _update(self, payment_id: str, mutator):
        return await cas_retry(
            self.store.get_attempt, self.store.replace_attempt, payment_id, mutator, "Payment attempt"
        )

    # Queries

    async def get(self, payment_id: str) -> PaymentAttempt:
        attempt = await self.store.get_attempt(payment_id)
        if not attempt:
            raise NotFoundError("Payment attempt not found")
        return attempt

    async def current_pending(self, auction_id: str) -> Optional[PaymentAttempt]:
        pending = await self.store.pending_attempts(auction_id)
        return pending[0] if pending else None

    async def history(self, auction_id: str) -> List[PaymentAttempt]:
        return await self.store.attempts_for_auction(auction_id)

    async def transactions(self, limit: Optional[int] = None) -> List[PaymentAttempt]:
        return await self.store.all_attempts(limit=limit)

    # Issuance

    async def issue(
        self,
        auction_id: str,
        bidder_id: str,
        attempt_number: int,
        bid: Bid,
        now: Optional[datetime] = None,
        window_minutes: Optional[int] = None,
    ) -> PaymentAttempt:
        """Offer the purchase to *bidder_id* at the amount of *bid*.

        Raises ConflictError when the auction already has a pending attempt or
        this attempt number was issued before (two overlapping monitor ticks).
        """
        now = now or self.clock.now()
        window_minutes = window_minutes or self.settings.payment_window_minutes

        if await self.store.pending_attempts(auction_id):
            raise ConflictError(f"Auction {auction_id} already has a pending payment attempt")

        data = PaymentAttemptData(
            auction_id=auction_id,
            bidder_id=bidder_id,
            bid_id=bid.id,
            amount_due=bid.data.amount,
            attempt_number=attempt_number,
            attempt_time=now,
            window_expiry_time=now + timedelta(minutes=window_minutes),
        )
        try:
            attempt = await self.store.insert_attempt(data, PaymentAttempt.key_for(auction_id, attempt_number))
        except DuplicateKeyError as e:
            raise ConflictError(
                f"Payment attempt {attempt_number} for auction {auction_id} was already issued"
            ) from e

        logger.info(
            f"Payment attempt {attempt_number} created for auction {auction_id}, bidder {bidder_id}, "
            f"window until {data.window_expiry_time.isoformat()}"
        )
        return attempt

    # Completion

    async def confirm(
        self,
        payment_id: str,
        confirmed_amount,
        now: Optional[datetime] = None,
        bidder_id: Optional[str] = None,
    ) -> PaymentAttempt:
        """Record the bidder's payment confirmation.

        An exact match with the amount due marks the attempt ``success``; any
        other amount marks it ``failed``. The caller decides what follows.
        """
        amount = parse_amount(confirmed_amount)
        now = now or self.clock.now()

        def _check(d: PaymentAttemptData) -> None:
            if d.status is not PaymentStatus.PENDING:
                raise InvalidStateError("Payment attempt is not pending")
            if bidder_id is not None and d.bidder_id != bidder_id:
                raise ForbiddenError("You are not authorized to confirm this payment")
            if now > d.window_expiry_time:
                raise ExpiredError("Payment window has expired")

        _check((await self.get(payment_id)).data)

        def _mutate(d: PaymentAttemptData) -> bool:
            _check(d)
            if amount == d.amount_due:
                _transition(d, PaymentStatus.SUCCESS)
            else:
                _transition(d, PaymentStatus.FAILED)
                d.failure_reason = AMOUNT_MISMATCH
            d.confirmed_amount = amount
            d.completed_at = now
            return True

        attempt, _ = await self._update(payment_id, _mutate)
        if attempt.data.status is PaymentStatus.SUCCESS:
            logger.info(f"Payment attempt {payment_id} confirmed for auction {attempt.data.auction_id}")
        else:
            logger.warning(
                f"Payment amount mismatch on attempt {payment_id}: "
                f"expected {attempt.data.amount_due:.2f}, got {amount:.2f}"
            )
        return attempt

    async def expire(self, payment_id: str, now: Optional[datetime] = None) -> Optional[PaymentAttempt]:
        """Fail an attempt whose window has passed.

        Returns the failed attempt, or ``None`` when it was already settled or
        its window is still open.
        """
        now = now or self.clock.now()

        def _mutate(d: PaymentAttemptData) -> bool:
            if d.status is not PaymentStatus.PENDING or now < d.window_expiry_time:
                return False
            _transition(d, PaymentStatus.FAILED)
            d.completed_at = now
            d.failure_reason = WINDOW_EXPIRED
            return True

        attempt, changed = await self._update(payment_id, _mutate)
        return attempt if changed else None

    async def expire_overdue(self, now: Optional[datetime] = None) -> AsyncIterator[PaymentAttempt]:
        """Fail every pending attempt whose window has passed, yielding each one.

        The caller triggers the cascade for a yielded attempt before the next
        one is expired. A failure on one attempt is logged and skipped.
        """
        now = now or self.clock.now()
        for overdue in await self.store.expired_pending_attempts(now):
            try:
                expired = await self.expire(overdue.id, now)
            except Exception as e:
                logger.error(f"Error expiring payment attempt {overdue.id}: {e}", exc_info=True)
                continue
            if expired:
                logger.info(
                    f"Payment window expired: attempt {expired.id}, auction {expired.data.auction_id}"
                )
                yield expired

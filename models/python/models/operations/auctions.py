"""
Auction state machine with CAS-guarded atomic transitions.

    active ──► pending_payment ──► completed
      │               │
      └──► failed ◄───┘

Only this module writes an auction's status, expiry time, extension count
and highest-bid pointer. Every write goes through ``cas_retry`` so the
checks are re-run against the latest copy of the document:

- a bid racing the expiry monitor is rejected once the status has moved on
- a bid that extends the auction beats a finalize that read the old expiry
"""

import logging
import uuid
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from models.entities.couchbase.auctions import Auction, AuctionData, AuctionStatus
from models.entities.couchbase.bids import Bid, BidData
from models.entities.couchbase.products import Product
from models.operations.bids import BidLedger
from models.operations.cas import cas_retry
from models.operations.clock import Clock
from models.operations.errors import (
    BidTooLowError,
    ExpiredError,
    InvalidStateError,
    NotFoundError,
    SelfBidError,
    ValidationFailedError,
)
from models.operations.settings import EngineSettings
from models.stores.base import AuctionStore

if TYPE_CHECKING:
    from models.operations.payment_cascade import PaymentCascadeCoordinator

logger = logging.getLogger(__name__)

AUCTION_NOT_ACTIVE = "Auction is not active"
AUCTION_EXPIRED = "Auction has already expired"
CANNOT_BID_OWN_PRODUCT = "Cannot bid on your own product"
NO_BIDS_RECEIVED = "No bids received"

CENT = Decimal("0.01")


def parse_amount(raw) -> Decimal:
    """Coerce a bid or payment amount to a positive two-decimal ``Decimal``."""
    try:
        amount = raw if isinstance(raw, Decimal) else Decimal(str(raw))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationFailedError(f"Invalid amount: {raw!r}")
    if not amount.is_finite() or amount <= 0:
        raise ValidationFailedError("Amount must be greater than 0")
    if amount != amount.quantize(CENT):
        raise ValidationFailedError("Amount cannot have more than 2 decimal places")
    return amount.quantize(CENT)


def _transition(d: AuctionData, target: AuctionStatus) -> None:
    if not d.status.can_transition_to(target):
        raise InvalidStateError(
            f"Auction cannot move from {d.status.value} to {target.value}"
        )
    d.status = target


class AuctionStateMachine:
    """Owns every auction status transition.

    ``cascade`` is the payment cascade coordinator that takes over once an
    auction reaches ``pending_payment``; it is attached after construction
    because the coordinator in turn drives ``complete`` and ``fail``.
    """

    def __init__(
        self,
        store: AuctionStore,
        ledger: BidLedger,
        clock: Clock,
        settings: EngineSettings,
        cascade: Optional["PaymentCascadeCoordinator"] = None,
    ):
        self.store = store
        self.ledger = ledger
        self.clock = clock
        self.settings = settings
        self.cascade = cascade

    async def _update(self, auction_id: str, mutator) -> Tuple[Auction, bool]:
        return await cas_retry(
            self.store.get_auction, self.store.replace_auction, auction_id, mutator, "Auction"
        )

    # ---------------------------------------------------------------------------
    # Queries
    # ---------------------------------------------------------------------------

    async def get(self, auction_id: str) -> Auction:
        auction = await self.store.get_auction(auction_id)
        if not auction:
            raise NotFoundError("Auction not found")
        return auction

    async def list_by_status(self, status: AuctionStatus, limit: Optional[int] = None) -> List[Auction]:
        return await self.store.auctions_by_status(status, limit=limit)

    async def status_counts(self) -> Dict[AuctionStatus, int]:
        return await self.store.count_auctions_by_status()

    # ---------------------------------------------------------------------------
    # Creation
    # ---------------------------------------------------------------------------

    async def open(self, product: Product, now: Optional[datetime] = None) -> Auction:
        """Start the auction for a freshly created product."""
        now = now or self.clock.now()
        existing = await self.store.get_auction_by_product(product.id)
        if existing:
            raise InvalidStateError(f"Product {product.id} already has an auction")
        data = AuctionData(
            product_id=product.id,
            expiry_time=now + timedelta(minutes=product.data.auction_duration_minutes),
        )
        auction = await self.store.insert_auction(data)
        logger.info(f"Auction {auction.id} opened for product {product.id}, expires {data.expiry_time.isoformat()}")
        return auction

    # ---------------------------------------------------------------------------
    # Bid placement (CAS-critical)
    # ---------------------------------------------------------------------------

    def _check_biddable(self, d: AuctionData, now: datetime) -> None:
        if d.status is not AuctionStatus.ACTIVE:
            raise InvalidStateError(AUCTION_NOT_ACTIVE)
        if now >= d.expiry_time:
            raise ExpiredError(AUCTION_EXPIRED)

    @staticmethod
    def _check_amount(d: AuctionData, product: Product, amount: Decimal) -> None:
        floor = product.data.starting_price
        if d.highest_bid_amount is not None and d.highest_bid_amount > floor:
            floor = d.highest_bid_amount
        if amount <= floor:
            raise BidTooLowError(f"Bid amount must be greater than current highest bid of {floor:.2f}")

    def _apply_anti_sniping(self, d: AuctionData, now: datetime) -> bool:
        threshold = timedelta(seconds=self.settings.anti_sniping_threshold_seconds)
        if d.expiry_time - now < threshold:
            d.expiry_time += timedelta(minutes=self.settings.extension_minutes)
            d.extension_count += 1
            return True
        return False

    async def place_bid(
        self,
        auction_id: str,
        bidder_id: str,
        amount,
        now: Optional[datetime] = None,
    ) -> Bid:
        """
        Atomically accept a bid on an auction.

        CAS flow:
        1. Read auction and product, validate (status, timing, owner, amount)
        2. CAS-update the auction: highest-bid pointer, anti-snipe extension
           (checks re-run on every retry)
        3. Append the bid to the ledger under the id the pointer refers to

        Raises NotFoundError, InvalidStateError, ExpiredError, SelfBidError,
        BidTooLowError or ValidationFailedError; the message is the rejection
        reason shown to the bidder.
        """
        amount = parse_amount(amount)
        if not bidder_id:
            raise ValidationFailedError("Bidder id is required")
        now = now or self.clock.now()

        auction = await self.get(auction_id)
        self._check_biddable(auction.data, now)

        product = await self.store.get_product(auction.data.product_id)
        if not product:
            raise NotFoundError("Product not found")
        if product.data.owner_id == bidder_id:
            raise SelfBidError(CANNOT_BID_OWN_PRODUCT)
        self._check_amount(auction.data, product, amount)

        bid_id = str(uuid.uuid4())
        previous = {}

        def _mutate(d: AuctionData) -> bool:
            self._check_biddable(d, now)
            self._check_amount(d, product, amount)
            previous["id"], previous["amount"] = d.highest_bid_id, d.highest_bid_amount
            d.highest_bid_id = bid_id
            d.highest_bid_amount = amount
            previous["extended"] = self._apply_anti_sniping(d, now)
            return True

        auction, _ = await self._update(auction_id, _mutate)

        try:
            bid = await self.ledger.append(
                BidData(auction_id=auction_id, bidder_id=bidder_id, amount=amount, placed_at=now),
                key=bid_id,
            )
        except Exception:
            logger.error(f"Failed to record bid {bid_id} on auction {auction_id}, restoring previous high bid")
            await self._restore_highest_bid(auction_id, bid_id, previous["id"], previous["amount"])
            raise

        if previous["extended"]:
            logger.info(
                f"Auction {auction_id} extended by {self.settings.extension_minutes} minute(s), "
                f"new expiry {auction.data.expiry_time.isoformat()}, extensions: {auction.data.extension_count}"
            )
        logger.info(f"Bid {bid.id} of {amount:.2f} placed on auction {auction_id} by {bidder_id}")
        return bid

    async def _restore_highest_bid(
        self, auction_id: str, bid_id: str, previous_id: Optional[str], previous_amount: Optional[Decimal]
    ) -> None:
        # The expiry extension stays: expiry never moves backwards.
        def _mutate(d: AuctionData) -> bool:
            if d.status is not AuctionStatus.ACTIVE or d.highest_bid_id != bid_id:
                return False
            d.highest_bid_id = previous_id
            d.highest_bid_amount = previous_amount
            return True

        await self._update(auction_id, _mutate)

    # ---------------------------------------------------------------------------
    # Lifecycle transitions
    # ---------------------------------------------------------------------------

    def _close_bidding(self, d: AuctionData, now: datetime) -> None:
        if d.highest_bid_id is None:
            _transition(d, AuctionStatus.FAILED)
            d.completed_at = now
            d.failure_reason = NO_BIDS_RECEIVED
        else:
            _transition(d, AuctionStatus.PENDING_PAYMENT)
        d.finalized_at = now

    async def _after_close(self, auction: Auction, now: datetime) -> None:
        if auction.data.status is AuctionStatus.FAILED:
            logger.info(f"Auction {auction.id} marked as Failed (no bids)")
            return
        logger.info(f"Auction {auction.id} moved to PendingPayment")
        if self.cascade is None:
            logger.warning(f"No payment cascade attached; auction {auction.id} awaits recovery")
            return
        await self.cascade.begin_cascade(auction, now)

    async def finalize_expired(self, auction_id: str, now: Optional[datetime] = None) -> Auction:
        """Close bidding on an auction whose expiry time has passed.

        A no-op (the auction is returned unchanged) when the auction is no
        longer active or a late bid pushed its expiry past *now*.
        """
        now = now or self.clock.now()

        def _mutate(d: AuctionData) -> bool:
            if d.status is not AuctionStatus.ACTIVE or d.expiry_time > now:
                return False
            self._close_bidding(d, now)
            return True

        auction, changed = await self._update(auction_id, _mutate)
        if changed:
            await self._after_close(auction, now)
        return auction

    async def force_finalize(self, auction_id: str, now: Optional[datetime] = None) -> Auction:
        """Administrative close of an active auction regardless of its expiry."""
        now = now or self.clock.now()

        def _mutate(d: AuctionData) -> bool:
            if d.status is not AuctionStatus.ACTIVE:
                raise InvalidStateError(AUCTION_NOT_ACTIVE)
            self._close_bidding(d, now)
            return True

        auction, _ = await self._update(auction_id, _mutate)
        logger.info(f"Auction {auction_id} force-finalized with status {auction.data.status.value}")
        await self._after_close(auction, now)
        return auction

    async def complete(
        self,
        auction_id: str,
        confirmed_amount: Decimal,
        winner_id: str,
        now: Optional[datetime] = None,
    ) -> Auction:
        """Payment went through: pending_payment → completed."""
        now = now or self.clock.now()

        def _mutate(d: AuctionData) -> bool:
            _transition(d, AuctionStatus.COMPLETED)
            d.completed_at = now
            d.winner_id = winner_id
            d.final_amount = confirmed_amount
            return True

        auction, _ = await self._update(auction_id, _mutate)
        logger.info(f"Auction {auction_id} completed: winner={winner_id}, amount={confirmed_amount:.2f}")
        return auction

    async def fail(self, auction_id: str, reason: str, now: Optional[datetime] = None) -> Auction:
        """Mark an auction as failed. Failing an already failed auction is a no-op."""
        now = now or self.clock.now()

        def _mutate(d: AuctionData) -> bool:
            if d.status is AuctionStatus.FAILED:
                return False
            _transition(d, AuctionStatus.FAILED)
            d.completed_at = now
            d.failure_reason = reason
            return True

        auction, changed = await self._update(auction_id, _mutate)
        if changed:
            logger.info(f"Auction {auction_id} failed: {reason}")
        return auction

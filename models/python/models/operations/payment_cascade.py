"""
Payment cascade: offers the purchase down the ranked bidder list.

    attempt 1 → rank 0 ──fail──► attempt 2 → rank 1 ──fail──► … ──► auction failed
         │                             │
         └──success──► auction completed ◄──success──┘

The cascade stops at the first success, when the ranked list runs out, or
after ``max_payment_attempts`` attempts, whichever comes first.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from clients.notifier import Notifier
from models.entities.couchbase.auctions import Auction, AuctionStatus
from models.entities.couchbase.bids import Bid
from models.entities.couchbase.payment_attempts import PaymentAttempt, PaymentStatus
from models.operations.auctions import AuctionStateMachine
from models.operations.bids import BidLedger
from models.operations.clock import Clock
from models.operations.errors import ConflictError, InvalidStateError
from models.operations.payment_attempts import PaymentAttemptTracker
from models.operations.settings import EngineSettings
from models.stores.base import AuctionStore

logger = logging.getLogger(__name__)

MAX_ATTEMPTS_REACHED = "Maximum payment attempts reached"
NO_MORE_BIDDERS = "No more eligible bidders"
NO_PENDING_ATTEMPT = "No pending payment attempt found for this auction"


class PaymentCascadeCoordinator:

    def __init__(
        self,
        store: AuctionStore,
        ledger: BidLedger,
        tracker: PaymentAttemptTracker,
        auctions: AuctionStateMachine,
        notifier: Notifier,
        clock: Clock,
        settings: EngineSettings,
    ):
        self.store = store
        self.ledger = ledger
        self.tracker = tracker
        self.auctions = auctions
        self.notifier = notifier
        self.clock = clock
        self.settings = settings

    # ---------------------------------------------------------------------------
    # Issuance
    # ---------------------------------------------------------------------------

    async def _offer(self, auction_id: str, attempt_number: int, bid: Bid, now: datetime) -> Optional[PaymentAttempt]:
        try:
            attempt = await self.tracker.issue(
                auction_id, bid.data.bidder_id, attempt_number, bid, now=now
            )
        except ConflictError as e:
            # Another tick got there first; its attempt stands.
            logger.warning(f"Skipping payment attempt {attempt_number} for auction {auction_id}: {e}")
            return None

        try:
            await self.notifier.payment_required(
                attempt.data.bidder_id, auction_id, attempt.data.amount_due, attempt.data.window_expiry_time
            )
        except Exception as e:
            logger.error(f"Failed to send payment notification for attempt {attempt.id}: {e}")
        return attempt

    async def begin_cascade(self, auction: Auction, now: Optional[datetime] = None) -> Optional[PaymentAttempt]:
        """Offer the purchase to the top-ranked bidder of a freshly closed auction."""
        now = now or self.clock.now()
        ranked = await self.ledger.ranked_bidders(auction.id)
        if not ranked:
            await self.auctions.fail(auction.id, NO_MORE_BIDDERS, now)
            return None
        return await self._offer(auction.id, 1, ranked[0], now)

    async def process_failure(
        self, auction_id: str, failed_attempt_number: int, now: Optional[datetime] = None
    ) -> Optional[PaymentAttempt]:
        """Move the cascade on after attempt *failed_attempt_number* failed.

        Returns the next attempt, or ``None`` when the auction failed or had
        already left ``pending_payment``.
        """
        now = now or self.clock.now()
        logger.info(f"Processing retry for auction {auction_id} after attempt {failed_attempt_number}")

        auction = await self.auctions.get(auction_id)
        if auction.data.status is not AuctionStatus.PENDING_PAYMENT:
            logger.info(f"Auction {auction_id} is {auction.data.status.value}, nothing to cascade")
            return None

        if failed_attempt_number >= self.settings.max_payment_attempts:
            await self.auctions.fail(auction_id, MAX_ATTEMPTS_REACHED, now)
            return None

        ranked = await self.ledger.ranked_bidders(auction_id)
        if failed_attempt_number >= len(ranked):
            await self.auctions.fail(auction_id, NO_MORE_BIDDERS, now)
            return None

        return await self._offer(auction_id, failed_attempt_number + 1, ranked[failed_attempt_number], now)

    # ---------------------------------------------------------------------------
    # Confirmation
    # ---------------------------------------------------------------------------

    async def confirm_payment(
        self,
        payment_id: str,
        amount,
        now: Optional[datetime] = None,
        bidder_id: Optional[str] = None,
    ) -> PaymentAttempt:
        """Confirm a payment attempt and settle the auction accordingly.

        A matching amount completes the auction; a mismatch fails the attempt
        and offers the purchase to the next bidder. The returned attempt
        carries the outcome either way.
        """
        now = now or self.clock.now()
        attempt = await self.tracker.confirm(payment_id, amount, now=now, bidder_id=bidder_id)
        auction_id = attempt.data.auction_id

        if attempt.data.status is PaymentStatus.SUCCESS:
            await self.auctions.complete(auction_id, attempt.data.confirmed_amount, attempt.data.bidder_id, now)
            await self._notify_confirmed(attempt)
        else:
            await self.process_failure(auction_id, attempt.data.attempt_number, now)
        return attempt

    async def confirm_for_auction(
        self,
        auction_id: str,
        amount,
        now: Optional[datetime] = None,
        bidder_id: Optional[str] = None,
    ) -> PaymentAttempt:
        """Confirm whatever attempt is currently pending on *auction_id*."""
        await self.auctions.get(auction_id)
        pending = await self.tracker.current_pending(auction_id)
        if pending is None:
            raise InvalidStateError(NO_PENDING_ATTEMPT)
        return await self.confirm_payment(pending.id, amount, now=now, bidder_id=bidder_id)

    async def _notify_confirmed(self, attempt: PaymentAttempt) -> None:
        try:
            auction = await self.store.get_auction(attempt.data.auction_id)
            product = await self.store.get_product(auction.data.product_id) if auction else None
            name = product.data.name if product else attempt.data.auction_id
            await self.notifier.payment_confirmed(attempt.data.bidder_id, name, attempt.data.confirmed_amount)
        except Exception as e:
            logger.error(f"Failed to send payment confirmation for attempt {attempt.id}: {e}")

    # ---------------------------------------------------------------------------
    # Recovery
    # ---------------------------------------------------------------------------

    async def recover_stranded(self, now: Optional[datetime] = None) -> List[str]:
        """Re-drive ``pending_payment`` auctions whose cascade stopped half-way.

        An auction is stranded when the process died after it was closed but
        before its first attempt was issued, or after an attempt failed but
        before the next one was issued. Returns the ids of re-driven auctions.
        """
        now = now or self.clock.now()
        recovered = []
        for auction in await self.store.auctions_by_status(AuctionStatus.PENDING_PAYMENT):
            attempts = await self.tracker.history(auction.id)
            if any(a.data.status in (PaymentStatus.PENDING, PaymentStatus.SUCCESS) for a in attempts):
                continue

            logger.warning(f"Recovering stranded auction {auction.id} ({len(attempts)} failed attempt(s))")
            try:
                if not attempts:
                    await self.begin_cascade(auction, now)
                else:
                    await self.process_failure(auction.id, attempts[-1].data.attempt_number, now)
            except Exception as e:
                logger.error(f"Error recovering auction {auction.id}: {e}", exc_info=True)
                continue
            recovered.append(auction.id)
        return recovered


def top_winners(completed: List[Auction], limit: int = 10) -> List[dict]:
    """Aggregate completed auctions per winner, most auctions won first."""
    by_winner = {}
    for auction in completed:
        winner = auction.data.winner_id
        if not winner:
            continue
        entry = by_winner.setdefault(
            winner, {"user_id": winner, "auctions_won": 0, "total_amount_spent": Decimal("0")}
        )
        entry["auctions_won"] += 1
        entry["total_amount_spent"] += auction.data.final_amount or Decimal("0")
    ranked = sorted(
        by_winner.values(), key=lambda e: (-e["auctions_won"], -e["total_amount_spent"], e["user_id"])
    )
    return ranked[:limit]

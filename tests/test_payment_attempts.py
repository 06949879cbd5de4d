"""
Unit tests for the payment attempt tracker.

Tests:
- Issuance and the one-pending-attempt rule
- Confirmation outcomes and rejections
- Window expiry
"""

from decimal import Decimal

import pytest

from models.entities.couchbase.bids import BidData
from models.entities.couchbase.payment_attempts import PaymentAttempt, PaymentStatus
from models.operations.errors import (
    ConflictError,
    ExpiredError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
)


async def _bid(engine, clock, auction_id="a1", bidder_id="alice", amount="150.00"):
    return await engine.ledger.append(
        BidData(auction_id=auction_id, bidder_id=bidder_id, amount=Decimal(amount), placed_at=clock.now())
    )


class TestIssue:
    """Test payment attempt issuance"""

    @pytest.mark.asyncio
    async def test_issue_opens_window(self, engine, clock):
        bid = await _bid(engine, clock)
        attempt = await engine.tracker.issue("a1", "alice", 1, bid)

        assert attempt.id == PaymentAttempt.key_for("a1", 1) == "a1::attempt::1"
        assert attempt.data.status is PaymentStatus.PENDING
        assert attempt.data.amount_due == Decimal("150.00")
        assert attempt.data.attempt_time == clock.now()
        assert attempt.data.window_expiry_time == clock.advance(minutes=1)

    @pytest.mark.asyncio
    async def test_custom_window(self, engine, clock):
        bid = await _bid(engine, clock)
        attempt = await engine.tracker.issue("a1", "alice", 1, bid, window_minutes=15)
        assert attempt.data.window_expiry_time == clock.advance(minutes=15)

    @pytest.mark.asyncio
    async def test_second_pending_attempt_rejected(self, engine, clock):
        """Only one attempt per auction may be pending"""
        bid = await _bid(engine, clock)
        await engine.tracker.issue("a1", "alice", 1, bid)
        with pytest.raises(ConflictError):
            await engine.tracker.issue("a1", "bob", 2, bid)

    @pytest.mark.asyncio
    async def test_attempt_number_issued_once(self, engine, clock):
        """Re-issuing an attempt number fails even after the first settled"""
        bid = await _bid(engine, clock)
        first = await engine.tracker.issue("a1", "alice", 1, bid)
        clock.advance(minutes=2)
        await engine.tracker.expire(first.id)

        with pytest.raises(ConflictError, match="already issued"):
            await engine.tracker.issue("a1", "alice", 1, bid)


class TestConfirm:
    """Test payment confirmation"""

    @pytest.mark.asyncio
    async def test_exact_amount_succeeds(self, engine, clock):
        bid = await _bid(engine, clock)
        attempt = await engine.tracker.issue("a1", "alice", 1, bid)
        clock.advance(seconds=30)

        confirmed = await engine.tracker.confirm(attempt.id, "150.00", bidder_id="alice")
        assert confirmed.data.status is PaymentStatus.SUCCESS
        assert confirmed.data.confirmed_amount == Decimal("150.00")
        assert confirmed.data.completed_at == clock.now()

    @pytest.mark.asyncio
    async def test_mismatch_fails_attempt(self, engine, clock):
        """A wrong amount fails the attempt without revealing the amount due"""
        bid = await _bid(engine, clock)
        attempt = await engine.tracker.issue("a1", "alice", 1, bid)

        confirmed = await engine.tracker.confirm(attempt.id, "149.99")
        assert confirmed.data.status is PaymentStatus.FAILED
        assert confirmed.data.confirmed_amount == Decimal("149.99")
        assert "150" not in confirmed.data.failure_reason

    @pytest.mark.asyncio
    async def test_other_bidder_forbidden(self, engine, clock):
        bid = await _bid(engine, clock)
        attempt = await engine.tracker.issue("a1", "alice", 1, bid)
        with pytest.raises(ForbiddenError):
            await engine.tracker.confirm(attempt.id, "150.00", bidder_id="mallory")

        assert (await engine.tracker.get(attempt.id)).data.status is PaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_confirm_at_window_end_allowed(self, engine, clock):
        bid = await _bid(engine, clock)
        attempt = await engine.tracker.issue("a1", "alice", 1, bid)
        clock.advance(minutes=1)
        confirmed = await engine.tracker.confirm(attempt.id, "150.00")
        assert confirmed.data.status is PaymentStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_confirm_after_window_rejected(self, engine, clock):
        bid = await _bid(engine, clock)
        attempt = await engine.tracker.issue("a1", "alice", 1, bid)
        clock.advance(minutes=1, seconds=1)
        with pytest.raises(ExpiredError, match="Payment window has expired"):
            await engine.tracker.confirm(attempt.id, "150.00")

    @pytest.mark.asyncio
    async def test_confirm_twice_rejected(self, engine, clock):
        bid = await _bid(engine, clock)
        attempt = await engine.tracker.issue("a1", "alice", 1, bid)
        await engine.tracker.confirm(attempt.id, "150.00")
        with pytest.raises(InvalidStateError):
            await engine.tracker.confirm(attempt.id, "150.00")

    @pytest.mark.asyncio
    async def test_confirm_unknown(self, engine):
        with pytest.raises(NotFoundError):
            await engine.tracker.confirm("a1::attempt::9", "150.00")


class TestExpire:
    """Test window expiry"""

    @pytest.mark.asyncio
    async def test_open_window_not_expired(self, engine, clock):
        bid = await _bid(engine, clock)
        attempt = await engine.tracker.issue("a1", "alice", 1, bid)
        clock.advance(seconds=59)
        assert await engine.tracker.expire(attempt.id) is None

    @pytest.mark.asyncio
    async def test_window_expires_at_its_boundary(self, engine, clock):
        """An attempt whose window ends exactly now is overdue"""
        bid = await _bid(engine, clock)
        attempt = await engine.tracker.issue("a1", "alice", 1, bid)
        clock.advance(minutes=1)
        assert clock.now() == attempt.data.window_expiry_time

        expired = [a async for a in engine.tracker.expire_overdue(clock.now())]

        assert [a.id for a in expired] == [attempt.id]
        assert (await engine.tracker.get(attempt.id)).data.status is PaymentStatus.FAILED

    @pytest.mark.asyncio
    async def test_expire_overdue_yields_failed_attempts(self, engine, clock):
        bid_a = await _bid(engine, clock, auction_id="a1")
        bid_b = await _bid(engine, clock, auction_id="a2")
        await engine.tracker.issue("a1", "alice", 1, bid_a)
        clock.advance(seconds=30)
        await engine.tracker.issue("a2", "alice", 1, bid_b)
        clock.advance(seconds=40)

        expired = [a async for a in engine.tracker.expire_overdue()]
        assert [a.data.auction_id for a in expired] == ["a1"]
        assert expired[0].data.status is PaymentStatus.FAILED
        assert expired[0].data.completed_at == clock.now()
        assert (await engine.tracker.current_pending("a2")) is not None

    @pytest.mark.asyncio
    async def test_expire_overdue_skips_failing_item(self, engine, clock, monkeypatch):
        """One attempt that cannot be expired does not block the others"""
        bid_a = await _bid(engine, clock, auction_id="a1")
        bid_b = await _bid(engine, clock, auction_id="a2")
        await engine.tracker.issue("a1", "alice", 1, bid_a)
        await engine.tracker.issue("a2", "alice", 1, bid_b)
        clock.advance(minutes=2)

        original = engine.tracker.expire

        async def flaky_expire(payment_id, now=None):
            if payment_id.startswith("a1"):
                raise RuntimeError("store unavailable")
            return await original(payment_id, now)

        monkeypatch.setattr(engine.tracker, "expire", flaky_expire)
        expired = [a async for a in engine.tracker.expire_overdue()]
        assert [a.data.auction_id for a in expired] == ["a2"]

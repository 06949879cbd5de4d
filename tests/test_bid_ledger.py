"""
Unit tests for the bid ledger.

Tests:
- Highest bid by amount, ties to the earliest bid
- Ranked bidders: one entry per bidder at their best bid
- Full history in rank order
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from models.entities.couchbase.bids import BidData
from models.operations.bids import BidLedger


def _bid(auction_id, bidder_id, amount, placed_at):
    return BidData(auction_id=auction_id, bidder_id=bidder_id, amount=Decimal(amount), placed_at=placed_at)


class TestHighestBid:
    """Test highest-bid lookup"""

    @pytest.mark.asyncio
    async def test_highest_bid_by_amount(self, store, clock):
        """The largest amount wins regardless of order placed"""
        ledger = BidLedger(store)
        t = clock.now()
        await ledger.append(_bid("a1", "alice", "120.00", t))
        await ledger.append(_bid("a1", "bob", "180.00", t + timedelta(seconds=1)))
        await ledger.append(_bid("a1", "carol", "150.00", t + timedelta(seconds=2)))

        highest = await ledger.highest_bid("a1")
        assert highest.data.bidder_id == "bob"
        assert highest.data.amount == Decimal("180.00")

    @pytest.mark.asyncio
    async def test_tie_goes_to_earliest_bid(self, store, clock):
        """Equal amounts rank the earlier placement first"""
        ledger = BidLedger(store)
        t = clock.now()
        await ledger.append(_bid("a1", "late", "150.00", t + timedelta(seconds=5)))
        await ledger.append(_bid("a1", "early", "150.00", t))

        highest = await ledger.highest_bid("a1")
        assert highest.data.bidder_id == "early"

    @pytest.mark.asyncio
    async def test_no_bids(self, store):
        """An auction without bids has no highest bid"""
        ledger = BidLedger(store)
        assert await ledger.highest_bid("a1") is None
        assert await ledger.ranked_bidders("a1") == []

    @pytest.mark.asyncio
    async def test_bids_are_scoped_to_auction(self, store, clock):
        """Bids on other auctions are ignored"""
        ledger = BidLedger(store)
        await ledger.append(_bid("a1", "alice", "120.00", clock.now()))
        await ledger.append(_bid("a2", "bob", "999.00", clock.now()))

        highest = await ledger.highest_bid("a1")
        assert highest.data.bidder_id == "alice"


class TestRankedBidders:
    """Test the cascade ranking"""

    @pytest.mark.asyncio
    async def test_one_entry_per_bidder(self, store, clock):
        """A bidder who bid several times appears once, at their best bid"""
        ledger = BidLedger(store)
        t = clock.now()
        await ledger.append(_bid("a1", "alice", "110.00", t))
        await ledger.append(_bid("a1", "bob", "120.00", t + timedelta(seconds=1)))
        await ledger.append(_bid("a1", "alice", "130.00", t + timedelta(seconds=2)))
        await ledger.append(_bid("a1", "bob", "140.00", t + timedelta(seconds=3)))

        ranked = await ledger.ranked_bidders("a1")
        assert [(b.data.bidder_id, b.data.amount) for b in ranked] == [
            ("bob", Decimal("140.00")),
            ("alice", Decimal("130.00")),
        ]

    @pytest.mark.asyncio
    async def test_history_keeps_every_bid(self, store, clock):
        """The full history is not de-duplicated"""
        ledger = BidLedger(store)
        t = clock.now()
        await ledger.append(_bid("a1", "alice", "110.00", t))
        await ledger.append(_bid("a1", "alice", "130.00", t + timedelta(seconds=1)))

        history = await ledger.bids_for_auction("a1")
        assert [b.data.amount for b in history] == [Decimal("130.00"), Decimal("110.00")]

    @pytest.mark.asyncio
    async def test_append_uses_given_key(self, store, clock):
        """A pre-allocated id is kept"""
        ledger = BidLedger(store)
        bid = await ledger.append(_bid("a1", "alice", "110.00", clock.now()), key="bid-1")
        assert bid.id == "bid-1"
        assert (await ledger.get("bid-1")).data.bidder_id == "alice"

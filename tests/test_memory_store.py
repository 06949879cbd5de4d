"""
Tests for the in-memory store's optimistic concurrency.
"""

from datetime import timedelta

import pytest

from models.entities.couchbase.auctions import AuctionData, AuctionStatus
from models.entities.couchbase.bids import BidData
from models.stores.base import DuplicateKeyError, StaleWriteError


class TestInMemoryStore:
    """Test CAS and key semantics"""

    @pytest.mark.asyncio
    async def test_reads_are_independent_copies(self, store, clock):
        created = await store.insert_auction(AuctionData(product_id="p1", expiry_time=clock.now()))
        first = await store.get_auction(created.id)
        first.data.extension_count = 5

        again = await store.get_auction(created.id)
        assert again.data.extension_count == 0

    @pytest.mark.asyncio
    async def test_stale_replace_rejected(self, store, clock):
        created = await store.insert_auction(AuctionData(product_id="p1", expiry_time=clock.now()))
        reader_a = await store.get_auction(created.id)
        reader_b = await store.get_auction(created.id)

        reader_a.data.extension_count = 1
        await store.replace_auction(reader_a)

        reader_b.data.extension_count = 2
        with pytest.raises(StaleWriteError):
            await store.replace_auction(reader_b)
        assert (await store.get_auction(created.id)).data.extension_count == 1

    @pytest.mark.asyncio
    async def test_duplicate_key_rejected(self, store, clock):
        data = BidData(auction_id="a1", bidder_id="alice", amount="10.00", placed_at=clock.now())
        await store.insert_bid(data, key="b1")
        with pytest.raises(DuplicateKeyError):
            await store.insert_bid(data.model_copy(), key="b1")

    @pytest.mark.asyncio
    async def test_expired_and_counts(self, store, clock):
        now = clock.now()
        past = await store.insert_auction(AuctionData(product_id="p1", expiry_time=now - timedelta(seconds=1)))
        await store.insert_auction(AuctionData(product_id="p2", expiry_time=now + timedelta(minutes=1)))
        await store.insert_auction(
            AuctionData(product_id="p3", expiry_time=now - timedelta(minutes=1), status=AuctionStatus.FAILED)
        )

        assert [a.id for a in await store.expired_auctions(now)] == [past.id]
        counts = await store.count_auctions_by_status()
        assert counts[AuctionStatus.ACTIVE] == 2
        assert counts[AuctionStatus.FAILED] == 1
        assert counts[AuctionStatus.COMPLETED] == 0
        assert (await store.get_auction_by_product("p2")).data.product_id == "p2"

    @pytest.mark.asyncio
    async def test_insert_returns_fresh_entity(self, store, clock):
        data = AuctionData(product_id="p1", expiry_time=clock.now())
        created = await store.insert_auction(data)

        assert created.data is not data
        data.extension_count = 3
        assert (await store.get_auction(created.id)).data.extension_count == 0

    @pytest.mark.asyncio
    async def test_timestamps_follow_injected_clock(self, store, clock):
        start = clock.now()
        created = await store.insert_auction(AuctionData(product_id="p1", expiry_time=clock.now()))
        assert created.data.created_at == start
        assert created.data.updated_at == start

        clock.advance(minutes=5)
        created.data.extension_count = 1
        replaced = await store.replace_auction(created)
        assert replaced.data.created_at == start
        assert replaced.data.updated_at == start + timedelta(minutes=5)

    @pytest.mark.asyncio
    async def test_status_listing_newest_first_by_clock(self, store, clock):
        first = await store.insert_auction(AuctionData(product_id="p1", expiry_time=clock.now()))
        clock.advance(seconds=1)
        second = await store.insert_auction(AuctionData(product_id="p2", expiry_time=clock.now()))

        listed = await store.auctions_by_status(AuctionStatus.ACTIVE)
        assert [a.id for a in listed] == [second.id, first.id]

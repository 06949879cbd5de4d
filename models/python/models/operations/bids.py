"""
Bid ledger: the append-only record of bids per auction.

Validation lives in operations/auctions.py; the ledger only stores bids and
answers ranking questions about them. Ranking is by amount descending; equal
amounts go to whoever bid first.
"""

import uuid
from typing import List, Optional

from models.entities.couchbase.bids import Bid, BidData
from models.stores.base import AuctionStore


def rank_key(bid: Bid):
    return (-bid.data.amount, bid.data.placed_at, bid.id)


class BidLedger:

    def __init__(self, store: AuctionStore):
        self.store = store

    async def append(self, data: BidData, key: Optional[str] = None) -> Bid:
        return await self.store.insert_bid(data, key or str(uuid.uuid4()))

    async def get(self, bid_id: str) -> Optional[Bid]:
        return await self.store.get_bid(bid_id)

    async def bids_for_auction(self, auction_id: str) -> List[Bid]:
        """Full bid history of an auction in rank order."""
        bids = await self.store.bids_for_auction(auction_id)
        return sorted(bids, key=rank_key)

    async def highest_bid(self, auction_id: str) -> Optional[Bid]:
        bids = await self.store.bids_for_auction(auction_id)
        return min(bids, key=rank_key) if bids else None

    async def ranked_bidders(self, auction_id: str) -> List[Bid]:
        """Each bidder's best bid, in rank order.

        Position ``i`` is the bidder offered the purchase at payment attempt
        ``i + 1``.
        """
        ranked = []
        seen = set()
        for bid in await self.bids_for_auction(auction_id):
            if bid.data.bidder_id in seen:
                continue
            seen.add(bid.data.bidder_id)
            ranked.append(bid)
        return ranked

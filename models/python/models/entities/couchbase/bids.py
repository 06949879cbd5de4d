from datetime import datetime
from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData
from models.entities.couchbase.products import Money


class BidData(BaseCouchbaseEntityData):
    """Immutable once written; the ledger never updates a bid."""
    auction_id: str
    bidder_id: str
    amount: Money
    placed_at: datetime


class Bid(BaseModelCouchbase[BidData]):
    _collection_name = "bids"

"""Couchbase-backed ``AuctionStore``.

Every query runs with ``REQUEST_PLUS`` consistency so the monitors and the
pending-attempt check never act on a stale index. Timestamps are stored as
ISO-8601 strings and compared through ``STR_TO_MILLIS``.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from couchbase.exceptions import CASMismatchException, DocumentExistsException

from clients.couchbase import ensure_collection, ensure_indexes

from models.entities.couchbase.auctions import Auction, AuctionData, AuctionStatus
from models.entities.couchbase.bids import Bid, BidData
from models.entities.couchbase.payment_attempts import PaymentAttempt, PaymentAttemptData, PaymentStatus
from models.entities.couchbase.products import Product, ProductData
from models.stores.base import DuplicateKeyError, StaleWriteError

logger = logging.getLogger(__name__)


def _millis(ts: datetime) -> int:
    return int(ts.timestamp() * 1000)


class CouchbaseAuctionStore:

    INDEXES = {
        Product: [],
        Auction: [
            ("idx_auctions_status_expiry", "status, STR_TO_MILLIS(expiry_time)"),
            ("idx_auctions_product", "product_id"),
        ],
        Bid: [("idx_bids_auction", "auction_id, STR_TO_MILLIS(placed_at)")],
        PaymentAttempt: [
            ("idx_attempts_auction", "auction_id, status, attempt_number"),
            ("idx_attempts_window", "status, STR_TO_MILLIS(window_expiry_time)"),
            ("idx_attempts_time", "STR_TO_MILLIS(attempt_time)"),
        ],
    }

    async def ensure_schema(self) -> None:
        """Create the collections and the indexes the store's queries rely on."""
        for entity, indexes in self.INDEXES.items():
            keyspace = entity.get_keyspace()
            await ensure_collection(keyspace)
            await ensure_indexes(keyspace, indexes)
        logger.info("Couchbase collections and indexes are in place")

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    async def get_product(self, product_id: str) -> Optional[Product]:
        return await Product.get(product_id)

    async def insert_product(self, data: ProductData) -> Product:
        return await Product.create(data)

    # ------------------------------------------------------------------
    # Auctions
    # ------------------------------------------------------------------

    async def get_auction(self, auction_id: str) -> Optional[Auction]:
        return await Auction.get(auction_id)

    async def get_auction_by_product(self, product_id: str) -> Optional[Auction]:
        rows = await Auction.query("product_id = $product_id", limit=1, product_id=product_id)
        return rows[0] if rows else None

    async def insert_auction(self, data: AuctionData) -> Auction:
        return await Auction.create(data)

    async def replace_auction(self, auction: Auction) -> Auction:
        try:
            return await Auction.update(auction)
        except CASMismatchException as e:
            raise StaleWriteError(f"Auction {auction.id} changed concurrently") from e

    async def auctions_by_status(self, status: AuctionStatus, limit: Optional[int] = None) -> List[Auction]:
        return await Auction.query(
            "status = $status",
            order_by="STR_TO_MILLIS(created_at) DESC",
            limit=limit,
            status=status.value,
        )

    async def expired_auctions(self, now: datetime) -> List[Auction]:
        return await Auction.query(
            "status = $status AND STR_TO_MILLIS(expiry_time) <= $now_ms",
            order_by="STR_TO_MILLIS(expiry_time) ASC",
            status=AuctionStatus.ACTIVE.value,
            now_ms=_millis(now),
        )

    async def count_auctions_by_status(self) -> Dict[AuctionStatus, int]:
        keyspace = Auction.get_keyspace()
        rows = await keyspace.query(
            f"SELECT status, COUNT(*) AS n FROM {keyspace} WHERE status IS NOT MISSING GROUP BY status"
        )
        counts = {status: 0 for status in AuctionStatus}
        for row in rows:
            try:
                counts[AuctionStatus(row["status"])] = row["n"]
            except ValueError:
                logger.warning(f"Ignoring auctions with unknown status {row.get('status')!r}")
        return counts

    # ------------------------------------------------------------------
    # Bids
    # ------------------------------------------------------------------

    async def insert_bid(self, data: BidData, key: str) -> Bid:
        try:
            return await Bid.create(data, key=key)
        except DocumentExistsException as e:
            raise DuplicateKeyError(f"Bid {key} already exists") from e

    async def get_bid(self, bid_id: str) -> Optional[Bid]:
        return await Bid.get(bid_id)

    async def bids_for_auction(self, auction_id: str) -> List[Bid]:
        return await Bid.query(
            "auction_id = $auction_id",
            order_by="STR_TO_MILLIS(placed_at) ASC",
            auction_id=auction_id,
        )

    # ------------------------------------------------------------------
    # Payment attempts
    # ------------------------------------------------------------------

    async def insert_attempt(self, data: PaymentAttemptData, key: str) -> PaymentAttempt:
        try:
            return await PaymentAttempt.create(data, key=key)
        except DocumentExistsException as e:
            raise DuplicateKeyError(f"Payment attempt {key} already exists") from e

    async def get_attempt(self, payment_id: str) -> Optional[PaymentAttempt]:
        return await PaymentAttempt.get(payment_id)

    async def replace_attempt(self, attempt: PaymentAttempt) -> PaymentAttempt:
        try:
            return await PaymentAttempt.update(attempt)
        except CASMismatchException as e:
            raise StaleWriteError(f"Payment attempt {attempt.id} changed concurrently") from e

    async def attempts_for_auction(self, auction_id: str) -> List[PaymentAttempt]:
        return await PaymentAttempt.query(
            "auction_id = $auction_id",
            order_by="attempt_number ASC",
            auction_id=auction_id,
        )

    async def pending_attempts(self, auction_id: str) -> List[PaymentAttempt]:
        return await PaymentAttempt.query(
            "auction_id = $auction_id AND status = $status",
            order_by="attempt_number DESC",
            auction_id=auction_id,
            status=PaymentStatus.PENDING.value,
        )

    async def expired_pending_attempts(self, now: datetime) -> List[PaymentAttempt]:
        return await PaymentAttempt.query(
            "status = $status AND STR_TO_MILLIS(window_expiry_time) <= $now_ms",
            order_by="STR_TO_MILLIS(window_expiry_time) ASC",
            status=PaymentStatus.PENDING.value,
            now_ms=_millis(now),
        )

    async def all_attempts(self, limit: Optional[int] = None) -> List[PaymentAttempt]:
        return await PaymentAttempt.query(
            "STR_TO_MILLIS(attempt_time) IS NOT MISSING",
            order_by="STR_TO_MILLIS(attempt_time) DESC",
            limit=limit,
        )

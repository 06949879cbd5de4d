"""
API endpoints for auctions and bidding.

GET    /auctions/                — list auctions by status (default: active)
GET    /auctions/{id}            — auction detail with product metadata
GET    /auctions/{id}/bids       — bid history, highest first
POST   /auctions/{id}/bids       — place a bid
POST   /auctions/{id}/finalize   — close bidding now (admin)
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from models.entities.couchbase.auctions import AuctionStatus
from models.operations.engine import AuctionEngine
from models.operations.errors import AuctionEngineError
from utils import log

from .dependencies import current_user_id, get_engine, require_admin
from .errors import http_error

logger = log.get_logger(__name__)

router = APIRouter(prefix="/auctions", tags=["auctions"])


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------

class PlaceBidRequest(BaseModel):
    amount: Decimal


class BidResponse(BaseModel):
    id: str
    auction_id: str
    bidder_id: str
    amount: Decimal
    placed_at: datetime


class AuctionResponse(BaseModel):
    id: str
    product_id: str
    status: AuctionStatus
    expiry_time: datetime
    extension_count: int
    highest_bid_id: Optional[str] = None
    highest_bid_amount: Optional[Decimal] = None
    created_at: Optional[datetime] = None
    finalized_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    winner_id: Optional[str] = None
    final_amount: Optional[Decimal] = None
    failure_reason: Optional[str] = None
    # Joined product metadata
    product_name: Optional[str] = None
    owner_id: Optional[str] = None
    starting_price: Optional[Decimal] = None


async def auction_to_response(engine: AuctionEngine, auction) -> AuctionResponse:
    """Convert an Auction entity to a response, joining product metadata."""
    d = auction.data
    product = await engine.store.get_product(d.product_id)
    pd = product.data if product else None

    return AuctionResponse(
        id=auction.id,
        product_id=d.product_id,
        status=d.status,
        expiry_time=d.expiry_time,
        extension_count=d.extension_count,
        highest_bid_id=d.highest_bid_id,
        highest_bid_amount=d.highest_bid_amount,
        created_at=d.created_at,
        finalized_at=d.finalized_at,
        completed_at=d.completed_at,
        winner_id=d.winner_id,
        final_amount=d.final_amount,
        failure_reason=d.failure_reason,
        product_name=pd.name if pd else None,
        owner_id=pd.owner_id if pd else None,
        starting_price=pd.starting_price if pd else None,
    )


def bid_to_response(bid) -> BidResponse:
    d = bid.data
    return BidResponse(
        id=bid.id,
        auction_id=d.auction_id,
        bidder_id=d.bidder_id,
        amount=d.amount,
        placed_at=d.placed_at,
    )


# ---------------------------------------------------------------------------
# GET /auctions/ — list by status
# ---------------------------------------------------------------------------

@router.get("/", response_model=List[AuctionResponse])
async def route_auctions_list(
    status: AuctionStatus = AuctionStatus.ACTIVE,
    limit: int = Query(default=50, ge=1, le=100),
    engine: AuctionEngine = Depends(get_engine),
):
    """List auctions in one status, newest first."""
    auctions = await engine.auctions.list_by_status(status, limit=limit)
    return [await auction_to_response(engine, a) for a in auctions]


# ---------------------------------------------------------------------------
# GET /auctions/{id} — auction detail
# ---------------------------------------------------------------------------

@router.get("/{auction_id}", response_model=AuctionResponse)
async def route_auction_detail(auction_id: str, engine: AuctionEngine = Depends(get_engine)):
    try:
        auction = await engine.auctions.get(auction_id)
    except AuctionEngineError as e:
        raise http_error(e)
    return await auction_to_response(engine, auction)


# ---------------------------------------------------------------------------
# GET /auctions/{id}/bids — bid history
# ---------------------------------------------------------------------------

@router.get("/{auction_id}/bids", response_model=List[BidResponse])
async def route_auction_bids(auction_id: str, engine: AuctionEngine = Depends(get_engine)):
    """Get bid history for an auction, ordered by amount descending."""
    try:
        await engine.auctions.get(auction_id)
    except AuctionEngineError as e:
        raise http_error(e)
    bids = await engine.ledger.bids_for_auction(auction_id)
    return [bid_to_response(b) for b in bids]


# ---------------------------------------------------------------------------
# POST /auctions/{id}/bids — place a bid
# ---------------------------------------------------------------------------

@router.post("/{auction_id}/bids", response_model=BidResponse, status_code=201)
async def route_place_bid(
    auction_id: str,
    body: PlaceBidRequest,
    user_id: str = Depends(current_user_id),
    engine: AuctionEngine = Depends(get_engine),
):
    """Place a bid on an active auction. Rejections carry the reason verbatim."""
    try:
        bid = await engine.auctions.place_bid(auction_id, user_id, body.amount)
    except AuctionEngineError as e:
        logger.info(f"Bid by {user_id} on auction {auction_id} rejected: {e}")
        raise http_error(e)
    return bid_to_response(bid)


# ---------------------------------------------------------------------------
# POST /auctions/{id}/finalize — force finalize
# ---------------------------------------------------------------------------

@router.post("/{auction_id}/finalize", response_model=AuctionResponse)
async def route_auction_finalize(
    auction_id: str,
    admin_id: str = Depends(require_admin),
    engine: AuctionEngine = Depends(get_engine),
):
    """Close bidding immediately regardless of the expiry time."""
    try:
        await engine.auctions.force_finalize(auction_id)
    except AuctionEngineError as e:
        raise http_error(e)
    logger.info(f"Auction {auction_id} force-finalized by {admin_id}")
    # Re-read: starting the payment cascade may have moved it on
    return await auction_to_response(engine, await engine.auctions.get(auction_id))

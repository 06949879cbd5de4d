"""
API endpoints for payment confirmation and history.

POST   /payments/confirm                       — confirm the pending payment of an auction
POST   /payments/{payment_id}/confirm          — confirm a specific payment attempt
GET    /payments/auction/{auction_id}          — current pending attempt
GET    /payments/auction/{auction_id}/history  — every attempt, in order
GET    /transactions/                          — all attempts, newest first (admin)
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from models.entities.couchbase.payment_attempts import PaymentStatus
from models.operations.engine import AuctionEngine
from models.operations.errors import AuctionEngineError
from utils import log

from .dependencies import current_user_id, get_engine, require_admin
from .errors import http_error

logger = log.get_logger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])
transactions_router = APIRouter(prefix="/transactions", tags=["payments"])


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------

class ConfirmPaymentRequest(BaseModel):
    amount: Decimal


class ConfirmAuctionPaymentRequest(BaseModel):
    auction_id: str
    amount: Decimal


class PaymentAttemptResponse(BaseModel):
    """Attempt as returned by confirmation; never carries the amount owed."""
    id: str
    auction_id: str
    bidder_id: str
    status: PaymentStatus
    attempt_number: int
    attempt_time: datetime
    window_expiry_time: datetime
    confirmed_amount: Optional[Decimal] = None
    completed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None


class PaymentAttemptDetailResponse(PaymentAttemptResponse):
    # Only filled in for the attempt's own bidder and on the admin transactions list
    amount_due: Optional[Decimal] = None


def attempt_to_response(attempt) -> PaymentAttemptResponse:
    d = attempt.data
    return PaymentAttemptResponse(
        id=attempt.id,
        auction_id=d.auction_id,
        bidder_id=d.bidder_id,
        status=d.status,
        attempt_number=d.attempt_number,
        attempt_time=d.attempt_time,
        window_expiry_time=d.window_expiry_time,
        confirmed_amount=d.confirmed_amount,
        completed_at=d.completed_at,
        failure_reason=d.failure_reason,
    )


def attempt_to_detail(attempt, show_amount: bool) -> PaymentAttemptDetailResponse:
    return PaymentAttemptDetailResponse(
        **attempt_to_response(attempt).model_dump(),
        amount_due=attempt.data.amount_due if show_amount else None,
    )


# ---------------------------------------------------------------------------
# Confirmation
# ---------------------------------------------------------------------------

@router.post("/confirm", response_model=PaymentAttemptResponse)
async def route_payment_confirm_for_auction(
    body: ConfirmAuctionPaymentRequest,
    user_id: str = Depends(current_user_id),
    engine: AuctionEngine = Depends(get_engine),
):
    """Confirm the payment currently pending on an auction.

    A wrong amount is not an error: the attempt comes back ``failed`` and the
    next bidder is offered the purchase.
    """
    logger.info(f"Payment confirmation request for auction {body.auction_id} by {user_id}")
    try:
        attempt = await engine.cascade.confirm_for_auction(body.auction_id, body.amount, bidder_id=user_id)
    except AuctionEngineError as e:
        raise http_error(e)
    return attempt_to_response(attempt)


@router.post("/{payment_id}/confirm", response_model=PaymentAttemptResponse)
async def route_payment_confirm(
    payment_id: str,
    body: ConfirmPaymentRequest,
    user_id: str = Depends(current_user_id),
    engine: AuctionEngine = Depends(get_engine),
):
    try:
        attempt = await engine.cascade.confirm_payment(payment_id, body.amount, bidder_id=user_id)
    except AuctionEngineError as e:
        raise http_error(e)
    return attempt_to_response(attempt)


# ---------------------------------------------------------------------------
# Status and history
# ---------------------------------------------------------------------------

@router.get("/auction/{auction_id}", response_model=PaymentAttemptDetailResponse, response_model_exclude_none=True)
async def route_payment_status(
    auction_id: str,
    user_id: str = Depends(current_user_id),
    engine: AuctionEngine = Depends(get_engine),
):
    try:
        await engine.auctions.get(auction_id)
    except AuctionEngineError as e:
        raise http_error(e)
    attempt = await engine.tracker.current_pending(auction_id)
    if not attempt:
        raise HTTPException(status_code=404, detail="No pending payment attempt found for this auction")
    return attempt_to_detail(attempt, show_amount=attempt.data.bidder_id == user_id)


@router.get(
    "/auction/{auction_id}/history",
    response_model=List[PaymentAttemptDetailResponse],
    response_model_exclude_none=True,
)
async def route_payment_history(
    auction_id: str,
    user_id: str = Depends(current_user_id),
    engine: AuctionEngine = Depends(get_engine),
):
    try:
        await engine.auctions.get(auction_id)
    except AuctionEngineError as e:
        raise http_error(e)
    return [
        attempt_to_detail(a, show_amount=a.data.bidder_id == user_id)
        for a in await engine.tracker.history(auction_id)
    ]


@transactions_router.get("/", response_model=List[PaymentAttemptDetailResponse])
async def route_transactions(
    limit: int = Query(default=100, ge=1, le=1000),
    admin_id: str = Depends(require_admin),
    engine: AuctionEngine = Depends(get_engine),
):
    """All payment attempts across auctions, newest first."""
    return [attempt_to_detail(a, show_amount=True) for a in await engine.tracker.transactions(limit=limit)]

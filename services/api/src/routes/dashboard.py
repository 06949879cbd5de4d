from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from models.entities.couchbase.auctions import AuctionStatus
from models.operations.engine import AuctionEngine
from models.operations.payment_cascade import top_winners
from utils import log

from .dependencies import get_engine, require_admin

logger = log.get_logger(__name__)

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


class TopWinner(BaseModel):
    user_id: str
    auctions_won: int
    total_amount_spent: Decimal


class DashboardResponse(BaseModel):
    active_count: int
    pending_payment: int
    completed_count: int
    failed_count: int
    top_winners: List[TopWinner]


@router.get("/", response_model=DashboardResponse)
async def route_dashboard(
    admin_id: str = Depends(require_admin),
    engine: AuctionEngine = Depends(get_engine),
):
    """Auction counts per status and the ten biggest winners."""
    counts = await engine.auctions.status_counts()
    completed = await engine.auctions.list_by_status(AuctionStatus.COMPLETED)
    return DashboardResponse(
        active_count=counts.get(AuctionStatus.ACTIVE, 0),
        pending_payment=counts.get(AuctionStatus.PENDING_PAYMENT, 0),
        completed_count=counts.get(AuctionStatus.COMPLETED, 0),
        failed_count=counts.get(AuctionStatus.FAILED, 0),
        top_winners=[TopWinner(**w) for w in top_winners(completed)],
    )

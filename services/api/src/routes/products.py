"""
API endpoints for products.

POST   /products/   — list a product for sale and open its auction
"""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from models.entities.couchbase.products import ProductData
from models.operations.engine import AuctionEngine
from models.operations.errors import AuctionEngineError
from models.operations.products import product_create_with_auction
from utils import log

from .auctions import AuctionResponse, auction_to_response
from .dependencies import current_user_id, get_engine
from .errors import http_error

logger = log.get_logger(__name__)

router = APIRouter(prefix="/products", tags=["products"])


class CreateProductRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = None
    starting_price: Decimal = Field(gt=0, max_digits=14, decimal_places=2)
    auction_duration_minutes: int = Field(gt=0, le=60 * 24 * 30)


class ProductResponse(BaseModel):
    id: str
    owner_id: str
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    starting_price: Decimal
    auction_duration_minutes: int
    auction: AuctionResponse


@router.post("/", response_model=ProductResponse, status_code=201)
async def route_product_create(
    body: CreateProductRequest,
    user_id: str = Depends(current_user_id),
    engine: AuctionEngine = Depends(get_engine),
):
    """Create a product; its auction starts immediately."""
    data = ProductData(owner_id=user_id, **body.model_dump())
    try:
        product, auction = await product_create_with_auction(engine.store, engine.auctions, user_id, data)
    except AuctionEngineError as e:
        raise http_error(e)

    d = product.data
    return ProductResponse(
        id=product.id,
        owner_id=d.owner_id,
        name=d.name,
        description=d.description,
        category=d.category,
        starting_price=d.starting_price,
        auction_duration_minutes=d.auction_duration_minutes,
        auction=await auction_to_response(engine, auction),
    )

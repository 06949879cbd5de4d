import logging
from datetime import datetime
from typing import Optional, Tuple

from models.entities.couchbase.auctions import Auction
from models.entities.couchbase.products import Product, ProductData
from models.operations.auctions import AuctionStateMachine
from models.operations.errors import NotFoundError, ValidationFailedError
from models.stores.base import AuctionStore

logger = logging.getLogger(__name__)


async def product_create_with_auction(
    store: AuctionStore,
    auctions: AuctionStateMachine,
    owner_id: str,
    data: ProductData,
    now: Optional[datetime] = None,
) -> Tuple[Product, Auction]:
    """List a product and open its auction straight away."""
    if not owner_id:
        raise ValidationFailedError("Owner id is required")
    data.owner_id = owner_id
    product = await store.insert_product(data)
    auction = await auctions.open(product, now)
    logger.info(f"Product {product.id} ({data.name}) created by {owner_id} with auction {auction.id}")
    return product, auction


async def product_get(store: AuctionStore, product_id: str) -> Product:
    product = await store.get_product(product_id)
    if not product:
        raise NotFoundError("Product not found")
    return product

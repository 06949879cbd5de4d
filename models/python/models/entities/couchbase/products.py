from decimal import Decimal
from typing import Annotated, Optional
from pydantic import Field
from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData

Money = Annotated[Decimal, Field(gt=0, max_digits=14, decimal_places=2)]


class ProductData(BaseCouchbaseEntityData):
    owner_id: str
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    starting_price: Money
    auction_duration_minutes: int = Field(gt=0)


class Product(BaseModelCouchbase[ProductData]):
    _collection_name = "products"

from fastapi import APIRouter
from utils import log

from .auctions import router as auctions_router
from .dashboard import router as dashboard_router
from .payments import router as payments_router
from .payments import transactions_router
from .products import router as products_router

logger = log.get_logger(__name__)

router = APIRouter(prefix="/api")
router.include_router(products_router)
router.include_router(auctions_router)
router.include_router(payments_router)
router.include_router(transactions_router)
router.include_router(dashboard_router)

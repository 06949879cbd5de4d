from contextlib import asynccontextmanager
from pathlib import Path

import conf
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from routes.base import router
from utils import log

from clients.notifier import LogNotifier, Notifier, WebhookNotifier
from models.operations.engine import build_engine
from models.stores.base import AuctionStore

log.init(conf.get_log_level())
logger = log.get_logger(__name__)

REPO_ROOT = Path(__file__).resolve().parents[3]


async def _build_store() -> AuctionStore:
    backend = conf.get_store_backend()
    if backend == "memory":
        from models.stores.memory import InMemoryAuctionStore

        logger.warning("Using the in-memory store: state is lost on restart")
        return InMemoryAuctionStore()

    from clients.couchbase import check_connection
    from models.stores.couchbase import CouchbaseAuctionStore

    # Check database connection
    logger.info("Verifying Couchbase connection...")
    await check_connection()
    logger.info("Couchbase connection verified.")
    store = CouchbaseAuctionStore()
    await store.ensure_schema()
    return store


def _build_notifier() -> Notifier:
    notifier_conf = conf.get_notifier_conf()
    if not notifier_conf.webhook_url:
        logger.info("NOTIFIER_WEBHOOK_URL not set, notifications go to the log")
        return LogNotifier()
    return WebhookNotifier(
        notifier_conf.webhook_url,
        timeout=notifier_conf.timeout_seconds,
        auth_token=notifier_conf.auth_token,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = await _build_store()
    app.state.engine = build_engine(
        store,
        notifier=_build_notifier(),
        settings=conf.get_engine_settings(),
    )

    from monitors.scheduler import init_scheduler, shutdown_scheduler

    if conf.get_monitors_enabled():
        init_scheduler(app.state.engine)
    else:
        logger.warning("Monitors are disabled (set MONITORS_ENABLED=true to enable)")

    yield

    # Let in-flight monitor ticks finish their current item
    await shutdown_scheduler()


app = FastAPI(
    title="Auction API",
    version="0.1.0",
    docs_url="/docs",
    lifespan=lifespan,
    debug=conf.get_http_expose_errors(),
)

app.include_router(router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["health"])
async def route_health():
    return {"status": "ok"}


if not conf.validate():
    raise ValueError("Invalid configuration.")

http_conf = conf.get_http_conf()
logger.info(f"Starting API on port {http_conf.port}")

logger.info("--- Registered Routes ---")
for route in app.routes:
    methods_set = getattr(route, "methods", None)
    methods = ", ".join(methods_set) if methods_set else "Any"
    path = getattr(route, "path", "<unknown>")
    logger.info(f"{path} [{methods}]")
logger.info("-------------------------")

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=http_conf.host,
        port=http_conf.port,
        reload=http_conf.autoreload,
        log_level="info",
        reload_dirs=[str(Path(__file__).parent), str(REPO_ROOT / "models"), str(REPO_ROOT / "clients")],
        log_config=None,
    )

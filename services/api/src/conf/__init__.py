from typing import Optional

from pydantic import BaseModel

from models.operations.settings import EngineSettings
from utils import env, log
from utils.env import EnvVarSpec

logger = log.get_logger(__name__)

STORE_BACKENDS = ("couchbase", "memory")

#### Types ####

class HttpServerConf(BaseModel):
    host: str
    port: int
    autoreload: bool

class NotifierConf(BaseModel):
    webhook_url: Optional[str] = None
    auth_token: Optional[str] = None
    timeout_seconds: float

#### Env Vars ####

## Logging ##

LOG_LEVEL = EnvVarSpec(id="LOG_LEVEL", default="INFO")

## HTTP ##

HTTP_HOST = EnvVarSpec(id="HTTP_HOST", default="0.0.0.0")

HTTP_PORT = EnvVarSpec(
    id="HTTP_PORT",
    default="8000",
    parse=int,
    type=(int, ...),
)

HTTP_AUTORELOAD = EnvVarSpec(
    id="HTTP_AUTORELOAD",
    parse=lambda x: x.lower() == "true",
    default="false",
    type=(bool, ...),
)

HTTP_EXPOSE_ERRORS = EnvVarSpec(
    id="HTTP_EXPOSE_ERRORS",
    default="false",
    parse=lambda x: x.lower() == "true",
    type=(bool, ...),
)

## Storage ##

STORE_BACKEND = EnvVarSpec(
    id="STORE_BACKEND",
    default="couchbase",
    parse=lambda x: x.lower(),
)

## Auction engine ##

AUCTION_ANTI_SNIPING_THRESHOLD_SECONDS = EnvVarSpec(
    id="AUCTION_ANTI_SNIPING_THRESHOLD_SECONDS",
    default="60",
    parse=int,
    type=(int, ...),
)

AUCTION_EXTENSION_MINUTES = EnvVarSpec(
    id="AUCTION_EXTENSION_MINUTES",
    default="1",
    parse=int,
    type=(int, ...),
)

PAYMENT_WINDOW_MINUTES = EnvVarSpec(
    id="PAYMENT_WINDOW_MINUTES",
    default="1",
    parse=int,
    type=(int, ...),
)

PAYMENT_MAX_ATTEMPTS = EnvVarSpec(
    id="PAYMENT_MAX_ATTEMPTS",
    default="3",
    parse=int,
    type=(int, ...),
)

## Monitors ##

MONITORS_ENABLED = EnvVarSpec(
    id="MONITORS_ENABLED",
    default="true",
    parse=lambda x: x.lower() == "true",
    type=(bool, ...),
)

AUCTION_MONITOR_INTERVAL_SECONDS = EnvVarSpec(
    id="AUCTION_MONITOR_INTERVAL_SECONDS",
    default="10",
    parse=float,
    type=(float, ...),
)

PAYMENT_MONITOR_INTERVAL_SECONDS = EnvVarSpec(
    id="PAYMENT_MONITOR_INTERVAL_SECONDS",
    default="5",
    parse=float,
    type=(float, ...),
)

## Notifier ##
## NOTE: without NOTIFIER_WEBHOOK_URL notifications are only written to the log.

NOTIFIER_WEBHOOK_URL = EnvVarSpec(id="NOTIFIER_WEBHOOK_URL", is_optional=True)

NOTIFIER_AUTH_TOKEN = EnvVarSpec(id="NOTIFIER_AUTH_TOKEN", is_optional=True, is_secret=True)

NOTIFIER_TIMEOUT_SECONDS = EnvVarSpec(
    id="NOTIFIER_TIMEOUT_SECONDS",
    default="5",
    parse=float,
    type=(float, ...),
)

## Couchbase ##
## NOTE: COUCHBASE_* connection variables are read by clients.couchbase.config
## and validated on first connect.


#### Validation ####
VALIDATED_ENV_VARS = [
    HTTP_AUTORELOAD,
    HTTP_EXPOSE_ERRORS,
    HTTP_PORT,
    LOG_LEVEL,
    STORE_BACKEND,
    AUCTION_ANTI_SNIPING_THRESHOLD_SECONDS,
    AUCTION_EXTENSION_MINUTES,
    PAYMENT_WINDOW_MINUTES,
    PAYMENT_MAX_ATTEMPTS,
    MONITORS_ENABLED,
    AUCTION_MONITOR_INTERVAL_SECONDS,
    PAYMENT_MONITOR_INTERVAL_SECONDS,
    NOTIFIER_WEBHOOK_URL,
    NOTIFIER_AUTH_TOKEN,
    NOTIFIER_TIMEOUT_SECONDS,
]

def validate() -> bool:
    if not env.validate(VALIDATED_ENV_VARS):
        return False
    if get_store_backend() not in STORE_BACKENDS:
        logger.error(f"STORE_BACKEND must be one of {', '.join(STORE_BACKENDS)}")
        return False
    try:
        get_engine_settings()
    except ValueError as e:
        logger.error(f"Invalid auction engine settings: {e}")
        return False
    return True

#### Getters ####

def get_http_expose_errors() -> bool:
    return env.parse(HTTP_EXPOSE_ERRORS)

def get_log_level() -> str:
    return env.parse(LOG_LEVEL)

def get_http_conf() -> HttpServerConf:
    return HttpServerConf(
        host=env.parse(HTTP_HOST),
        port=env.parse(HTTP_PORT),
        autoreload=env.parse(HTTP_AUTORELOAD),
    )

def get_store_backend() -> str:
    return env.parse(STORE_BACKEND)

def get_monitors_enabled() -> bool:
    return env.parse(MONITORS_ENABLED)

def get_engine_settings() -> EngineSettings:
    return EngineSettings(
        anti_sniping_threshold_seconds=env.parse(AUCTION_ANTI_SNIPING_THRESHOLD_SECONDS),
        extension_minutes=env.parse(AUCTION_EXTENSION_MINUTES),
        payment_window_minutes=env.parse(PAYMENT_WINDOW_MINUTES),
        max_payment_attempts=env.parse(PAYMENT_MAX_ATTEMPTS),
        auction_monitor_interval_seconds=env.parse(AUCTION_MONITOR_INTERVAL_SECONDS),
        payment_monitor_interval_seconds=env.parse(PAYMENT_MONITOR_INTERVAL_SECONDS),
    )

def get_notifier_conf() -> NotifierConf:
    return NotifierConf(
        webhook_url=env.parse(NOTIFIER_WEBHOOK_URL),
        auth_token=env.parse(NOTIFIER_AUTH_TOKEN),
        timeout_seconds=env.parse(NOTIFIER_TIMEOUT_SECONDS),
    )

import os
from typing import Any, Callable, Iterable, Optional, Tuple

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from utils import log

logger = log.get_logger(__name__)


class EnvVarSpec(BaseModel):
    """Declaration of one environment variable the service reads.

    ``parse`` turns the raw string into a value, ``type`` is the pydantic
    field definition that value must satisfy (``(int, ...)`` etc.).
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    id: str
    default: Optional[str] = None
    parse: Callable[[str], Any] = lambda x: x
    type: Tuple[Any, Any] = (str, ...)
    is_optional: bool = False
    is_secret: bool = False


def _raw(spec: EnvVarSpec) -> Optional[str]:
    value = os.environ.get(spec.id)
    if value is None or value == "":
        return spec.default
    return value


def parse(spec: EnvVarSpec) -> Any:
    """Read and parse *spec*; ``None`` when an optional variable is unset."""
    value = _raw(spec)
    if value is None:
        if spec.is_optional:
            return None
        raise ValueError(f"Missing required environment variable {spec.id}")
    return TypeAdapter(spec.type[0]).validate_python(spec.parse(value))


def validate(specs: Iterable[EnvVarSpec]) -> bool:
    """Check every spec parses; logs each offending variable and returns False if any fail."""
    ok = True
    for spec in specs:
        try:
            value = parse(spec)
        except (ValueError, TypeError, ValidationError) as e:
            shown = "***" if spec.is_secret else _raw(spec)
            logger.error(f"Invalid environment variable {spec.id}={shown!r}: {e}")
            ok = False
            continue
        if value is None and not spec.is_optional:
            logger.error(f"Missing required environment variable {spec.id}")
            ok = False
    return ok

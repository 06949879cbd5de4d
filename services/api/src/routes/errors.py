from fastapi import HTTPException, status

from models.operations.errors import (
    AuctionEngineError,
    ConflictError,
    ExpiredError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationFailedError,
)

_STATUS_CODES = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (ConflictError, status.HTTP_409_CONFLICT),
    (InvalidStateError, status.HTTP_400_BAD_REQUEST),
    (ExpiredError, status.HTTP_400_BAD_REQUEST),
    (ValidationFailedError, status.HTTP_400_BAD_REQUEST),
]


def http_error(e: AuctionEngineError) -> HTTPException:
    """Map an engine error to the HTTP response carrying its message."""
    for cls, code in _STATUS_CODES:
        if isinstance(e, cls):
            return HTTPException(status_code=code, detail=str(e))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

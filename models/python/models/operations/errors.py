"""Errors raised by the auction engine.

Every error carries a message fit to show the user as-is; callers map the
class to their own response (the HTTP layer to a status code, the monitors
to a log line).
"""


class AuctionEngineError(Exception):
    """Base exception for auction engine operations."""
    pass


class NotFoundError(AuctionEngineError):
    """The auction, bid, product or payment attempt does not exist."""
    pass


class InvalidStateError(AuctionEngineError):
    """The operation is not allowed in the entity's current status."""
    pass


class ExpiredError(AuctionEngineError):
    """The auction or payment window has already closed."""
    pass


class ConflictError(AuctionEngineError):
    """A concurrent change broke an invariant, e.g. a second pending attempt."""
    pass


class ValidationFailedError(AuctionEngineError):
    """The request itself is malformed or not acceptable."""
    pass


class SelfBidError(ValidationFailedError):
    """The bidder owns the product being auctioned."""
    pass


class BidTooLowError(ValidationFailedError):
    """The bid does not beat the current highest bid or starting price."""
    pass


class ForbiddenError(AuctionEngineError):
    """The caller is not the bidder the payment attempt was offered to."""
    pass

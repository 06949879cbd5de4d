class NotifierError(Exception):
    """Base exception for notification delivery."""
    pass


class NotifierDeliveryError(NotifierError):
    """Raised when the delivery endpoint rejects or cannot be reached."""
    pass

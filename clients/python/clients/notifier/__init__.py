from .client import Notifier, LogNotifier, WebhookNotifier
from .exceptions import NotifierError, NotifierDeliveryError

__all__ = [
    "Notifier",
    "LogNotifier",
    "WebhookNotifier",
    "NotifierError",
    "NotifierDeliveryError",
]

from .base import Monitor
from .auction_expiry import AuctionExpiryMonitor
from .payment_window import PaymentWindowMonitor

__all__ = ["Monitor", "AuctionExpiryMonitor", "PaymentWindowMonitor"]

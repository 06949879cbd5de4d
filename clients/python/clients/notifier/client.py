"""Notifier clients telling bidders they must pay, or that their payment went through.

Delivery itself (email templates, push) belongs to a downstream mailer. The
engine only hands over who to tell and the figures to put in the message.
Callers treat every notifier as best-effort: a raised ``NotifierError`` is
logged and never undoes the state change that triggered it.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, Protocol

from clients.http import HttpError, request
from clients.notifier.exceptions import NotifierDeliveryError

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def payment_required(
        self,
        recipient_id: str,
        auction_id: str,
        amount: Decimal,
        window_expires_at: datetime,
    ) -> None: ...

    async def payment_confirmed(
        self,
        recipient_id: str,
        product_name: str,
        amount: Decimal,
    ) -> None: ...


class LogNotifier:
    """Writes notifications to the log. Used when no webhook is configured."""

    async def payment_required(self, recipient_id, auction_id, amount, window_expires_at) -> None:
        logger.info(
            f"Payment required: bidder={recipient_id} auction={auction_id} "
            f"amount={amount:.2f} window_expires_at={window_expires_at.isoformat()}"
        )

    async def payment_confirmed(self, recipient_id, product_name, amount) -> None:
        logger.info(
            f"Payment confirmed: bidder={recipient_id} product='{product_name}' amount={amount:.2f}"
        )


class WebhookNotifier:
    """Posts notification events as JSON to a mailer webhook.

    Usage::

        notifier = WebhookNotifier("http://mailer:8080/events", timeout=5.0)
        await notifier.payment_required("user-1", "auction-9", Decimal("150.00"), expires_at)
    """

    def __init__(self, url: str, timeout: float = 5.0, auth_token: Optional[str] = None) -> None:
        self.url = url
        self.timeout = timeout
        self._headers = {"Authorization": f"Bearer {auth_token}"} if auth_token else {}

    async def payment_required(self, recipient_id, auction_id, amount, window_expires_at) -> None:
        await self._post({
            "event": "payment_required",
            "recipient_id": recipient_id,
            "auction_id": auction_id,
            "amount": f"{amount:.2f}",
            "window_expires_at": window_expires_at.isoformat(),
        })

    async def payment_confirmed(self, recipient_id, product_name, amount) -> None:
        await self._post({
            "event": "payment_confirmed",
            "recipient_id": recipient_id,
            "product_name": product_name,
            "amount": f"{amount:.2f}",
        })

    async def _post(self, payload: dict) -> None:
        try:
            await request("POST", self.url, headers=self._headers, json_data=payload, timeout=self.timeout)
        except HttpError as e:
            raise NotifierDeliveryError(f"Webhook '{payload['event']}' failed: {e}") from e

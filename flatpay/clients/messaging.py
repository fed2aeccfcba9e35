# flatpay/clients/messaging.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..config import settings

log = logging.getLogger("flatpay.messaging")

_DIGITS = re.compile(r"\D+")


def normalize_phone(raw: Optional[str], *, default_country_code: Optional[str] = None) -> Optional[str]:
    """
    E.164 form, prefixed with the country code when the number is local.

    "98765 43210" -> "+919876543210"; "+1 (415) 555-0100" -> "+14155550100".
    Returns None when nothing dialable is left.
    """
    if not raw:
        return None
    s = str(raw).strip()
    has_plus = s.startswith("+")
    digits = _DIGITS.sub("", s)
    if s.startswith("00"):
        digits = digits[2:]
        has_plus = True
    if not digits:
        return None

    cc = (default_country_code or settings.default_country_code or "").lstrip("+")
    if has_plus:
        return f"+{digits}"
    digits = digits.lstrip("0")
    if not digits:
        return None
    if len(digits) <= 10 and cc:
        return f"+{cc}{digits}"
    return f"+{digits}"


@dataclass(frozen=True)
class InvoiceMessage:
    phone_number: str
    name: str
    invoice_number: str
    amount: float
    due_date: str
    invoice_url: str

    def payload(self, *, event: str) -> dict[str, Any]:
        return {
            "phoneNumber": self.phone_number,
            "event": event,
            "traits": {
                "name": self.name,
                "invoiceNumber": self.invoice_number,
                "amount": self.amount,
                "dueDate": self.due_date,
                "invoiceUrl": self.invoice_url,
            },
        }


class MessagingClient:
    """Posts invoice events to the messaging provider's track webhook."""

    def __init__(
        self,
        *,
        webhook_url: Optional[str] = None,
        api_key: Optional[str] = None,
        event_name: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.webhook_url = webhook_url if webhook_url is not None else settings.messaging_webhook_url
        self.api_key = api_key if api_key is not None else settings.messaging_api_key
        self.event_name = event_name or settings.messaging_event_name
        self.transport = transport

    def enabled(self) -> bool:
        return bool(self.webhook_url and self.api_key)

    def async_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=settings.webhook_timeout_seconds,
            transport=self.transport,
            headers={"Api-Key": str(self.api_key), "Content-Type": "application/json"},
        )

    async def send(self, client: httpx.AsyncClient, message: InvoiceMessage) -> int:
        """One webhook call. Non-2xx raises httpx.HTTPStatusError."""
        r = await client.post(str(self.webhook_url), json=message.payload(event=self.event_name))
        r.raise_for_status()
        log.info(
            "message_triggered",
            extra={"invoice_number": message.invoice_number, "status_code": r.status_code},
        )
        return r.status_code


def get_messaging_client() -> MessagingClient:
    return MessagingClient()

"""Transactional email delivery through the Resend HTTP API."""

import logging
import re
from functools import lru_cache
from typing import Optional, Union

import httpx

from watermarket.config import settings

logger = logging.getLogger(__name__)

_SIMPLE_ADDRESS = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_NAMED_ADDRESS = re.compile(r"^.+\s<[^<>@\s]+@[^<>@\s]+\.[^<>@\s]+>$")


class MailDeliveryError(Exception):
    """The mail provider refused the message or could not be reached."""


def is_valid_sender(value: str) -> bool:
    """Accept "email@example.com" or "Name <email@example.com>"."""
    return bool(_SIMPLE_ADDRESS.match(value) or _NAMED_ADDRESS.match(value))


class ResendMailer:
    """Sends one message per call with a bounded timeout.

    With no API key configured, sends are skipped and logged, which keeps
    local development working without a mail account.
    """

    def __init__(
        self,
        api_key: str,
        sender: str,
        endpoint: str = "https://api.resend.com/emails",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key
        self.sender = sender
        self.endpoint = endpoint
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(cls) -> "ResendMailer":
        return cls(
            api_key=settings.RESEND_API_KEY,
            sender=settings.EMAIL_FROM,
            endpoint=settings.RESEND_ENDPOINT,
            timeout=settings.MAIL_TIMEOUT_SECONDS,
        )

    def send(
        self,
        to: Union[str, list[str]],
        subject: str,
        html: str,
        idempotency_key: Optional[str] = None,
    ) -> Optional[str]:
        """Deliver a message and return the provider's message id."""
        if not self.api_key:
            logger.warning("RESEND_API_KEY missing; skipping email %r", subject)
            return None
        if not self.sender or not is_valid_sender(self.sender):
            raise MailDeliveryError(
                'EMAIL_FROM must look like "email@example.com" or "Name <email@example.com>"'
            )

        recipients = [to] if isinstance(to, str) else list(to)
        if not recipients:
            raise MailDeliveryError("At least one recipient is required")

        headers = {"Authorization": f"Bearer {self.api_key}"}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        body = {"from": self.sender, "to": recipients, "subject": subject, "html": html}

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                res = client.post(self.endpoint, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise MailDeliveryError(f"Mail provider unreachable: {e}") from e

        if res.status_code == 429:
            raise MailDeliveryError("Mail provider rate limited the request")
        if res.status_code >= 400:
            raise MailDeliveryError(f"Mail provider error {res.status_code}: {res.text[:200]}")

        try:
            return res.json().get("id")
        except ValueError:
            # Delivered; the body just wasn't JSON
            return None


@lru_cache
def get_mailer() -> ResendMailer:
    """FastAPI dependency for the process-wide mailer."""
    return ResendMailer.from_settings()

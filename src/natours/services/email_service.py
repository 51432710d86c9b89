"""Outbound email delivery.

Learn: Email is an external collaborator that can fail. Callers only see
EmailSender.send(to, subject, body) and a DeliveryError when it goes
wrong; which transport is used is decided once from Settings:
- NATOURS_EMAIL_API_URL empty → LogEmailSender (development: the message,
  including any reset link, shows up in the server log)
- otherwise → HttpEmailSender, which POSTs JSON to a transactional email
  HTTP API with a bearer key
"""

from typing import Protocol

import httpx
import structlog

from natours.config import Settings, settings
from natours.errors import DeliveryError

logger = structlog.get_logger()


TEMPLATES = {
    "welcome": {
        "subject": "Welcome to the Natours family!",
        "text": (
            "Hi {name},\n\n"
            "Welcome to Natours, we're glad to have you.\n"
            "Start exploring tours at {url}\n"
        ),
    },
    "password_reset": {
        "subject": "Your password reset token (valid for {ttl} minutes)",
        "text": (
            "Forgot your password? Submit a PATCH request with your new "
            "password and password_confirm to: {url}\n\n"
            "If you didn't forget your password, please ignore this email."
        ),
    },
}


def render(template: str, **context) -> tuple[str, str]:
    """Return (subject, body) for a named template."""
    tpl = TEMPLATES[template]
    return tpl["subject"].format(**context), tpl["text"].format(**context)


class EmailSender(Protocol):
    async def send(self, to: str, subject: str, body: str) -> None: ...


class LogEmailSender:
    """Development transport: writes the email to the log instead of sending it."""

    def __init__(self, sender: str):
        self.sender = sender

    async def send(self, to: str, subject: str, body: str) -> None:
        logger.info("email.logged", sender=self.sender, to=to, subject=subject, body=body)


class HttpEmailSender:
    """Sends email through a JSON HTTP API (SendGrid/Mailtrap/Postmark style)."""

    def __init__(self, api_url: str, api_key: str, sender: str, timeout: float = 10.0,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.api_url = api_url
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout
        self.transport = transport

    async def send(self, to: str, subject: str, body: str) -> None:
        payload = {"from": self.sender, "to": to, "subject": subject, "text": body}
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                r = await client.post(self.api_url, json=payload, headers=headers)
                r.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("email.delivery_failed", to=to, subject=subject, error=str(e))
            raise DeliveryError() from e
        logger.info("email.sent", to=to, subject=subject)


def build_email_sender(config: Settings) -> EmailSender:
    if config.email_api_url:
        return HttpEmailSender(
            api_url=config.email_api_url,
            api_key=config.email_api_key,
            sender=config.email_from,
            timeout=config.email_timeout_seconds,
        )
    return LogEmailSender(sender=config.email_from)


_email_sender = build_email_sender(settings)


def get_email_sender() -> EmailSender:
    """FastAPI dependency; tests override it with a recording fake."""
    return _email_sender

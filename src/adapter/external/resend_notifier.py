"""Resend email adapter.

Implements NotifierPort with plain-text transactional emails sent through
the Resend HTTP API. Links point at the client app, which posts the token
back to the API.
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import quote, urlencode

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from domain.model.errors import NotifierUnavailableError
from domain.model.user import TokenPurpose
from port.notifier import NotificationTemplate
from utils.logging import mask_email

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
RESEND_TIMEOUT_SECONDS = 10.0

APP_NAME = os.getenv("APP_NAME", "Adventure Safari Network")
CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:3000")
EMAIL_FROM = os.getenv("EMAIL_FROM", "noreply@example.com")


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    text: str


def _link(path: str, token: str | None, purpose: TokenPurpose | None) -> str:
    params = {}
    if token:
        params["token"] = token
    if purpose:
        params["action"] = purpose.value
    query = urlencode(params, quote_via=quote)
    return f"{CLIENT_URL}{path}?{query}" if query else f"{CLIENT_URL}{path}"


def render(
    template: NotificationTemplate,
    token: str | None = None,
    purpose: TokenPurpose | None = None,
) -> RenderedEmail:
    """Build subject and body for a template."""
    if template == NotificationTemplate.VERIFY_EMAIL:
        url = _link("/verify-email", token, purpose or TokenPurpose.VERIFY_EMAIL)
        return RenderedEmail(
            subject=f"Verify Your {APP_NAME} Account",
            text=(
                f"Please confirm your email address:\n\n{url}\n\n"
                "This link expires in 24 hours."
            ),
        )

    if template == NotificationTemplate.LINK_ACCOUNT:
        url = _link("/verify-email", token, purpose or TokenPurpose.LINK_ACCOUNT)
        return RenderedEmail(
            subject=f"Link Your Password to Your {APP_NAME} Account",
            text=(
                "Someone asked to add a password to your account. "
                f"Confirm to link it:\n\n{url}\n\n"
                "This link expires in 24 hours. If this wasn't you, ignore this email."
            ),
        )

    if template == NotificationTemplate.PASSWORD_RESET:
        url = _link("/reset-password", token, purpose or TokenPurpose.RESET_PASSWORD)
        if purpose == TokenPurpose.SETUP_PASSWORD:
            subject = f"Set Up a Password for {APP_NAME}"
            intro = "Use this link to create a password for your account:"
        else:
            subject = f"Reset Your {APP_NAME} Password"
            intro = "Use this link to choose a new password:"
        return RenderedEmail(
            subject=subject,
            text=(
                f"{intro}\n\n{url}\n\n"
                "This link expires in 1 hour. If you didn't request this, you can safely ignore this email."
            ),
        )

    return RenderedEmail(
        subject=f"Welcome to {APP_NAME}!",
        text=f"Your email is verified and your account is ready.\n\n{CLIENT_URL}/dashboard",
    )


class ResendNotifier:
    """NotifierPort adapter. Without an API key, delivery is skipped and logged."""

    def __init__(
        self,
        api_key: str | None = None,
        sender: str = EMAIL_FROM,
        client: httpx.Client | None = None,
    ):
        self.api_key = api_key if api_key is not None else os.getenv("RESEND_API_KEY", "")
        self.sender = sender
        self.client = client

    def notify(
        self,
        template: NotificationTemplate,
        recipient_email: str,
        token: str | None = None,
        purpose: TokenPurpose | None = None,
    ) -> None:
        email = render(template, token, purpose)

        if not self.api_key:
            logger.warning(
                "Email delivery not configured, message dropped",
                extra={"template": template.value, "recipient": mask_email(recipient_email)},
            )
            return

        payload = {
            "from": self.sender,
            "to": recipient_email,
            "subject": email.subject,
            "text": email.text,
        }
        try:
            if self.client is not None:
                response = _post_with_retry(self.client, self.api_key, payload)
            else:
                with httpx.Client(timeout=RESEND_TIMEOUT_SECONDS) as client:
                    response = _post_with_retry(client, self.api_key, payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotifierUnavailableError(f"Email delivery failed: {type(e).__name__}") from e


@retry(
    retry=retry_if_exception_type((httpx.TimeoutException, httpx.ConnectError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=4),
    reraise=True,
)
def _post_with_retry(client: httpx.Client, api_key: str, payload: dict) -> httpx.Response:
    """Post to Resend with automatic retry on transient failures."""
    return client.post(
        RESEND_API_URL,
        headers={"Authorization": f"Bearer {api_key}"},
        json=payload,
        timeout=RESEND_TIMEOUT_SECONDS,
    )

"""Notifier port: outbound interface for transactional email."""

from enum import Enum
from typing import Protocol

from domain.model.user import TokenPurpose


class NotificationTemplate(str, Enum):
    VERIFY_EMAIL = 'verify-email'
    LINK_ACCOUNT = 'link-account'
    PASSWORD_RESET = 'password-reset'
    WELCOME = 'welcome'


class NotifierPort(Protocol):
    """Sends one templated message.

    Raises NotifierUnavailableError when delivery fails. Callers treat
    notification as best-effort and never let a failure undo their work.
    """

    def notify(
        self,
        template: NotificationTemplate,
        recipient_email: str,
        token: str | None = None,
        purpose: TokenPurpose | None = None,
    ) -> None: ...

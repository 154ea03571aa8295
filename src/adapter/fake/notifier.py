"""In-memory implementation of NotifierPort for testing."""

from dataclasses import dataclass

from domain.model.errors import NotifierUnavailableError
from domain.model.user import TokenPurpose
from port.notifier import NotificationTemplate


@dataclass(frozen=True)
class SentNotification:
    template: NotificationTemplate
    recipient_email: str
    token: str | None
    purpose: TokenPurpose | None


class FakeNotifier:
    def __init__(self, fail: bool = False):
        self.sent: list[SentNotification] = []
        self.fail = fail

    def notify(
        self,
        template: NotificationTemplate,
        recipient_email: str,
        token: str | None = None,
        purpose: TokenPurpose | None = None,
    ) -> None:
        if self.fail:
            raise NotifierUnavailableError("Fake notifier configured to fail")
        self.sent.append(SentNotification(template, recipient_email, token, purpose))

    def last_token(self, template: NotificationTemplate | None = None) -> str | None:
        for message in reversed(self.sent):
            if template is None or message.template == template:
                return message.token
        return None

"""Best-effort notification dispatch.

Identity mutations are committed before notifying; a failed email is
logged and never propagated.
"""

import logging

from domain.model.user import TokenPurpose
from port.notifier import NotificationTemplate, NotifierPort
from utils.logging import mask_email

logger = logging.getLogger(__name__)


def notify_best_effort(
    notifier: NotifierPort,
    template: NotificationTemplate,
    recipient_email: str,
    token: str | None = None,
    purpose: TokenPurpose | None = None,
) -> bool:
    """Send one notification. Return True if the notifier accepted it."""
    try:
        notifier.notify(template, recipient_email, token=token, purpose=purpose)
    except Exception as e:
        logger.error(
            "Notification failed",
            extra={
                "template": template.value,
                "recipient": mask_email(recipient_email),
                "error": str(e)[:200],
            },
        )
        return False

    logger.info(
        "Notification sent",
        extra={"template": template.value, "recipient": mask_email(recipient_email)},
    )
    return True

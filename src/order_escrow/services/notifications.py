"""Best-effort notification dispatch."""

from __future__ import annotations

from order_escrow.domain.notifier_protocol import Notification, Notifier
from order_escrow.logging_config import get_logger

logger = get_logger(__name__)


class LoggingNotifier:
    """Default notifier: records the notification in the structured log."""

    async def send(self, notification: Notification) -> None:
        logger.info(
            "notification.sent",
            recipient_id=notification.recipient_id,
            kind=notification.kind,
            title=notification.title,
            link=notification.link,
        )


async def dispatch(notifier: Notifier, notification: Notification) -> bool:
    """Send a notification, swallowing and logging any delivery failure.

    Returns True if the notifier accepted it.
    """
    try:
        await notifier.send(notification)
    except Exception as exc:
        logger.warning(
            "notification.failed",
            recipient_id=notification.recipient_id,
            kind=notification.kind,
            error=str(exc),
        )
        return False
    return True


def order_link(order_id: object) -> str:
    return f"/orders/{order_id}"

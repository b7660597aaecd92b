"""Notifier Protocol.

Notification fan-out (in-app, email, push) lives outside the engine. The
engine only hands a Notification to whatever satisfies this shape, after
its own transaction is settled, and never lets a delivery failure change
the outcome of a business operation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class Notification:
    """A message for one party.

    Attributes:
        recipient_id: Party that should see the message.
        kind: Machine-readable type, e.g. "new_order", "order_delivered".
        title: Short headline.
        message: Body text.
        link: Optional in-app path to the related order.
    """

    recipient_id: str
    kind: str
    title: str
    message: str
    link: str | None = None


@runtime_checkable
class Notifier(Protocol):
    """Anything that can deliver a Notification.

    Implementations:
        - services/notifications.py LoggingNotifier (default)
    """

    async def send(self, notification: Notification) -> None:
        """Deliver the notification. May raise; callers log and continue."""
        ...

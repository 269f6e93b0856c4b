"""
Post-commit notification dispatch.

The kernel only buffers DomainEvents.  After the coordinator commits, the
NotificationDispatcher hands each event to a ``Notifier``, the interface the
excluded notification subsystem implements.  Delivery is fire-and-forget:
a failing notifier is logged and the remaining events are still sent; the
business operation has already committed and is never affected.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

from depot_kernel.domain.events import DomainEvent
from depot_kernel.logging_config import get_logger

logger = get_logger("services.notification")


class Notifier(ABC):
    """Transport for kernel events (messages, e-mail, push...)."""

    @abstractmethod
    def notify(self, event_type: str, payload: dict[str, Any]) -> None:
        ...


class LoggingNotifier(Notifier):
    """Default notifier: writes each event to the structured log."""

    def notify(self, event_type: str, payload: dict[str, Any]) -> None:
        logger.info("notification", extra={"event_type": event_type, "payload": payload})


class NotificationDispatcher:
    """Sends committed events to a Notifier, one by one, in emission order."""

    def __init__(self, notifier: Notifier | None = None):
        self._notifier = notifier or LoggingNotifier()

    def dispatch(self, events: Iterable[DomainEvent]) -> int:
        """
        Deliver ``events``.  Returns how many were delivered without error.

        Notifier failures are logged with their traceback and not raised.
        """
        delivered = 0
        for event in events:
            try:
                self._notifier.notify(event.event_type.value, dict(event.payload))
            except Exception:
                logger.error(
                    "notification_dispatch_failed",
                    extra={"event_type": event.event_type.value},
                    exc_info=True,
                )
                continue
            delivered += 1
        return delivered

"""
Domain events raised by the kernel and buffered until commit.

Services append events to a ``PendingEvents`` buffer owned by the unit of
work.  Nothing in the kernel calls a notifier directly; the coordinator
drains the buffer only after its transaction commits, and discards it on
rollback.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class EventType(str, Enum):
    REQUEST_CREATED = "request_created"
    REQUEST_VALIDATED = "request_validated"
    DELIVERY_NOTE_CREATED = "delivery_note_created"
    STOCK_BELOW_MINIMUM = "stock_below_minimum"


@dataclass(frozen=True)
class DomainEvent:
    """An immutable notification-worthy fact."""

    event_type: EventType
    payload: Mapping[str, Any]
    occurred_at: datetime

    def __post_init__(self) -> None:
        # Freeze the payload so dispatch cannot alter what was recorded.
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))


@dataclass
class PendingEvents:
    """Per-transaction event buffer."""

    _events: list[DomainEvent] = field(default_factory=list)

    def add(
        self,
        event_type: EventType,
        payload: Mapping[str, Any],
        occurred_at: datetime,
    ) -> DomainEvent:
        event = DomainEvent(event_type=event_type, payload=payload, occurred_at=occurred_at)
        self._events.append(event)
        return event

    def drain(self) -> tuple[DomainEvent, ...]:
        """Return buffered events in emission order and empty the buffer."""
        events = tuple(self._events)
        self._events.clear()
        return events

    def clear(self) -> None:
        self._events.clear()

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self):
        return iter(tuple(self._events))

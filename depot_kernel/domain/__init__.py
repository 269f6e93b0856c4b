"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O (time comes from an injected Clock)

All domain objects are immutable and deterministic.
"""

from depot_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from depot_kernel.domain.dtos import (
    Decision,
    DeliveryFilter,
    DeliveryLineSpec,
    DeliveryLineView,
    DeliveryNoteView,
    DeliveryStats,
    DeliveryStatus,
    DeliveryType,
    GrantedLine,
    LedgerMismatch,
    LedgerStats,
    MaterialView,
    MovementFilter,
    Priority,
    RequestFilter,
    RequestLineSpec,
    RequestLineView,
    RequestStats,
    RequestStatus,
    RequestView,
    StockMovementView,
)
from depot_kernel.domain.events import DomainEvent, EventType, PendingEvents
from depot_kernel.domain.movement import (
    Adjustment,
    BalanceChange,
    Distribution,
    MovementKind,
    MovementType,
    Receipt,
    compute_balance_change,
)
from depot_kernel.domain.workflow import (
    DELIVERY_NOTE_WORKFLOW,
    REQUEST_WORKFLOW,
    Guard,
    Transition,
    Workflow,
)

__all__ = [
    # Clock
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # DTOs
    "Decision",
    "DeliveryFilter",
    "DeliveryLineSpec",
    "DeliveryLineView",
    "DeliveryNoteView",
    "DeliveryStats",
    "DeliveryStatus",
    "DeliveryType",
    "GrantedLine",
    "LedgerMismatch",
    "LedgerStats",
    "MaterialView",
    "MovementFilter",
    "Priority",
    "RequestFilter",
    "RequestLineSpec",
    "RequestLineView",
    "RequestStats",
    "RequestStatus",
    "RequestView",
    "StockMovementView",
    # Events
    "DomainEvent",
    "EventType",
    "PendingEvents",
    # Movements
    "Adjustment",
    "BalanceChange",
    "Distribution",
    "MovementKind",
    "MovementType",
    "Receipt",
    "compute_balance_change",
    # Workflows
    "DELIVERY_NOTE_WORKFLOW",
    "REQUEST_WORKFLOW",
    "Guard",
    "Transition",
    "Workflow",
]

"""
Domain Data Transfer Objects.

These are immutable value objects used to pass data between layers.  They
are pure Python with no I/O or ORM dependencies.

Input specs (``RequestLineSpec``, ``GrantedLine``, ``DeliveryLineSpec``) are
what callers hand to the coordinator.  Views (``MaterialView``,
``RequestView``, ``DeliveryNoteView``, ``StockMovementView``) are what the
coordinator hands back once its session is closed; selectors build them
from ORM rows.  Filters and stats mirror the list/stats operations exposed
to the presentation layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from uuid import UUID


# =============================================================================
# Status enums
# =============================================================================


class RequestStatus(str, Enum):
    """Lifecycle of a material request (see REQUEST_WORKFLOW)."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    IN_PREPARATION = "in_preparation"
    DELIVERED = "delivered"


class Priority(str, Enum):
    NORMAL = "normal"
    URGENT = "urgent"


class Decision(str, Enum):
    """Validator's verdict on a pending request."""

    APPROVE = "approve"
    REJECT = "reject"


class DeliveryStatus(str, Enum):
    """Lifecycle of a delivery note (see DELIVERY_NOTE_WORKFLOW)."""

    IN_PREPARATION = "in_preparation"
    READY = "ready"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class DeliveryType(str, Enum):
    FROM_REQUEST = "from_request"
    DIRECT = "direct"


# =============================================================================
# Inputs
# =============================================================================


@dataclass(frozen=True)
class RequestLineSpec:
    """One line of a new request."""

    material_id: UUID
    quantity_requested: int
    comment: str | None = None


@dataclass(frozen=True)
class GrantedLine:
    """Validator's granted quantity for one request line."""

    line_id: UUID
    quantity_granted: int


@dataclass(frozen=True)
class DeliveryLineSpec:
    """One line of a new delivery note."""

    material_id: UUID
    quantity: int


# =============================================================================
# Views
# =============================================================================


@dataclass(frozen=True)
class MaterialView:
    id: UUID
    code: str
    name: str
    unit: str
    stock_on_hand: int
    stock_minimum: int
    category_id: UUID | None
    depot_id: UUID | None
    description: str | None
    supplier: str | None
    version: int

    @property
    def below_minimum(self) -> bool:
        """True when stock is at or below the reorder threshold."""
        return self.stock_on_hand <= self.stock_minimum


@dataclass(frozen=True)
class RequestLineView:
    id: UUID
    line_no: int
    material_id: UUID
    quantity_requested: int
    quantity_granted: int
    comment: str | None


@dataclass(frozen=True)
class RequestView:
    id: UUID
    number: str
    requester_id: UUID
    depot_id: UUID | None
    custom_destination: str | None
    priority: Priority
    desired_date: date | None
    comment: str | None
    status: RequestStatus
    validator_id: UUID | None
    validated_at: datetime | None
    validator_comment: str | None
    created_at: datetime | None
    lines: tuple[RequestLineView, ...]

    @property
    def granted_lines(self) -> tuple[RequestLineView, ...]:
        """Lines with a positive granted quantity, in line order."""
        return tuple(line for line in self.lines if line.quantity_granted > 0)


@dataclass(frozen=True)
class DeliveryLineView:
    id: UUID
    line_no: int
    material_id: UUID
    quantity: int


@dataclass(frozen=True)
class DeliveryNoteView:
    id: UUID
    number: str
    request_id: UUID | None
    recipient_id: UUID | None
    custom_destination: str | None
    issuer_id: UUID
    depot_id: UUID
    delivery_type: DeliveryType
    status: DeliveryStatus
    signature: str | None
    comment: str | None
    delivered_at: datetime | None
    created_at: datetime | None
    lines: tuple[DeliveryLineView, ...]


@dataclass(frozen=True)
class StockMovementView:
    id: UUID
    seq: int
    material_id: UUID
    movement_type: str
    quantity: int
    stock_before: int
    stock_after: int
    actor_id: UUID
    request_id: UUID | None
    delivery_note_id: UUID | None
    reason: str | None
    description: str | None
    supplier: str | None
    invoice_number: str | None
    occurred_at: datetime


# =============================================================================
# Filters
# =============================================================================


@dataclass(frozen=True)
class RequestFilter:
    requester_id: UUID | None = None
    status: RequestStatus | None = None
    depot_id: UUID | None = None
    priority: Priority | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None


@dataclass(frozen=True)
class DeliveryFilter:
    recipient_id: UUID | None = None
    issuer_id: UUID | None = None
    depot_id: UUID | None = None
    status: DeliveryStatus | None = None
    delivery_type: DeliveryType | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None


@dataclass(frozen=True)
class MovementFilter:
    material_id: UUID | None = None
    movement_type: str | None = None
    actor_id: UUID | None = None
    depot_id: UUID | None = None
    request_id: UUID | None = None
    delivery_note_id: UUID | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None


# =============================================================================
# Aggregates
# =============================================================================


@dataclass(frozen=True)
class RequestStats:
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    in_preparation: int = 0
    delivered: int = 0
    urgent: int = 0


@dataclass(frozen=True)
class DeliveryStats:
    total: int = 0
    in_preparation: int = 0
    ready: int = 0
    delivered: int = 0
    cancelled: int = 0
    direct: int = 0
    from_request: int = 0


@dataclass(frozen=True)
class LedgerStats:
    """Counts and totals per movement type.

    ``total_in`` and ``total_out`` are unsigned unit totals for receipts and
    distributions.  ``net_adjustment`` is the signed sum of adjustment deltas.
    """

    total_movements: int = 0
    receipts: int = 0
    distributions: int = 0
    adjustments: int = 0
    total_in: int = 0
    total_out: int = 0
    net_adjustment: int = 0
    materials_involved: int = 0
    active_users: int = 0


@dataclass(frozen=True)
class LedgerMismatch:
    """A material whose latest ledger balance disagrees with its stock."""

    material_id: UUID
    code: str
    stock_on_hand: int
    ledger_stock_after: int | None

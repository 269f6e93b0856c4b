"""
Stock movement kinds and the balance-change calculation.

Responsibility
--------------
Defines the closed set of movement kinds (``Receipt``, ``Distribution``,
``Adjustment``) and ``compute_balance_change``, the only function in the
code base that turns a movement kind and an observed balance into a signed
delta and a resulting balance.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects and a pure function.  ZERO
I/O.  ``StockLedger.record`` is the single caller; it passes the balance it
re-read under the material's row lock.

Invariants enforced
-------------------
* ``stock_after >= 0`` -- a distribution larger than the observed balance
  raises ``InsufficientStockError`` and produces no change.
* ``stock_after == stock_before + delta`` for every change returned.
* Receipts and distributions carry a strictly positive quantity; an
  adjustment names a non-negative absolute balance that differs from the
  current one.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from depot_kernel.exceptions import InsufficientStockError, ValidationError


class MovementType(str, Enum):
    """Ledger entry type, as persisted on ``StockMovement.movement_type``."""

    IN = "in"
    OUT = "out"
    ADJUSTMENT = "adjustment"


@dataclass(frozen=True)
class Receipt:
    """Stock received from a supplier (or any other inbound source)."""

    quantity: int
    supplier: str | None = None
    invoice_number: str | None = None


@dataclass(frozen=True)
class Distribution:
    """Stock leaving the depot, with or without a delivery note."""

    quantity: int


@dataclass(frozen=True)
class Adjustment:
    """Inventory correction to an absolute balance."""

    new_balance: int


MovementKind = Union[Receipt, Distribution, Adjustment]


@dataclass(frozen=True)
class BalanceChange:
    """Result of applying a movement kind to an observed balance."""

    movement_type: MovementType
    delta: int
    stock_before: int
    stock_after: int


def _require_positive(quantity: object) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("Quantity must be an integer", field="quantity")
    if quantity <= 0:
        raise ValidationError(
            f"Quantity must be positive, got {quantity}", field="quantity"
        )
    return quantity


def validate_movement(kind: MovementKind) -> None:
    """Check a movement kind's own fields, independent of any balance."""
    if isinstance(kind, (Receipt, Distribution)):
        _require_positive(kind.quantity)
    elif isinstance(kind, Adjustment):
        value = kind.new_balance
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError("New balance must be an integer", field="new_balance")
        if value < 0:
            raise ValidationError(
                f"New balance cannot be negative, got {value}", field="new_balance"
            )
    else:
        raise ValidationError(f"Unknown movement kind: {type(kind).__name__}")


def compute_balance_change(
    kind: MovementKind,
    stock_before: int,
    *,
    material_id: str,
    material_code: str,
    unit: str | None = None,
) -> BalanceChange:
    """
    Compute the signed delta and resulting balance for a movement.

    Preconditions:
        ``stock_before`` is the balance read under the material's row lock.

    Raises:
        ValidationError: Malformed movement, or an adjustment to the
            current balance.
        InsufficientStockError: Distribution exceeds ``stock_before``.
    """
    validate_movement(kind)

    if isinstance(kind, Receipt):
        movement_type = MovementType.IN
        delta = kind.quantity
    elif isinstance(kind, Distribution):
        if kind.quantity > stock_before:
            raise InsufficientStockError(
                material_id=material_id,
                material_code=material_code,
                available=stock_before,
                requested=kind.quantity,
                unit=unit,
            )
        movement_type = MovementType.OUT
        delta = -kind.quantity
    else:
        if kind.new_balance == stock_before:
            raise ValidationError(
                f"Stock of {material_code} is already {stock_before}",
                field="new_balance",
            )
        movement_type = MovementType.ADJUSTMENT
        delta = kind.new_balance - stock_before

    return BalanceChange(
        movement_type=movement_type,
        delta=delta,
        stock_before=stock_before,
        stock_after=stock_before + delta,
    )

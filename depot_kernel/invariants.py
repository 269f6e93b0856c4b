"""
Kernel Invariants Contract.

These invariants are structural law. No setting or caller option may turn
them off.

This module exists solely to declare these invariants explicitly. The
enforcement is distributed across MaterialCatalog, StockLedger,
DeliveryNoteIssuer, RequestWorkflow, the ORM listeners in
depot_kernel.db.immutability, and the table CHECK constraints.
"""

from enum import Enum, unique


@unique
class StockInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    NON_NEGATIVE_STOCK = "non_negative_stock"
    """stock_on_hand >= 0 for every material. Enforced by MaterialCatalog
    under row lock and by a CHECK constraint."""

    LEDGER_CONSISTENCY = "ledger_consistency"
    """The latest StockMovement.stock_after equals Material.stock_on_hand.
    Enforced by StockLedger.record and the before_flush listener that
    refuses stock changes without a matching ledger entry."""

    APPEND_ONLY_LEDGER = "append_only_ledger"
    """StockMovement rows are never updated or deleted."""

    FROZEN_DELIVERY_LINES = "frozen_delivery_lines"
    """DeliveryLine quantities never change once the note exists."""

    ATOMIC_DELIVERY = "atomic_delivery"
    """A delivery note, its lines, stock decrements and ledger entries
    commit together or not at all."""

    SINGLE_PROCESSING = "single_processing"
    """A request is turned into a delivery note at most once."""

    GRANT_ONCE = "grant_once"
    """Granted quantities are written once, at approval, and never exceed
    the requested quantity."""

    SEQUENCE_MONOTONICITY = "sequence_monotonicity"
    """Request numbers, delivery note numbers and ledger seq values come
    from locked counter rows and are never reused."""


ALL_STOCK_INVARIANTS: frozenset[StockInvariant] = frozenset(StockInvariant)

# The kernel package may not import from these packages.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "depot_services",
)

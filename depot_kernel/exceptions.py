"""
Typed Exception Hierarchy for the Depot Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (HTTP handlers, CLIs, notification workers) must react to failures by
kind, never by parsing message text:

  - Every error has a TYPED exception class (catch by type, not message)
  - Every exception has a CODE attribute (machine-readable, API-safe)
  - Exceptions carry structured DATA (not just a message string)

Example:
    try:
        coordinator.create_direct_distribution(...)
    except InsufficientStockError as e:
        api_response(
            code=e.code,
            material=e.material_code,
            available=e.available,
            requested=e.requested,
        )

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    DepotKernelError (base)
    |
    +-- ValidationError
    |
    +-- NotFoundError
    |   +-- MaterialNotFoundError
    |   +-- RequestNotFoundError
    |   +-- DeliveryNoteNotFoundError
    |
    +-- InvalidStateError
    |   +-- InvalidTransitionError
    |   +-- MaterialReferencedError
    |
    +-- InsufficientStockError
    |
    +-- ConflictError
    |
    +-- ImmutabilityViolationError
    |
    +-- StorageError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                     | When Raised
-------------------------|------------------------------------------------------
VALIDATION_ERROR         | Malformed input (empty lines, quantity <= 0, ...)
MATERIAL_NOT_FOUND       | Material id doesn't exist
REQUEST_NOT_FOUND        | Request id doesn't exist
DELIVERY_NOTE_NOT_FOUND  | Delivery note id doesn't exist
INVALID_STATE            | Entity not in the state the operation requires
INVALID_TRANSITION       | Status change not allowed by the workflow
MATERIAL_REFERENCED      | Material has ledger history, can't delete
INSUFFICIENT_STOCK       | Decrement exceeds the balance observed under lock
CONFLICT                 | Concurrent modification, retry from a fresh read
IMMUTABILITY_VIOLATION   | Update/delete of an append-only record
STORAGE_ERROR            | Unclassified storage failure (engine text withheld)

===============================================================================
PROPAGATION
===============================================================================

All errors are terminal for the triggering operation. The unit of work in
FulfillmentCoordinator rolls the transaction back before re-raising, so a
caller never observes partial writes. ConflictError means "retry the whole
operation"; it is never partially reapplied.
"""

from typing import Any


class DepotKernelError(Exception):
    """
    Base exception for all depot kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    identification.
    """

    code: str = "DEPOT_KERNEL_ERROR"

    def to_dict(self) -> dict[str, Any]:
        """Structured form for the presentation layer: kind, message, fields."""
        payload: dict[str, Any] = {"code": self.code, "message": str(self)}
        for key, value in vars(self).items():
            if not key.startswith("_"):
                payload[key] = value if isinstance(value, (int, str, type(None))) else str(value)
        return payload


class ValidationError(DepotKernelError):
    """Malformed or incomplete input. Always recoverable by the caller."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, reason: str, field: str | None = None):
        self.reason = reason
        self.field = field
        super().__init__(reason)


# Not found


class NotFoundError(DepotKernelError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class MaterialNotFoundError(NotFoundError):
    """Material with given ID was not found."""

    code: str = "MATERIAL_NOT_FOUND"

    def __init__(self, material_id: str):
        self.material_id = material_id
        super().__init__("Material", material_id)


class RequestNotFoundError(NotFoundError):
    """Material request with given ID was not found."""

    code: str = "REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__("Request", request_id)


class DeliveryNoteNotFoundError(NotFoundError):
    """Delivery note with given ID was not found."""

    code: str = "DELIVERY_NOTE_NOT_FOUND"

    def __init__(self, delivery_note_id: str):
        self.delivery_note_id = delivery_note_id
        super().__init__("DeliveryNote", delivery_note_id)


# State


class InvalidStateError(DepotKernelError):
    """Operation attempted against an entity not in the required state."""

    code: str = "INVALID_STATE"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        reason: str,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_state = current_state
        self.reason = reason
        super().__init__(
            f"{entity_type} {entity_id} is '{current_state}': {reason}"
        )


class InvalidTransitionError(InvalidStateError):
    """Status change is not a legal transition of the workflow."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        from_state: str,
        to_state: str,
    ):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            entity_type,
            entity_id,
            from_state,
            f"transition to '{to_state}' is not allowed",
        )


class MaterialReferencedError(InvalidStateError):
    """Material has ledger history and cannot be deleted."""

    code: str = "MATERIAL_REFERENCED"

    def __init__(self, material_id: str, movement_count: int):
        self.material_id = material_id
        self.movement_count = movement_count
        super().__init__(
            "Material",
            material_id,
            "referenced",
            f"{movement_count} stock movement(s) reference this material",
        )


# Stock


class InsufficientStockError(DepotKernelError):
    """
    Attempted decrement exceeds the balance observed under lock.

    Names the material and both quantities for operator diagnosis.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        material_id: str,
        material_code: str,
        available: int,
        requested: int,
        unit: str | None = None,
    ):
        self.material_id = material_id
        self.material_code = material_code
        self.available = available
        self.requested = requested
        self.unit = unit
        suffix = f" {unit}" if unit else ""
        super().__init__(
            f"Insufficient stock for {material_code}: "
            f"available {available}{suffix}, requested {requested}{suffix}"
        )


# Concurrency


class ConflictError(DepotKernelError):
    """
    Concurrent modification detected by the storage layer.

    The caller should retry the whole operation from a fresh read.
    """

    code: str = "CONFLICT"

    def __init__(self, reason: str = "Concurrent modification detected, retry the operation"):
        self.reason = reason
        super().__init__(reason)


# Immutability


class ImmutabilityViolationError(DepotKernelError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Storage


class StorageError(DepotKernelError):
    """Unclassified storage failure. The engine's text is never exposed."""

    code: str = "STORAGE_ERROR"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Storage failure during {operation}")

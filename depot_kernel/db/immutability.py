"""
ORM-Level Ledger Protection.

===============================================================================
WHAT THIS ENFORCES
===============================================================================

Entity          | Rule
----------------|-------------------------------------------------------------
StockMovement   | ALWAYS immutable (append-only ledger): no UPDATE, no DELETE
DeliveryLine    | ALWAYS immutable (quantity frozen at creation), no DELETE
Material        | stock_on_hand may only change in a flush that also inserts
                | a StockMovement for that material whose stock_after is the
                | new value; a new Material starts at 0 unless it arrives
                | with such a movement
Material        | DELETE blocked while any StockMovement references it

SQLAlchemy fires these events before SQL reaches the database:

    session.flush()
         |
         v
    [before_flush]  --> stock/ledger pairing, referenced-material delete
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
    [before_delete] --> _check_*_delete()        --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

updated_at / updated_by_id are audit metadata and may change on any row.

===============================================================================
USAGE
===============================================================================

Registered by ``init_engine_from_url()`` (unless enforce_immutability=False):

    from depot_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    from depot_kernel.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()
"""

from sqlalchemy import event, func, inspect, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import get_history

from depot_kernel.exceptions import ImmutabilityViolationError, MaterialReferencedError
from depot_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _changed_fields(target) -> list[str]:
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.attrs
        if attr.key not in _AUDIT_FIELDS and attr.history.has_changes()
    ]


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "reason": reason,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


# =============================================================================
# Append-only ledger
# =============================================================================


def _check_stock_movement_immutability(mapper, connection, target):
    """Stock movements are never modified once written."""
    changed = _changed_fields(target)
    if changed:
        _block(
            "StockMovement",
            target,
            "UPDATE",
            f"Stock movements are append-only (attempted change to '{changed[0]}')",
        )


def _check_stock_movement_delete(mapper, connection, target):
    _block("StockMovement", target, "DELETE", "Stock movements cannot be deleted")


# =============================================================================
# Frozen delivery lines
# =============================================================================


def _check_delivery_line_immutability(mapper, connection, target):
    changed = _changed_fields(target)
    if changed:
        _block(
            "DeliveryLine",
            target,
            "UPDATE",
            f"Delivery lines are frozen at creation (attempted change to '{changed[0]}')",
        )


def _check_delivery_line_delete(mapper, connection, target):
    _block("DeliveryLine", target, "DELETE", "Delivery lines cannot be deleted")


# =============================================================================
# Session-level checks
# =============================================================================


def _check_stock_changes_before_flush(session, flush_context, instances):
    """
    Refuse a stock_on_hand change that has no ledger entry in the same flush.

    A changed (or non-zero new) Material must be matched by a pending
    StockMovement with the same material_id whose stock_after equals the
    material's new stock_on_hand.
    """
    from depot_kernel.models.material import Material
    from depot_kernel.models.stock_movement import StockMovement

    pending_after: dict = {}
    for obj in session.new:
        if isinstance(obj, StockMovement):
            pending_after.setdefault(obj.material_id, set()).add(obj.stock_after)

    candidates = [obj for obj in session.dirty if isinstance(obj, Material)]
    candidates.extend(
        obj for obj in session.new
        if isinstance(obj, Material) and (obj.stock_on_hand or 0) != 0
    )

    for material in candidates:
        if material in session.dirty and not get_history(
            material, "stock_on_hand"
        ).has_changes():
            continue
        if material.stock_on_hand in pending_after.get(material.id, ()):
            continue
        logger.error(
            "immutability_violation_blocked",
            extra={
                "entity_type": "Material",
                "entity_id": str(material.id),
                "operation": "UPDATE",
                "reason": "stock_change_without_ledger_entry",
                "stock_on_hand": material.stock_on_hand,
            },
        )
        raise ImmutabilityViolationError(
            entity_type="Material",
            entity_id=str(material.id),
            reason="stock_on_hand changed without a matching stock movement",
        )


def _check_material_deletion_before_flush(session, flush_context, instances):
    """Block deletion of a material referenced by the ledger."""
    from depot_kernel.models.material import Material
    from depot_kernel.models.stock_movement import StockMovement

    for obj in list(session.deleted):
        if not isinstance(obj, Material):
            continue

        with session.no_autoflush:
            count = session.execute(
                select(func.count())
                .select_from(StockMovement)
                .where(StockMovement.material_id == obj.id)
            ).scalar_one()

        if count:
            logger.error(
                "immutability_violation_blocked",
                extra={
                    "entity_type": "Material",
                    "entity_id": str(obj.id),
                    "operation": "DELETE",
                    "reason": "material_has_ledger_history",
                    "movement_count": count,
                },
            )
            raise MaterialReferencedError(material_id=str(obj.id), movement_count=count)


# =============================================================================
# Registration
# =============================================================================


def _listeners():
    from depot_kernel.models.delivery_note import DeliveryLine
    from depot_kernel.models.stock_movement import StockMovement

    return (
        (Session, "before_flush", _check_stock_changes_before_flush),
        (Session, "before_flush", _check_material_deletion_before_flush),
        (StockMovement, "before_update", _check_stock_movement_immutability),
        (StockMovement, "before_delete", _check_stock_movement_delete),
        (DeliveryLine, "before_update", _check_delivery_line_immutability),
        (DeliveryLine, "before_delete", _check_delivery_line_delete),
    )


def register_immutability_listeners():
    """
    Register all ledger protection event listeners.

    Idempotent: a listener already present is not added twice.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove ledger protection event listeners.

    WARNING: Only use this in tests that must write forbidden state to
    verify detection (e.g. verify_ledger mismatches).
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)

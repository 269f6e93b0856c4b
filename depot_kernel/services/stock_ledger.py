"""
StockLedger -- the append-only movement log and its transaction helper.

Responsibility:
    ``append`` inserts a fully-formed ledger entry.  ``record`` is the one
    place a stock balance changes: it locks the material, computes the
    balance change, applies it through MaterialCatalog and appends the
    matching entry, all inside the caller's transaction.  ``history_for``
    and ``stats`` are the read side, delegated to LedgerSelector.

Architecture position:
    Kernel > Services -- imperative shell.  Called by the coordinator for
    stock add / remove / adjust and by DeliveryNoteIssuer for every
    delivery line.

Invariants enforced:
    - Ledger consistency: the entry's stock_after is the balance the
      catalog returned, which is the material's new stock_on_hand.
    - Append-only: entries are inserted, never updated or deleted.
    - Non-negativity: compute_balance_change refuses distributions above
      the balance read under lock.

Failure modes:
    - MaterialNotFoundError, InsufficientStockError, ValidationError.
    - ConflictError if the catalog's resulting balance disagrees with the
      computed one (a write slipped past the row lock).
"""

from uuid import UUID

from sqlalchemy.orm import Session

from depot_kernel.domain.clock import Clock
from depot_kernel.domain.dtos import LedgerStats, MovementFilter, StockMovementView
from depot_kernel.domain.events import EventType, PendingEvents
from depot_kernel.domain.movement import MovementKind, Receipt, compute_balance_change
from depot_kernel.exceptions import ConflictError, ValidationError
from depot_kernel.logging_config import get_logger
from depot_kernel.models.stock_movement import StockMovement
from depot_kernel.selectors.ledger_selector import LedgerSelector
from depot_kernel.services.base import BaseService
from depot_kernel.services.material_catalog import MaterialCatalog
from depot_kernel.services.sequence_service import SequenceService

logger = get_logger("services.stock_ledger")


class StockLedger(BaseService[StockMovement]):
    """
    Append-only stock movement log.

    Contract:
        Flushes within the caller's transaction; never commits.  Events are
        appended to the unit of work's buffer when one is supplied.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        catalog: MaterialCatalog | None = None,
        sequence: SequenceService | None = None,
        events: PendingEvents | None = None,
    ):
        super().__init__(session)
        self._clock = clock
        self._catalog = catalog or MaterialCatalog(session)
        self._sequence = sequence or SequenceService(session)
        self._events = events
        self._selector = LedgerSelector(session)

    def append(self, entry: StockMovement) -> StockMovement:
        """
        Insert a ledger entry as given.

        The caller has already applied the matching catalog change in this
        transaction and passes the exact before/after balances observed.
        """
        if entry.stock_after != entry.stock_before + entry.quantity:
            raise ValidationError(
                "stock_after must equal stock_before + quantity", field="stock_after"
            )
        if entry.stock_before < 0 or entry.stock_after < 0:
            raise ValidationError("Ledger balances cannot be negative", field="stock_after")
        self.session.add(entry)
        self.session.flush()
        return entry

    def record(
        self,
        material_id: UUID,
        movement: MovementKind,
        actor_id: UUID,
        *,
        reason: str | None = None,
        description: str | None = None,
        request_id: UUID | None = None,
        delivery_note_id: UUID | None = None,
    ) -> StockMovement:
        """
        Apply one movement to one material and log it.

        Steps, all inside the caller's transaction:
            1. lock and re-read the material row
            2. compute the balance change from the locked balance
            3. allocate the ledger seq
            4. apply the delta through MaterialCatalog
            5. append the entry (the flush writes stock and entry together)
        """
        material = self._catalog.lock(material_id)
        change = compute_balance_change(
            movement,
            material.stock_on_hand,
            material_id=str(material.id),
            material_code=material.code,
            unit=material.unit,
        )

        # Counter locks come after material locks; see SequenceService.
        seq = self._sequence.next_movement_seq()

        if change.delta > 0:
            new_balance = self._catalog.increment_stock(material.id, change.delta)
        else:
            new_balance = self._catalog.decrement_stock(material.id, -change.delta)

        if new_balance != change.stock_after:
            raise ConflictError(
                f"Stock of {material.code} changed while being recorded, retry the operation"
            )

        entry = StockMovement(
            seq=seq,
            material_id=material.id,
            movement_type=change.movement_type.value,
            quantity=change.delta,
            stock_before=change.stock_before,
            stock_after=change.stock_after,
            actor_id=actor_id,
            request_id=request_id,
            delivery_note_id=delivery_note_id,
            reason=reason,
            description=description,
            supplier=movement.supplier if isinstance(movement, Receipt) else None,
            invoice_number=movement.invoice_number if isinstance(movement, Receipt) else None,
            occurred_at=self._clock.now(),
            created_by_id=actor_id,
        )
        self.append(entry)

        logger.info(
            "stock_movement_recorded",
            extra={
                "material_id": str(material.id),
                "movement_type": entry.movement_type,
                "quantity": entry.quantity,
                "stock_before": entry.stock_before,
                "stock_after": entry.stock_after,
                "seq": seq,
                "delivery_note_id": str(delivery_note_id) if delivery_note_id else None,
            },
        )

        if self._events is not None and material.is_below_minimum:
            self._events.add(
                EventType.STOCK_BELOW_MINIMUM,
                {
                    "material_id": str(material.id),
                    "code": material.code,
                    "stock_on_hand": material.stock_on_hand,
                    "stock_minimum": material.stock_minimum,
                    "depot_id": str(material.depot_id) if material.depot_id else None,
                },
                occurred_at=entry.occurred_at,
            )

        return entry

    def history_for(
        self,
        material_id: UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> list[StockMovementView]:
        """Movements for one material, newest first."""
        return self._selector.history_for(material_id, limit=limit, offset=offset)

    def stats(self, filters: MovementFilter | None = None) -> LedgerStats:
        return self._selector.stats(filters)

"""
DeliveryNoteIssuer -- turns a request or a direct distribution into a
delivery note, and runs the delivery status machine.

Responsibility:
    ``create`` inserts the note header and its lines and, for every line,
    records an ``out`` ledger entry through StockLedger.record, inside the
    caller's transaction.  ``update_status`` moves a note along
    DELIVERY_NOTE_WORKFLOW.

Architecture position:
    Kernel > Services -- imperative shell.  Flushes only; the coordinator
    commits or rolls back.

Invariants enforced:
    - All-or-nothing: any failing line raises, and the caller's rollback
      discards the header, every line, every decrement and every entry.
    - Deterministic lock order: material rows are locked one at a time in
      ascending id order before any counter row, and lines are processed
      in that same order.
    - A line never exceeds the balance read under its material's lock.
    - Exactly one of recipient_id / custom_destination.

Failure modes:
    - ValidationError: missing recipient, both recipients, empty or
      duplicate lines, non-positive quantity, type/origin mismatch.
    - MaterialNotFoundError, InsufficientStockError (names the material,
      available and requested quantities).
    - DeliveryNoteNotFoundError, InvalidTransitionError on status updates.
"""

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from depot_kernel.config import KernelSettings
from depot_kernel.domain.clock import Clock
from depot_kernel.domain.dtos import DeliveryLineSpec, DeliveryStatus, DeliveryType
from depot_kernel.domain.events import EventType, PendingEvents
from depot_kernel.domain.movement import Distribution
from depot_kernel.domain.workflow import DELIVERY_NOTE_WORKFLOW
from depot_kernel.exceptions import (
    DeliveryNoteNotFoundError,
    InvalidTransitionError,
    ValidationError,
)
from depot_kernel.logging_config import get_logger
from depot_kernel.models.delivery_note import DeliveryLine, DeliveryNote
from depot_kernel.services.base import BaseService, coerce_id
from depot_kernel.services.material_catalog import MaterialCatalog
from depot_kernel.services.sequence_service import SequenceService
from depot_kernel.services.stock_ledger import StockLedger

logger = get_logger("services.delivery_note_issuer")

REASON_DIRECT = "direct distribution"
REASON_FROM_REQUEST = "request delivery"


class DeliveryNoteIssuer(BaseService[DeliveryNote]):
    """
    Delivery note creation and status updates.

    Contract:
        Flushes within the caller's transaction.  Events are appended to
        the unit of work's buffer when one is supplied.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        settings: KernelSettings | None = None,
        catalog: MaterialCatalog | None = None,
        ledger: StockLedger | None = None,
        sequence: SequenceService | None = None,
        events: PendingEvents | None = None,
    ):
        super().__init__(session)
        self._clock = clock
        self._settings = settings or KernelSettings()
        self._catalog = catalog or MaterialCatalog(session)
        self._sequence = sequence or SequenceService(session)
        self._ledger = ledger or StockLedger(
            session, clock, catalog=self._catalog, sequence=self._sequence, events=events
        )
        self._events = events

    def get(self, delivery_note_id: UUID) -> DeliveryNote:
        note = self.session.get(DeliveryNote, delivery_note_id)
        if note is None:
            raise DeliveryNoteNotFoundError(str(delivery_note_id))
        return note

    def lock(self, delivery_note_id: UUID) -> DeliveryNote:
        note = self.session.execute(
            select(DeliveryNote)
            .where(DeliveryNote.id == delivery_note_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if note is None:
            raise DeliveryNoteNotFoundError(str(delivery_note_id))
        return note

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    @staticmethod
    def _check_input(
        *,
        origin_request_id: UUID | None,
        recipient_id: UUID | None,
        custom_destination: str | None,
        issuer_id: UUID | None,
        depot_id: UUID | None,
        delivery_type: DeliveryType,
        lines: Sequence[DeliveryLineSpec],
    ) -> tuple[DeliveryLineSpec, ...]:
        """Reject malformed input; return the lines with UUID material ids."""
        if (recipient_id is None) == (custom_destination is None):
            raise ValidationError(
                "Exactly one of recipient_id or custom_destination is required",
                field="recipient",
            )
        if issuer_id is None:
            raise ValidationError("issuer_id is required", field="issuer_id")
        if depot_id is None:
            raise ValidationError("depot_id is required", field="depot_id")
        if delivery_type is DeliveryType.FROM_REQUEST and origin_request_id is None:
            raise ValidationError(
                "A from_request delivery note needs its request", field="origin_request_id"
            )
        if delivery_type is DeliveryType.DIRECT and origin_request_id is not None:
            raise ValidationError(
                "A direct delivery note has no originating request",
                field="origin_request_id",
            )
        if not lines:
            raise ValidationError("A delivery note needs at least one line", field="lines")

        normalized: list[DeliveryLineSpec] = []
        seen: set[UUID] = set()
        for spec in lines:
            qty = spec.quantity
            if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
                raise ValidationError(
                    f"quantity must be a positive integer, got {qty!r}", field="quantity"
                )
            material_id = coerce_id(spec.material_id, "material_id")
            if material_id in seen:
                raise ValidationError(
                    f"Material {material_id} appears on more than one line",
                    field="lines",
                )
            seen.add(material_id)
            normalized.append(DeliveryLineSpec(material_id, qty))
        return tuple(normalized)

    def create(
        self,
        *,
        issuer_id: UUID,
        depot_id: UUID,
        lines: Sequence[DeliveryLineSpec],
        delivery_type: DeliveryType | str = DeliveryType.DIRECT,
        origin_request_id: UUID | None = None,
        recipient_id: UUID | None = None,
        custom_destination: str | None = None,
        comment: str | None = None,
    ) -> DeliveryNote:
        """
        Issue a delivery note and take its stock out of the depot.

        Line numbers follow the caller's order; stock is taken in ascending
        material id order.
        """
        try:
            delivery_type = DeliveryType(delivery_type)
        except ValueError:
            raise ValidationError(
                f"Unknown delivery type: {delivery_type}", field="delivery_type"
            ) from None
        if custom_destination is not None:
            custom_destination = custom_destination.strip() or None

        lines = self._check_input(
            origin_request_id=origin_request_id,
            recipient_id=recipient_id,
            custom_destination=custom_destination,
            issuer_id=issuer_id,
            depot_id=depot_id,
            delivery_type=delivery_type,
            lines=lines,
        )

        # Material locks first, ascending id, before any counter row.
        materials = {m.id: m for m in self._catalog.lock_many(s.material_id for s in lines)}

        now = self._clock.now()
        number = self._sequence.next_delivery_note_number(
            self._settings.delivery_note_number_prefix, now.year
        )

        note = DeliveryNote(
            number=number,
            request_id=origin_request_id,
            recipient_id=recipient_id,
            custom_destination=custom_destination,
            issuer_id=issuer_id,
            depot_id=depot_id,
            delivery_type=delivery_type.value,
            status=DELIVERY_NOTE_WORKFLOW.initial_state,
            comment=comment,
            created_by_id=issuer_id,
        )
        self.session.add(note)
        self.session.flush()

        reason = REASON_DIRECT if delivery_type is DeliveryType.DIRECT else REASON_FROM_REQUEST
        line_numbers = {spec.material_id: n for n, spec in enumerate(lines, start=1)}
        for spec in sorted(lines, key=lambda s: str(s.material_id)):
            material = materials[spec.material_id]
            note.lines.append(
                DeliveryLine(
                    line_no=line_numbers[spec.material_id],
                    material_id=spec.material_id,
                    quantity=spec.quantity,
                    created_by_id=issuer_id,
                )
            )
            self._ledger.record(
                spec.material_id,
                Distribution(spec.quantity),
                issuer_id,
                reason=reason,
                description=(
                    f"Delivery note {number} - {material.name} ({material.code}): "
                    f"{spec.quantity} {material.unit}"
                ),
                request_id=origin_request_id,
                delivery_note_id=note.id,
            )

        self.session.flush()

        logger.info(
            "delivery_note_created",
            extra={
                "delivery_note_id": str(note.id),
                "number": number,
                "delivery_type": delivery_type.value,
                "line_count": len(lines),
                "request_id": str(origin_request_id) if origin_request_id else None,
            },
        )
        if self._events is not None:
            self._events.add(
                EventType.DELIVERY_NOTE_CREATED,
                {
                    "delivery_note_id": str(note.id),
                    "number": number,
                    "request_id": str(origin_request_id) if origin_request_id else None,
                    "recipient_id": str(recipient_id) if recipient_id else None,
                    "custom_destination": custom_destination,
                    "issuer_id": str(issuer_id),
                    "depot_id": str(depot_id),
                    "delivery_type": delivery_type.value,
                    "line_count": len(lines),
                },
                occurred_at=now,
            )
        return note

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def update_status(
        self,
        delivery_note_id: UUID,
        new_status: DeliveryStatus | str,
        *,
        actor_id: UUID,
        signature: str | None = None,
        comment: str | None = None,
    ) -> DeliveryNote:
        """
        Move a note along DELIVERY_NOTE_WORKFLOW.

        ``delivered`` stamps delivered_at.  Cancelling does not return stock.
        """
        try:
            target = DeliveryStatus(new_status)
        except ValueError:
            raise ValidationError(f"Unknown delivery status: {new_status}", field="status") from None

        note = self.lock(delivery_note_id)
        if not DELIVERY_NOTE_WORKFLOW.can_transition(note.status, target.value):
            raise InvalidTransitionError(
                "DeliveryNote", str(note.id), note.status, target.value
            )

        previous = note.status
        note.status = target.value
        note.updated_by_id = actor_id
        if signature is not None:
            note.signature = signature
        if comment is not None:
            note.comment = comment
        if target is DeliveryStatus.DELIVERED:
            note.delivered_at = self._clock.now()
        self.session.flush()

        logger.info(
            "delivery_status_updated",
            extra={
                "delivery_note_id": str(note.id),
                "from_state": previous,
                "to_state": target.value,
            },
        )
        return note

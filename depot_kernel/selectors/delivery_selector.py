"""
Module: depot_kernel.selectors.delivery_selector
Responsibility: Read-only delivery note queries -- get, filtered list, stats.
Architecture position: Kernel > Selectors.
"""

from uuid import UUID

from sqlalchemy import Select, case, func, select

from depot_kernel.domain.dtos import (
    DeliveryFilter,
    DeliveryLineView,
    DeliveryNoteView,
    DeliveryStats,
    DeliveryStatus,
    DeliveryType,
)
from depot_kernel.exceptions import DeliveryNoteNotFoundError
from depot_kernel.models.delivery_note import DeliveryLine, DeliveryNote
from depot_kernel.selectors.base import BaseSelector, check_page, enum_value


def delivery_line_to_view(line: DeliveryLine) -> DeliveryLineView:
    return DeliveryLineView(
        id=line.id,
        line_no=line.line_no,
        material_id=line.material_id,
        quantity=line.quantity,
    )


def delivery_note_to_view(note: DeliveryNote) -> DeliveryNoteView:
    return DeliveryNoteView(
        id=note.id,
        number=note.number,
        request_id=note.request_id,
        recipient_id=note.recipient_id,
        custom_destination=note.custom_destination,
        issuer_id=note.issuer_id,
        depot_id=note.depot_id,
        delivery_type=DeliveryType(note.delivery_type),
        status=DeliveryStatus(note.status),
        signature=note.signature,
        comment=note.comment,
        delivered_at=note.delivered_at,
        created_at=note.created_at,
        lines=tuple(
            delivery_line_to_view(line)
            for line in sorted(note.lines, key=lambda line: line.line_no)
        ),
    )


def _apply_filter(stmt: Select, filters: DeliveryFilter | None) -> Select:
    if filters is None:
        return stmt
    if filters.recipient_id is not None:
        stmt = stmt.where(DeliveryNote.recipient_id == filters.recipient_id)
    if filters.issuer_id is not None:
        stmt = stmt.where(DeliveryNote.issuer_id == filters.issuer_id)
    if filters.depot_id is not None:
        stmt = stmt.where(DeliveryNote.depot_id == filters.depot_id)
    if filters.status is not None:
        stmt = stmt.where(DeliveryNote.status == enum_value(filters.status))
    if filters.delivery_type is not None:
        stmt = stmt.where(DeliveryNote.delivery_type == enum_value(filters.delivery_type))
    if filters.date_from is not None:
        stmt = stmt.where(DeliveryNote.created_at >= filters.date_from)
    if filters.date_to is not None:
        stmt = stmt.where(DeliveryNote.created_at <= filters.date_to)
    return stmt


class DeliverySelector(BaseSelector[DeliveryNote]):

    def get(self, delivery_note_id: UUID) -> DeliveryNoteView:
        note = self.session.get(DeliveryNote, delivery_note_id)
        if note is None:
            raise DeliveryNoteNotFoundError(str(delivery_note_id))
        return delivery_note_to_view(note)

    def for_request(self, request_id: UUID) -> DeliveryNoteView | None:
        note = self.session.execute(
            select(DeliveryNote).where(DeliveryNote.request_id == request_id)
        ).scalar_one_or_none()
        return delivery_note_to_view(note) if note is not None else None

    def list_notes(
        self,
        filters: DeliveryFilter | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[DeliveryNoteView]:
        """Delivery notes matching ``filters``, most recently numbered first."""
        check_page(limit, offset)
        stmt = _apply_filter(select(DeliveryNote), filters).order_by(
            DeliveryNote.number.desc()
        )
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return [delivery_note_to_view(n) for n in self.session.execute(stmt).scalars()]

    def count(self, filters: DeliveryFilter | None = None) -> int:
        stmt = _apply_filter(select(func.count(DeliveryNote.id)), filters)
        return self.session.execute(stmt).scalar_one()

    def stats(self, filters: DeliveryFilter | None = None) -> DeliveryStats:
        status = DeliveryNote.status
        kind = DeliveryNote.delivery_type
        stmt = select(
            func.count(DeliveryNote.id),
            func.count(case((status == DeliveryStatus.IN_PREPARATION.value, 1))),
            func.count(case((status == DeliveryStatus.READY.value, 1))),
            func.count(case((status == DeliveryStatus.DELIVERED.value, 1))),
            func.count(case((status == DeliveryStatus.CANCELLED.value, 1))),
            func.count(case((kind == DeliveryType.DIRECT.value, 1))),
            func.count(case((kind == DeliveryType.FROM_REQUEST.value, 1))),
        )
        row = self.session.execute(_apply_filter(stmt, filters)).one()
        return DeliveryStats(*(int(value) for value in row))

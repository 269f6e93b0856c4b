"""
Module: depot_kernel.selectors.ledger_selector
Responsibility: Read side of the stock ledger -- filtered movement lists,
    per-material history, aggregate stats and the ledger/stock audit check.
Architecture position: Kernel > Selectors.

Ordering:
    "Newest first" means descending ``seq``.  seq comes from a locked
    counter row, so it is a total order consistent with commit order for
    any single material.
"""

from uuid import UUID

from sqlalchemy import Select, and_, case, distinct, func, select

from depot_kernel.domain.dtos import (
    LedgerMismatch,
    LedgerStats,
    MovementFilter,
    StockMovementView,
)
from depot_kernel.exceptions import MaterialNotFoundError
from depot_kernel.models.material import Material
from depot_kernel.models.stock_movement import StockMovement
from depot_kernel.selectors.base import BaseSelector, check_page, enum_value


def movement_to_view(entry: StockMovement) -> StockMovementView:
    return StockMovementView(
        id=entry.id,
        seq=entry.seq,
        material_id=entry.material_id,
        movement_type=entry.movement_type,
        quantity=entry.quantity,
        stock_before=entry.stock_before,
        stock_after=entry.stock_after,
        actor_id=entry.actor_id,
        request_id=entry.request_id,
        delivery_note_id=entry.delivery_note_id,
        reason=entry.reason,
        description=entry.description,
        supplier=entry.supplier,
        invoice_number=entry.invoice_number,
        occurred_at=entry.occurred_at,
    )


def _apply_filter(stmt: Select, filters: MovementFilter | None) -> Select:
    if filters is None:
        return stmt
    if filters.material_id is not None:
        stmt = stmt.where(StockMovement.material_id == filters.material_id)
    if filters.movement_type is not None:
        stmt = stmt.where(StockMovement.movement_type == enum_value(filters.movement_type))
    if filters.actor_id is not None:
        stmt = stmt.where(StockMovement.actor_id == filters.actor_id)
    if filters.request_id is not None:
        stmt = stmt.where(StockMovement.request_id == filters.request_id)
    if filters.delivery_note_id is not None:
        stmt = stmt.where(StockMovement.delivery_note_id == filters.delivery_note_id)
    if filters.depot_id is not None:
        stmt = stmt.where(
            StockMovement.material_id.in_(
                select(Material.id).where(Material.depot_id == filters.depot_id)
            )
        )
    if filters.date_from is not None:
        stmt = stmt.where(StockMovement.occurred_at >= filters.date_from)
    if filters.date_to is not None:
        stmt = stmt.where(StockMovement.occurred_at <= filters.date_to)
    return stmt


class LedgerSelector(BaseSelector[StockMovement]):
    """Read-only queries over stock movements."""

    def list_movements(
        self,
        filters: MovementFilter | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[StockMovementView]:
        """Movements matching ``filters``, newest first."""
        check_page(limit, offset)
        stmt = _apply_filter(select(StockMovement), filters).order_by(
            StockMovement.seq.desc()
        )
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return [movement_to_view(m) for m in self.session.execute(stmt).scalars()]

    def history_for(
        self,
        material_id: UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> list[StockMovementView]:
        """
        One material's movements, newest first.

        Restartable: a caller pages with increasing offsets and stops at the
        first short page.
        """
        check_page(limit, offset)
        if self.session.get(Material, material_id) is None:
            raise MaterialNotFoundError(str(material_id))
        return self.list_movements(
            MovementFilter(material_id=material_id), limit=limit, offset=offset
        )

    def latest(self, material_id: UUID) -> StockMovementView | None:
        entry = self.session.execute(
            select(StockMovement)
            .where(StockMovement.material_id == material_id)
            .order_by(StockMovement.seq.desc())
            .limit(1)
        ).scalar_one_or_none()
        return movement_to_view(entry) if entry is not None else None

    def count_for(self, material_id: UUID) -> int:
        return self.session.execute(
            select(func.count())
            .select_from(StockMovement)
            .where(StockMovement.material_id == material_id)
        ).scalar_one()

    def stats(self, filters: MovementFilter | None = None) -> LedgerStats:
        """Counts per type, unit totals and distinct materials/actors."""
        kind = StockMovement.movement_type
        qty = StockMovement.quantity
        stmt = select(
            func.count(StockMovement.id),
            func.count(case((kind == "in", 1))),
            func.count(case((kind == "out", 1))),
            func.count(case((kind == "adjustment", 1))),
            func.coalesce(func.sum(case((kind == "in", qty), else_=0)), 0),
            func.coalesce(func.sum(case((kind == "out", -qty), else_=0)), 0),
            func.coalesce(func.sum(case((kind == "adjustment", qty), else_=0)), 0),
            func.count(distinct(StockMovement.material_id)),
            func.count(distinct(StockMovement.actor_id)),
        )
        row = self.session.execute(_apply_filter(stmt, filters)).one()
        return LedgerStats(*(int(value) for value in row))

    def verify_balances(self) -> list[LedgerMismatch]:
        """
        Materials whose latest ledger stock_after differs from stock_on_hand.

        A material with no ledger entries is consistent only at stock 0.
        """
        latest_seq = (
            select(
                StockMovement.material_id.label("material_id"),
                func.max(StockMovement.seq).label("max_seq"),
            )
            .group_by(StockMovement.material_id)
            .subquery()
        )
        latest_entry = (
            select(
                StockMovement.material_id.label("material_id"),
                StockMovement.stock_after.label("stock_after"),
            )
            .join(
                latest_seq,
                and_(
                    StockMovement.material_id == latest_seq.c.material_id,
                    StockMovement.seq == latest_seq.c.max_seq,
                ),
            )
            .subquery()
        )
        rows = self.session.execute(
            select(
                Material.id,
                Material.code,
                Material.stock_on_hand,
                latest_entry.c.stock_after,
            )
            .outerjoin(latest_entry, latest_entry.c.material_id == Material.id)
            .order_by(Material.code)
        ).all()

        mismatches = []
        for material_id, code, stock_on_hand, stock_after in rows:
            expected = 0 if stock_after is None else stock_after
            if stock_on_hand != expected:
                mismatches.append(
                    LedgerMismatch(
                        material_id=material_id,
                        code=code,
                        stock_on_hand=stock_on_hand,
                        ledger_stock_after=stock_after,
                    )
                )
        return mismatches

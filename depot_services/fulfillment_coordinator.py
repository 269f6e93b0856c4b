"""
depot_services.fulfillment_coordinator -- unit-of-work owner and public API.

Responsibility:
    Every public operation opens one session, wires the kernel services
    for it, runs the operation, and commits.  Any failure rolls back the
    whole unit of work before the error reaches the caller.  Domain events
    buffered during the unit of work are dispatched only after commit.

Architecture position:
    Services -- the only layer that commits.  Presentation, reporting and
    notification subsystems call these methods with already-resolved user
    ids; they never see ORM objects, only frozen views.

Invariants enforced:
    - Atomic processing: the delivery note, its lines, the stock decrements,
      the ledger entries and the request's move to ``in_preparation`` commit
      in one transaction.
    - Single processing: the request row is locked and must be ``approved``;
      a second call finds ``in_preparation`` and raises InvalidStateError.
    - Storage errors leave as ConflictError or StorageError, chained to the
      original exception and with no engine text in the message.
    - Notification failures never affect a committed operation.

Usage:
    from depot_kernel.db.engine import init_engine_from_url, create_tables, get_session_factory
    from depot_services.fulfillment_coordinator import FulfillmentCoordinator

    init_engine_from_url("sqlite:///depot.db")
    create_tables()
    coordinator = FulfillmentCoordinator(get_session_factory())
    note = coordinator.process_approved_request(request_id, issuer_id)
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import date
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from depot_kernel.config import KernelSettings
from depot_kernel.db.engine import translate_storage_error
from depot_kernel.domain.clock import Clock, SystemClock
from depot_kernel.domain.dtos import (
    Decision,
    DeliveryFilter,
    DeliveryLineSpec,
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
    RequestStats,
    RequestStatus,
    RequestView,
    StockMovementView,
)
from depot_kernel.domain.events import PendingEvents
from depot_kernel.domain.movement import Adjustment, Distribution, Receipt
from depot_kernel.exceptions import InvalidStateError, ValidationError
from depot_kernel.logging_config import LogContext, get_logger
from depot_kernel.selectors.delivery_selector import DeliverySelector, delivery_note_to_view
from depot_kernel.selectors.ledger_selector import LedgerSelector, movement_to_view
from depot_kernel.selectors.material_selector import MaterialSelector, material_to_view
from depot_kernel.selectors.request_selector import RequestSelector, request_to_view
from depot_kernel.services.delivery_note_issuer import DeliveryNoteIssuer
from depot_kernel.services.material_catalog import MaterialCatalog
from depot_kernel.services.request_workflow import RequestWorkflow
from depot_kernel.services.sequence_service import SequenceService
from depot_kernel.services.stock_ledger import StockLedger
from depot_services.notification import NotificationDispatcher, Notifier

logger = get_logger("services.fulfillment")

REASON_RECEIPT = "supplier receipt"
REASON_REMOVAL = "stock removal"
REASON_ADJUSTMENT = "inventory adjustment"


class UnitOfWork:
    """
    One session, one event buffer, and every kernel service wired to both.

    Each service is created exactly once per unit of work, so the catalog,
    ledger and sequence instances the issuer uses are the ones the
    coordinator uses too.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        settings: KernelSettings,
    ):
        self.session = session
        self.events = PendingEvents()
        self.sequence = SequenceService(session)
        self.catalog = MaterialCatalog(session)
        self.ledger = StockLedger(
            session, clock, catalog=self.catalog, sequence=self.sequence, events=self.events
        )
        self.requests = RequestWorkflow(
            session,
            clock,
            settings,
            catalog=self.catalog,
            sequence=self.sequence,
            events=self.events,
        )
        self.issuer = DeliveryNoteIssuer(
            session,
            clock,
            settings,
            catalog=self.catalog,
            ledger=self.ledger,
            sequence=self.sequence,
            events=self.events,
        )
        self.materials = MaterialSelector(session)
        self.request_reads = RequestSelector(session)
        self.delivery_reads = DeliverySelector(session)
        self.ledger_reads = LedgerSelector(session)


class FulfillmentCoordinator:
    """
    Public entry point for requests, delivery notes and stock operations.

    Contract:
        Every method is one transaction.  Writes return frozen views built
        before commit; reads run in their own short session.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        settings: KernelSettings | None = None,
        notifier: Notifier | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._settings = settings or KernelSettings()
        self._dispatcher = NotificationDispatcher(notifier)

    # -------------------------------------------------------------------------
    # Unit of work
    # -------------------------------------------------------------------------

    @contextmanager
    def unit_of_work(self, operation: str, **context: object) -> Iterator[UnitOfWork]:
        """
        Run a block as one transaction.

        Commits on normal exit, then dispatches buffered events.  On any
        exception the transaction is rolled back, buffered events are
        dropped, storage errors are translated and the error is re-raised.
        """
        session = self._session_factory()
        uow = UnitOfWork(session, self._clock, self._settings)
        with LogContext.bind(correlation_id=str(uuid4()), **context):
            try:
                yield uow
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                uow.events.clear()
                logger.warning(
                    "transaction_rolled_back",
                    extra={"operation": operation, "error_type": type(exc).__name__},
                    exc_info=True,
                )
                raise translate_storage_error(exc, operation) from exc
            except Exception as exc:
                session.rollback()
                uow.events.clear()
                logger.info(
                    "transaction_rolled_back",
                    extra={
                        "operation": operation,
                        "error_type": type(exc).__name__,
                        "error_code": getattr(exc, "code", None),
                    },
                )
                raise
            finally:
                session.close()

            logger.debug("transaction_committed", extra={"operation": operation})
            self._dispatcher.dispatch(uow.events.drain())

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    def register_material(
        self,
        *,
        code: str,
        name: str,
        unit: str,
        actor_id: UUID,
        stock_minimum: int = 0,
        category_id: UUID | None = None,
        depot_id: UUID | None = None,
        description: str | None = None,
        supplier: str | None = None,
    ) -> MaterialView:
        with self.unit_of_work("register_material", actor_id=actor_id) as uow:
            material = uow.catalog.register(
                code=code,
                name=name,
                unit=unit,
                actor_id=actor_id,
                stock_minimum=stock_minimum,
                category_id=category_id,
                depot_id=depot_id,
                description=description,
                supplier=supplier,
            )
            view = material_to_view(material)
        return view

    def delete_material(self, material_id: UUID, actor_id: UUID) -> None:
        with self.unit_of_work(
            "delete_material", actor_id=actor_id, material_id=material_id
        ) as uow:
            uow.catalog.delete(material_id, actor_id)

    def get_material(self, material_id: UUID) -> MaterialView:
        with self.unit_of_work("get_material") as uow:
            return uow.materials.get(material_id)

    def list_materials(
        self,
        depot_id: UUID | None = None,
        category_id: UUID | None = None,
    ) -> list[MaterialView]:
        with self.unit_of_work("list_materials") as uow:
            return uow.materials.list_materials(depot_id=depot_id, category_id=category_id)

    def low_stock(self, depot_id: UUID | None = None) -> list[MaterialView]:
        """Materials at or below their reorder threshold."""
        with self.unit_of_work("low_stock") as uow:
            return uow.materials.low_stock(depot_id)

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    def create_request(
        self,
        requester_id: UUID,
        lines: Sequence[RequestLineSpec],
        *,
        priority: Priority | str = Priority.NORMAL,
        depot_id: UUID | None = None,
        custom_destination: str | None = None,
        desired_date: date | None = None,
        comment: str | None = None,
    ) -> RequestView:
        with self.unit_of_work("create_request", actor_id=requester_id) as uow:
            request = uow.requests.create(
                requester_id,
                lines,
                priority=priority,
                depot_id=depot_id,
                custom_destination=custom_destination,
                desired_date=desired_date,
                comment=comment,
            )
            view = request_to_view(request)
        return view

    def validate_request(
        self,
        request_id: UUID,
        validator_id: UUID,
        decision: Decision | str,
        *,
        comment: str | None = None,
        granted_lines: Sequence[GrantedLine] | None = None,
    ) -> RequestView:
        with self.unit_of_work(
            "validate_request", actor_id=validator_id, request_id=request_id
        ) as uow:
            request = uow.requests.validate(
                request_id,
                validator_id,
                decision,
                comment=comment,
                granted_lines=granted_lines,
            )
            view = request_to_view(request)
        return view

    def get_request(self, request_id: UUID) -> RequestView:
        with self.unit_of_work("get_request", request_id=request_id) as uow:
            return uow.request_reads.get(request_id)

    def list_requests(
        self,
        filters: RequestFilter | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[RequestView]:
        with self.unit_of_work("list_requests") as uow:
            return uow.request_reads.list_requests(filters, limit=limit, offset=offset)

    def request_stats(self, filters: RequestFilter | None = None) -> RequestStats:
        with self.unit_of_work("request_stats") as uow:
            return uow.request_reads.stats(filters)

    # -------------------------------------------------------------------------
    # Delivery notes
    # -------------------------------------------------------------------------

    def process_approved_request(
        self,
        request_id: UUID,
        issuer_id: UUID,
        comment: str | None = None,
        *,
        depot_id: UUID | None = None,
    ) -> DeliveryNoteView:
        """
        Turn an approved request into a delivery note.

        The note carries one line per request line with a positive granted
        quantity, is addressed to the requester, and is issued from
        ``depot_id`` or, when omitted, the request's depot.  The request
        moves to ``in_preparation`` in the same transaction.
        """
        with self.unit_of_work(
            "process_approved_request", actor_id=issuer_id, request_id=request_id
        ) as uow:
            request = uow.requests.lock(request_id)
            if request.status != RequestStatus.APPROVED.value:
                raise InvalidStateError(
                    "Request",
                    str(request.id),
                    request.status,
                    "only approved requests can be processed",
                )

            lines = [
                DeliveryLineSpec(material_id=line.material_id, quantity=line.quantity_granted)
                for line in request.lines
                if line.quantity_granted > 0
            ]
            if not lines:
                raise ValidationError(
                    f"Request {request.number} has no granted quantity to deliver",
                    field="granted_lines",
                )

            source_depot = depot_id or request.depot_id
            if source_depot is None:
                raise ValidationError(
                    f"Request {request.number} has no depot; pass depot_id",
                    field="depot_id",
                )

            note = uow.issuer.create(
                issuer_id=issuer_id,
                depot_id=source_depot,
                lines=lines,
                delivery_type=DeliveryType.FROM_REQUEST,
                origin_request_id=request.id,
                recipient_id=request.requester_id,
                comment=comment,
            )
            uow.requests.mark_in_preparation(request, issuer_id)

            logger.info(
                "request_processed",
                extra={
                    "request_id": str(request.id),
                    "delivery_note_id": str(note.id),
                    "line_count": len(lines),
                },
            )
            view = delivery_note_to_view(note)
        return view

    def create_direct_distribution(
        self,
        *,
        issuer_id: UUID,
        depot_id: UUID,
        lines: Sequence[DeliveryLineSpec],
        recipient_id: UUID | None = None,
        custom_destination: str | None = None,
        comment: str | None = None,
    ) -> DeliveryNoteView:
        """Issue a delivery note with no originating request."""
        with self.unit_of_work("create_direct_distribution", actor_id=issuer_id) as uow:
            note = uow.issuer.create(
                issuer_id=issuer_id,
                depot_id=depot_id,
                lines=lines,
                delivery_type=DeliveryType.DIRECT,
                recipient_id=recipient_id,
                custom_destination=custom_destination,
                comment=comment,
            )
            view = delivery_note_to_view(note)
        return view

    def update_delivery_status(
        self,
        delivery_note_id: UUID,
        new_status: DeliveryStatus | str,
        actor_id: UUID,
        *,
        signature: str | None = None,
        comment: str | None = None,
    ) -> DeliveryNoteView:
        """
        Move a delivery note along its workflow.

        When a note that fulfils a request is delivered, the request moves
        to ``delivered`` in the same transaction.
        """
        with self.unit_of_work(
            "update_delivery_status", actor_id=actor_id, delivery_note_id=delivery_note_id
        ) as uow:
            note = uow.issuer.update_status(
                delivery_note_id,
                new_status,
                actor_id=actor_id,
                signature=signature,
                comment=comment,
            )
            if note.status == DeliveryStatus.DELIVERED.value and note.request_id is not None:
                request = uow.requests.lock(note.request_id)
                uow.requests.mark_delivered(request, actor_id)
            view = delivery_note_to_view(note)
        return view

    def get_delivery_note(self, delivery_note_id: UUID) -> DeliveryNoteView:
        with self.unit_of_work("get_delivery_note", delivery_note_id=delivery_note_id) as uow:
            return uow.delivery_reads.get(delivery_note_id)

    def list_delivery_notes(
        self,
        filters: DeliveryFilter | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[DeliveryNoteView]:
        with self.unit_of_work("list_delivery_notes") as uow:
            return uow.delivery_reads.list_notes(filters, limit=limit, offset=offset)

    def delivery_stats(self, filters: DeliveryFilter | None = None) -> DeliveryStats:
        with self.unit_of_work("delivery_stats") as uow:
            return uow.delivery_reads.stats(filters)

    # -------------------------------------------------------------------------
    # Stock
    # -------------------------------------------------------------------------

    def add_stock(
        self,
        material_id: UUID,
        quantity: int,
        actor_id: UUID,
        *,
        reason: str = REASON_RECEIPT,
        description: str | None = None,
        supplier: str | None = None,
        invoice_number: str | None = None,
    ) -> StockMovementView:
        """Record a receipt (``in`` movement)."""
        with self.unit_of_work("add_stock", actor_id=actor_id, material_id=material_id) as uow:
            entry = uow.ledger.record(
                material_id,
                Receipt(quantity, supplier=supplier, invoice_number=invoice_number),
                actor_id,
                reason=reason,
                description=description,
            )
            view = movement_to_view(entry)
        return view

    def remove_stock(
        self,
        material_id: UUID,
        quantity: int,
        actor_id: UUID,
        *,
        reason: str = REASON_REMOVAL,
        description: str | None = None,
    ) -> StockMovementView:
        """Record an ``out`` movement with no delivery note."""
        with self.unit_of_work("remove_stock", actor_id=actor_id, material_id=material_id) as uow:
            entry = uow.ledger.record(
                material_id,
                Distribution(quantity),
                actor_id,
                reason=reason,
                description=description,
            )
            view = movement_to_view(entry)
        return view

    def adjust_stock(
        self,
        material_id: UUID,
        new_balance: int,
        actor_id: UUID,
        *,
        reason: str = REASON_ADJUSTMENT,
        description: str | None = None,
    ) -> StockMovementView:
        """Set stock to ``new_balance``, recorded as a signed ``adjustment``."""
        with self.unit_of_work("adjust_stock", actor_id=actor_id, material_id=material_id) as uow:
            entry = uow.ledger.record(
                material_id,
                Adjustment(new_balance),
                actor_id,
                reason=reason,
                description=description,
            )
            view = movement_to_view(entry)
        return view

    def list_movements(
        self,
        filters: MovementFilter | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[StockMovementView]:
        with self.unit_of_work("list_movements") as uow:
            return uow.ledger_reads.list_movements(filters, limit=limit, offset=offset)

    def material_history(
        self,
        material_id: UUID,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[StockMovementView]:
        """One material's ledger, newest first, one page at a time."""
        page_size = self._settings.history_page_size if limit is None else limit
        with self.unit_of_work("material_history", material_id=material_id) as uow:
            return uow.ledger.history_for(material_id, limit=page_size, offset=offset)

    def movement_stats(self, filters: MovementFilter | None = None) -> LedgerStats:
        with self.unit_of_work("movement_stats") as uow:
            return uow.ledger.stats(filters)

    def verify_ledger(self) -> list[LedgerMismatch]:
        """Materials whose latest ledger balance differs from stock on hand."""
        with self.unit_of_work("verify_ledger") as uow:
            mismatches = uow.ledger_reads.verify_balances()
        if mismatches:
            logger.error(
                "ledger_mismatch_detected",
                extra={
                    "count": len(mismatches),
                    "material_ids": [str(m.material_id) for m in mismatches],
                },
            )
        return mismatches

"""
RequestWorkflow -- the material request state machine.

Responsibility:
    Creates requests with sequence-backed numbers, records the validator's
    decision and granted quantities, and moves requests along
    REQUEST_WORKFLOW when the coordinator processes or delivers them.

Architecture position:
    Kernel > Services -- imperative shell.  Flushes only; the coordinator
    owns the transaction.

Invariants enforced:
    - Granted quantities are written once, on approval, and are never
      greater than the requested quantity (rejected, never clamped).
    - A request is validated at most once: only ``pending`` requests accept
      a decision, and the row is locked while the decision is written.
    - Status only changes along REQUEST_WORKFLOW transitions.

Failure modes:
    - ValidationError: empty lines, non-positive or duplicate lines, bad
      priority or decision, grants out of range or naming unknown lines.
    - MaterialNotFoundError: a line names an unknown material.
    - RequestNotFoundError, InvalidStateError, InvalidTransitionError.
"""

from collections.abc import Sequence
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from depot_kernel.config import KernelSettings
from depot_kernel.domain.clock import Clock
from depot_kernel.domain.dtos import (
    Decision,
    GrantedLine,
    Priority,
    RequestLineSpec,
    RequestStatus,
)
from depot_kernel.domain.events import EventType, PendingEvents
from depot_kernel.domain.workflow import REQUEST_WORKFLOW
from depot_kernel.exceptions import (
    InvalidStateError,
    InvalidTransitionError,
    RequestNotFoundError,
    ValidationError,
)
from depot_kernel.logging_config import get_logger
from depot_kernel.models.request import MaterialRequest, RequestLine
from depot_kernel.services.base import BaseService, coerce_id
from depot_kernel.services.material_catalog import MaterialCatalog
from depot_kernel.services.sequence_service import SequenceService

logger = get_logger("services.request_workflow")


def _coerce(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}", field=field) from None


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class RequestWorkflow(BaseService[MaterialRequest]):
    """
    Request lifecycle: create, validate, and the processing transitions.

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
        sequence: SequenceService | None = None,
        events: PendingEvents | None = None,
    ):
        super().__init__(session)
        self._clock = clock
        self._settings = settings or KernelSettings()
        self._catalog = catalog or MaterialCatalog(session)
        self._sequence = sequence or SequenceService(session)
        self._events = events

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def get(self, request_id: UUID) -> MaterialRequest:
        request = self.session.get(MaterialRequest, request_id)
        if request is None:
            raise RequestNotFoundError(str(request_id))
        return request

    def lock(self, request_id: UUID) -> MaterialRequest:
        """Lock the request row and re-read it (and its lines)."""
        request = self.session.execute(
            select(MaterialRequest)
            .where(MaterialRequest.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if request is None:
            raise RequestNotFoundError(str(request_id))
        return request

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    def create(
        self,
        requester_id: UUID,
        lines: Sequence[RequestLineSpec],
        *,
        priority: Priority | str = Priority.NORMAL,
        depot_id: UUID | None = None,
        custom_destination: str | None = None,
        desired_date: date | None = None,
        comment: str | None = None,
    ) -> MaterialRequest:
        """
        Submit a new request in ``pending`` state.

        Lines keep the caller's order as line numbers 1..n.
        """
        if requester_id is None:
            raise ValidationError("requester_id is required", field="requester_id")
        if not lines:
            raise ValidationError("A request needs at least one line", field="lines")

        priority = _coerce(Priority, priority, "priority")
        if custom_destination is not None:
            custom_destination = custom_destination.strip() or None

        material_ids: list[UUID] = []
        for spec in lines:
            qty = spec.quantity_requested
            if not _is_int(qty) or qty <= 0:
                raise ValidationError(
                    f"quantity_requested must be a positive integer, got {qty!r}",
                    field="quantity_requested",
                )
            material_id = coerce_id(spec.material_id, "material_id")
            if material_id in material_ids:
                raise ValidationError(
                    f"Material {material_id} appears on more than one line",
                    field="lines",
                )
            material_ids.append(material_id)
            self._catalog.get(material_id)

        now = self._clock.now()
        number = self._sequence.next_request_number(
            self._settings.request_number_prefix, now.year
        )

        request = MaterialRequest(
            number=number,
            requester_id=requester_id,
            depot_id=depot_id,
            custom_destination=custom_destination,
            priority=priority.value,
            desired_date=desired_date,
            comment=comment,
            status=REQUEST_WORKFLOW.initial_state,
            created_by_id=requester_id,
            lines=[
                RequestLine(
                    line_no=line_no,
                    material_id=material_id,
                    quantity_requested=spec.quantity_requested,
                    quantity_granted=0,
                    comment=spec.comment,
                    created_by_id=requester_id,
                )
                for line_no, (material_id, spec) in enumerate(zip(material_ids, lines), start=1)
            ],
        )
        self.session.add(request)
        self.session.flush()

        logger.info(
            "request_created",
            extra={
                "request_id": str(request.id),
                "number": number,
                "line_count": len(request.lines),
                "priority": priority.value,
            },
        )
        if self._events is not None:
            self._events.add(
                EventType.REQUEST_CREATED,
                {
                    "request_id": str(request.id),
                    "number": number,
                    "requester_id": str(requester_id),
                    "priority": priority.value,
                    "depot_id": str(depot_id) if depot_id else None,
                    "line_count": len(request.lines),
                },
                occurred_at=now,
            )
        return request

    # -------------------------------------------------------------------------
    # Validate
    # -------------------------------------------------------------------------

    def _grants_for(
        self,
        request: MaterialRequest,
        granted_lines: Sequence[GrantedLine] | None,
    ) -> dict[UUID, int]:
        if granted_lines is None:
            return {line.id: line.quantity_requested for line in request.lines}

        by_id = {line.id: line for line in request.lines}
        grants = {line.id: 0 for line in request.lines}
        seen: set[UUID] = set()
        for grant in granted_lines:
            line_id = coerce_id(grant.line_id, "granted_lines")
            line = by_id.get(line_id)
            if line is None:
                raise ValidationError(
                    f"Line {line_id} does not belong to request {request.number}",
                    field="granted_lines",
                )
            if line_id in seen:
                raise ValidationError(
                    f"Line {line_id} is granted more than once",
                    field="granted_lines",
                )
            seen.add(line_id)
            qty = grant.quantity_granted
            if not _is_int(qty) or qty < 0:
                raise ValidationError(
                    f"quantity_granted must be a non-negative integer, got {qty!r}",
                    field="quantity_granted",
                )
            if qty > line.quantity_requested:
                raise ValidationError(
                    f"Granted {qty} exceeds requested {line.quantity_requested} "
                    f"on line {line.line_no}",
                    field="quantity_granted",
                )
            grants[line.id] = qty
        return grants

    def validate(
        self,
        request_id: UUID,
        validator_id: UUID,
        decision: Decision | str,
        *,
        comment: str | None = None,
        granted_lines: Sequence[GrantedLine] | None = None,
    ) -> MaterialRequest:
        """
        Approve or reject a pending request.

        Approval without ``granted_lines`` grants every line in full; with
        ``granted_lines``, unlisted lines are granted 0.  Rejection touches
        no quantities.  Both stamp the validator and the validation time.
        """
        if validator_id is None:
            raise ValidationError("validator_id is required", field="validator_id")
        decision = _coerce(Decision, decision, "decision")

        request = self.lock(request_id)
        if request.status != RequestStatus.PENDING.value:
            raise InvalidStateError(
                "Request",
                str(request.id),
                request.status,
                "only pending requests can be validated",
            )

        if decision is Decision.APPROVE:
            grants = self._grants_for(request, granted_lines)
            target = RequestStatus.APPROVED
        else:
            if granted_lines:
                raise ValidationError(
                    "granted_lines only apply to approvals", field="granted_lines"
                )
            grants = None
            target = RequestStatus.REJECTED

        self._transition(request, target, actor_id=validator_id)
        if grants is not None:
            for line in request.lines:
                line.quantity_granted = grants[line.id]
                line.updated_by_id = validator_id

        now = self._clock.now()
        request.validator_id = validator_id
        request.validated_at = now
        request.validator_comment = comment
        self.session.flush()

        logger.info(
            "request_validated",
            extra={
                "request_id": str(request.id),
                "number": request.number,
                "decision": decision.value,
                "validator_id": str(validator_id),
            },
        )
        if self._events is not None:
            self._events.add(
                EventType.REQUEST_VALIDATED,
                {
                    "request_id": str(request.id),
                    "number": request.number,
                    "requester_id": str(request.requester_id),
                    "validator_id": str(validator_id),
                    "decision": decision.value,
                    "status": request.status,
                },
                occurred_at=now,
            )
        return request

    # -------------------------------------------------------------------------
    # Processing transitions
    # -------------------------------------------------------------------------

    def mark_in_preparation(self, request: MaterialRequest, actor_id: UUID) -> MaterialRequest:
        """approved -> in_preparation, once its delivery note exists."""
        self._transition(request, RequestStatus.IN_PREPARATION, actor_id=actor_id)
        self.session.flush()
        return request

    def mark_delivered(self, request: MaterialRequest, actor_id: UUID) -> MaterialRequest:
        """in_preparation -> delivered, when its delivery note is delivered."""
        self._transition(request, RequestStatus.DELIVERED, actor_id=actor_id)
        self.session.flush()
        return request

    def _transition(
        self,
        request: MaterialRequest,
        target: RequestStatus,
        *,
        actor_id: UUID,
    ) -> None:
        if not REQUEST_WORKFLOW.can_transition(request.status, target.value):
            raise InvalidTransitionError(
                "Request", str(request.id), request.status, target.value
            )
        logger.debug(
            "request_transition",
            extra={
                "request_id": str(request.id),
                "from_state": request.status,
                "to_state": target.value,
            },
        )
        request.status = target.value
        request.updated_by_id = actor_id

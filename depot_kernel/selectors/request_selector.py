"""
Module: depot_kernel.selectors.request_selector
Responsibility: Read-only request queries -- get, filtered list, stats.
Architecture position: Kernel > Selectors.
"""

from uuid import UUID

from sqlalchemy import Select, case, func, select

from depot_kernel.domain.dtos import (
    Priority,
    RequestFilter,
    RequestLineView,
    RequestStats,
    RequestStatus,
    RequestView,
)
from depot_kernel.exceptions import RequestNotFoundError
from depot_kernel.models.request import MaterialRequest, RequestLine
from depot_kernel.selectors.base import BaseSelector, check_page, enum_value


def request_line_to_view(line: RequestLine) -> RequestLineView:
    return RequestLineView(
        id=line.id,
        line_no=line.line_no,
        material_id=line.material_id,
        quantity_requested=line.quantity_requested,
        quantity_granted=line.quantity_granted,
        comment=line.comment,
    )


def request_to_view(request: MaterialRequest) -> RequestView:
    return RequestView(
        id=request.id,
        number=request.number,
        requester_id=request.requester_id,
        depot_id=request.depot_id,
        custom_destination=request.custom_destination,
        priority=Priority(request.priority),
        desired_date=request.desired_date,
        comment=request.comment,
        status=RequestStatus(request.status),
        validator_id=request.validator_id,
        validated_at=request.validated_at,
        validator_comment=request.validator_comment,
        created_at=request.created_at,
        lines=tuple(request_line_to_view(line) for line in request.lines),
    )


def _apply_filter(stmt: Select, filters: RequestFilter | None) -> Select:
    if filters is None:
        return stmt
    if filters.requester_id is not None:
        stmt = stmt.where(MaterialRequest.requester_id == filters.requester_id)
    if filters.status is not None:
        stmt = stmt.where(MaterialRequest.status == enum_value(filters.status))
    if filters.depot_id is not None:
        stmt = stmt.where(MaterialRequest.depot_id == filters.depot_id)
    if filters.priority is not None:
        stmt = stmt.where(MaterialRequest.priority == enum_value(filters.priority))
    if filters.date_from is not None:
        stmt = stmt.where(MaterialRequest.created_at >= filters.date_from)
    if filters.date_to is not None:
        stmt = stmt.where(MaterialRequest.created_at <= filters.date_to)
    return stmt


class RequestSelector(BaseSelector[MaterialRequest]):

    def get(self, request_id: UUID) -> RequestView:
        request = self.session.get(MaterialRequest, request_id)
        if request is None:
            raise RequestNotFoundError(str(request_id))
        return request_to_view(request)

    def get_by_number(self, number: str) -> RequestView | None:
        request = self.session.execute(
            select(MaterialRequest).where(MaterialRequest.number == number)
        ).scalar_one_or_none()
        return request_to_view(request) if request is not None else None

    def list_requests(
        self,
        filters: RequestFilter | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[RequestView]:
        """Requests matching ``filters``, most recently numbered first."""
        check_page(limit, offset)
        stmt = _apply_filter(select(MaterialRequest), filters).order_by(
            MaterialRequest.number.desc()
        )
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return [request_to_view(r) for r in self.session.execute(stmt).scalars()]

    def stats(self, filters: RequestFilter | None = None) -> RequestStats:
        status = MaterialRequest.status
        stmt = select(
            func.count(MaterialRequest.id),
            func.count(case((status == RequestStatus.PENDING.value, 1))),
            func.count(case((status == RequestStatus.APPROVED.value, 1))),
            func.count(case((status == RequestStatus.REJECTED.value, 1))),
            func.count(case((status == RequestStatus.IN_PREPARATION.value, 1))),
            func.count(case((status == RequestStatus.DELIVERED.value, 1))),
            func.count(case((MaterialRequest.priority == Priority.URGENT.value, 1))),
        )
        row = self.session.execute(_apply_filter(stmt, filters)).one()
        return RequestStats(*(int(value) for value in row))

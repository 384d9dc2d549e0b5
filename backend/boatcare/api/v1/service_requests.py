"""
Service request API: creation, role-scoped listing, detail and lifecycle transitions.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from boatcare.core.auth import CurrentUser, get_current_user
from boatcare.core.dependencies import get_db, get_request_repository
from boatcare.schemas.service_request import (
    ActorRole,
    RequestSummaryOut,
    ServiceRequestCreate,
    ServiceRequestListResponse,
    ServiceRequestView,
    SortKey,
    StatusCatalogResponse,
    TransitionRequest,
    Urgency,
)
from boatcare.services.request_aggregation import RequestListFilter, list_requests, summarize_requests
from boatcare.services.request_records import ActorContext, RequestRecord
from boatcare.services.request_repository import RequestQuery, SqlAlchemyRequestRepository
from boatcare.services.request_views import request_view, status_meta_out, summary_out
from boatcare.services.status_catalog import ordered_statuses, status_meta
from boatcare.services.transition_service import attempt_transition, create_service_request
from boatcare.services.workflow_errors import (
    ConcurrentModification,
    InvalidTransition,
    RepositoryFailure,
    RequestNotFound,
    ValidationFailure,
    WorkflowError,
)
from boatcare.utils.request_badges import RequestBadges, request_badges

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_STATUS_CODES = {
    InvalidTransition: 400,
    RequestNotFound: 404,
    ConcurrentModification: 409,
    ValidationFailure: 422,
    RepositoryFailure: 503,
}


def get_request_badges() -> RequestBadges:
    return request_badges


def _http_error(exc: WorkflowError) -> HTTPException:
    for error_type, status_code in ERROR_STATUS_CODES.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code, exc.to_dict())
    return HTTPException(500, exc.to_dict())


def _commit(db: Session) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Commit failed")
        raise _http_error(RepositoryFailure("Could not save the service request")) from exc


def _actor(current_user: CurrentUser) -> ActorContext:
    return current_user.to_actor()


def _visible_to(record: RequestRecord, actor: ActorContext) -> bool:
    if actor.role == ActorRole.CORPORATE:
        return True
    if actor.role == ActorRole.CLIENT:
        return record.client.id == actor.id
    if actor.role == ActorRole.BOAT_MANAGER:
        return record.boat_manager is None or record.boat_manager.id == actor.id
    if actor.role == ActorRole.NAUTICAL_COMPANY:
        return record.company is None or record.company.id == actor.id
    return False


def _load_visible(repo: SqlAlchemyRequestRepository, request_id: str, actor: ActorContext) -> RequestRecord:
    try:
        record = repo.fetch_request_by_id(request_id)
    except WorkflowError as exc:
        raise _http_error(exc) from exc
    if record is None or not _visible_to(record, actor):
        raise _http_error(RequestNotFound(request_id))
    return record


# ─── Catalog ──────────────────────────────────────────


@router.get("/status-catalog", response_model=StatusCatalogResponse)
async def get_status_catalog():
    return StatusCatalogResponse(items=[status_meta_out(status_meta(status)) for status in ordered_statuses()])


# ─── Requests ─────────────────────────────────────────


@router.post("/service-requests", response_model=ServiceRequestView, status_code=201)
async def create_request(
    payload: ServiceRequestCreate,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    repo: SqlAlchemyRequestRepository = Depends(get_request_repository),
    badges: RequestBadges = Depends(get_request_badges),
):
    actor = _actor(current_user)
    try:
        record = create_service_request(repo, payload, actor)
    except WorkflowError as exc:
        db.rollback()
        raise _http_error(exc) from exc
    _commit(db)

    badges.mark_new(record.id)
    return request_view(record, actor.role, badges)


@router.get("/service-requests", response_model=ServiceRequestListResponse)
async def list_service_requests(
    q: str = Query("", max_length=200),
    status_filter: Optional[str] = Query(None),
    urgency: Optional[Urgency] = Query(None),
    sort_key: SortKey = Query(SortKey.DATE),
    sort_asc: bool = Query(False),
    current_user: CurrentUser = Depends(get_current_user),
    repo: SqlAlchemyRequestRepository = Depends(get_request_repository),
    badges: RequestBadges = Depends(get_request_badges),
):
    actor = _actor(current_user)
    try:
        request_filter = RequestListFilter(search=q, status_filter=status_filter, urgency=urgency)
    except ValueError as exc:
        raise _http_error(ValidationFailure({"status_filter": str(exc)})) from exc

    try:
        records = repo.fetch_requests(RequestQuery.for_actor(actor))
    except WorkflowError as exc:
        raise _http_error(exc) from exc

    items = list_requests(records, request_filter, sort_key, sort_asc)
    return ServiceRequestListResponse(
        items=[request_view(record, actor.role, badges) for record in items],
        summary=summary_out(summarize_requests(records), [record.id for record in records], badges),
        status_filter=request_filter.status_filter,
        urgency=request_filter.urgency,
    )


@router.get("/service-requests/summary", response_model=RequestSummaryOut)
async def get_service_request_summary(
    current_user: CurrentUser = Depends(get_current_user),
    repo: SqlAlchemyRequestRepository = Depends(get_request_repository),
    badges: RequestBadges = Depends(get_request_badges),
):
    actor = _actor(current_user)
    try:
        records = repo.fetch_requests(RequestQuery.for_actor(actor))
    except WorkflowError as exc:
        raise _http_error(exc) from exc
    return summary_out(summarize_requests(records), [record.id for record in records], badges)


@router.get("/service-requests/{request_id}", response_model=ServiceRequestView)
async def get_service_request(
    request_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    repo: SqlAlchemyRequestRepository = Depends(get_request_repository),
    badges: RequestBadges = Depends(get_request_badges),
):
    actor = _actor(current_user)
    record = _load_visible(repo, request_id, actor)
    badges.open(record.id)
    return request_view(record, actor.role, badges)


@router.post("/service-requests/{request_id}/transitions", response_model=ServiceRequestView)
async def transition_service_request(
    request_id: str,
    payload: TransitionRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    repo: SqlAlchemyRequestRepository = Depends(get_request_repository),
    badges: RequestBadges = Depends(get_request_badges),
):
    actor = _actor(current_user)
    _load_visible(repo, request_id, actor)

    try:
        outcome = attempt_transition(
            repo,
            request_id,
            payload.intent,
            actor,
            payload.inputs,
            expected_status=payload.expected_status,
        )
    except WorkflowError as exc:
        db.rollback()
        raise _http_error(exc) from exc
    _commit(db)

    badges.mark_status_update(outcome.request.id)
    return request_view(outcome.request, actor.role, badges)

"""Request service layer."""

from __future__ import annotations

import logging
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from wecarry.core.errors import AppError, ErrorCategory, ErrorKey, not_found, user_error
from wecarry.core.events.event_bus import EventBus
from wecarry.core.events.event_models import RequestCreated
from wecarry.core.utils.dates import to_naive_utc
from wecarry.domains.requests.models import Location, Request, RequestStatus
from wecarry.domains.requests.schemas import LocationInput, RequestCreate
from wecarry.extensions import db

logger = logging.getLogger(__name__)


def _location(data: Optional[LocationInput]) -> Optional[Location]:
    if data is None:
        return None
    return Location(
        description=data.description.strip(),
        country=data.country.upper() if data.country else None,
        latitude=data.latitude,
        longitude=data.longitude,
    )


def create_request(bus: EventBus, creator_id: int, payload: dict | RequestCreate) -> Request:
    if isinstance(payload, RequestCreate):
        data = payload
    else:
        try:
            data = RequestCreate.model_validate(payload)
        except ValidationError as exc:
            raise AppError(ErrorKey.INVALID_REQUEST_INPUT, ErrorCategory.USER, cause=exc) from exc

    request = Request(
        created_by_id=creator_id,
        title=data.title.strip(),
        description=(data.description or "").strip() or None,
        destination=_location(data.destination),
        origin=_location(data.origin),
        size=data.size.value,
        kind=data.kind.value,
        visibility=data.visibility.value,
        status=RequestStatus.OPEN.value,
        needed_after=to_naive_utc(data.needed_after) if data.needed_after else None,
        needed_before=to_naive_utc(data.needed_before) if data.needed_before else None,
    )
    try:
        db.session.add(request)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Failed to create request for user %s", creator_id)
        raise AppError(ErrorKey.GENERIC_INTERNAL_SERVER_ERROR, ErrorCategory.DB, cause=exc) from exc

    bus.publish(RequestCreated(request_id=request.id, creator_id=creator_id))
    return request


def get_request(request_id: int) -> Request:
    request = db.session.get(Request, request_id)
    if request is None:
        raise not_found(ErrorKey.NO_ROWS, f"request {request_id} not found")
    return request


def get_request_by_uuid(request_uuid: str) -> Request:
    request = db.session.execute(select(Request).where(Request.uuid == request_uuid)).scalar_one_or_none()
    if request is None:
        raise not_found(ErrorKey.NO_ROWS, f"request {request_uuid} not found")
    return request


def list_requests(status: Optional[str] = None, limit: int = 50) -> List[Request]:
    query = select(Request).order_by(Request.created_at.desc(), Request.id.desc()).limit(limit)
    if status is not None:
        try:
            status_value = RequestStatus(status).value
        except ValueError:
            raise user_error(ErrorKey.INVALID_REQUEST_INPUT, f"unknown request status {status!r}") from None
        query = query.where(Request.status == status_value)
    return list(db.session.execute(query).scalars())

"""Request lifecycle state machine.

``TRANSITIONS`` is the single source of truth for which status edges exist,
who may take them, and who gets notified. ``RequestLifecycle.transition``
applies one edge atomically and publishes the resulting event after commit.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Optional, Tuple, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from wecarry.core.errors import AppError, ErrorCategory, ErrorKey, forbidden, not_found, user_error
from wecarry.core.events.event_bus import EventBus
from wecarry.core.events.event_models import RequestStatusChanged
from wecarry.core.users.models import User
from wecarry.domains.notifications import templates as tpl
from wecarry.domains.requests.models import Request, RequestHistory, RequestStatus
from wecarry.extensions import db

logger = logging.getLogger(__name__)


class Role(str, enum.Enum):
    CREATOR = "creator"
    PROVIDER = "provider"
    NON_CREATOR = "non_creator"


class Recipient(str, enum.Enum):
    CREATOR = "creator"
    PROVIDER = "provider"
    OLD_PROVIDER = "old_provider"
    # Whichever of creator / old provider did not act.
    OTHER_PARTY = "other_party"


@dataclass(frozen=True)
class Transition:
    source: RequestStatus
    target: RequestStatus
    actors: FrozenSet[Role]
    template: str
    recipient: Recipient
    # Template used when the provider takes an OTHER_PARTY edge.
    provider_template: Optional[str] = None


S = RequestStatus

_EDGES = (
    Transition(S.OPEN, S.COMMITTED, frozenset({Role.NON_CREATOR}), tpl.REQUEST_FROM_OPEN_TO_COMMITTED, Recipient.CREATOR),
    Transition(S.COMMITTED, S.ACCEPTED, frozenset({Role.CREATOR}), tpl.REQUEST_FROM_COMMITTED_TO_ACCEPTED, Recipient.PROVIDER),
    Transition(
        S.COMMITTED,
        S.OPEN,
        frozenset({Role.CREATOR, Role.PROVIDER}),
        tpl.REQUEST_OFFER_REJECTED,
        Recipient.OTHER_PARTY,
        provider_template=tpl.REQUEST_OFFER_WITHDRAWN,
    ),
    Transition(S.ACCEPTED, S.RECEIVED, frozenset({Role.CREATOR}), tpl.REQUEST_FROM_ACCEPTED_TO_RECEIVED, Recipient.PROVIDER),
    Transition(S.ACCEPTED, S.DELIVERED, frozenset({Role.PROVIDER}), tpl.REQUEST_DELIVERED, Recipient.CREATOR),
    Transition(S.ACCEPTED, S.OPEN, frozenset({Role.CREATOR}), tpl.REQUEST_FROM_ACCEPTED_TO_OPEN, Recipient.OLD_PROVIDER),
    Transition(S.RECEIVED, S.COMPLETED, frozenset({Role.CREATOR}), tpl.REQUEST_COMPLETED, Recipient.PROVIDER),
    Transition(S.DELIVERED, S.COMPLETED, frozenset({Role.CREATOR}), tpl.REQUEST_COMPLETED, Recipient.PROVIDER),
    Transition(S.OPEN, S.REMOVED, frozenset({Role.CREATOR}), tpl.REQUEST_REMOVED, Recipient.OLD_PROVIDER),
    Transition(S.COMMITTED, S.REMOVED, frozenset({Role.CREATOR}), tpl.REQUEST_REMOVED, Recipient.OLD_PROVIDER),
)

TRANSITIONS: Dict[Tuple[RequestStatus, RequestStatus], Transition] = {
    (edge.source, edge.target): edge for edge in _EDGES
}


def find_transition(source: Union[str, RequestStatus], target: Union[str, RequestStatus]) -> Optional[Transition]:
    try:
        return TRANSITIONS.get((RequestStatus(source), RequestStatus(target)))
    except ValueError:
        return None


def transition_templates() -> FrozenSet[str]:
    keys = set()
    for edge in _EDGES:
        keys.add(edge.template)
        if edge.provider_template:
            keys.add(edge.provider_template)
    return frozenset(keys)


def actor_roles(request: Request, actor_id: int) -> FrozenSet[Role]:
    roles = set()
    if actor_id == request.created_by_id:
        roles.add(Role.CREATOR)
    else:
        roles.add(Role.NON_CREATOR)
    if request.provider_id is not None and actor_id == request.provider_id:
        roles.add(Role.PROVIDER)
    return frozenset(roles)


def _coerce_status(value: Union[str, RequestStatus]) -> RequestStatus:
    try:
        return RequestStatus(value)
    except ValueError:
        raise user_error(ErrorKey.INVALID_REQUEST_INPUT, f"unknown request status {value!r}") from None


class RequestLifecycle:
    def __init__(self, bus: EventBus, threads) -> None:
        self.bus = bus
        self.threads = threads

    def _abort(self, error: AppError) -> AppError:
        db.session.rollback()
        return error

    def transition(
        self,
        request_id: int,
        target_status: Union[str, RequestStatus],
        actor_id: int,
        is_cancelled: Optional[Callable[[], bool]] = None,
    ) -> Request:
        """Move a request to ``target_status`` on behalf of ``actor_id``.

        Repeating a transition that already happened is a no-op for the
        creator or provider. Events are published only once the change is
        committed.
        """
        target = _coerce_status(target_status)
        session = db.session

        try:
            request = session.execute(
                select(Request).where(Request.id == request_id).with_for_update()
            ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("Failed to load request %s", request_id)
            raise AppError(ErrorKey.GENERIC_INTERNAL_SERVER_ERROR, ErrorCategory.DB, cause=exc) from exc

        if request is None:
            raise self._abort(not_found(ErrorKey.NO_ROWS, f"request {request_id} not found"))

        current = RequestStatus(request.status)
        if current is target:
            if request.is_party(actor_id):
                session.commit()
                return request
            raise self._abort(user_error(ErrorKey.INVALID_TRANSITION, f"request is already {current.value}"))

        edge = TRANSITIONS.get((current, target))
        if edge is None:
            raise self._abort(
                user_error(ErrorKey.INVALID_TRANSITION, f"cannot move request from {current.value} to {target.value}")
            )

        if not edge.actors & actor_roles(request, actor_id):
            raise self._abort(forbidden(ErrorKey.NOT_AUTHORIZED, "user may not make this transition"))

        actor = session.get(User, actor_id)
        if actor is None:
            raise self._abort(forbidden(ErrorKey.NOT_AUTHENTICATED, f"unknown user {actor_id}"))

        old_provider_id = request.provider_id
        try:
            request.status = target.value
            if current is RequestStatus.OPEN and target is RequestStatus.COMMITTED:
                request.provider, request.provider_id = actor, actor.id
            elif target in (RequestStatus.OPEN, RequestStatus.REMOVED):
                request.provider, request.provider_id = None, None

            session.add(
                RequestHistory(
                    request_id=request.id,
                    old_status=current.value,
                    new_status=target.value,
                    old_provider_id=old_provider_id,
                    new_provider_id=request.provider_id,
                    actor_id=actor_id,
                )
            )
            if target is RequestStatus.COMMITTED:
                self.threads.ensure_thread(request, actor_id)
            session.flush()
        except AppError:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("Failed to apply transition %s -> %s on request %s", current.value, target.value, request_id)
            raise AppError(ErrorKey.GENERIC_INTERNAL_SERVER_ERROR, ErrorCategory.INTERNAL, cause=exc) from exc

        if is_cancelled is not None and is_cancelled():
            raise self._abort(AppError(ErrorKey.TRANSACTION_CANCELLED, ErrorCategory.INTERNAL))

        try:
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("Failed to commit transition on request %s", request_id)
            raise AppError(ErrorKey.GENERIC_INTERNAL_SERVER_ERROR, ErrorCategory.INTERNAL, cause=exc) from exc

        logger.info(
            "Request %s moved %s -> %s by user %s", request.id, current.value, target.value, actor_id
        )
        self.bus.publish(
            RequestStatusChanged(
                request_id=request.id,
                old_status=current.value,
                new_status=target.value,
                actor_id=actor_id,
                old_provider_id=old_provider_id,
                provider_id=request.provider_id,
            )
        )
        return request

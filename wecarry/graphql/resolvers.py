"""Query and mutation roots."""

from __future__ import annotations

import dataclasses
import logging
from typing import Callable, List, Optional, TypeVar

import strawberry
from graphql import GraphQLError
from strawberry.types import Info

from wecarry.core.errors import AppError, ErrorCategory, ErrorKey, from_exception
from wecarry.core.log import REPORTED, report_exception
from wecarry.core.users.services import get_user
from wecarry.domains.requests import services as request_services
from wecarry.graphql.types import (
    CreateRequestInput,
    MessageType,
    RequestType,
    ThreadType,
    UserType,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def to_graphql_error(exc: AppError) -> GraphQLError:
    key, category = exc.public()
    message = exc.message
    if category is ErrorCategory.INTERNAL:
        # Internal detail stays in the logs.
        logger.error("GraphQL resolver failed: %r", exc, exc_info=exc, extra=REPORTED)
        report_exception({"key": exc.key.value, "category": exc.category.value})
        message = key.value
    return GraphQLError(message, extensions={"code": key.value, "category": category.value})


def _run(fn: Callable[..., T], *args, **kwargs) -> T:
    try:
        return fn(*args, **kwargs)
    except AppError as exc:
        raise to_graphql_error(exc) from exc
    except Exception as exc:
        raise to_graphql_error(from_exception(exc)) from exc


def _actor(info: Info) -> int:
    user_id = info.context.get("user_id")
    if user_id is None:
        raise GraphQLError(
            "authentication required",
            extensions={"code": ErrorKey.NOT_AUTHENTICATED.value, "category": ErrorCategory.FORBIDDEN.value},
        )
    return user_id


def _id(value: strawberry.ID) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise GraphQLError(
            f"invalid id {value!r}",
            extensions={"code": ErrorKey.INVALID_REQUEST_INPUT.value, "category": ErrorCategory.USER.value},
        ) from None


def _thread_view(info: Info, thread_id: int, user_id: int) -> ThreadType:
    threads = info.context["core"].threads
    thread = threads.get_thread(thread_id)
    return ThreadType.from_model(thread, user_id, threads.unread_count(thread_id, user_id))


@strawberry.type
class Query:
    @strawberry.field
    def me(self, info: Info) -> UserType:
        return UserType.from_model(_run(get_user, _actor(info)))

    @strawberry.field
    def request(self, info: Info, id: strawberry.ID) -> RequestType:
        _actor(info)
        return RequestType.from_model(_run(request_services.get_request, _id(id)))

    @strawberry.field
    def requests(self, info: Info, status: Optional[str] = None) -> List[RequestType]:
        _actor(info)
        return [RequestType.from_model(r) for r in _run(request_services.list_requests, status)]

    @strawberry.field
    def my_threads(self, info: Info) -> List[ThreadType]:
        user_id = _actor(info)
        threads = info.context["core"].threads
        return [
            ThreadType.from_model(thread, user_id, _run(threads.unread_count, thread.id, user_id))
            for thread in _run(threads.threads_for_user, user_id)
        ]


@strawberry.type
class Mutation:
    @strawberry.mutation
    def create_request(self, info: Info, input: CreateRequestInput) -> RequestType:
        user_id = _actor(info)
        core = info.context["core"]
        request = _run(request_services.create_request, core.bus, user_id, dataclasses.asdict(input))
        return RequestType.from_model(request)

    @strawberry.mutation
    def transition_request(self, info: Info, request_id: strawberry.ID, status: str) -> RequestType:
        user_id = _actor(info)
        lifecycle = info.context["core"].lifecycle
        return RequestType.from_model(_run(lifecycle.transition, _id(request_id), status, user_id))

    @strawberry.mutation
    def send_message(
        self,
        info: Info,
        request_id: strawberry.ID,
        content: str,
        thread_id: Optional[strawberry.ID] = None,
    ) -> MessageType:
        user_id = _actor(info)
        threads = info.context["core"].threads
        message = _run(
            threads.send_message,
            _id(request_id),
            user_id,
            content,
            _id(thread_id) if thread_id is not None else None,
        )
        return MessageType.from_model(message)

    @strawberry.mutation
    def mark_thread_viewed(self, info: Info, thread_id: strawberry.ID) -> ThreadType:
        user_id = _actor(info)
        threads = info.context["core"].threads
        _run(threads.mark_viewed, _id(thread_id), user_id)
        return _run(_thread_view, info, _id(thread_id), user_id)

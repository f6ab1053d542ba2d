"""Typed domain events published on the in-process bus."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import ClassVar, Optional


def new_transaction_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Event:
    """Base event. Only ids travel on the bus; listeners reload entities."""

    kind: ClassVar[str] = ""


@dataclass(frozen=True)
class UserCreated(Event):
    kind: ClassVar[str] = "api:user:created"

    user_id: int
    transaction_id: str = field(default_factory=new_transaction_id)


@dataclass(frozen=True)
class RequestCreated(Event):
    kind: ClassVar[str] = "api:request:created"

    request_id: int
    creator_id: int
    transaction_id: str = field(default_factory=new_transaction_id)


@dataclass(frozen=True)
class RequestStatusChanged(Event):
    kind: ClassVar[str] = "request:status-changed"

    request_id: int
    old_status: str
    new_status: str
    actor_id: int
    old_provider_id: Optional[int] = None
    provider_id: Optional[int] = None
    transaction_id: str = field(default_factory=new_transaction_id)


@dataclass(frozen=True)
class ThreadMessageAdded(Event):
    kind: ClassVar[str] = "thread:message-added"

    thread_id: int
    message_id: int
    sender_id: int
    request_id: int
    transaction_id: str = field(default_factory=new_transaction_id)


EVENT_KINDS = tuple(
    cls.kind for cls in (UserCreated, RequestCreated, RequestStatusChanged, ThreadMessageAdded)
)

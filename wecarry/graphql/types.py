from __future__ import annotations

import datetime as dt
from typing import List, Optional

import strawberry

from wecarry.core.users.models import User
from wecarry.domains.requests.models import Location, Request
from wecarry.domains.threads.models import Message, Thread


@strawberry.type
class UserType:
    id: strawberry.ID
    uuid: str
    nickname: str
    email: str
    first_name: Optional[str]
    last_name: Optional[str]
    language: str
    contact_preference: str
    photo_url: Optional[str]

    @classmethod
    def from_model(cls, user: User) -> "UserType":
        return cls(
            id=strawberry.ID(str(user.id)),
            uuid=user.uuid,
            nickname=user.nickname,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            language=user.language,
            contact_preference=user.contact_preference,
            photo_url=user.photo_url,
        )


@strawberry.type
class LocationType:
    description: str
    country: Optional[str]
    latitude: Optional[float]
    longitude: Optional[float]

    @classmethod
    def from_model(cls, location: Location) -> "LocationType":
        return cls(
            description=location.description,
            country=location.country,
            latitude=location.latitude,
            longitude=location.longitude,
        )


@strawberry.type
class RequestType:
    id: strawberry.ID
    uuid: str
    title: str
    description: Optional[str]
    status: str
    size: str
    kind: str
    visibility: str
    created_by: UserType
    provider: Optional[UserType]
    origin: Optional[LocationType]
    destination: LocationType
    needed_after: Optional[dt.datetime]
    needed_before: Optional[dt.datetime]
    created_at: dt.datetime

    @classmethod
    def from_model(cls, request: Request) -> "RequestType":
        return cls(
            id=strawberry.ID(str(request.id)),
            uuid=request.uuid,
            title=request.title,
            description=request.description,
            status=request.status,
            size=request.size,
            kind=request.kind,
            visibility=request.visibility,
            created_by=UserType.from_model(request.created_by),
            provider=UserType.from_model(request.provider) if request.provider else None,
            origin=LocationType.from_model(request.origin) if request.origin else None,
            destination=LocationType.from_model(request.destination),
            needed_after=request.needed_after,
            needed_before=request.needed_before,
            created_at=request.created_at,
        )


@strawberry.type
class MessageType:
    id: strawberry.ID
    uuid: str
    thread_id: strawberry.ID
    content: str
    sent_by: UserType
    sent_at: dt.datetime

    @classmethod
    def from_model(cls, message: Message) -> "MessageType":
        return cls(
            id=strawberry.ID(str(message.id)),
            uuid=message.uuid,
            thread_id=strawberry.ID(str(message.thread_id)),
            content=message.content,
            sent_by=UserType.from_model(message.sent_by),
            sent_at=message.sent_at,
        )


@strawberry.type
class ThreadType:
    id: strawberry.ID
    uuid: str
    request_id: strawberry.ID
    participants: List[UserType]
    messages: List[MessageType]
    last_viewed_at: Optional[dt.datetime]
    unread_count: int

    @classmethod
    def from_model(cls, thread: Thread, viewer_id: int, unread_count: int) -> "ThreadType":
        viewer = thread.participant_for(viewer_id)
        return cls(
            id=strawberry.ID(str(thread.id)),
            uuid=thread.uuid,
            request_id=strawberry.ID(str(thread.request_id)),
            participants=[UserType.from_model(p.user) for p in thread.participants],
            messages=[MessageType.from_model(m) for m in thread.messages],
            last_viewed_at=viewer.last_viewed_at if viewer else None,
            unread_count=unread_count,
        )


@strawberry.input
class LocationInput:
    description: str
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@strawberry.input
class CreateRequestInput:
    title: str
    destination: LocationInput
    description: Optional[str] = None
    origin: Optional[LocationInput] = None
    size: str = "small"
    kind: str = "request"
    visibility: str = "all"
    needed_after: Optional[dt.datetime] = None
    needed_before: Optional[dt.datetime] = None

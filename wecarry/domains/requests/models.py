"""Request, location and request history models."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column, relationship

from wecarry.core.users.models import TimestampMixin, User
from wecarry.core.utils.dates import utcnow
from wecarry.extensions import db


class RequestStatus(str, enum.Enum):
    OPEN = "open"
    COMMITTED = "committed"
    ACCEPTED = "accepted"
    RECEIVED = "received"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    REMOVED = "removed"


# Statuses in which a request must have a provider.
PROVIDER_STATUSES = frozenset(
    {
        RequestStatus.COMMITTED,
        RequestStatus.ACCEPTED,
        RequestStatus.RECEIVED,
        RequestStatus.DELIVERED,
        RequestStatus.COMPLETED,
    }
)


class RequestSize(str, enum.Enum):
    TINY = "tiny"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    XLARGE = "xlarge"


class RequestKind(str, enum.Enum):
    REQUEST = "request"
    OFFER = "offer"


class RequestVisibility(str, enum.Enum):
    ALL = "all"
    TRUSTED = "trusted"
    SAME_ORG = "same_org"


class Location(db.Model):
    __tablename__ = "location"

    id: Mapped[int] = mapped_column(primary_key=True)
    description: Mapped[str] = mapped_column(db.String(255), nullable=False)
    country: Mapped[str | None] = mapped_column(db.String(2))
    latitude: Mapped[float | None] = mapped_column(db.Float)
    longitude: Mapped[float | None] = mapped_column(db.Float)


class Request(db.Model, TimestampMixin):
    __tablename__ = "request"
    __table_args__ = (
        db.Index("ix_request_status_created_at", "status", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    uuid: Mapped[str] = mapped_column(db.String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4()))
    created_by_id: Mapped[int] = mapped_column(db.ForeignKey("user.id"), index=True, nullable=False)
    provider_id: Mapped[int | None] = mapped_column(db.ForeignKey("user.id"), index=True)
    title: Mapped[str] = mapped_column(db.String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(db.Text)
    origin_id: Mapped[int | None] = mapped_column(db.ForeignKey("location.id"))
    destination_id: Mapped[int] = mapped_column(db.ForeignKey("location.id"), nullable=False)
    size: Mapped[str] = mapped_column(db.String(16), nullable=False, default=RequestSize.SMALL.value)
    kind: Mapped[str] = mapped_column(db.String(16), nullable=False, default=RequestKind.REQUEST.value)
    status: Mapped[str] = mapped_column(db.String(16), nullable=False, default=RequestStatus.OPEN.value)
    visibility: Mapped[str] = mapped_column(db.String(16), nullable=False, default=RequestVisibility.ALL.value)
    needed_after: Mapped[datetime | None] = mapped_column()
    needed_before: Mapped[datetime | None] = mapped_column()

    created_by: Mapped[User] = relationship("User", foreign_keys=[created_by_id])
    provider: Mapped[User | None] = relationship("User", foreign_keys=[provider_id])
    origin: Mapped[Location | None] = relationship("Location", foreign_keys=[origin_id])
    destination: Mapped[Location] = relationship("Location", foreign_keys=[destination_id])

    @property
    def status_enum(self) -> RequestStatus:
        return RequestStatus(self.status)

    def is_party(self, user_id: int) -> bool:
        return user_id in (self.created_by_id, self.provider_id)

    def __repr__(self) -> str:
        return f"<Request {self.id} {self.status}>"


class RequestHistory(db.Model):
    __tablename__ = "request_history"

    id: Mapped[int] = mapped_column(primary_key=True)
    request_id: Mapped[int] = mapped_column(db.ForeignKey("request.id"), index=True, nullable=False)
    old_status: Mapped[str] = mapped_column(db.String(16), nullable=False)
    new_status: Mapped[str] = mapped_column(db.String(16), nullable=False)
    old_provider_id: Mapped[int | None] = mapped_column(db.ForeignKey("user.id"))
    new_provider_id: Mapped[int | None] = mapped_column(db.ForeignKey("user.id"))
    actor_id: Mapped[int] = mapped_column(db.ForeignKey("user.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, index=True)

"""User model."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column

from wecarry.core.utils.dates import utcnow
from wecarry.extensions import db


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow)


class ContactPreference(str, enum.Enum):
    EMAIL = "email"
    TEXT = "text"
    BOTH = "both"


def _new_uuid() -> str:
    return str(uuid.uuid4())


class User(db.Model, TimestampMixin):
    __tablename__ = "user"

    id: Mapped[int] = mapped_column(primary_key=True)
    uuid: Mapped[str] = mapped_column(db.String(36), unique=True, nullable=False, default=_new_uuid)
    email: Mapped[str] = mapped_column(db.String(255), unique=True, nullable=False, index=True)
    nickname: Mapped[str] = mapped_column(db.String(255), unique=True, nullable=False)
    first_name: Mapped[str | None] = mapped_column(db.String(255))
    last_name: Mapped[str | None] = mapped_column(db.String(255))
    phone_number: Mapped[str | None] = mapped_column(db.String(64))
    contact_preference: Mapped[str] = mapped_column(
        db.String(16), nullable=False, default=ContactPreference.EMAIL.value
    )
    language: Mapped[str] = mapped_column(db.String(8), nullable=False, default="en")
    auth_provider: Mapped[str | None] = mapped_column(db.String(32))
    auth_id: Mapped[str | None] = mapped_column(db.String(255))
    photo_url: Mapped[str | None] = mapped_column(db.String(1024))
    notify_on_new_requests: Mapped[bool] = mapped_column(default=False)

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    @property
    def display_name(self) -> str:
        return self.full_name or self.nickname

    def __repr__(self) -> str:
        return f"<User {self.id} {self.nickname}>"

"""Message thread models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column, relationship

from wecarry.core.users.models import TimestampMixin, User
from wecarry.core.utils.dates import utcnow
from wecarry.domains.requests.models import Request
from wecarry.extensions import db


def _new_uuid() -> str:
    return str(uuid.uuid4())


class Thread(db.Model, TimestampMixin):
    __tablename__ = "thread"

    id: Mapped[int] = mapped_column(primary_key=True)
    uuid: Mapped[str] = mapped_column(db.String(36), unique=True, nullable=False, default=_new_uuid)
    request_id: Mapped[int] = mapped_column(db.ForeignKey("request.id"), index=True, nullable=False)

    request: Mapped[Request] = relationship("Request")

    participants: Mapped[list["ThreadParticipant"]] = relationship(
        "ThreadParticipant", back_populates="thread", cascade="all, delete-orphan"
    )
    messages: Mapped[list["Message"]] = relationship(
        "Message", back_populates="thread", order_by="Message.sent_at", cascade="all, delete-orphan"
    )

    @property
    def participant_ids(self) -> list[int]:
        return [participant.user_id for participant in self.participants]

    def participant_for(self, user_id: int) -> "ThreadParticipant | None":
        for participant in self.participants:
            if participant.user_id == user_id:
                return participant
        return None


class ThreadParticipant(db.Model, TimestampMixin):
    __tablename__ = "thread_participant"
    __table_args__ = (db.UniqueConstraint("thread_id", "user_id", name="uq_thread_participant_user"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    thread_id: Mapped[int] = mapped_column(db.ForeignKey("thread.id"), index=True, nullable=False)
    user_id: Mapped[int] = mapped_column(db.ForeignKey("user.id"), index=True, nullable=False)
    last_viewed_at: Mapped[datetime | None] = mapped_column()
    last_emailed_at: Mapped[datetime | None] = mapped_column()
    last_texted_at: Mapped[datetime | None] = mapped_column()

    thread: Mapped[Thread] = relationship("Thread", back_populates="participants")
    user: Mapped[User] = relationship("User")

    def notified_at(self, channel: str) -> "datetime | None":
        return self.last_texted_at if channel == "mobile" else self.last_emailed_at

    def mark_notified(self, channel: str, at: datetime) -> None:
        if channel == "mobile":
            self.last_texted_at = at
        else:
            self.last_emailed_at = at


class Message(db.Model):
    __tablename__ = "message"

    id: Mapped[int] = mapped_column(primary_key=True)
    uuid: Mapped[str] = mapped_column(db.String(36), unique=True, nullable=False, default=_new_uuid)
    thread_id: Mapped[int] = mapped_column(db.ForeignKey("thread.id"), index=True, nullable=False)
    sent_by_id: Mapped[int] = mapped_column(db.ForeignKey("user.id"), nullable=False)
    content: Mapped[str] = mapped_column(db.Text, nullable=False)
    sent_at: Mapped[datetime] = mapped_column(default=utcnow, index=True)

    thread: Mapped[Thread] = relationship("Thread", back_populates="messages")
    sent_by: Mapped[User] = relationship("User")

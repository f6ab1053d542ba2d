"""Thread and participant management."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from wecarry.core.errors import AppError, ErrorCategory, ErrorKey, forbidden, not_found, user_error
from wecarry.core.events.event_bus import EventBus
from wecarry.core.events.event_models import ThreadMessageAdded
from wecarry.core.utils.dates import to_naive_utc, utcnow
from wecarry.domains.requests.models import Request
from wecarry.domains.threads.models import Message, Thread, ThreadParticipant
from wecarry.extensions import db

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4096


def _db_error(exc: SQLAlchemyError, key: ErrorKey = ErrorKey.GENERIC_INTERNAL_SERVER_ERROR) -> AppError:
    db.session.rollback()
    logger.exception("Thread storage error")
    return AppError(key, ErrorCategory.DB, cause=exc)


def _clean_content(content: Optional[str]) -> str:
    content = (content or "").strip()
    if not content or len(content) > MAX_MESSAGE_LENGTH:
        raise user_error(ErrorKey.INVALID_REQUEST_INPUT, "message content is empty or too long")
    return content


class ThreadService:
    def __init__(self, bus: EventBus) -> None:
        self.bus = bus

    def get_thread(self, thread_id: int) -> Thread:
        thread = db.session.get(Thread, thread_id)
        if thread is None:
            raise not_found(ErrorKey.NO_ROWS, f"thread {thread_id} not found")
        return thread

    def _participant(self, thread_id: int, user_id: int) -> ThreadParticipant:
        participant = db.session.execute(
            select(ThreadParticipant).where(
                ThreadParticipant.thread_id == thread_id,
                ThreadParticipant.user_id == user_id,
            )
        ).scalar_one_or_none()
        if participant is None:
            self.get_thread(thread_id)
            raise forbidden(ErrorKey.NOT_THREAD_PARTICIPANT, "user is not a participant of this thread")
        return participant

    def ensure_thread(self, request: Request, user_id: int) -> Thread:
        """Return the request's thread with ``user_id``, creating it if needed.

        Runs inside the caller's transaction: flushes but never commits.
        """
        if user_id == request.created_by_id:
            raise user_error(ErrorKey.THREAD_NEEDS_OTHER_USER, "a thread needs a user other than the request creator")

        thread = db.session.execute(
            select(Thread)
            .join(ThreadParticipant, ThreadParticipant.thread_id == Thread.id)
            .where(Thread.request_id == request.id, ThreadParticipant.user_id == user_id)
        ).scalars().first()
        if thread is not None:
            return thread

        thread = Thread(request_id=request.id)
        thread.participants = [
            ThreadParticipant(user_id=request.created_by_id),
            ThreadParticipant(user_id=user_id),
        ]
        db.session.add(thread)
        db.session.flush()
        logger.debug("Created thread %s for request %s with user %s", thread.id, request.id, user_id)
        return thread

    def append_message(self, thread_id: int, sender_id: int, content: str) -> Message:
        content = _clean_content(content)

        thread = self.get_thread(thread_id)
        participant = thread.participant_for(sender_id)
        if participant is None:
            raise forbidden(ErrorKey.NOT_THREAD_PARTICIPANT, "only thread participants may send messages")

        sent_at = utcnow()
        message = Message(sent_by_id=sender_id, content=content, sent_at=sent_at)
        try:
            thread.messages.append(message)
            if participant.last_viewed_at is None or participant.last_viewed_at < sent_at:
                participant.last_viewed_at = sent_at
            thread.updated_at = sent_at
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _db_error(exc) from exc

        self.bus.publish(
            ThreadMessageAdded(
                thread_id=thread.id,
                message_id=message.id,
                sender_id=sender_id,
                request_id=thread.request_id,
            )
        )
        return message

    def send_message(self, request_id: int, sender_id: int, content: str, thread_id: Optional[int] = None) -> Message:
        if thread_id is not None:
            thread = self.get_thread(thread_id)
            if thread.request_id != request_id:
                raise user_error(ErrorKey.INVALID_REQUEST_INPUT, "thread does not belong to this request")
            return self.append_message(thread.id, sender_id, content)

        content = _clean_content(content)
        try:
            # Row lock serializes concurrent first messages from the same user.
            request = db.session.execute(
                select(Request).where(Request.id == request_id).with_for_update()
            ).scalar_one_or_none()
            if request is None:
                raise not_found(ErrorKey.NO_ROWS, f"request {request_id} not found")
            thread = self.ensure_thread(request, sender_id)
        except AppError:
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            raise _db_error(exc) from exc
        return self.append_message(thread.id, sender_id, content)

    def mark_viewed(self, thread_id: int, user_id: int, at: Optional[datetime] = None) -> ThreadParticipant:
        participant = self._participant(thread_id, user_id)
        viewed_at = to_naive_utc(at) if at is not None else utcnow()
        if participant.last_viewed_at is None or viewed_at > participant.last_viewed_at:
            participant.last_viewed_at = viewed_at
            try:
                db.session.commit()
            except SQLAlchemyError as exc:
                raise _db_error(exc) from exc
        return participant

    def unread_count(self, thread_id: int, user_id: int) -> int:
        participant = self._participant(thread_id, user_id)
        query = select(func.count(Message.id)).where(Message.thread_id == thread_id)
        if participant.last_viewed_at is not None:
            query = query.where(Message.sent_at > participant.last_viewed_at)
        return int(db.session.execute(query).scalar_one())

    def threads_for_user(self, user_id: int) -> List[Thread]:
        try:
            return list(
                db.session.execute(
                    select(Thread)
                    .join(ThreadParticipant, ThreadParticipant.thread_id == Thread.id)
                    .where(ThreadParticipant.user_id == user_id)
                    .order_by(Thread.updated_at.desc(), Thread.id.desc())
                ).scalars()
            )
        except SQLAlchemyError as exc:
            raise _db_error(exc, ErrorKey.THREADS_LOAD_FAILURE) from exc

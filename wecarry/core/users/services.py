"""User service layer."""

from __future__ import annotations

import logging
from typing import Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from wecarry.core.auth.providers.base import AuthUser
from wecarry.core.errors import AppError, ErrorCategory, ErrorKey, not_found
from wecarry.core.events.event_bus import EventBus
from wecarry.core.events.event_models import UserCreated
from wecarry.core.users.models import User
from wecarry.extensions import db

logger = logging.getLogger(__name__)

MAX_NICKNAME_ATTEMPTS = 100


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise not_found(ErrorKey.NO_ROWS, f"user {user_id} not found")
    return user


def _base_nickname(auth_user: AuthUser) -> str:
    if auth_user.nickname:
        return auth_user.nickname.strip()
    if auth_user.first_name:
        if auth_user.last_name:
            return f"{auth_user.first_name} {auth_user.last_name[:1]}"
        return auth_user.first_name
    return auth_user.email.split("@", 1)[0]


def unique_nickname(base: str) -> str:
    """First of ``base``, ``base 2``, ``base 3``... not taken by another user."""
    candidate = base
    for suffix in range(2, MAX_NICKNAME_ATTEMPTS + 2):
        taken = db.session.execute(select(User.id).where(User.nickname == candidate)).first()
        if taken is None:
            return candidate
        candidate = f"{base} {suffix}"
    raise AppError(ErrorKey.UNKNOWN_ERROR, ErrorCategory.INTERNAL, message=f"no unique nickname for {base!r}")


def find_or_create_from_auth_user(bus: EventBus, auth_user: AuthUser) -> Tuple[User, bool]:
    """Match on email; refresh profile fields; emit ``UserCreated`` for new users."""
    email = auth_user.email.strip().lower()
    user = db.session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    created = user is None
    if created:
        user = User(email=email, nickname=unique_nickname(_base_nickname(auth_user)))
        db.session.add(user)

    user.first_name = auth_user.first_name or user.first_name
    user.last_name = auth_user.last_name or user.last_name
    user.auth_provider = auth_user.provider
    user.auth_id = auth_user.user_id or user.auth_id
    if auth_user.photo_url:
        user.photo_url = auth_user.photo_url

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Unable to save user record for %s", email)
        raise AppError(ErrorKey.GENERIC_INTERNAL_SERVER_ERROR, ErrorCategory.DB, cause=exc) from exc

    if created:
        bus.publish(UserCreated(user_id=user.id))
    return user, created

"""Auth HTTP controllers: provider login redirect and callback."""

from __future__ import annotations

import logging
import secrets

from flask import Blueprint, jsonify, request, session
from flask_jwt_extended import create_access_token

from wecarry.core.bootstrap import get_core
from wecarry.core.errors import AppError, ErrorKey
from wecarry.core.users.services import find_or_create_from_auth_user
from wecarry.extensions import limiter

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth_api", __name__)

SESSION_KEY = "auth_session"
STATE_KEY = "auth_state"
PROVIDER_KEY = "auth_provider"


def _error(key: ErrorKey, status: int):
    return jsonify({"ok": False, "error": key.value}), status


@auth_bp.get("/login/<provider_name>")
@limiter.limit("20/minute")
def login(provider_name: str):
    provider = get_core().providers.get(provider_name)
    if provider is None:
        return _error(ErrorKey.UNKNOWN_PROVIDER, 404)

    state = secrets.token_urlsafe(24)
    auth_session = provider.begin_auth(state)
    session[SESSION_KEY] = auth_session.marshal()
    session[STATE_KEY] = state
    session[PROVIDER_KEY] = provider.name
    return jsonify({"ok": True, "redirect_url": auth_session.get_auth_url()})


@auth_bp.get("/callback/<provider_name>")
@limiter.limit("20/minute")
def callback(provider_name: str):
    core = get_core()
    provider = core.providers.get(provider_name)
    if provider is None:
        return _error(ErrorKey.UNKNOWN_PROVIDER, 404)

    stored = session.pop(SESSION_KEY, None)
    expected_state = session.pop(STATE_KEY, None)
    stored_provider = session.pop(PROVIDER_KEY, None)
    if not stored or stored_provider != provider.name:
        return _error(ErrorKey.NOT_AUTHENTICATED, 401)
    if not expected_state or not secrets.compare_digest(request.args.get("state", ""), expected_state):
        logger.warning("Auth callback for %s with mismatched state", provider.name)
        return _error(ErrorKey.AUTH_FAILURE, 401)

    try:
        auth_session = provider.unmarshal_session(stored)
        provider.authorize(auth_session, request.args.get("code", ""))
        auth_user = provider.fetch_user(auth_session)
        user, created = find_or_create_from_auth_user(core.bus, auth_user)
    except AppError as exc:
        logger.warning("Auth callback for %s failed: %r", provider.name, exc)
        raise

    token = create_access_token(identity=str(user.id))
    return jsonify(
        {
            "ok": True,
            "access_token": token,
            "created": created,
            "user": {"id": user.uuid, "nickname": user.nickname, "email": user.email},
        }
    )

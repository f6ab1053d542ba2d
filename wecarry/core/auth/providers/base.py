"""Identity provider capability shared by every OAuth2 provider."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlencode

import requests

from wecarry.core.errors import AppError, ErrorCategory, ErrorKey

logger = logging.getLogger(__name__)

HTTP_TIMEOUT_SECONDS = 10


def auth_failure(message: str, category: ErrorCategory = ErrorCategory.INTERNAL, cause=None) -> AppError:
    return AppError(ErrorKey.AUTH_FAILURE, category, cause=cause, message=message)


@dataclass
class AuthUser:
    """User details as reported by an identity provider."""

    provider: str
    user_id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    nickname: str = ""
    photo_url: str = ""


@dataclass
class Session:
    """State carried between the login redirect and the callback."""

    auth_url: str = ""
    access_token: str = ""
    refresh_token: str = ""
    expires_at: Optional[datetime] = None
    id_token: str = ""

    def marshal(self) -> str:
        payload = {
            "au": self.auth_url,
            "at": self.access_token,
            "rt": self.refresh_token,
            "exp": self.expires_at.isoformat() if self.expires_at else "",
            "it": self.id_token,
        }
        return json.dumps({key: value for key, value in payload.items() if value}, separators=(",", ":"))

    @classmethod
    def unmarshal(cls, data: str) -> "Session":
        try:
            payload = json.loads(data)
        except (TypeError, ValueError) as exc:
            raise auth_failure("malformed auth session", ErrorCategory.USER, exc) from exc
        if not isinstance(payload, dict):
            raise auth_failure("malformed auth session", ErrorCategory.USER)
        expires = payload.get("exp") or ""
        return cls(
            auth_url=payload.get("au", ""),
            access_token=payload.get("at", ""),
            refresh_token=payload.get("rt", ""),
            expires_at=datetime.fromisoformat(expires) if expires else None,
            id_token=payload.get("it", ""),
        )

    def get_auth_url(self) -> str:
        if not self.auth_url:
            raise auth_failure("an auth URL has not been set")
        return self.auth_url

    def __str__(self) -> str:
        return self.marshal()


class Provider(ABC):
    """An OAuth2 identity provider."""

    name: str = ""
    authorize_url: str = ""
    token_url: str = ""
    scopes: tuple[str, ...] = ("openid", "profile", "email")

    def __init__(self, client_key: str, secret: str, callback_url: str, http: Optional[requests.Session] = None) -> None:
        self.client_key = client_key
        self.secret = secret
        self.callback_url = callback_url
        self.http = http or requests.Session()

    def _auth_params(self, state: str) -> dict:
        return {
            "client_id": self.client_key,
            "redirect_uri": self.callback_url,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "state": state,
        }

    def begin_auth(self, state: str) -> Session:
        return Session(auth_url=f"{self.authorize_url}?{urlencode(self._auth_params(state))}")

    def unmarshal_session(self, data: str) -> Session:
        return Session.unmarshal(data)

    def authorize(self, session: Session, code: str) -> str:
        """Exchange an authorization code for tokens, storing them on ``session``."""
        if not code:
            raise auth_failure("missing authorization code", ErrorCategory.USER)
        try:
            resp = self.http.post(
                self.token_url,
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self.callback_url,
                    "client_id": self.client_key,
                    "client_secret": self.secret,
                },
                headers={"Accept": "application/json"},
                timeout=HTTP_TIMEOUT_SECONDS,
            )
            resp.raise_for_status()
            token = resp.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("%s token exchange failed: %s", self.name, exc)
            raise auth_failure(f"{self.name} token exchange failed", cause=exc) from exc

        session.access_token = token.get("access_token", "")
        session.refresh_token = token.get("refresh_token", "")
        session.id_token = token.get("id_token", "")
        expires_in = token.get("expires_in")
        if expires_in:
            session.expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))
        if not session.access_token:
            raise auth_failure(f"{self.name} returned no access token")
        return session.access_token

    def _get_profile(self, url: str, session: Session) -> dict:
        if not session.access_token:
            raise auth_failure(f"{self.name} cannot get user information without access token", ErrorCategory.USER)
        try:
            resp = self.http.get(
                url,
                headers={"Authorization": f"Bearer {session.access_token}"},
                timeout=HTTP_TIMEOUT_SECONDS,
            )
            resp.raise_for_status()
            return resp.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("%s profile request failed: %s", self.name, exc)
            raise auth_failure(f"{self.name} profile request failed", cause=exc) from exc

    @abstractmethod
    def fetch_user(self, session: Session) -> AuthUser:
        ...

"""Azure AD (Microsoft identity platform v2) provider."""

from __future__ import annotations

import json
from typing import Any, Mapping, Optional, Union

import requests

from wecarry.core.auth.providers.base import AuthUser, Provider, Session, auth_failure
from wecarry.core.errors import ConfigError

AUTHORITY = "https://login.microsoftonline.com"
GRAPH_ME_URL = "https://graph.microsoft.com/v1.0/me"


class AzureADV2Provider(Provider):
    name = "azureadv2"

    def __init__(
        self,
        tenant_id: str,
        client_key: str,
        secret: str,
        callback_url: str,
        http: Optional[requests.Session] = None,
    ) -> None:
        super().__init__(client_key, secret, callback_url, http)
        self.tenant_id = tenant_id
        self.authorize_url = f"{AUTHORITY}/{tenant_id}/oauth2/v2.0/authorize"
        self.token_url = f"{AUTHORITY}/{tenant_id}/oauth2/v2.0/token"

    @classmethod
    def from_json(
        cls,
        config: Union[str, bytes, Mapping[str, Any]],
        callback_url: str,
        http: Optional[requests.Session] = None,
    ) -> "AzureADV2Provider":
        """Build from ``{"TenantID": ..., "ClientSecret": ..., "ApplicationID": ...}``."""
        if isinstance(config, (str, bytes)):
            try:
                config = json.loads(config)
            except ValueError as exc:
                raise ConfigError(f"invalid azureadv2 config: {exc}") from exc
        missing = [key for key in ("TenantID", "ClientSecret", "ApplicationID") if not config.get(key)]
        if missing:
            raise ConfigError(f"azureadv2 config is missing {', '.join(missing)}")
        return cls(
            tenant_id=config["TenantID"],
            client_key=config["ApplicationID"],
            secret=config["ClientSecret"],
            callback_url=callback_url,
            http=http,
        )

    def _auth_params(self, state: str) -> dict:
        params = super()._auth_params(state)
        params["response_mode"] = "query"
        return params

    def fetch_user(self, session: Session) -> AuthUser:
        profile = self._get_profile(GRAPH_ME_URL, session)
        email = profile.get("mail") or profile.get("userPrincipalName") or ""
        if not email:
            raise auth_failure("azureadv2 profile has no email address")
        return AuthUser(
            provider=self.name,
            user_id=profile.get("id", ""),
            email=email,
            first_name=profile.get("givenName") or "",
            last_name=profile.get("surname") or "",
            nickname=profile.get("displayName") or "",
        )

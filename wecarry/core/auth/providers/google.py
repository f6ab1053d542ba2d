"""Google OAuth2 provider."""

from __future__ import annotations

from wecarry.core.auth.providers.base import AuthUser, Provider, Session, auth_failure

PROFILE_URL = "https://www.googleapis.com/oauth2/v2/userinfo"


class GoogleProvider(Provider):
    name = "google"
    authorize_url = "https://accounts.google.com/o/oauth2/auth"
    token_url = "https://oauth2.googleapis.com/token"
    scopes = ("email", "profile")

    def _auth_params(self, state: str) -> dict:
        params = super()._auth_params(state)
        params["access_type"] = "offline"
        return params

    def fetch_user(self, session: Session) -> AuthUser:
        profile = self._get_profile(PROFILE_URL, session)
        if not profile.get("email"):
            raise auth_failure("google profile has no email address")
        return AuthUser(
            provider=self.name,
            user_id=str(profile.get("id", "")),
            email=profile["email"],
            first_name=profile.get("given_name") or "",
            last_name=profile.get("family_name") or "",
            nickname=profile.get("name") or "",
            photo_url=profile.get("picture") or "",
        )

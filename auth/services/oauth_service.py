"""Google OAuth service."""

from __future__ import annotations

import secrets
from typing import Any
from urllib.parse import urlencode

import httpx

from auth.config import AuthConfig
from auth.exceptions import AuthException
from auth.services.auth_service import AuthService
from auth.services.identity_service import OAuthIdentity

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"


def identity_from_google_userinfo(userinfo: dict[str, Any]) -> OAuthIdentity:
    provider_id = userinfo.get("sub")
    email = userinfo.get("email")
    if not provider_id:
        raise AuthException("Google account missing id", status_code=400)
    if not email:
        raise AuthException("Google account missing email", status_code=400)
    return OAuthIdentity(
        provider="google",
        provider_id=str(provider_id),
        email=email,
        email_verified=userinfo.get("email_verified") in (True, "true"),
        profile_hints={
            "given_name": userinfo.get("given_name"),
            "family_name": userinfo.get("family_name"),
            "display_name": userinfo.get("name"),
        },
    )


class OAuthService:
    def __init__(
        self,
        config: AuthConfig,
        auth_service: AuthService,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._auth_service = auth_service
        self._transport = transport

    def generate_auth_url(self) -> dict[str, str]:
        if not self._config.GOOGLE_CLIENT_ID or not self._config.GOOGLE_REDIRECT_URI:
            raise AuthException("Google OAuth not configured", status_code=500)

        state = secrets.token_urlsafe(24)
        query = urlencode(
            {
                "client_id": self._config.GOOGLE_CLIENT_ID,
                "redirect_uri": self._config.GOOGLE_REDIRECT_URI,
                "response_type": "code",
                "scope": "openid email profile",
                "state": state,
                "prompt": "select_account",
            }
        )
        return {"auth_url": f"{GOOGLE_AUTH_URL}?{query}", "state": state}

    async def fetch_google_identity(self, code: str) -> OAuthIdentity:
        if not self._config.GOOGLE_CLIENT_ID or not self._config.GOOGLE_CLIENT_SECRET:
            raise AuthException("Google OAuth not configured", status_code=500)
        if not self._config.GOOGLE_REDIRECT_URI:
            raise AuthException("Google OAuth redirect URI not configured", status_code=500)

        token_payload = {
            "code": code,
            "client_id": self._config.GOOGLE_CLIENT_ID,
            "client_secret": self._config.GOOGLE_CLIENT_SECRET,
            "redirect_uri": self._config.GOOGLE_REDIRECT_URI,
            "grant_type": "authorization_code",
        }

        async with httpx.AsyncClient(timeout=10, transport=self._transport) as client:
            token_response = await client.post(
                GOOGLE_TOKEN_URL,
                data=token_payload,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
            if token_response.status_code != 200:
                raise AuthException("Failed to exchange Google code", status_code=400)
            token_data = token_response.json()

            access_token = token_data.get("access_token")
            if not access_token:
                raise AuthException("Google token missing access token", status_code=400)

            userinfo_response = await client.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            if userinfo_response.status_code != 200:
                raise AuthException("Failed to fetch Google user info", status_code=400)
            userinfo = userinfo_response.json()

        return identity_from_google_userinfo(userinfo)

    async def handle_google_callback(self, code: str) -> dict[str, Any]:
        identity = await self.fetch_google_identity(code)
        return await self._auth_service.login_oauth(identity)

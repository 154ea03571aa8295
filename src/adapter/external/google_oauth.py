"""Google OAuth adapter: authorization code exchange and userinfo.

Implements OAuthProviderPort for Google's OpenID Connect endpoints.
"""

import logging
import os
from typing import Any
from urllib.parse import urlencode

import httpx

from domain.model.assertion import GoogleAssertion
from domain.model.errors import ValidationError

logger = logging.getLogger(__name__)

GOOGLE_AUTHORIZATION_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"  # nosec B105
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
GOOGLE_SCOPES = ("openid", "email", "profile")
OAUTH_HTTP_TIMEOUT = 10.0


class GoogleOAuthAdapter:
    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        redirect_uri: str | None = None,
    ):
        self.client_id = client_id or os.getenv("GOOGLE_CLIENT_ID", "")
        self.client_secret = client_secret or os.getenv("GOOGLE_CLIENT_SECRET", "")
        self.redirect_uri = redirect_uri or os.getenv("GOOGLE_CALLBACK_URL", "")

    def authorization_url(self, state: str) -> str:
        if not self.client_id:
            raise ValidationError("OAuth provider google is not configured")
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(GOOGLE_SCOPES),
            "state": state,
            "prompt": "select_account",
        }
        return f"{GOOGLE_AUTHORIZATION_URL}?{urlencode(params)}"

    async def assert_identity(
        self, code: str, form_user: dict[str, Any] | None = None,
    ) -> GoogleAssertion:
        try:
            async with httpx.AsyncClient(timeout=OAUTH_HTTP_TIMEOUT) as client:
                tokens = await self._exchange_code(client, code)
                info = await self._fetch_userinfo(client, tokens["access_token"])
        except (httpx.HTTPError, KeyError) as e:
            logger.error("Google token exchange failed", extra={"error": type(e).__name__})
            raise ValidationError("Google authentication failed") from e

        if not info.get("sub") or not info.get("email"):
            raise ValidationError("Google account did not provide an email address")
        if info.get("email_verified") is False:
            raise ValidationError("Google email address is not verified")
        return GoogleAssertion.from_userinfo(info)

    async def _exchange_code(self, client: httpx.AsyncClient, code: str) -> dict[str, Any]:
        response = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
        )
        response.raise_for_status()
        return response.json()

    async def _fetch_userinfo(self, client: httpx.AsyncClient, access_token: str) -> dict[str, Any]:
        response = await client.get(
            GOOGLE_USERINFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        response.raise_for_status()
        return response.json()

"""Sign in with Apple adapter.

Implements OAuthProviderPort: builds the ES256 client secret, exchanges the
authorization code, and verifies the returned ID token against Apple's
published keys. Apple only posts the user's name (form field `user`) on
the first authorization, so the form body is one of the assertion sources.
"""

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

import httpx
from jose import JWTError, jwt

from domain.model.assertion import AppleAssertion
from domain.model.errors import ValidationError

logger = logging.getLogger(__name__)

APPLE_ISSUER = "https://appleid.apple.com"
APPLE_AUTHORIZATION_URL = f"{APPLE_ISSUER}/auth/authorize"
APPLE_TOKEN_URL = f"{APPLE_ISSUER}/auth/token"  # nosec B105
APPLE_KEYS_URL = f"{APPLE_ISSUER}/auth/keys"
APPLE_SCOPES = ("name", "email")
CLIENT_SECRET_TTL = timedelta(minutes=5)
OAUTH_HTTP_TIMEOUT = 10.0


class AppleOAuthAdapter:
    def __init__(
        self,
        client_id: str | None = None,
        team_id: str | None = None,
        key_id: str | None = None,
        private_key: str | None = None,
        redirect_uri: str | None = None,
    ):
        self.client_id = client_id or os.getenv("APPLE_CLIENT_ID", "")
        self.team_id = team_id or os.getenv("APPLE_TEAM_ID", "")
        self.key_id = key_id or os.getenv("APPLE_KEY_ID", "")
        # Env files usually carry the PEM with escaped newlines
        self.private_key = (private_key or os.getenv("APPLE_PRIVATE_KEY", "")).replace("\\n", "\n")
        self.redirect_uri = redirect_uri or os.getenv("APPLE_CALLBACK_URL", "")

    def authorization_url(self, state: str) -> str:
        if not self.client_id:
            raise ValidationError("OAuth provider apple is not configured")
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "response_mode": "form_post",
            "scope": " ".join(APPLE_SCOPES),
            "state": state,
        }
        return f"{APPLE_AUTHORIZATION_URL}?{urlencode(params)}"

    def client_secret(self, now: datetime | None = None) -> str:
        now = now or datetime.now(timezone.utc)
        claims = {
            "iss": self.team_id,
            "iat": now,
            "exp": now + CLIENT_SECRET_TTL,
            "aud": APPLE_ISSUER,
            "sub": self.client_id,
        }
        return jwt.encode(claims, self.private_key, algorithm="ES256", headers={"kid": self.key_id})

    async def assert_identity(
        self, code: str, form_user: dict[str, Any] | None = None,
    ) -> AppleAssertion:
        try:
            async with httpx.AsyncClient(timeout=OAUTH_HTTP_TIMEOUT) as client:
                tokens = await self._exchange_code(client, code)
                keys = await self._fetch_keys(client)
        except (httpx.HTTPError, JWTError) as e:
            logger.error("Apple token exchange failed", extra={"error": type(e).__name__})
            raise ValidationError("Apple authentication failed") from e

        claims = self.verify_id_token(tokens.get("id_token", ""), keys)
        return AppleAssertion.from_callback(
            provider_id=str(claims["sub"]),
            decoded_token=claims,
            form_user=form_user,
        )

    def verify_id_token(self, id_token: str, keys: dict[str, Any]) -> dict[str, Any]:
        """Check signature, audience and issuer. Return the claims."""
        try:
            claims = jwt.decode(
                id_token,
                keys,
                algorithms=["RS256"],
                audience=self.client_id,
                issuer=APPLE_ISSUER,
                options={"verify_at_hash": False},
            )
        except JWTError as e:
            logger.warning("Apple ID token rejected", extra={"error": str(e)[:200]})
            raise ValidationError("Apple authentication failed") from e

        if not claims.get("sub"):
            raise ValidationError("Apple ID token has no subject")
        return claims

    async def _exchange_code(self, client: httpx.AsyncClient, code: str) -> dict[str, Any]:
        response = await client.post(
            APPLE_TOKEN_URL,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
                "client_id": self.client_id,
                "client_secret": self.client_secret(),
            },
        )
        response.raise_for_status()
        return response.json()

    async def _fetch_keys(self, client: httpx.AsyncClient) -> dict[str, Any]:
        response = await client.get(APPLE_KEYS_URL)
        response.raise_for_status()
        return response.json()

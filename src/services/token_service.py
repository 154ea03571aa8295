"""Bearer JWTs, OAuth state and single-use email tokens.

Single-use tokens are handed to the caller in plaintext (for the emailed
link) while only their SHA-256 digest is persisted, for verification and
reset tokens alike.
"""

import hashlib
import logging
import os
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from domain.model.user import TokenPurpose

logger = logging.getLogger(__name__)

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
if not JWT_SECRET_KEY:
    raise ValueError(
        "JWT_SECRET_KEY environment variable is required. "
        "Generate a secure key with: openssl rand -hex 32"
    )
JWT_ALGORITHM = "HS256"
JWT_EXPIRATION_DAYS = 7
OAUTH_STATE_TTL = timedelta(minutes=10)

SINGLE_USE_TOKEN_BYTES = 32
TOKEN_VALIDITY = {
    TokenPurpose.VERIFY_EMAIL: timedelta(hours=24),
    TokenPurpose.LINK_ACCOUNT: timedelta(hours=24),
    TokenPurpose.RESET_PASSWORD: timedelta(hours=1),
    TokenPurpose.SETUP_PASSWORD: timedelta(hours=1),
}


@dataclass(frozen=True)
class SingleUseToken:
    plaintext: str
    token_hash: str
    purpose: TokenPurpose
    expires_at: datetime


def issue_bearer_token(user_id: str, now: datetime | None = None) -> str:
    """Create JWT access token for user."""
    issued_at = now or datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "exp": issued_at + timedelta(days=JWT_EXPIRATION_DAYS),
        "iat": issued_at,
    }
    return jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def verify_bearer_token(token: str) -> Optional[str]:
    """Verify JWT token and extract user_id."""
    try:
        payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.debug(f"JWT verification failed: {e}")
        return None
    user_id = payload.get("sub")
    if not isinstance(user_id, str) or not user_id:
        return None
    return user_id


def issue_oauth_state(provider: str, now: datetime | None = None) -> str:
    """Signed, short-lived OAuth `state` value; needs no server-side session."""
    issued_at = now or datetime.now(timezone.utc)
    payload = {
        "nonce": secrets.token_urlsafe(16),
        "provider": provider,
        "exp": issued_at + OAUTH_STATE_TTL,
        "iat": issued_at,
    }
    return jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def verify_oauth_state(state: str | None, provider: str) -> bool:
    if not state:
        return False
    try:
        payload = jwt.decode(state, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.debug(f"OAuth state rejected: {e}")
        return False
    return payload.get("provider") == provider


def hash_token(plaintext: str) -> str:
    return hashlib.sha256(plaintext.encode("utf-8")).hexdigest()


def issue_single_use_token(purpose: TokenPurpose, now: datetime | None = None) -> SingleUseToken:
    plaintext = secrets.token_hex(SINGLE_USE_TOKEN_BYTES)
    issued_at = now or datetime.now(timezone.utc)
    return SingleUseToken(
        plaintext=plaintext,
        token_hash=hash_token(plaintext),
        purpose=purpose,
        expires_at=issued_at + TOKEN_VALIDITY[purpose],
    )

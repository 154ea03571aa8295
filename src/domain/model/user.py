from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class AuthMethod(str, Enum):
    """Authentication methods a user can hold concurrently."""
    EMAIL = 'email'
    GOOGLE = 'google'
    APPLE = 'apple'


OAUTH_METHODS = frozenset({AuthMethod.GOOGLE, AuthMethod.APPLE})


class TokenPurpose(str, Enum):
    """What a single-use token authorizes once consumed."""
    VERIFY_EMAIL = 'verify-email'
    LINK_ACCOUNT = 'link-account'
    RESET_PASSWORD = 'reset-password'
    SETUP_PASSWORD = 'setup-password'


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass
class User:
    """Domain model representing a user."""
    id: str
    name: str
    email: str
    created_at: datetime
    updated_at: datetime
    auth_methods: frozenset[AuthMethod] = field(default_factory=frozenset)
    password_hash: str | None = None
    pending_password_hash: str | None = None
    google_id: str | None = None
    apple_id: str | None = None
    avatar: str = ''
    is_email_verified: bool = False
    email_verification_token: str | None = None
    email_verification_expires: datetime | None = None
    email_verification_purpose: TokenPurpose | None = None
    password_reset_token: str | None = None
    password_reset_expires: datetime | None = None
    password_reset_purpose: TokenPurpose | None = None
    login_attempts: int = 0
    is_locked: bool = False
    lock_until: datetime | None = None
    last_login: datetime | None = None

    def has_method(self, method: AuthMethod) -> bool:
        return method in self.auth_methods

    @property
    def needs_password_setup(self) -> bool:
        """OAuth-only users have no password to log in with yet."""
        return AuthMethod.EMAIL not in self.auth_methods

    def is_locked_at(self, now: datetime) -> bool:
        return self.is_locked and self.lock_until is not None and self.lock_until > now

    def oauth_providers(self) -> list[str]:
        return sorted(m.value for m in self.auth_methods if m in OAUTH_METHODS)


# ── Store contract value objects ─────────────────────────


@dataclass(frozen=True)
class UserMatch:
    """Criteria a stored user must satisfy for a conditional update.

    Every field left as None is ignored; all set fields must hold.
    """
    id: str | None = None
    email: str | None = None
    google_id: str | None = None
    apple_id: str | None = None
    with_method: AuthMethod | None = None
    without_method: AuthMethod | None = None
    is_email_verified: bool | None = None
    verification_token: str | None = None
    verification_purpose: TokenPurpose | None = None
    reset_token: str | None = None
    # The matched token must expire strictly after this instant
    token_valid_at: datetime | None = None
    # Matches a user whose lock window ended at or before this instant
    lock_expired_at: datetime | None = None
    min_login_attempts: int | None = None
    # True requires a non-empty pending_password_hash, False an empty one
    has_pending_password: bool | None = None


@dataclass(frozen=True)
class UserMutation:
    """Changes applied atomically to a matched user.

    Field names are User attribute names. `copy_fields` maps a target field
    to the source field whose current stored value it receives.
    `set_if_empty` only writes fields whose stored value is empty.
    """
    set_fields: dict = field(default_factory=dict)
    unset_fields: frozenset[str] = frozenset()
    add_methods: frozenset[AuthMethod] = frozenset()
    increment: dict = field(default_factory=dict)
    copy_fields: dict = field(default_factory=dict)
    set_if_empty: dict = field(default_factory=dict)

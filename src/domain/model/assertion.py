"""Identity assertions and resolution outcomes.

An assertion is a proven claim of identity from one provider, constructed
once at the boundary (route handler or OAuth adapter) and handed to the
identity resolver.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from domain.model.user import AuthMethod, normalize_email

APPLE_DEFAULT_NAME = "Apple User"
GOOGLE_DEFAULT_NAME = "Google User"
APPLE_RELAY_DOMAIN = "privaterelay.appleid.com"


class LinkOutcome(str, Enum):
    """How resolve_assertion arrived at the returned user."""
    ALREADY_LINKED = 'already_linked'
    LINKED_TO_EXISTING = 'linked_to_existing'
    PENDING_VERIFICATION_LINK = 'pending_verification_link'
    CREATED = 'created'


class LoginOutcome(str, Enum):
    SUCCESS = 'success'


@dataclass(frozen=True)
class PasswordRegistration:
    name: str
    email: str
    password: str


@dataclass(frozen=True)
class GoogleAssertion:
    provider_id: str
    email: str
    display_name: str | None = None
    avatar_url: str | None = None

    method = AuthMethod.GOOGLE
    id_field = 'google_id'

    @property
    def name(self) -> str:
        return self.display_name or GOOGLE_DEFAULT_NAME

    @classmethod
    def from_userinfo(cls, info: dict[str, Any]) -> GoogleAssertion:
        """Build from an OpenID Connect userinfo payload."""
        return cls(
            provider_id=str(info['sub']),
            email=normalize_email(info['email']),
            display_name=info.get('name'),
            avatar_url=info.get('picture'),
        )


@dataclass(frozen=True)
class AppleAssertion:
    provider_id: str
    email: str | None = None
    display_name: str | None = None

    method = AuthMethod.APPLE
    id_field = 'apple_id'
    avatar_url = None

    @property
    def name(self) -> str:
        return self.display_name or APPLE_DEFAULT_NAME

    @property
    def placeholder_email(self) -> str:
        """Stand-in address for users who withheld their email from Apple."""
        return f"{self.provider_id.lower()}@{APPLE_RELAY_DOMAIN}"

    @classmethod
    def from_callback(
        cls,
        provider_id: str,
        decoded_token: dict[str, Any] | None = None,
        profile: dict[str, Any] | None = None,
        form_user: dict[str, Any] | None = None,
    ) -> AppleAssertion:
        """Collapse the Apple callback inputs into one assertion.

        Precedence for both email and name: decoded ID token, then the
        provider profile, then the `user` JSON posted in the form body
        (Apple only sends that on the first authorization).
        """
        sources = [s for s in (decoded_token, profile, form_user) if s]

        email = _first(_email_of(s) for s in sources)
        name = _first(_name_of(s) for s in sources)
        return cls(
            provider_id=provider_id,
            email=normalize_email(email) if email else None,
            display_name=name,
        )


Assertion = PasswordRegistration | GoogleAssertion | AppleAssertion


def _first(values) -> str | None:
    for value in values:
        if value:
            return value
    return None


def _email_of(source: dict[str, Any]) -> str | None:
    email = source.get('email')
    if isinstance(email, str) and email.strip():
        return email
    return None


def _name_of(source: dict[str, Any]) -> str | None:
    for key in ('displayName', 'display_name'):
        if isinstance(source.get(key), str) and source[key].strip():
            return source[key].strip()

    name = source.get('name')
    if isinstance(name, str) and name.strip():
        return name.strip()
    if isinstance(name, dict):
        parts = [name.get('firstName'), name.get('lastName')]
        joined = " ".join(p.strip() for p in parts if isinstance(p, str) and p.strip())
        return joined or None
    return None

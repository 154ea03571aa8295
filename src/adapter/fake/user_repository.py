"""In-memory implementation of UserRepository for testing."""

import dataclasses
import threading
from datetime import datetime, timezone

from domain.model.errors import UniquenessViolationError
from domain.model.user import AuthMethod, User, UserMatch, UserMutation

_UNIQUE_FIELDS = ('email', 'google_id', 'apple_id')
_DEFAULTS = {
    f.name: (f.default_factory() if f.default_factory is not dataclasses.MISSING else f.default)
    for f in dataclasses.fields(User)
    if f.default is not dataclasses.MISSING or f.default_factory is not dataclasses.MISSING
}


class FakeUserRepository:
    """Every operation runs under one lock, emulating the store's atomicity."""

    def __init__(self):
        self.store: dict[str, User] = {}
        self._lock = threading.Lock()

    def ensure_indexes(self) -> bool:
        return True

    # ── write operations ─────────────────────────────────────

    def insert_if_absent(self, user: User) -> User:
        with self._lock:
            self._check_unique(user, exclude_id=None)
            self.store[user.id] = dataclasses.replace(user)
            return dataclasses.replace(user)

    def conditional_update(self, match: UserMatch, mutation: UserMutation) -> User | None:
        with self._lock:
            current = next((u for u in self.store.values() if _matches(u, match)), None)
            if current is None:
                return None

            updated = _apply(current, mutation)
            self._check_unique(updated, exclude_id=current.id)
            self.store[current.id] = updated
            return dataclasses.replace(updated)

    # ── read operations ──────────────────────────────────────

    def get_by_email(self, email: str) -> User | None:
        return self._find(lambda u: u.email == email)

    def get_by_provider_id(self, provider: AuthMethod, provider_id: str) -> User | None:
        if provider == AuthMethod.GOOGLE:
            return self._find(lambda u: u.google_id == provider_id)
        if provider == AuthMethod.APPLE:
            return self._find(lambda u: u.apple_id == provider_id)
        return None

    def get_by_id(self, user_id: str) -> User | None:
        with self._lock:
            user = self.store.get(user_id)
            return dataclasses.replace(user) if user else None

    # ── helpers ──────────────────────────────────────────────

    def _find(self, predicate) -> User | None:
        with self._lock:
            for user in self.store.values():
                if predicate(user):
                    return dataclasses.replace(user)
        return None

    def _check_unique(self, candidate: User, exclude_id: str | None) -> None:
        if exclude_id is None and candidate.id in self.store:
            raise UniquenessViolationError('id')
        for other in self.store.values():
            if other.id == exclude_id:
                continue
            for key in _UNIQUE_FIELDS:
                value = getattr(candidate, key)
                if value is not None and getattr(other, key) == value:
                    raise UniquenessViolationError(key)


def _matches(user: User, match: UserMatch) -> bool:
    for key in ('id', 'email', 'google_id', 'apple_id', 'is_email_verified'):
        expected = getattr(match, key)
        if expected is not None and getattr(user, key) != expected:
            return False

    if match.with_method is not None and match.with_method not in user.auth_methods:
        return False
    if match.without_method is not None and match.without_method in user.auth_methods:
        return False

    if match.verification_token is not None:
        if user.email_verification_token != match.verification_token:
            return False
        if match.token_valid_at is not None and not _after(user.email_verification_expires, match.token_valid_at):
            return False
    if match.verification_purpose is not None and user.email_verification_purpose != match.verification_purpose:
        return False
    if match.reset_token is not None:
        if user.password_reset_token != match.reset_token:
            return False
        if match.token_valid_at is not None and not _after(user.password_reset_expires, match.token_valid_at):
            return False

    if match.lock_expired_at is not None:
        if not user.is_locked or user.lock_until is None or user.lock_until > match.lock_expired_at:
            return False
    if match.min_login_attempts is not None and user.login_attempts < match.min_login_attempts:
        return False
    if match.has_pending_password is not None and bool(user.pending_password_hash) != match.has_pending_password:
        return False
    return True


def _after(value: datetime | None, instant: datetime) -> bool:
    return value is not None and value > instant


def _apply(user: User, mutation: UserMutation) -> User:
    changes = {target: getattr(user, source) for target, source in mutation.copy_fields.items()}
    changes.update(mutation.set_fields)
    for key, value in mutation.set_if_empty.items():
        if not getattr(user, key):
            changes[key] = value
    for key, amount in mutation.increment.items():
        changes[key] = (getattr(user, key) or 0) + amount
    if mutation.add_methods:
        changes['auth_methods'] = frozenset(user.auth_methods) | mutation.add_methods
    changes['updated_at'] = datetime.now(timezone.utc)

    updated = dataclasses.replace(user, **changes)
    for key in mutation.unset_fields:
        setattr(updated, key, _DEFAULTS.get(key))
    return updated

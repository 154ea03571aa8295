"""Auth service — registration, password login guard, and password reset.

Pure business logic with no HTTP dependencies.
Raises domain errors that route handlers map to HTTP status codes.
"""

import logging
import re
from datetime import datetime, timedelta, timezone

from domain.model.assertion import LinkOutcome, LoginOutcome, PasswordRegistration
from domain.model.errors import (
    AccountLockedError,
    EmailNotVerifiedError,
    InvalidCredentialsError,
    InvalidOrExpiredTokenError,
    UseAlternateProviderError,
    ValidationError,
)
from domain.model.user import AuthMethod, TokenPurpose, User, UserMatch, UserMutation, normalize_email
from port.notifier import NotificationTemplate, NotifierPort
from port.password_hasher import PasswordHasher
from port.user_repository import UserRepository
from services.identity_service import VERIFICATION_FIELDS, resolve_assertion
from services.notification_service import notify_best_effort
from services.token_service import hash_token, issue_single_use_token
from utils.logging import mask_email

logger = logging.getLogger(__name__)

MAX_LOGIN_ATTEMPTS = 5
LOCK_DURATION = timedelta(minutes=30)
MIN_NAME_LENGTH = 2

_LOCK_FIELDS = frozenset({'is_locked', 'lock_until'})
_RESET_FIELDS = frozenset({'password_reset_token', 'password_reset_expires', 'password_reset_purpose'})


def _validate_password(password: str) -> None:
    if len(password) < 8:
        raise ValidationError("Password must be at least 8 characters")
    if not re.search(r"[A-Z]", password):
        raise ValidationError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        raise ValidationError("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", password):
        raise ValidationError("Password must contain at least one number")


def _validate_name(name: str) -> None:
    if len(name.strip()) < MIN_NAME_LENGTH:
        raise ValidationError(f"Name must be at least {MIN_NAME_LENGTH} characters")


def register(
    repo: UserRepository,
    hasher: PasswordHasher,
    notifier: NotifierPort,
    name: str,
    email: str,
    password: str,
) -> tuple[User, LinkOutcome]:
    """Register with email and password.

    Returns (user, CREATED) for a new account, or
    (user, PENDING_VERIFICATION_LINK) when an OAuth-only account adds a password.

    Raises:
        ValidationError: name or password does not meet requirements
        DuplicateAccountError: email already has a password
    """
    _validate_name(name)
    _validate_password(password)
    return resolve_assertion(
        repo, hasher, notifier,
        PasswordRegistration(name=name, email=email, password=password),
    )


def authenticate_password(
    repo: UserRepository,
    hasher: PasswordHasher,
    email: str,
    password: str,
    now: datetime | None = None,
) -> tuple[User, LoginOutcome]:
    """Authenticate a user by email and password, enforcing lockout.

    Raises:
        InvalidCredentialsError: unknown email or wrong password (deliberately vague)
        UseAlternateProviderError: account signs in through Google/Apple only
        AccountLockedError: too many failed attempts, lock still active
        EmailNotVerifiedError: password matched but email unverified
    """
    email = normalize_email(email)
    now = now or datetime.now(timezone.utc)

    user = repo.get_by_email(email)
    if user is None:
        raise InvalidCredentialsError()

    if not user.has_method(AuthMethod.EMAIL) or not user.password_hash:
        raise UseAlternateProviderError(user.oauth_providers())

    if user.is_locked_at(now):
        logger.info("Login refused: account locked", extra={"userId": user.id})
        raise AccountLockedError(user.lock_until)

    if user.is_locked:
        user = _clear_expired_lock(repo, user, now)

    if not hasher.verify(password, user.password_hash):
        _record_failed_attempt(repo, user.id, now)
        raise InvalidCredentialsError()

    if not user.is_email_verified:
        raise EmailNotVerifiedError()

    updated = repo.conditional_update(
        UserMatch(id=user.id),
        UserMutation(
            set_fields={'last_login': now, 'login_attempts': 0},
            unset_fields=_LOCK_FIELDS,
        ),
    )
    if updated is None:
        # Removed between the read and the success write
        logger.warning("Login success write matched no user", extra={"userId": user.id})
        raise InvalidCredentialsError()

    logger.info("User logged in", extra={"userId": user.id})
    return updated, LoginOutcome.SUCCESS


def _clear_expired_lock(repo: UserRepository, user: User, now: datetime) -> User:
    """Lift a lock whose window has passed and restart the attempt count."""
    cleared = repo.conditional_update(
        UserMatch(id=user.id, lock_expired_at=now),
        UserMutation(set_fields={'login_attempts': 0}, unset_fields=_LOCK_FIELDS),
    )
    if cleared:
        return cleared

    # Another request cleared or re-locked it first
    current = repo.get_by_id(user.id)
    if current is None:
        raise InvalidCredentialsError()
    if current.is_locked_at(now):
        raise AccountLockedError(current.lock_until)
    return current


def _record_failed_attempt(repo: UserRepository, user_id: str, now: datetime) -> None:
    updated = repo.conditional_update(
        UserMatch(id=user_id),
        UserMutation(increment={'login_attempts': 1}),
    )
    if updated is None or updated.login_attempts < MAX_LOGIN_ATTEMPTS or updated.is_locked:
        return

    repo.conditional_update(
        UserMatch(id=user_id, min_login_attempts=MAX_LOGIN_ATTEMPTS),
        UserMutation(set_fields={'is_locked': True, 'lock_until': now + LOCK_DURATION}),
    )
    logger.warning("Account locked after failed logins", extra={"userId": user_id, "attempts": updated.login_attempts})


def request_password_reset(
    repo: UserRepository,
    notifier: NotifierPort,
    email: str,
    now: datetime | None = None,
) -> None:
    """Email a reset link, or a password setup link for OAuth-only accounts.

    Silent for unknown emails so callers can't probe which accounts exist.
    """
    email = normalize_email(email)
    now = now or datetime.now(timezone.utc)

    user = repo.get_by_email(email)
    if user is None:
        logger.info("Password reset requested for unknown email", extra={"email": mask_email(email)})
        return

    purpose = TokenPurpose.RESET_PASSWORD if user.has_method(AuthMethod.EMAIL) else TokenPurpose.SETUP_PASSWORD
    token = issue_single_use_token(purpose, now)
    updated = repo.conditional_update(
        UserMatch(id=user.id),
        UserMutation(set_fields={
            'password_reset_token': token.token_hash,
            'password_reset_expires': token.expires_at,
            'password_reset_purpose': purpose,
        }),
    )
    if updated is None:
        return

    notify_best_effort(notifier, NotificationTemplate.PASSWORD_RESET, email, token.plaintext, purpose)


def reset_password(
    repo: UserRepository,
    hasher: PasswordHasher,
    token: str,
    password: str,
    now: datetime | None = None,
) -> User:
    """Consume a reset/setup token and set the new password.

    The emailed link proves control of the address, so the email method is
    attached, the address is marked verified and any lockout is lifted. A
    pending link-account password and its token are discarded with it.

    Raises:
        ValidationError: password does not meet requirements
        InvalidOrExpiredTokenError: token unknown, used, or expired
    """
    _validate_password(password)
    now = now or datetime.now(timezone.utc)

    user = repo.conditional_update(
        UserMatch(reset_token=hash_token(token), token_valid_at=now),
        UserMutation(
            set_fields={
                'password_hash': hasher.hash(password),
                'is_email_verified': True,
                'login_attempts': 0,
            },
            add_methods=frozenset({AuthMethod.EMAIL}),
            unset_fields=_RESET_FIELDS | _LOCK_FIELDS | VERIFICATION_FIELDS | {'pending_password_hash'},
        ),
    )
    if user is None:
        raise InvalidOrExpiredTokenError()

    logger.info("Password updated", extra={"userId": user.id})
    return user

"""Identity resolver: the account-linking state machine.

Pure business logic with no HTTP dependencies.
Raises domain errors that route handlers map to HTTP status codes.

Resolution order for every assertion:
1. Provider-id match (OAuth only) → returning user
2. Email match → link the provider, or park a password pending verification
3. No match → create

Every store write is a single conditional operation. A uniqueness
violation on insert means a concurrent request created the same identity
first; resolution is then retried once from step 1.
"""

import dataclasses
import logging
import uuid
from datetime import datetime, timezone

from domain.model.assertion import (
    AppleAssertion,
    Assertion,
    GoogleAssertion,
    LinkOutcome,
    PasswordRegistration,
)
from domain.model.errors import (
    DuplicateAccountError,
    InvalidOrExpiredTokenError,
    NotFoundError,
    StoreUnavailableError,
    UniquenessViolationError,
    ValidationError,
)
from domain.model.user import (
    AuthMethod,
    TokenPurpose,
    User,
    UserMatch,
    UserMutation,
    normalize_email,
)
from port.notifier import NotificationTemplate, NotifierPort
from port.password_hasher import PasswordHasher
from port.user_repository import UserRepository
from services.notification_service import notify_best_effort
from services.token_service import SingleUseToken, hash_token, issue_single_use_token
from utils.logging import mask_email

logger = logging.getLogger(__name__)

VERIFICATION_FIELDS = frozenset({
    'email_verification_token',
    'email_verification_expires',
    'email_verification_purpose',
})

_TEMPLATE_FOR_PURPOSE = {
    TokenPurpose.VERIFY_EMAIL: NotificationTemplate.VERIFY_EMAIL,
    TokenPurpose.LINK_ACCOUNT: NotificationTemplate.LINK_ACCOUNT,
}


def resolve_assertion(
    repo: UserRepository,
    hasher: PasswordHasher,
    notifier: NotifierPort,
    assertion: Assertion,
    now: datetime | None = None,
) -> tuple[User, LinkOutcome]:
    """Resolve an identity assertion to exactly one user.

    Raises:
        DuplicateAccountError: password registration for an email that already has a password
        StoreUnavailableError: store failure, or the uniqueness race repeated
    """
    now = now or datetime.now(timezone.utc)

    try:
        return _resolve_once(repo, hasher, notifier, assertion, now)
    except UniquenessViolationError as e:
        logger.info("Identity created concurrently, resolving again", extra={"key": e.key})

    try:
        return _resolve_once(repo, hasher, notifier, assertion, now)
    except UniquenessViolationError as e:
        logger.error("Identity resolution lost the uniqueness race twice", extra={"key": e.key})
        raise StoreUnavailableError("Could not resolve identity") from e


def _resolve_once(
    repo: UserRepository,
    hasher: PasswordHasher,
    notifier: NotifierPort,
    assertion: Assertion,
    now: datetime,
) -> tuple[User, LinkOutcome]:
    if isinstance(assertion, PasswordRegistration):
        return _resolve_registration(repo, hasher, notifier, assertion, now)
    if isinstance(assertion, (GoogleAssertion, AppleAssertion)):
        return _resolve_oauth(repo, assertion, now)
    raise ValidationError(f"Unsupported assertion: {type(assertion).__name__}")


# ── OAuth ────────────────────────────────────────────────


def _resolve_oauth(
    repo: UserRepository,
    assertion: GoogleAssertion | AppleAssertion,
    now: datetime,
) -> tuple[User, LinkOutcome]:
    provider = assertion.method.value

    # 1. Returning provider user
    user = repo.conditional_update(
        UserMatch(**{assertion.id_field: assertion.provider_id}),
        UserMutation(set_fields={'last_login': now}),
    )
    if user:
        logger.info("Returning OAuth user", extra={"userId": user.id, "provider": provider})
        return user, LinkOutcome.ALREADY_LINKED

    # 2. Provider-verified email matches an existing account
    if assertion.email:
        user = repo.conditional_update(
            UserMatch(email=normalize_email(assertion.email)),
            UserMutation(
                set_fields={
                    assertion.id_field: assertion.provider_id,
                    'is_email_verified': True,
                    'last_login': now,
                },
                add_methods=frozenset({assertion.method}),
                set_if_empty={'avatar': assertion.avatar_url} if assertion.avatar_url else {},
            ),
        )
        if user:
            logger.info("Linked OAuth provider to existing user", extra={"userId": user.id, "provider": provider})
            return user, LinkOutcome.LINKED_TO_EXISTING

    # 3. New user, verified by the provider
    email = normalize_email(assertion.email) if assertion.email else assertion.placeholder_email
    user = _new_user(
        name=assertion.name,
        email=email,
        auth_methods=frozenset({assertion.method}),
        is_email_verified=True,
        last_login=now,
        avatar=assertion.avatar_url or '',
        now=now,
        **{assertion.id_field: assertion.provider_id},
    )
    created = repo.insert_if_absent(user)
    logger.info("Created OAuth user", extra={"userId": created.id, "provider": provider})
    return created, LinkOutcome.CREATED


# ── Email / password ─────────────────────────────────────


def _resolve_registration(
    repo: UserRepository,
    hasher: PasswordHasher,
    notifier: NotifierPort,
    registration: PasswordRegistration,
    now: datetime,
) -> tuple[User, LinkOutcome]:
    email = normalize_email(registration.email)
    password_hash = hasher.hash(registration.password)

    existing = repo.get_by_email(email)
    if existing:
        if existing.has_method(AuthMethod.EMAIL):
            raise DuplicateAccountError()
        return _park_pending_password(repo, notifier, email, password_hash, now)

    token = issue_single_use_token(TokenPurpose.VERIFY_EMAIL, now)
    user = _new_user(
        name=registration.name.strip(),
        email=email,
        auth_methods=frozenset({AuthMethod.EMAIL}),
        password_hash=password_hash,
        is_email_verified=False,
        now=now,
        **_token_fields(token),
    )
    created = repo.insert_if_absent(user)
    logger.info("User registered", extra={"userId": created.id, "email": mask_email(email)})

    notify_best_effort(notifier, NotificationTemplate.VERIFY_EMAIL, email, token.plaintext, token.purpose)
    return created, LinkOutcome.CREATED


def _park_pending_password(
    repo: UserRepository,
    notifier: NotifierPort,
    email: str,
    password_hash: str,
    now: datetime,
) -> tuple[User, LinkOutcome]:
    """OAuth-only account adds a password; it is promoted once the emailed link is used."""
    token = issue_single_use_token(TokenPurpose.LINK_ACCOUNT, now)
    user = repo.conditional_update(
        UserMatch(email=email, without_method=AuthMethod.EMAIL),
        UserMutation(set_fields={'pending_password_hash': password_hash, **_token_fields(token)}),
    )
    if user is None:
        # Password method attached concurrently
        raise DuplicateAccountError()

    logger.info("Password link pending verification", extra={"userId": user.id})
    notify_best_effort(notifier, NotificationTemplate.LINK_ACCOUNT, email, token.plaintext, token.purpose)
    return user, LinkOutcome.PENDING_VERIFICATION_LINK


# ── Verification tokens ──────────────────────────────────


def consume_verification_token(
    repo: UserRepository,
    token: str,
    purpose: TokenPurpose,
    notifier: NotifierPort | None = None,
    now: datetime | None = None,
) -> User:
    """Consume an email verification token exactly once.

    For link-account tokens the pending password becomes the account
    password and "email" joins auth_methods in the same write.

    Raises:
        InvalidOrExpiredTokenError: no unexpired token with this purpose
        ValidationError: purpose is not a verification purpose
    """
    if purpose not in _TEMPLATE_FOR_PURPOSE:
        raise ValidationError(f"Unsupported verification action: {purpose.value}")
    now = now or datetime.now(timezone.utc)

    match = UserMatch(
        verification_token=hash_token(token),
        verification_purpose=purpose,
        token_valid_at=now,
    )
    if purpose == TokenPurpose.LINK_ACCOUNT:
        match = dataclasses.replace(match, has_pending_password=True)
        mutation = UserMutation(
            set_fields={'is_email_verified': True},
            copy_fields={'password_hash': 'pending_password_hash'},
            add_methods=frozenset({AuthMethod.EMAIL}),
            unset_fields=VERIFICATION_FIELDS | {'pending_password_hash'},
        )
    else:
        mutation = UserMutation(
            set_fields={'is_email_verified': True},
            unset_fields=VERIFICATION_FIELDS,
        )

    user = repo.conditional_update(match, mutation)
    if user is None:
        raise InvalidOrExpiredTokenError("Invalid or expired verification token")

    logger.info("Verification token consumed", extra={"userId": user.id, "purpose": purpose.value})
    if notifier is not None and purpose == TokenPurpose.VERIFY_EMAIL:
        notify_best_effort(notifier, NotificationTemplate.WELCOME, user.email)
    return user


def resend_verification(
    repo: UserRepository,
    notifier: NotifierPort,
    email: str,
    now: datetime | None = None,
) -> User:
    """Replace the pending verification token and email it again.

    Raises:
        NotFoundError: no account for this email
        ValidationError: email is already verified
    """
    email = normalize_email(email)
    now = now or datetime.now(timezone.utc)

    user = repo.get_by_email(email)
    if user is None:
        raise NotFoundError("User not found")
    if user.is_email_verified:
        raise ValidationError("Email is already verified")

    purpose = user.email_verification_purpose or TokenPurpose.VERIFY_EMAIL
    token = issue_single_use_token(purpose, now)
    updated = repo.conditional_update(
        UserMatch(id=user.id, is_email_verified=False),
        UserMutation(set_fields=_token_fields(token)),
    )
    if updated is None:
        raise ValidationError("Email is already verified")

    notify_best_effort(notifier, _TEMPLATE_FOR_PURPOSE[purpose], email, token.plaintext, purpose)
    return updated


# ── helpers ──────────────────────────────────────────────


def _token_fields(token: SingleUseToken) -> dict:
    return {
        'email_verification_token': token.token_hash,
        'email_verification_expires': token.expires_at,
        'email_verification_purpose': token.purpose,
    }


def _new_user(name: str, email: str, now: datetime, **fields) -> User:
    return User(
        id=uuid.uuid4().hex,
        name=name,
        email=email,
        created_at=now,
        updated_at=now,
        **fields,
    )

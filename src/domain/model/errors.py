"""Domain-level exceptions.

Services raise these errors to express business rule violations.
The API exception handler maps them to HTTP status codes.
"""

from datetime import datetime


class DomainError(Exception):
    """Base class for all domain errors."""


class NotFoundError(DomainError):
    """Requested entity does not exist."""


class DuplicateError(DomainError):
    """Entity with the same unique key already exists."""


class ValidationError(DomainError):
    """Input violates a business validation rule."""


class DuplicateAccountError(DuplicateError):
    """An email/password account already exists for this email."""

    def __init__(self, message: str = "Account already exists with this email"):
        super().__init__(message)


class InvalidCredentialsError(DomainError):
    """Email or password is wrong. Deliberately vague."""

    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message)


class AccountLockedError(DomainError):
    """Too many failed attempts; login refused until lock_until."""

    def __init__(self, lock_until: datetime | None = None):
        self.lock_until = lock_until
        super().__init__("Account is temporarily locked. Please try again later.")


class EmailNotVerifiedError(DomainError):
    """Password matched but the email address is not verified yet."""

    def __init__(self, message: str = "Please verify your email first"):
        super().__init__(message)


class UseAlternateProviderError(DomainError):
    """Account has no password; it signs in through an OAuth provider."""

    def __init__(self, providers: list[str]):
        self.providers = providers
        self.requires_password_setup = True
        names = " or ".join(p.capitalize() for p in providers) or "another provider"
        super().__init__(f"Account uses {names} login. Please sign in with {names}.")


class InvalidOrExpiredTokenError(DomainError):
    """Single-use token unknown, already consumed, or past its expiry."""

    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(message)


class UniquenessViolationError(DuplicateError):
    """Store rejected an insert because a unique key is taken.

    Raised by repositories; the identity resolver retries as a lookup.
    """

    def __init__(self, key: str | None = None):
        self.key = key
        super().__init__(f"Unique key already taken: {key or 'unknown'}")


class StoreUnavailableError(DomainError):
    """Credential store could not complete the operation."""


class NotifierUnavailableError(DomainError):
    """Notification could not be delivered."""

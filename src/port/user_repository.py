from typing import Protocol

from domain.model.user import AuthMethod, User, UserMatch, UserMutation


class UserRepository(Protocol):
    """Protocol defining the interface for user data access.

    conditional_update and insert_if_absent are each a single atomic
    operation against the store; callers never read-then-write.
    """

    def ensure_indexes(self) -> bool:
        """Create unique keys (email, google_id, apple_id). Return True on success."""
        ...

    def get_by_email(self, email: str) -> User | None:
        """Find a user by normalized email. Return User or None if not found."""
        ...

    def get_by_provider_id(self, provider: AuthMethod, provider_id: str) -> User | None:
        """Find a user by Google or Apple account id."""
        ...

    def get_by_id(self, user_id: str) -> User | None:
        """Find a user by ID. Return User or None if not found."""
        ...

    def conditional_update(self, match: UserMatch, mutation: UserMutation) -> User | None:
        """Apply mutation to the single user satisfying match.

        Return the user as it is after the update, or None if nothing matched.
        """
        ...

    def insert_if_absent(self, user: User) -> User:
        """Insert a new user.

        Raises:
            UniquenessViolationError: email, google_id or apple_id already taken
        """
        ...

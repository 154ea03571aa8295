from typing import Protocol


class PasswordHasher(Protocol):
    """One-way password hashing."""
    def hash(self, plaintext: str) -> str: ...
    def verify(self, plaintext: str, hashed: str) -> bool: ...

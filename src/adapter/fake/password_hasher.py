"""Reversible stand-in for PasswordHasher, fast enough for unit tests."""


class FakePasswordHasher:
    PREFIX = 'fake$'

    def hash(self, plaintext: str) -> str:
        return f"{self.PREFIX}{plaintext[::-1]}"

    def verify(self, plaintext: str, hashed: str) -> bool:
        return hashed == self.hash(plaintext)

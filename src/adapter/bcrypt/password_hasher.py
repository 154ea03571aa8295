"""bcrypt implementation of PasswordHasher."""

import os

import bcrypt

# 12 rounds (2^12 = 4096 iterations); lower only in tests
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))


class BcryptPasswordHasher:
    def __init__(self, rounds: int = BCRYPT_ROUNDS):
        self.rounds = rounds

    def hash(self, plaintext: str) -> str:
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(plaintext.encode("utf-8"), salt).decode("utf-8")

    def verify(self, plaintext: str, hashed: str) -> bool:
        try:
            return bcrypt.checkpw(plaintext.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            # Malformed stored hash
            return False

import os

# Modules read these at import time
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-unit-tests-only")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

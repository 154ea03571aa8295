from fastapi import HTTPException

from adapter.bcrypt.password_hasher import BcryptPasswordHasher
from adapter.external.apple_oauth import AppleOAuthAdapter
from adapter.external.google_oauth import GoogleOAuthAdapter
from adapter.external.resend_notifier import ResendNotifier
from adapter.mongodb.connection import get_mongodb_client, DATABASE_NAME
from adapter.mongodb.user_repository import MongoUserRepository
from port.notifier import NotifierPort
from port.oauth_provider import OAuthProviderPort
from port.password_hasher import PasswordHasher
from port.user_repository import UserRepository


def _get_db():
    """Get MongoDB database, raising 503 if unavailable."""
    client = get_mongodb_client()
    if client is None:
        raise HTTPException(status_code=503, detail="Database unavailable")
    return client[DATABASE_NAME]


def get_user_repo() -> UserRepository:
    return MongoUserRepository(_get_db())


def get_password_hasher() -> PasswordHasher:
    return BcryptPasswordHasher()


def get_notifier() -> NotifierPort:
    return ResendNotifier()


def get_google_oauth() -> OAuthProviderPort:
    return GoogleOAuthAdapter()


def get_apple_oauth() -> OAuthProviderPort:
    return AppleOAuthAdapter()

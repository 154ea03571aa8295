"""MongoDB implementation of UserRepository.

Conditional updates are a single find_one_and_update with an update
pipeline, so set/unset/increment/add-to-set and field copies all land in
one atomic document write.
"""

from datetime import datetime, timezone
from enum import Enum
from logging import getLogger

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from adapter.mongodb import USERS_COLLECTION_NAME
from domain.model.errors import StoreUnavailableError, UniquenessViolationError
from domain.model.user import AuthMethod, TokenPurpose, User, UserMatch, UserMutation
from utils.logging import mask_email

logger = getLogger(__name__)

_PROVIDER_FIELDS = {
    AuthMethod.GOOGLE: 'google_id',
    AuthMethod.APPLE: 'apple_id',
}


class MongoUserRepository:
    def __init__(self, db: Database):
        self.collection = db[USERS_COLLECTION_NAME]

    def ensure_indexes(self) -> bool:
        """Create indexes for users collection."""
        from adapter.mongodb.indexes import create_index_safe

        try:
            create_index_safe(self.collection, [('email', 1)], 'idx_users_email', unique=True)
            for field in ('google_id', 'apple_id'):
                create_index_safe(
                    self.collection, [(field, 1)], f'idx_users_{field}',
                    unique=True, partialFilterExpression={field: {'$type': 'string'}},
                )
            create_index_safe(self.collection, [('email_verification_token', 1)], 'idx_users_verification_token', sparse=True)
            create_index_safe(self.collection, [('password_reset_token', 1)], 'idx_users_reset_token', sparse=True)
            return True
        except PyMongoError as e:
            logger.error("Failed to create users indexes", extra={"error": str(e)})
            return False

    # ── mapping ──────────────────────────────────────────────

    def _to_domain(self, doc: dict) -> User:
        """Convert MongoDB document to User domain model."""
        verification_purpose = doc.get('email_verification_purpose')
        reset_purpose = doc.get('password_reset_purpose')
        return User(
            id=doc['_id'],
            name=doc['name'],
            email=doc['email'],
            created_at=doc['created_at'],
            updated_at=doc['updated_at'],
            auth_methods=frozenset(AuthMethod(m) for m in doc.get('auth_methods', [])),
            password_hash=doc.get('password_hash'),
            pending_password_hash=doc.get('pending_password_hash'),
            google_id=doc.get('google_id'),
            apple_id=doc.get('apple_id'),
            avatar=doc.get('avatar', ''),
            is_email_verified=doc.get('is_email_verified', False),
            email_verification_token=doc.get('email_verification_token'),
            email_verification_expires=doc.get('email_verification_expires'),
            email_verification_purpose=TokenPurpose(verification_purpose) if verification_purpose else None,
            password_reset_token=doc.get('password_reset_token'),
            password_reset_expires=doc.get('password_reset_expires'),
            password_reset_purpose=TokenPurpose(reset_purpose) if reset_purpose else None,
            login_attempts=doc.get('login_attempts', 0),
            is_locked=doc.get('is_locked', False),
            lock_until=doc.get('lock_until'),
            last_login=doc.get('last_login'),
        )

    def _to_document(self, user: User) -> dict:
        """Absent optional fields are omitted so partial unique indexes skip them."""
        doc = {'_id': user.id}
        for key, value in vars(user).items():
            if key == 'id' or value is None:
                continue
            doc[key] = _to_bson(value)
        return doc

    # ── write operations ─────────────────────────────────────

    def insert_if_absent(self, user: User) -> User:
        try:
            self.collection.insert_one(self._to_document(user))
        except DuplicateKeyError as e:
            key = _duplicate_key(e)
            logger.warning("User insert rejected by unique index", extra={"key": key})
            raise UniquenessViolationError(key) from e
        except PyMongoError as e:
            logger.error("Failed to create user", extra={"email": mask_email(user.email), "error": str(e)})
            raise StoreUnavailableError("Failed to create user") from e

        logger.info("User created", extra={"userId": user.id, "authMethods": sorted(m.value for m in user.auth_methods)})
        return user

    def conditional_update(self, match: UserMatch, mutation: UserMutation) -> User | None:
        try:
            doc = self.collection.find_one_and_update(
                build_filter(match),
                build_pipeline(mutation, datetime.now(timezone.utc)),
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as e:
            raise UniquenessViolationError(_duplicate_key(e)) from e
        except PyMongoError as e:
            logger.error("Conditional user update failed", extra={"error": str(e)})
            raise StoreUnavailableError("Failed to update user") from e

        return self._to_domain(doc) if doc else None

    # ── read operations ──────────────────────────────────────

    def get_by_email(self, email: str) -> User | None:
        return self._find_one({'email': email})

    def get_by_provider_id(self, provider: AuthMethod, provider_id: str) -> User | None:
        field = _PROVIDER_FIELDS.get(provider)
        if field is None:
            return None
        return self._find_one({field: provider_id})

    def get_by_id(self, user_id: str) -> User | None:
        return self._find_one({'_id': user_id})

    def _find_one(self, query: dict) -> User | None:
        try:
            doc = self.collection.find_one(query)
        except PyMongoError as e:
            logger.error("Failed to read user", extra={"fields": sorted(query), "error": str(e)})
            raise StoreUnavailableError("Failed to read user") from e
        return self._to_domain(doc) if doc else None


# ── query translation ────────────────────────────────────


def build_filter(match: UserMatch) -> dict:
    """Translate UserMatch into a MongoDB query document."""
    query: dict = {}
    if match.id is not None:
        query['_id'] = match.id
    for key in ('email', 'google_id', 'apple_id', 'is_email_verified'):
        value = getattr(match, key)
        if value is not None:
            query[key] = value

    methods: dict = {}
    if match.with_method is not None:
        methods['$all'] = [match.with_method.value]
    if match.without_method is not None:
        methods['$nin'] = [match.without_method.value]
    if methods:
        query['auth_methods'] = methods

    if match.verification_token is not None:
        query['email_verification_token'] = match.verification_token
        if match.token_valid_at is not None:
            query['email_verification_expires'] = {'$gt': match.token_valid_at}
    if match.verification_purpose is not None:
        query['email_verification_purpose'] = match.verification_purpose.value
    if match.reset_token is not None:
        query['password_reset_token'] = match.reset_token
        if match.token_valid_at is not None:
            query['password_reset_expires'] = {'$gt': match.token_valid_at}

    if match.lock_expired_at is not None:
        query['is_locked'] = True
        query['lock_until'] = {'$lte': match.lock_expired_at}
    if match.min_login_attempts is not None:
        query['login_attempts'] = {'$gte': match.min_login_attempts}
    if match.has_pending_password is True:
        query['pending_password_hash'] = {'$exists': True, '$nin': [None, '']}
    elif match.has_pending_password is False:
        query['pending_password_hash'] = {'$in': [None, '']}
    return query


def build_pipeline(mutation: UserMutation, now: datetime) -> list[dict]:
    """Translate UserMutation into an update pipeline.

    Expressions inside one $set stage see the document as it was before
    the stage, so copies read the pre-update values.
    """
    assignments: dict = {}
    for target, source in mutation.copy_fields.items():
        assignments[target] = f'${source}'
    for key, value in mutation.set_fields.items():
        # $literal keeps bcrypt hashes ("$2b$...") from being read as field paths
        assignments[key] = {'$literal': _to_bson(value)}
    for key, value in mutation.set_if_empty.items():
        assignments[key] = {
            '$cond': [
                {'$gt': [{'$strLenCP': {'$ifNull': [f'${key}', '']}}, 0]},
                f'${key}',
                {'$literal': _to_bson(value)},
            ]
        }
    for key, amount in mutation.increment.items():
        assignments[key] = {'$add': [{'$ifNull': [f'${key}', 0]}, amount]}
    if mutation.add_methods:
        assignments['auth_methods'] = {
            '$setUnion': [
                {'$ifNull': ['$auth_methods', []]},
                sorted(m.value for m in mutation.add_methods),
            ]
        }
    assignments['updated_at'] = {'$literal': now}

    pipeline = [{'$set': assignments}]
    if mutation.unset_fields:
        pipeline.append({'$unset': sorted(mutation.unset_fields)})
    return pipeline


def _to_bson(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return sorted(_to_bson(v) for v in value)
    return value


def _duplicate_key(error: DuplicateKeyError) -> str | None:
    details = error.details or {}
    pattern = details.get('keyPattern') or {}
    return next(iter(pattern), None)

"""MongoDB index management utilities.

Unique indexes carry the identity invariants (one user per email, per
Google id, per Apple id), so an index that exists with the right keys but
the wrong options is treated as a conflict and rebuilt.
"""

from logging import getLogger

from pymongo.errors import PyMongoError

logger = getLogger(__name__)

_COMPARED_OPTIONS = ('unique', 'partialFilterExpression', 'sparse')


def create_index_safe(collection, keys: list, name: str, **kwargs) -> bool:
    """Create index, dropping and recreating a conflicting one.

    Conflicts: same name with different keys or options, or same keys
    under a different name.
    """
    try:
        collection.create_index(keys, name=name, **kwargs)
        return True
    except PyMongoError as e:
        if "already exists" not in str(e) and "Conflict" not in str(e):
            raise
        return _rebuild_conflicting(collection, keys, name, **kwargs)


def _rebuild_conflicting(collection, keys: list, name: str, **kwargs) -> bool:
    wanted_keys = dict(keys)
    wanted_options = {k: kwargs[k] for k in _COMPARED_OPTIONS if kwargs.get(k)}

    for idx_name, idx_info in collection.index_information().items():
        if idx_name == '_id_':
            continue

        idx_keys = dict(idx_info.get('key', []))
        idx_options = {k: idx_info[k] for k in _COMPARED_OPTIONS if idx_info.get(k)}

        renamed = idx_keys == wanted_keys and idx_name != name
        redefined = idx_name == name and (idx_keys != wanted_keys or idx_options != wanted_options)
        if renamed or redefined:
            logger.warning("Dropping conflicting index", extra={"index": idx_name})
            collection.drop_index(idx_name)
            collection.create_index(keys, name=name, **kwargs)
            logger.info("Recreated index", extra={"index": name})
            return True

    logger.error("Failed to resolve index conflict", extra={"index": name})
    return False


def ensure_all_indexes(db) -> bool:
    """Ensure indexes for all collections. Called at app startup."""
    from adapter.mongodb.user_repository import MongoUserRepository

    return MongoUserRepository(db).ensure_indexes()

import logging
from typing import Iterable, Tuple
from couchbase.exceptions import CollectionAlreadyExistsException, ScopeAlreadyExistsException
from .config import get_cluster
from .keyspace import Keyspace

logger = logging.getLogger(__name__)


async def ensure_collection(keyspace: Keyspace) -> None:
    """Create the scope and collection behind *keyspace* if they are missing.

    The bucket itself must already exist.
    """
    if keyspace.scope_name == '_default' and keyspace.collection_name == '_default':
        return

    cluster = await get_cluster()
    manager = cluster.bucket(keyspace.bucket_name).collections()
    scopes = {scope.name: scope for scope in await manager.get_all_scopes()}

    if keyspace.scope_name not in scopes:
        logger.info(f"Creating scope {keyspace.scope_name} in bucket {keyspace.bucket_name}")
        try:
            await manager.create_scope(keyspace.scope_name)
        except ScopeAlreadyExistsException:
            pass
    elif any(c.name == keyspace.collection_name for c in scopes[keyspace.scope_name].collections):
        return

    logger.info(f"Creating collection {keyspace}")
    try:
        await manager.create_collection(keyspace.scope_name, keyspace.collection_name)
    except CollectionAlreadyExistsException:
        pass


async def ensure_indexes(keyspace: Keyspace, indexes: Iterable[Tuple[str, str]]) -> None:
    """Create secondary indexes given as ``(name, key expression list)`` pairs."""
    for name, keys in indexes:
        await keyspace.query(
            f"CREATE INDEX `{name}` IF NOT EXISTS ON ${{keyspace}}({keys})",
            consistent=False,
        )

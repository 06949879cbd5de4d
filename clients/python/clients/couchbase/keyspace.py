import uuid
from dataclasses import dataclass
from typing import Optional
from couchbase.result import MutationResult
from couchbase.n1ql import QueryScanConsistency
from couchbase.options import QueryOptions, ReplaceOptions
from .config import get_cluster, DEFAULT_BUCKET_NAME, DEFAULT_SCOPE_NAME


@dataclass
class Keyspace:
    bucket_name: str
    scope_name: str
    collection_name: str

    def __str__(self) -> str:
        return f"`{self.bucket_name}`.`{self.scope_name}`.`{self.collection_name}`"

    async def query(self, query: str, consistent: bool = True, **kwargs) -> list:
        """Run a N1QL statement; keyword arguments become named parameters.

        *consistent* waits for the index to catch up with every mutation made
        before the request (``REQUEST_PLUS``), so a read straight after a
        write sees it.
        """
        cluster = await get_cluster()
        query = query.replace("${keyspace}", str(self))
        options = QueryOptions(named_parameters=kwargs)
        if consistent:
            options = QueryOptions(named_parameters=kwargs, scan_consistency=QueryScanConsistency.REQUEST_PLUS)
        result = cluster.query(query, options)
        return [row async for row in result]

    async def get_scope(self):
        cluster = await get_cluster()
        bucket = cluster.bucket(self.bucket_name)
        return bucket.scope(self.scope_name)

    async def get_collection(self):
        scope = await self.get_scope()
        return scope.collection(self.collection_name)

    async def insert(self, value: dict, key: Optional[str] = None, **kwargs) -> MutationResult:
        if key is None:
            key = str(uuid.uuid4())
        collection = await self.get_collection()
        return await collection.insert(key, value, **kwargs)

    async def replace(self, key: str, value: dict, cas: Optional[int] = None) -> MutationResult:
        """Replace a document, guarded by *cas* when one is given."""
        collection = await self.get_collection()
        if cas:
            return await collection.replace(key, value, ReplaceOptions(cas=cas))
        return await collection.replace(key, value)


def get_keyspace(
    collection_name: str,
    scope_name: Optional[str] = None,
    bucket_name: Optional[str] = None,
) -> Keyspace:
    """
    Create a Keyspace instance with optional scope and bucket parameters.

    Args:
        collection_name: Name of the collection
        scope_name: Name of the scope (defaults to COUCHBASE_SCOPE or "_default")
        bucket_name: Name of the bucket (defaults to COUCHBASE_BUCKET)

    Returns:
        Keyspace instance
    """
    return Keyspace(
        bucket_name or DEFAULT_BUCKET_NAME,
        scope_name or DEFAULT_SCOPE_NAME,
        collection_name,
    )

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TypeVar, Generic, List, ClassVar
from pydantic import BaseModel
from couchbase.exceptions import DocumentNotFoundException
from .keyspace import Keyspace, get_keyspace


class BaseCouchbaseEntityData(BaseModel):
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


DataT = TypeVar("DataT", bound=BaseCouchbaseEntityData)
T = TypeVar("T", bound="BaseModelCouchbase")


class BaseModelCouchbase(BaseModel, Generic[DataT]):
    """A document: its key, its typed body and the CAS it was read at.

    ``cas`` is what makes read-modify-write atomic: ``update`` replaces the
    document only if nobody wrote it since it was read, otherwise the SDK
    raises ``CASMismatchException`` and the caller re-reads.
    """

    id: str
    data: DataT
    cas: Optional[int] = None

    _collection_name: ClassVar[str] = ""

    @staticmethod
    def to_document(data: BaseCouchbaseEntityData) -> Dict[str, Any]:
        # mode='json' turns Decimal into str and datetime into ISO-8601
        return data.model_dump(mode='json')

    @classmethod
    def get_keyspace(cls) -> Keyspace:
        if not cls._collection_name:
            raise ValueError(f"_collection_name not set for {cls.__name__}")
        return get_keyspace(cls._collection_name)

    @classmethod
    def from_row(cls: type[T], row: Dict[str, Any]) -> Optional[T]:
        """Build an entity from a ``SELECT META().id, META().cas, * FROM ...`` row."""
        data = row.get(cls._collection_name)
        if not data:
            return None
        return cls(id=row["id"], data=data, cas=row.get("cas"))

    @classmethod
    async def get(cls: type[T], id: str) -> Optional[T]:
        try:
            collection = await cls.get_keyspace().get_collection()
            result = await collection.get(id)
            data = result.content_as[dict]
            return cls(id=id, data=data, cas=result.cas)
        except DocumentNotFoundException:
            return None

    @classmethod
    async def create(cls: type[T], data: DataT, key: Optional[str] = None) -> T:
        """Insert a new document; raises ``DocumentExistsException`` on a key clash."""
        if key is None:
            key = str(uuid.uuid4())

        now = datetime.now(timezone.utc)
        if data.created_at is None:
            data.created_at = now
        data.updated_at = now

        result = await cls.get_keyspace().insert(cls.to_document(data), key=key)
        return cls(id=key, data=data, cas=result.cas)

    @classmethod
    async def update(cls: type[T], item: T) -> T:
        item.data.updated_at = datetime.now(timezone.utc)
        result = await cls.get_keyspace().replace(item.id, cls.to_document(item.data), cas=item.cas)
        item.cas = result.cas
        return item

    @classmethod
    async def query(
        cls: type[T],
        where: str,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        **params,
    ) -> List[T]:
        """Select whole documents of this collection matching a N1QL predicate."""
        keyspace = cls.get_keyspace()
        statement = f"SELECT META().id, META().cas, * FROM {keyspace} WHERE {where}"
        if order_by:
            statement += f" ORDER BY {order_by}"
        if limit is not None:
            statement += f" LIMIT {int(limit)}"
        rows = await keyspace.query(statement, **params)
        items = []
        for row in rows:
            item = cls.from_row(row)
            if item is not None:
                items.append(item)
        return items

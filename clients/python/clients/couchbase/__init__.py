from .config import (
    USERNAME,
    DEFAULT_BUCKET_NAME,
    DEFAULT_SCOPE_NAME,
    HOST,
    PROTOCOL,
    validate_settings,
    get_cluster,
    check_connection
)
from .keyspace import (
    Keyspace,
    get_keyspace,
)
from .schema import (
    ensure_collection,
    ensure_indexes,
)
from .base_model import (
    BaseModelCouchbase,
    BaseCouchbaseEntityData,
    DataT,
    T
)

from couchbase.exceptions import CASMismatchException, DocumentExistsException, DocumentNotFoundException

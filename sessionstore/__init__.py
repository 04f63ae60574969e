"""
Server-Side Session Store

A keyed, lockable, persisted key-value session store with cookie-correlated
identity:
- SessionStore: create/get/update/delete under per-session row locks
- SessionCodec: attribute mapping <-> JSON text blob (lz4 above a threshold)
- IdentityResolver: correlation token first, explicit id second, sentinel last
- SessionPlugin: token-aware veneer for request handlers
- Backends: SQLite (WAL), Redis, in-memory
"""

__version__ = "0.2.0"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
from sessionstore.core.types import (
    Result,
    Ok,
    Err,
    SessionId,
    NULL_SESSION,
)
from sessionstore.core.errors import (
    ErrorCode,
    SessionStoreError,
    StorageError,
    StorageProvisionError,
    StorageLockError,
    CodecError,
    ValidationError,
)
from sessionstore.core.config import BackendType, SessionStoreConfig
from sessionstore.session import (
    SessionCodec,
    SessionRecord,
    DictTokenStore,
    IdentityResolver,
    TokenStore,
    SessionStore,
    SessionPlugin,
)
from sessionstore.storage import create_backend

__all__ = [
    "__version__",
    # Core
    "Result",
    "Ok",
    "Err",
    "SessionId",
    "NULL_SESSION",
    "ErrorCode",
    "SessionStoreError",
    "StorageError",
    "StorageProvisionError",
    "StorageLockError",
    "CodecError",
    "ValidationError",
    "BackendType",
    "SessionStoreConfig",
    # Session
    "SessionCodec",
    "SessionRecord",
    "DictTokenStore",
    "IdentityResolver",
    "TokenStore",
    "SessionStore",
    "SessionPlugin",
    # Storage
    "create_backend",
]

"""
Core module: Type definitions, error hierarchy, and configuration.

This module provides the foundational abstractions for the session store:
- Result/Either monads for zero-exception control flow
- Session identity with the "no session" sentinel
- Error hierarchy with stable error codes
- Configuration management with validation
"""

from sessionstore.core.types import (
    Result,
    Ok,
    Err,
    SessionId,
    NULL_SESSION,
    Timestamp,
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
from sessionstore.core.config import (
    BackendType,
    SessionStoreConfig,
    SQLiteConfig,
    RedisConfig,
    CodecConfig,
    ObservabilityConfig,
)

__all__ = [
    "Result",
    "Ok",
    "Err",
    "SessionId",
    "NULL_SESSION",
    "Timestamp",
    "ErrorCode",
    "SessionStoreError",
    "StorageError",
    "StorageProvisionError",
    "StorageLockError",
    "CodecError",
    "ValidationError",
    "BackendType",
    "SessionStoreConfig",
    "SQLiteConfig",
    "RedisConfig",
    "CodecConfig",
    "ObservabilityConfig",
]

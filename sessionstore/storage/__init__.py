"""
Storage Module: Pluggable Session Backends
==========================================

Provides:
- Protocol definitions (ConnectionProvider, SessionBackend, TiedRow)
- SQLite backend (durable, file-based, WAL)
- Redis backend (shared across processes, per-id locks)
- In-memory backend (development/testing)
- Factory function for backend selection

Example:
    >>> config = SessionStoreConfig(backend=BackendType.SQLITE)
    >>> backend = create_backend(config)
    >>> backend.ensure_schema()
"""

from __future__ import annotations

from typing import Optional

from sessionstore.core.config import BackendType, SessionStoreConfig
from sessionstore.storage.protocols import (
    ConnectionProvider,
    SessionBackend,
    TiedRow,
)
from sessionstore.storage.schema import SessionSchema
from sessionstore.storage.memory_backend import InMemorySessionBackend
from sessionstore.storage.sqlite_backend import (
    SQLiteConnectionProvider,
    SQLiteSessionBackend,
)


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================

def create_backend(
    config: Optional[SessionStoreConfig] = None,
    provider: Optional[ConnectionProvider] = None,
) -> SessionBackend:
    """
    Create the session backend named by configuration.

    Args:
        config: Store configuration (defaults to SQLite at the default path).
        provider: Connection provider owned by the caller. When omitted a
            provider is built from the backend's section of the config.

    Returns:
        SessionBackend implementation for config.backend.
    """
    config = config or SessionStoreConfig()

    if config.backend is BackendType.IN_MEMORY:
        return InMemorySessionBackend()

    if config.backend is BackendType.REDIS:
        from sessionstore.storage.redis_backend import (
            RedisConnectionProvider,
            RedisSessionBackend,
        )
        return RedisSessionBackend(
            provider or RedisConnectionProvider(config.redis),
            config.redis,
        )

    return SQLiteSessionBackend(
        provider or SQLiteConnectionProvider(config.sqlite),
        table=config.table_name,
    )


__all__ = [
    "ConnectionProvider",
    "SessionBackend",
    "TiedRow",
    "SessionSchema",
    "InMemorySessionBackend",
    "SQLiteConnectionProvider",
    "SQLiteSessionBackend",
    "create_backend",
]

"""
Configuration Management for the Session Store

Provides validated configuration with sensible defaults.
Supports environment variable overrides.

Design:
- Immutable after validation
- Fail-fast on invalid configuration
- Type-safe with dataclasses
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from sessionstore.core.types import Result, Ok, Err
from sessionstore.core import constants as C

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class BackendType(Enum):
    """Persistence backend selection."""

    IN_MEMORY = "memory"  # Development/testing only
    SQLITE = "sqlite"
    REDIS = "redis"


@dataclass(frozen=True)
class SQLiteConfig:
    """SQLite backend configuration."""

    db_path: Path = field(default_factory=lambda: Path(C.DEFAULT_DB_PATH))
    wal_enabled: bool = True
    cache_size_kb: int = 8 * 1024

    @property
    def is_memory(self) -> bool:
        return str(self.db_path) == ":memory:"


@dataclass(frozen=True)
class RedisConfig:
    """Redis backend configuration."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    key_prefix: str = C.REDIS_KEY_PREFIX
    lock_ttl_ms: int = C.DEFAULT_LOCK_TTL_MS
    session_ttl_seconds: int = 0  # 0 disables expiry
    socket_timeout_s: float = 5.0


@dataclass(frozen=True)
class CodecConfig:
    """Blob encoding configuration."""

    compression_enabled: bool = True
    compression_threshold_bytes: int = C.COMPRESSION_THRESHOLD_BYTES


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration."""

    log_level: str = "INFO"
    log_json: bool = True


@dataclass(frozen=True)
class SessionStoreConfig:
    """Root configuration for the session store."""

    backend: BackendType = BackendType.SQLITE
    table_name: str = C.DEFAULT_TABLE_NAME
    token_name: str = C.DEFAULT_TOKEN_NAME
    lock_timeout_ms: int = C.DEFAULT_LOCK_TIMEOUT_MS
    sqlite: SQLiteConfig = field(default_factory=SQLiteConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    codec: CodecConfig = field(default_factory=CodecConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> Result[SessionStoreConfig, str]:
        """
        Load configuration from environment variables.

        Environment variables are prefixed with SESSIONSTORE_.
        Example: SESSIONSTORE_BACKEND=redis, SESSIONSTORE_REDIS_HOST=cache
        """
        env = os.getenv
        try:
            backend = BackendType(env("SESSIONSTORE_BACKEND", BackendType.SQLITE.value))

            sqlite = SQLiteConfig(
                db_path=Path(env("SESSIONSTORE_SQLITE_PATH", C.DEFAULT_DB_PATH)),
                wal_enabled=env("SESSIONSTORE_SQLITE_WAL", "1") not in ("0", "false"),
            )

            redis = RedisConfig(
                host=env("SESSIONSTORE_REDIS_HOST", "localhost"),
                port=int(env("SESSIONSTORE_REDIS_PORT", "6379")),
                db=int(env("SESSIONSTORE_REDIS_DB", "0")),
                password=env("SESSIONSTORE_REDIS_PASSWORD") or None,
                key_prefix=env("SESSIONSTORE_REDIS_PREFIX", C.REDIS_KEY_PREFIX),
                session_ttl_seconds=int(env("SESSIONSTORE_REDIS_TTL", "0")),
            )

            codec = CodecConfig(
                compression_enabled=env("SESSIONSTORE_COMPRESSION", "1") not in ("0", "false"),
                compression_threshold_bytes=int(
                    env("SESSIONSTORE_COMPRESSION_THRESHOLD", str(C.COMPRESSION_THRESHOLD_BYTES))
                ),
            )

            observability = ObservabilityConfig(
                log_level=env("SESSIONSTORE_LOG_LEVEL", "INFO").upper(),
                log_json=env("SESSIONSTORE_LOG_JSON", "1") not in ("0", "false"),
            )

            return Ok(cls(
                backend=backend,
                table_name=env("SESSIONSTORE_TABLE", C.DEFAULT_TABLE_NAME),
                token_name=env("SESSIONSTORE_TOKEN_NAME", C.DEFAULT_TOKEN_NAME),
                lock_timeout_ms=int(
                    env("SESSIONSTORE_LOCK_TIMEOUT_MS", str(C.DEFAULT_LOCK_TIMEOUT_MS))
                ),
                sqlite=sqlite,
                redis=redis,
                codec=codec,
                observability=observability,
            ))
        except (ValueError, TypeError) as e:
            return Err(f"Configuration error: {e}")

    def validate(self) -> Result[None, str]:
        """Validate configuration invariants."""
        if not _IDENTIFIER.match(self.table_name):
            return Err(f"Table name {self.table_name!r} is not a plain SQL identifier")
        if not self.token_name:
            return Err("Token name must not be empty")
        if self.lock_timeout_ms <= 0:
            return Err("lock_timeout_ms must be > 0")
        if self.redis.lock_ttl_ms < self.lock_timeout_ms:
            return Err("Redis lock TTL must be >= lock_timeout_ms")
        if self.codec.compression_threshold_bytes < 0:
            return Err("Compression threshold cannot be negative")
        if self.observability.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            return Err(f"Unknown log level {self.observability.log_level!r}")
        return Ok(None)

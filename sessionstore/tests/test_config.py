"""
Unit Tests: Configuration and Errors

Tests:
    - Defaults and validation rules
    - Environment variable loading
    - Error hierarchy factories and serialization
"""

import os
from dataclasses import FrozenInstanceError, replace
from pathlib import Path

import pytest

from sessionstore.core.config import (
    BackendType,
    CodecConfig,
    ObservabilityConfig,
    RedisConfig,
    SessionStoreConfig,
    SQLiteConfig,
)
from sessionstore.core.errors import (
    CodecError,
    ErrorCode,
    SessionStoreError,
    StorageError,
    StorageLockError,
    StorageProvisionError,
    ValidationError,
)


class TestSessionStoreConfig:
    """Tests for configuration defaults and validation."""

    def test_defaults_validate(self):
        config = SessionStoreConfig()
        assert config.backend is BackendType.SQLITE
        assert config.table_name == "sessions"
        assert config.token_name == "session_id"
        assert config.lock_timeout_ms == 5000
        assert config.validate().is_ok()

    @pytest.mark.parametrize("table", ["", "sessions; DROP TABLE x", "1sessions", "my-table"])
    def test_rejects_unsafe_table_name(self, table):
        assert SessionStoreConfig(table_name=table).validate().is_err()

    def test_rejects_non_positive_lock_timeout(self):
        assert SessionStoreConfig(lock_timeout_ms=0).validate().is_err()

    def test_rejects_lock_ttl_below_wait(self):
        config = SessionStoreConfig(
            lock_timeout_ms=10_000,
            redis=RedisConfig(lock_ttl_ms=1_000),
        )
        assert config.validate().is_err()

    def test_rejects_negative_threshold(self):
        config = SessionStoreConfig(codec=CodecConfig(compression_threshold_bytes=-1))
        assert config.validate().is_err()

    def test_rejects_unknown_log_level(self):
        config = SessionStoreConfig(observability=ObservabilityConfig(log_level="LOUD"))
        assert config.validate().is_err()

    def test_sqlite_memory_flag(self):
        assert SQLiteConfig(db_path=Path(":memory:")).is_memory
        assert not SQLiteConfig().is_memory

    def test_frozen(self):
        config = SessionStoreConfig()
        with pytest.raises(FrozenInstanceError):
            config.table_name = "other"
        assert replace(config, table_name="other").table_name == "other"


class TestFromEnv:
    """Tests for SESSIONSTORE_* loading."""

    def test_defaults_without_env(self, monkeypatch):
        for key in list(os.environ):
            if key.startswith("SESSIONSTORE_"):
                monkeypatch.delenv(key)
        config = SessionStoreConfig.from_env().unwrap()
        assert config == SessionStoreConfig()

    def test_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("SESSIONSTORE_BACKEND", "redis")
        monkeypatch.setenv("SESSIONSTORE_TABLE", "web_sessions")
        monkeypatch.setenv("SESSIONSTORE_LOCK_TIMEOUT_MS", "250")
        monkeypatch.setenv("SESSIONSTORE_SQLITE_PATH", str(tmp_path / "s.db"))
        monkeypatch.setenv("SESSIONSTORE_REDIS_HOST", "cache")
        monkeypatch.setenv("SESSIONSTORE_REDIS_PORT", "6380")
        monkeypatch.setenv("SESSIONSTORE_REDIS_TTL", "600")
        monkeypatch.setenv("SESSIONSTORE_COMPRESSION", "false")
        monkeypatch.setenv("SESSIONSTORE_LOG_LEVEL", "debug")

        config = SessionStoreConfig.from_env().unwrap()

        assert config.backend is BackendType.REDIS
        assert config.table_name == "web_sessions"
        assert config.lock_timeout_ms == 250
        assert config.sqlite.db_path == tmp_path / "s.db"
        assert config.redis.host == "cache"
        assert config.redis.port == 6380
        assert config.redis.session_ttl_seconds == 600
        assert config.codec.compression_enabled is False
        assert config.observability.log_level == "DEBUG"
        assert config.validate().is_ok()

    def test_unknown_backend(self, monkeypatch):
        monkeypatch.setenv("SESSIONSTORE_BACKEND", "mysql")
        assert SessionStoreConfig.from_env().is_err()

    def test_bad_integer(self, monkeypatch):
        monkeypatch.setenv("SESSIONSTORE_REDIS_PORT", "not-a-port")
        result = SessionStoreConfig.from_env()
        assert result.is_err()
        assert "Configuration error" in result.error


class TestErrors:
    """Tests for the error hierarchy."""

    def test_lock_failed_type_and_context(self):
        err = StorageError.lock_failed("abc", "timed out waiting for row lock")
        assert isinstance(err, StorageLockError)
        assert isinstance(err, StorageError)
        assert isinstance(err, SessionStoreError)
        assert err.code is ErrorCode.STORAGE_LOCK_FAILED
        assert err.context == {"session_id": "abc", "reason": "timed out waiting for row lock"}

    def test_provision_failed(self):
        cause = RuntimeError("disk full")
        err = StorageError.provision_failed("sessions", cause=cause)
        assert isinstance(err, StorageProvisionError)
        assert err.cause is cause
        assert err.code is ErrorCode.STORAGE_PROVISION_FAILED

    def test_codec_and_validation_codes(self):
        assert CodecError.encode_failed("x").code is ErrorCode.CODEC_ENCODE_FAILED
        assert CodecError.decode_failed("x").code is ErrorCode.CODEC_DECODE_FAILED
        assert ValidationError.invalid_attributes("x").code is ErrorCode.VALIDATION_INVALID_ATTRIBUTES

    def test_raisable(self):
        with pytest.raises(StorageLockError):
            raise StorageError.lock_failed("abc", "busy")

    def test_to_dict(self):
        err = StorageError.corruption("abc", "truncated")
        data = err.to_dict()
        assert data["code"] == "STORAGE_CORRUPTION"
        assert data["code_value"] == 1006
        assert data["context"]["session_id"] == "abc"
        assert data["error_id"] == err.error_id

    def test_with_context_keeps_class(self):
        err = StorageError.lock_failed("abc", "busy").with_context(operation="update")
        assert isinstance(err, StorageLockError)
        assert err.context["operation"] == "update"
        assert err.context["reason"] == "busy"

    def test_str(self):
        err = ValidationError.invalid_attributes("not a mapping")
        assert str(err).startswith("[VALIDATION_INVALID_ATTRIBUTES]")

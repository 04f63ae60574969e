"""
Shared fixtures: stores over the in-memory and SQLite backends.

Every store gets a private MetricsCollector so counters start at zero.
"""

import pytest

from sessionstore.core.config import BackendType, SessionStoreConfig, SQLiteConfig
from sessionstore.observability.metrics import MetricsCollector, SessionMetrics
from sessionstore.session.store import SessionStore
from sessionstore.storage import create_backend


def make_config(backend: str, tmp_path, **overrides) -> SessionStoreConfig:
    if backend == "sqlite":
        return SessionStoreConfig(
            backend=BackendType.SQLITE,
            sqlite=SQLiteConfig(db_path=tmp_path / "sessions.db"),
            **overrides,
        )
    return SessionStoreConfig(backend=BackendType.IN_MEMORY, **overrides)


def make_store(config: SessionStoreConfig) -> SessionStore:
    return SessionStore(
        create_backend(config),
        config=config,
        metrics=SessionMetrics(MetricsCollector()),
    )


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    """Migrated store, once per backend."""
    s = make_store(make_config(request.param, tmp_path))
    assert s.migrate().is_ok()
    yield s
    s.close()


@pytest.fixture
def sqlite_store(tmp_path):
    s = make_store(make_config("sqlite", tmp_path))
    assert s.migrate().is_ok()
    yield s
    s.close()

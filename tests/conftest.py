# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from secbrain.core.identity import IdentityContext
from secbrain.storage.counters import CounterService, IdPolicy
from secbrain.storage.fallback_store import FallbackStore
from secbrain.storage.gateway import PersistenceGateway

from .fakes import FakeClock, FakeRemoteStore


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the bootstrap and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="secbrain-test",
        log_level="DEBUG",
        console_enabled=False,
        data_dir=tmp_path / "data",
        fallback_db_path=tmp_path / "data" / "fallback.sqlite3",
        remote_base_url="",
        remote_api_key=None,
        remote_timeout_seconds=1.0,
        auth_base_url="",
        auth_api_key=None,
        id_policy=IdPolicy.REMOTE,
        sync_interval_seconds=0.01,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture()
def fallback(tmp_path: Path) -> FallbackStore:
    """Real SQLite store: its behaviour is part of what we test."""
    return FallbackStore(tmp_path / "fallback.sqlite3")


@pytest.fixture()
def identity() -> IdentityContext:
    """Uninitialized; tests call `await identity.enter_anonymous()` first."""
    return IdentityContext(anonymous_owner_id="anonymous")


@pytest.fixture()
def gateway(
    remote: FakeRemoteStore,
    fallback: FallbackStore,
    identity: IdentityContext,
    clock: FakeClock,
) -> PersistenceGateway:
    return PersistenceGateway(remote, fallback, identity, clock=clock)


@pytest.fixture()
def counters(gateway: PersistenceGateway) -> CounterService:
    return CounterService(gateway)

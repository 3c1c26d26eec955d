# tests/test_bootstrap.py

from __future__ import annotations

import pytest

from secbrain.auth.credentials import OfflineCredentialService
from secbrain.cli.bootstrap import create_initial_state, shutdown_state, start_state
from secbrain.core.identity import IdentityState
from secbrain.storage.gateway import ConnectionStatus
from secbrain.storage.offline import OfflineRemoteStore


@pytest.mark.asyncio
async def test_unconfigured_endpoints_run_from_the_fallback_store(settings) -> None:
    state = create_initial_state(settings=settings)
    assert isinstance(state.remote, OfflineRemoteStore)
    assert isinstance(state.credentials, OfflineCredentialService)
    assert settings.data_dir.is_dir()

    await start_state(state)
    try:
        assert state.identity.state == IdentityState.ANONYMOUS
        assert state.projects.loaded_owner_id.startswith("anonymous-")
        assert len(state.background_tasks) == 1

        project = await state.projects.add_project("Offline work")
        assert project.id.startswith("local-")
        assert state.gateway.connection_status == ConnectionStatus.OFFLINE
        assert state.gateway.pending_count() == 1
    finally:
        await shutdown_state(state)

    assert state.background_tasks == []


@pytest.mark.asyncio
async def test_fallback_data_survives_restart(settings) -> None:
    first = create_initial_state(settings=settings)
    await start_state(first, sync_loop=False)
    await first.projects.add_project("Persisted")
    anonymous_id = first.identity.anonymous_owner_id
    await shutdown_state(first)

    second = create_initial_state(settings=settings)
    await start_state(second, sync_loop=False)
    try:
        assert [p.name for p in second.projects.projects] == ["Persisted"]
        assert second.gateway.pending_count() == 1
        assert second.identity.owner_id == anonymous_id
    finally:
        await shutdown_state(second)

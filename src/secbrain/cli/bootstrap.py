# src/secbrain/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (stores, gateway, auth, projects),
- starts and stops the background sync loop.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable

from ..auth.credentials import HttpCredentialService, OfflineCredentialService
from ..auth.session import AuthSession
from ..config import get_settings
from ..core.identity import IdentityContext
from ..core.ports import CredentialService, RemoteStore
from ..core.state import AppState
from ..projects.service import ProjectTaskTree
from ..storage.counters import CounterService, IdPolicy
from ..storage.fallback_store import FallbackStore
from ..storage.gateway import PersistenceGateway
from ..storage.offline import OfflineRemoteStore
from ..storage.remote_store import HttpRemoteStore
from ..storage.sync import run_sync_loop

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.fallback_db_path.parent.mkdir(parents=True, exist_ok=True)


def build_remote_store(settings) -> RemoteStore:
    base_url = getattr(settings, "remote_base_url", "") or ""
    if not base_url.strip():
        logger.info("No remote store configured; running from the fallback store only")
        return OfflineRemoteStore()
    return HttpRemoteStore(
        base_url,
        api_key=getattr(settings, "remote_api_key", None),
        timeout_seconds=getattr(settings, "remote_timeout_seconds", 10.0),
    )


def build_credentials(settings) -> CredentialService:
    base_url = getattr(settings, "auth_base_url", "") or ""
    if not base_url.strip():
        return OfflineCredentialService()
    return HttpCredentialService(
        base_url,
        getattr(settings, "auth_api_key", None),
        timeout_seconds=getattr(settings, "remote_timeout_seconds", 10.0),
    )


def create_initial_state(
    *,
    settings=None,
    remote: RemoteStore | None = None,
    credentials: CredentialService | None = None,
    clock: Callable[[], float] = time.time,
) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings (and the network-facing adapters) injectable makes the app easier
    to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    if remote is None:
        remote = build_remote_store(settings)
    if credentials is None:
        credentials = build_credentials(settings)

    fallback = FallbackStore(settings.fallback_db_path)
    identity = IdentityContext(anonymous_owner_id=fallback.anonymous_owner_id())
    gateway = PersistenceGateway(remote, fallback, identity, clock=clock)
    counters = CounterService(gateway)

    auth = AuthSession(
        identity,
        gateway,
        credentials,
        on_token=getattr(remote, "set_auth_token", None),
    )
    projects = ProjectTaskTree(
        gateway,
        counters,
        id_policy=IdPolicy(getattr(settings, "id_policy", IdPolicy.REMOTE)),
        clock=clock,
    )
    projects.attach()

    return AppState(
        settings=settings,
        identity=identity,
        remote=remote,
        fallback=fallback,
        gateway=gateway,
        counters=counters,
        credentials=credentials,
        auth=auth,
        projects=projects,
    )


async def start_state(state: AppState, *, sync_loop: bool = True) -> None:
    """Enter the anonymous identity (loads every feature module) and start syncing."""
    transition = await state.auth.start()
    if transition is not None:
        errors = await transition.settled()
        if errors:
            logger.warning("%d module(s) failed to load on start", len(errors))

    if sync_loop:
        interval = float(getattr(state.settings, "sync_interval_seconds", 30.0))
        state.background_tasks.append(asyncio.create_task(run_sync_loop(state.gateway, interval_seconds=interval)))


async def shutdown_state(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    for task in state.background_tasks:
        task.cancel()
    for task in state.background_tasks:
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await task
    state.background_tasks.clear()

    pending = state.gateway.pending_count()
    if pending:
        logger.info("%d write(s) still pending; they will sync on next start", pending)

    for closer in (state.remote.aclose, state.credentials.aclose):
        try:
            await closer()
        except Exception:
            logger.debug("Close failed.", exc_info=True)

    state.fallback.close()

# src/secbrain/core/state.py

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .identity import IdentityContext
from .ports import CompletionPrompt, CredentialService, RemoteStore

if TYPE_CHECKING:
    from ..auth.session import AuthSession
    from ..projects.service import ProjectTaskTree
    from ..storage.counters import CounterService
    from ..storage.fallback_store import FallbackStore
    from ..storage.gateway import PersistenceGateway


@dataclass
class AppState:
    """
    Shared runtime state (wired once by cli.bootstrap).

    Everything lives here explicitly; no module reads the identity or the stores
    from globals.
    """

    settings: Any

    identity: IdentityContext
    remote: RemoteStore
    fallback: FallbackStore
    gateway: PersistenceGateway
    counters: CounterService
    credentials: CredentialService
    auth: AuthSession
    projects: ProjectTaskTree

    # Set by the interactive connector; None means "complete without asking".
    completion_prompt: CompletionPrompt | None = None
    background_tasks: list[asyncio.Task[None]] = field(default_factory=list)

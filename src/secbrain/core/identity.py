# src/secbrain/core/identity.py

"""
IdentityContext: the one piece of shared mutable state every operation reads.

State machine:
  UNINITIALIZED -> ANONYMOUS -> AUTHENTICATED
  AUTHENTICATED -> ANONYMOUS   (sign-out)

On every transition each subscribed listener is scheduled once, in registration order.
The transition does not wait for listeners; it returns an IdentityTransition whose
settled() the caller may await to know that every listener finished reloading.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum

from .errors import IdentityTransitionError

logger = logging.getLogger(__name__)

class IdentityState(StrEnum):
    UNINITIALIZED = "uninitialized"
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"


_ALLOWED: dict[IdentityState, frozenset[IdentityState]] = {
    IdentityState.UNINITIALIZED: frozenset({IdentityState.ANONYMOUS}),
    IdentityState.ANONYMOUS: frozenset({IdentityState.AUTHENTICATED}),
    IdentityState.AUTHENTICATED: frozenset({IdentityState.ANONYMOUS}),
}


@dataclass(frozen=True, slots=True)
class IdentityChange:
    previous_state: IdentityState
    previous_owner_id: str | None
    state: IdentityState
    owner_id: str


IdentityListener = Callable[[IdentityChange], Awaitable[None]]


@dataclass(slots=True)
class IdentityTransition:
    """Handle on the listener tasks scheduled by one transition."""

    change: IdentityChange
    pending: list[asyncio.Future[None]] = field(default_factory=list)

    async def settled(self) -> list[BaseException]:
        """Wait for every listener; return the exceptions they raised (if any)."""
        if not self.pending:
            return []
        results = await asyncio.gather(*self.pending, return_exceptions=True)
        return [r for r in results if isinstance(r, BaseException)]


class IdentityContext:
    def __init__(self, *, anonymous_owner_id: str) -> None:
        """anonymous_owner_id is this installation's own id (see FallbackStore.anonymous_owner_id)."""
        if not anonymous_owner_id or not anonymous_owner_id.strip():
            raise ValueError("anonymous_owner_id is required")
        self._anonymous_owner_id = anonymous_owner_id.strip()
        self._state = IdentityState.UNINITIALIZED
        self._owner_id: str | None = None
        self._listeners: list[IdentityListener] = []

    # ---- read side ----

    @property
    def state(self) -> IdentityState:
        return self._state

    @property
    def owner_id(self) -> str | None:
        return self._owner_id

    @property
    def anonymous_owner_id(self) -> str:
        return self._anonymous_owner_id

    @property
    def is_authenticated(self) -> bool:
        return self._state == IdentityState.AUTHENTICATED

    def require_owner_id(self) -> str:
        if self._owner_id is None:
            raise IdentityTransitionError("No identity yet: call enter_anonymous() first")
        return self._owner_id

    # ---- observers ----

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """Register a listener; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return _unsubscribe

    # ---- transitions ----

    async def enter_anonymous(self) -> IdentityTransition:
        return self._transition(IdentityState.ANONYMOUS, self._anonymous_owner_id)

    async def authenticate(self, owner_id: str) -> IdentityTransition:
        owner_id = (owner_id or "").strip()
        if not owner_id:
            raise IdentityTransitionError("Authenticated owner id is required")
        if owner_id == self._anonymous_owner_id:
            raise IdentityTransitionError("Authenticated owner id must differ from the anonymous owner id")
        return self._transition(IdentityState.AUTHENTICATED, owner_id)

    def _transition(self, new_state: IdentityState, owner_id: str) -> IdentityTransition:
        if new_state not in _ALLOWED[self._state]:
            raise IdentityTransitionError(f"Illegal identity transition {self._state} -> {new_state}")

        change = IdentityChange(
            previous_state=self._state,
            previous_owner_id=self._owner_id,
            state=new_state,
            owner_id=owner_id,
        )
        self._state = new_state
        self._owner_id = owner_id
        logger.info("Identity %s -> %s (owner=%s)", change.previous_state, new_state, owner_id)

        transition = IdentityTransition(change=change)
        for listener in list(self._listeners):
            task = asyncio.ensure_future(listener(change))
            task.add_done_callback(_log_listener_failure)
            transition.pending.append(task)
        return transition


def _log_listener_failure(task: asyncio.Future[None]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Identity listener failed", exc_info=exc)

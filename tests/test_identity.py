# tests/test_identity.py

from __future__ import annotations

import asyncio

import pytest

from secbrain.core.errors import IdentityTransitionError
from secbrain.core.identity import IdentityChange, IdentityContext, IdentityState


def test_initial_state_has_no_owner(identity: IdentityContext) -> None:
    assert identity.state == IdentityState.UNINITIALIZED
    assert identity.owner_id is None
    assert not identity.is_authenticated
    with pytest.raises(IdentityTransitionError):
        identity.require_owner_id()


@pytest.mark.asyncio
async def test_full_lifecycle(identity: IdentityContext) -> None:
    await identity.enter_anonymous()
    assert identity.state == IdentityState.ANONYMOUS
    assert identity.require_owner_id() == "anonymous"

    await identity.authenticate("uid-1")
    assert identity.is_authenticated
    assert identity.owner_id == "uid-1"

    await identity.enter_anonymous()
    assert identity.state == IdentityState.ANONYMOUS
    assert identity.owner_id == "anonymous"


@pytest.mark.asyncio
async def test_illegal_transitions_are_rejected(identity: IdentityContext) -> None:
    with pytest.raises(IdentityTransitionError):
        await identity.authenticate("uid-1")

    await identity.enter_anonymous()
    with pytest.raises(IdentityTransitionError):
        await identity.enter_anonymous()

    await identity.authenticate("uid-1")
    with pytest.raises(IdentityTransitionError):
        await identity.authenticate("uid-2")
    assert identity.owner_id == "uid-1"


@pytest.mark.asyncio
@pytest.mark.parametrize("bad", ["", "   ", "anonymous"])
async def test_authenticate_rejects_empty_or_anonymous_owner(identity: IdentityContext, bad: str) -> None:
    await identity.enter_anonymous()
    with pytest.raises(IdentityTransitionError):
        await identity.authenticate(bad)
    assert identity.state == IdentityState.ANONYMOUS


@pytest.mark.asyncio
async def test_listeners_run_once_per_transition_in_order(identity: IdentityContext) -> None:
    seen: list[tuple[str, IdentityChange]] = []

    async def first(change: IdentityChange) -> None:
        seen.append(("first", change))

    async def second(change: IdentityChange) -> None:
        seen.append(("second", change))

    identity.subscribe(first)
    identity.subscribe(second)

    transition = await identity.enter_anonymous()
    assert await transition.settled() == []

    assert [name for name, _ in seen] == ["first", "second"]
    change = seen[0][1]
    assert change.previous_state == IdentityState.UNINITIALIZED
    assert change.previous_owner_id is None
    assert change.owner_id == "anonymous"


@pytest.mark.asyncio
async def test_settled_reports_listener_failures(identity: IdentityContext) -> None:
    done = asyncio.Event()

    async def broken(change: IdentityChange) -> None:
        raise RuntimeError("reload failed")

    async def fine(change: IdentityChange) -> None:
        done.set()

    identity.subscribe(broken)
    identity.subscribe(fine)

    transition = await identity.enter_anonymous()
    errors = await transition.settled()

    assert len(errors) == 1
    assert isinstance(errors[0], RuntimeError)
    assert done.is_set()
    # The transition itself still happened.
    assert identity.owner_id == "anonymous"


@pytest.mark.asyncio
async def test_unsubscribe_stops_notifications(identity: IdentityContext) -> None:
    calls: list[str] = []

    async def listener(change: IdentityChange) -> None:
        calls.append(change.owner_id)

    unsubscribe = identity.subscribe(listener)
    await (await identity.enter_anonymous()).settled()
    unsubscribe()
    unsubscribe()
    await (await identity.authenticate("uid-1")).settled()

    assert calls == ["anonymous"]


def test_anonymous_owner_id_is_required() -> None:
    with pytest.raises(ValueError):
        IdentityContext(anonymous_owner_id=" ")

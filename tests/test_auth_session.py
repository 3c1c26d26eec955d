# tests/test_auth_session.py

from __future__ import annotations

import pytest

from secbrain.auth.credentials import OfflineCredentialService
from secbrain.auth.session import AuthSession
from secbrain.core.errors import AuthError, IdentityTransitionError, ValidationError
from secbrain.core.identity import IdentityContext, IdentityState
from secbrain.projects.service import ProjectTaskTree
from secbrain.storage.fallback_store import FallbackStore
from secbrain.storage.gateway import PersistenceGateway
from secbrain.storage.migration import FailedRecord

from .fakes import FakeCredentialService


@pytest.fixture()
def tokens() -> list[str | None]:
    return []


@pytest.fixture()
def session(identity, gateway, tokens) -> AuthSession:
    credentials = FakeCredentialService({"me@example.com": ("secret", "uid-1")})
    return AuthSession(identity, gateway, credentials, on_token=tokens.append)


@pytest.mark.asyncio
async def test_start_enters_anonymous_once(session, identity) -> None:
    assert await session.start() is not None
    assert identity.state == IdentityState.ANONYMOUS
    assert await session.start() is None


@pytest.mark.asyncio
async def test_sign_in_migrates_before_modules_reload(session, identity, gateway, counters, clock, tokens) -> None:
    tree = ProjectTaskTree(gateway, counters, clock=clock)
    tree.attach()
    await (await session.start()).settled()
    await tree.add_project("Draft")

    result = await session.sign_in_with_password("me@example.com", "secret")
    assert await result.transition.settled() == []

    assert result.migration.ok
    assert identity.owner_id == "uid-1"
    assert session.principal.uid == "uid-1"
    assert tokens == ["token-uid-1"]
    # The reload triggered by the switch already sees the re-owned project.
    assert [p.name for p in tree.projects] == ["Draft"]
    assert tree.loaded_owner_id == "uid-1"


@pytest.mark.asyncio
async def test_rejected_credentials_change_nothing(session, identity, gateway, remote) -> None:
    await session.start()
    await gateway.put_record("habits", "h1", {"name": "Walk"})
    remote.calls.clear()

    with pytest.raises(AuthError) as ei:
        await session.sign_in_with_password("me@example.com", "wrong")
    assert ei.value.code == "auth/wrong-password"

    assert identity.state == IdentityState.ANONYMOUS
    assert remote.writes() == []
    assert remote.doc("habits", "h1")["ownerId"] == "anonymous"


@pytest.mark.asyncio
async def test_invalid_input_is_a_validation_error(identity, gateway) -> None:
    session = AuthSession(identity, gateway, OfflineCredentialService())
    with pytest.raises(ValidationError):
        await session.sign_in_with_password("nobody", "x")
    assert not identity.is_authenticated


@pytest.mark.asyncio
async def test_partial_migration_still_signs_in_and_can_be_retried(session, identity, gateway, remote) -> None:
    await session.start()
    await gateway.put_record("goals", "g1", {"name": "Run"})
    await gateway.put_record("goals", "g2", {"name": "Swim"})
    remote.fail_ids = {"g2"}

    result = await session.sign_in_with_password("me@example.com", "secret")

    assert identity.is_authenticated
    assert [f.record_id for f in result.migration.failed] == ["g2"]
    assert session.last_migration is result.migration

    remote.fail_ids = set()
    retry = await session.retry_migration(result.migration.failed)
    assert retry.ok
    assert remote.doc("goals", "g2")["ownerId"] == "uid-1"


@pytest.mark.asyncio
async def test_sign_out_returns_to_anonymous(session, identity, tokens) -> None:
    await session.start()
    await session.sign_in_with_password("me@example.com", "secret")

    await session.sign_out()

    assert identity.state == IdentityState.ANONYMOUS
    assert identity.owner_id == "anonymous"
    assert session.principal is None
    assert tokens == ["token-uid-1", None]


@pytest.mark.asyncio
async def test_state_guards(session) -> None:
    await session.start()
    with pytest.raises(IdentityTransitionError):
        await session.sign_out()
    with pytest.raises(IdentityTransitionError):
        await session.retry_migration([FailedRecord("goals", "g1")])

    await session.sign_in_with_password("me@example.com", "secret")
    with pytest.raises(IdentityTransitionError):
        await session.sign_in_with_password("me@example.com", "secret")


@pytest.mark.asyncio
async def test_two_devices_never_share_anonymous_records(tmp_path, remote, clock) -> None:
    def device(name: str) -> tuple[IdentityContext, PersistenceGateway, AuthSession]:
        fallback = FallbackStore(tmp_path / f"{name}.sqlite3")
        identity = IdentityContext(anonymous_owner_id=fallback.anonymous_owner_id())
        gateway = PersistenceGateway(remote, fallback, identity, clock=clock)
        credentials = FakeCredentialService({"b@example.com": ("secret", "uid-b")})
        return identity, gateway, AuthSession(identity, gateway, credentials)

    identity_a, gateway_a, session_a = device("a")
    identity_b, gateway_b, session_b = device("b")
    assert identity_a.anonymous_owner_id != identity_b.anonymous_owner_id
    await session_a.start()
    await session_b.start()

    await gateway_a.put_record("projects", "pa", {"name": "From A"})
    assert await gateway_b.list_records("projects") == []

    result = await session_b.sign_in_with_password("b@example.com", "secret")
    assert result.migration.migrated == 0

    assert remote.doc("projects", "pa")["ownerId"] == identity_a.anonymous_owner_id
    assert [d["id"] for d in await gateway_a.list_records("projects")] == ["pa"]

# tests/test_migration.py

from __future__ import annotations

import pytest

from secbrain.core.errors import MigrationPartialFailure
from secbrain.storage.migration import ALL_RECORDS, FailedRecord, migrate_ownership


async def _seed_anonymous(gateway, identity) -> None:
    await identity.enter_anonymous()
    for pid in ("p1", "p2", "p3"):
        await gateway.put_record("projects", pid, {"name": pid.upper()})
    await gateway.put_record("habits", "h1", {"name": "Stretch"})


@pytest.mark.asyncio
async def test_all_anonymous_records_move_to_new_owner(gateway, identity, remote) -> None:
    await _seed_anonymous(gateway, identity)
    created = remote.doc("projects", "p1")["createdAt"]

    report = await migrate_ownership(gateway, from_owner_id="anonymous", to_owner_id="uid-1")

    assert report.ok
    assert report.migrated == 4
    assert await gateway.list_records("projects", owner_id="anonymous") == []
    mine = await gateway.list_records("projects", owner_id="uid-1")
    assert sorted(d["id"] for d in mine) == ["p1", "p2", "p3"]
    assert remote.doc("habits", "h1")["ownerId"] == "uid-1"
    # Same record, new owner: creation time is kept.
    assert remote.doc("projects", "p1")["createdAt"] == created


@pytest.mark.asyncio
async def test_counters_merge_by_max_and_anonymous_copy_is_removed(gateway, identity, remote) -> None:
    await identity.enter_anonymous()
    await gateway.put_record("projects_counters", "anonymous", {"nextProjectId": 4, "nextTaskId": 3})
    remote.seed(
        "projects_counters",
        {"id": "uid-1", "ownerId": "uid-1", "nextProjectId": 2, "nextTaskId": 9},
    )

    report = await migrate_ownership(gateway, from_owner_id="anonymous", to_owner_id="uid-1")

    assert report.ok
    merged = remote.doc("projects_counters", "uid-1")
    assert merged["nextProjectId"] == 4
    assert merged["nextTaskId"] == 9
    assert merged["ownerId"] == "uid-1"
    assert remote.doc("projects_counters", "anonymous") is None


@pytest.mark.asyncio
async def test_partial_failure_is_reported_and_retry_finishes(gateway, identity, remote) -> None:
    await _seed_anonymous(gateway, identity)
    remote.fail_ids = {"p2"}

    report = await migrate_ownership(gateway, from_owner_id="anonymous", to_owner_id="uid-1")

    assert report.migrated == 3
    assert [(f.collection, f.record_id) for f in report.failed] == [("projects", "p2")]
    with pytest.raises(MigrationPartialFailure) as ei:
        report.raise_for_failures()
    assert ei.value.failed == report.failed

    # Re-owned locally and queued even though the remote write failed.
    assert gateway.fallback.get("projects:p2")["ownerId"] == "uid-1"
    assert gateway.pending_count() == 1
    assert remote.doc("projects", "p2")["ownerId"] == "anonymous"

    remote.fail_ids = set()
    retry = await migrate_ownership(
        gateway,
        from_owner_id="anonymous",
        to_owner_id="uid-1",
        only=report.failed,
    )
    assert retry.ok
    assert retry.migrated == 1
    assert remote.doc("projects", "p2")["ownerId"] == "uid-1"
    assert gateway.pending_count() == 0


@pytest.mark.asyncio
async def test_retry_of_whole_collection_relists_it(gateway, identity, remote) -> None:
    await _seed_anonymous(gateway, identity)

    report = await migrate_ownership(
        gateway,
        from_owner_id="anonymous",
        to_owner_id="uid-1",
        only=[FailedRecord("habits", ALL_RECORDS)],
    )

    assert report.ok
    assert report.migrated == 1
    assert remote.doc("habits", "h1")["ownerId"] == "uid-1"
    assert remote.doc("projects", "p1")["ownerId"] == "anonymous"


@pytest.mark.asyncio
async def test_retry_skips_records_owned_by_someone_else(gateway, identity, remote) -> None:
    await identity.enter_anonymous()
    remote.seed("goals", {"id": "g1", "ownerId": "intruder"})

    report = await migrate_ownership(
        gateway,
        from_owner_id="anonymous",
        to_owner_id="uid-1",
        only=[FailedRecord("goals", "g1"), FailedRecord("goals", "gone")],
    )

    assert [(f.record_id, f.reason) for f in report.failed] == [("g1", "owned by someone else")]
    assert remote.doc("goals", "g1")["ownerId"] == "intruder"


@pytest.mark.asyncio
async def test_same_owner_is_a_no_op(gateway, identity, remote) -> None:
    await _seed_anonymous(gateway, identity)
    remote.calls.clear()

    report = await migrate_ownership(gateway, from_owner_id="anonymous", to_owner_id="anonymous")

    assert report.ok and report.migrated == 0
    assert remote.calls == []

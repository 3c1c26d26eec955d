# src/secbrain/storage/migration.py

"""
Ownership migration: re-stamp everything created while anonymous with the id of the
user who just signed in.

Not transactional. Every record is migrated on its own; failures are collected and
reported so the caller can retry exactly those records later.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from ..core.errors import MigrationPartialFailure
from ..core.ports import Document
from ..core.records import OWNER_SCOPED_COLLECTIONS, is_counter_collection
from .codec import is_owned_by
from .counters import merge_counter_values
from .gateway import PersistenceGateway

logger = logging.getLogger(__name__)

# record_id of a failure that hit a whole collection (listing it failed)
ALL_RECORDS = "*"


@dataclass(frozen=True, slots=True)
class FailedRecord:
    collection: str
    record_id: str
    reason: str = ""


@dataclass(slots=True)
class MigrationReport:
    from_owner_id: str
    to_owner_id: str
    migrated: int = 0
    failed: list[FailedRecord] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def raise_for_failures(self) -> None:
        if self.failed:
            raise MigrationPartialFailure(self.failed)


async def _migrate_counter(
    gateway: PersistenceGateway,
    collection: str,
    doc: Document,
    *,
    to_owner_id: str,
) -> bool:
    """Merge an anonymous counter document into the new owner's one (max per field)."""
    existing = await gateway.get_record(collection, to_owner_id)
    merged: Document = dict(existing or {})
    merged.update(merge_counter_values(existing, doc))

    ok = await gateway.put_record(collection, to_owner_id, merged, owner_id=to_owner_id)
    if ok:
        await gateway.delete_record(collection, str(doc["id"]))
    return ok


async def _migrate_one(
    gateway: PersistenceGateway,
    collection: str,
    doc: Document,
    *,
    to_owner_id: str,
) -> bool:
    if is_counter_collection(collection):
        return await _migrate_counter(gateway, collection, doc, to_owner_id=to_owner_id)
    return await gateway.put_record(collection, str(doc["id"]), doc, owner_id=to_owner_id)


async def migrate_ownership(
    gateway: PersistenceGateway,
    *,
    from_owner_id: str,
    to_owner_id: str,
    collections: Iterable[str] = OWNER_SCOPED_COLLECTIONS,
    only: Iterable[FailedRecord] | None = None,
) -> MigrationReport:
    """
    Re-own every record of from_owner_id (or only the listed ones) to to_owner_id.

    A record whose remote write did not go through is still re-owned in the fallback
    store and queued for sync, but is reported as failed.
    """
    report = MigrationReport(from_owner_id=from_owner_id, to_owner_id=to_owner_id)
    if from_owner_id == to_owner_id:
        return report

    work: list[tuple[str, Document | None, str]] = []
    if only is not None:
        relist: list[str] = []
        for item in only:
            if item.record_id == ALL_RECORDS:
                relist.append(item.collection)
            else:
                work.append((item.collection, None, item.record_id))
        collections = relist

    for collection in collections:
        try:
            docs = await gateway.list_records(collection, owner_id=from_owner_id)
        except Exception as e:
            logger.exception("Migration: listing %s failed", collection)
            report.failed.append(FailedRecord(collection, ALL_RECORDS, e.__class__.__name__))
            continue
        for doc in docs:
            work.append((collection, doc, str(doc.get("id"))))

    for collection, doc, record_id in work:
        try:
            if doc is None:
                doc = await gateway.get_record(collection, record_id)
                if doc is None:
                    logger.info("Migration retry: %s:%s no longer exists", collection, record_id)
                    continue
                if not (is_owned_by(doc, from_owner_id) or is_owned_by(doc, to_owner_id)):
                    report.failed.append(FailedRecord(collection, record_id, "owned by someone else"))
                    continue

            if await _migrate_one(gateway, collection, doc, to_owner_id=to_owner_id):
                report.migrated += 1
            else:
                report.failed.append(FailedRecord(collection, record_id, "remote write did not go through"))
        except Exception as e:
            logger.exception("Migration of %s:%s failed", collection, record_id)
            report.failed.append(FailedRecord(collection, record_id, e.__class__.__name__))

    if report.failed:
        logger.warning(
            "Migration %s -> %s: %d migrated, %d failed",
            from_owner_id,
            to_owner_id,
            report.migrated,
            len(report.failed),
        )
    else:
        logger.info("Migration %s -> %s: %d record(s) migrated", from_owner_id, to_owner_id, report.migrated)
    return report

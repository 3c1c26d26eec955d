# src/secbrain/storage/counters.py

from __future__ import annotations

import asyncio
import logging
from enum import StrEnum

from ..core.ports import Document
from ..core.records import CounterRecord, counters_collection, is_counter_field
from .gateway import PersistenceGateway

logger = logging.getLogger(__name__)


class IdPolicy(StrEnum):
    """
    Where project document ids come from.

    REMOTE: ids are issued by the remote store (or synthesized locally while offline).
    COUNTER: ids are str(nextProjectId) from the owner's counter document. Only safe
    while a single device writes for the owner; two offline devices may issue the same id.
    """

    REMOTE = "remote"
    COUNTER = "counter"


def merge_counter_values(*docs: Document | None) -> dict[str, int]:
    """Field-wise max of the `next*Id` values of several counter documents."""
    out: dict[str, int] = {}
    for doc in docs:
        if not doc:
            continue
        for key, value in CounterRecord.from_doc(doc).values.items():
            out[key] = max(out.get(key, value), value)
    return out


class CounterService:
    """
    Monotonic per-owner id counters.

    Each entity family keeps one singleton document in `{family}_counters` whose id
    is the owner id, e.g. projects_counters/<uid> = {"nextProjectId": 4, "nextTaskId": 17}.
    """

    def __init__(self, gateway: PersistenceGateway) -> None:
        self._gateway = gateway
        self._lock = asyncio.Lock()

    async def peek(self, family: str) -> dict[str, int]:
        owner = self._gateway.identity.require_owner_id()
        doc = await self._gateway.get_record(counters_collection(family), owner)
        return CounterRecord.from_doc(doc).values if doc else {}

    async def next_id(self, family: str, field: str, *, floor: int = 1) -> int:
        """
        Issue the next id of `field` and persist the incremented counter.

        `floor` repairs a counter that fell behind the ids already in use
        (e.g. records created on another device).
        """
        if not is_counter_field(field):
            raise ValueError(f"Not a counter field: {field!r}")

        collection = counters_collection(family)
        async with self._lock:
            owner = self._gateway.identity.require_owner_id()
            doc = await self._gateway.get_record(collection, owner)
            record = CounterRecord.from_doc(doc) if doc else CounterRecord(id=owner)

            current = record.values.get(field, 1)
            value = max(current, int(floor), 1)
            if value != current:
                logger.debug("Counter %s.%s repaired %s -> %s", collection, field, current, value)

            record.values[field] = value + 1
            await self._gateway.put_record(collection, owner, record.to_doc(), owner_id=owner)
            return value

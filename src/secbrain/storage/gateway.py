# src/secbrain/storage/gateway.py

"""
PersistenceGateway: one uniform async API over RemoteStore + FallbackStore.

Write path:
- stamp the record (owner id, createdAt, updatedAt),
- write it to the fallback store (unconditionally, synchronously, in issue order),
- write it to the remote store; on failure queue it in the fallback outbox.

Read path:
- ask the remote store; on any failure serve the fallback copy,
- on success reconcile the fallback copy, unless the key has a pending local write
  (then the local copy is newer and wins).

Remote failures never propagate: they flip the connection status to "offline" and the
app keeps working from the fallback store. A refused request (4xx) leaves the status
alone; the write stays local and is never retried. Only programming errors raise
(malformed collection name, no identity yet).
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, TypeVar

from ..core.errors import RemoteRejected
from ..core.identity import IdentityContext
from ..core.ports import Document, RemoteStore
from ..core.records import CREATED_FIELD
from .codec import (
    collection_prefix,
    document_key,
    is_owned_by,
    new_local_id,
    require_collection,
    sort_records,
    stamp_fields,
    stamp_record,
)
from .fallback_store import FallbackStore, PendingOp

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ConnectionStatus(StrEnum):
    UNKNOWN = "unknown"
    CONNECTED = "connected"
    OFFLINE = "offline"


class RemoteOutcome(StrEnum):
    OK = "ok"
    UNAVAILABLE = "unavailable"  # transport failure or 5xx: retry later
    REJECTED = "rejected"  # the server refused this request: retrying won't help


ConnectionListener = Callable[[ConnectionStatus], None]


@dataclass(frozen=True, slots=True)
class RemoteCall:
    outcome: RemoteOutcome
    value: Any = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.outcome == RemoteOutcome.OK


@dataclass(frozen=True, slots=True)
class SyncReport:
    synced: int
    remaining: int
    skipped: bool = False
    rejected: int = 0


class PersistenceGateway:
    def __init__(
        self,
        remote: RemoteStore,
        fallback: FallbackStore,
        identity: IdentityContext,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._remote_store = remote
        self._fallback = fallback
        self._identity = identity
        self._clock = clock
        self._status = ConnectionStatus.UNKNOWN
        self._connection_listeners: list[ConnectionListener] = []
        self._syncing = False
        self._last_sync_at: float | None = None

    @property
    def identity(self) -> IdentityContext:
        return self._identity

    @property
    def fallback(self) -> FallbackStore:
        return self._fallback

    @property
    def last_sync_at(self) -> float | None:
        """When the outbox was last fully replayed, or None if never."""
        return self._last_sync_at

    # ---- connection status ----

    @property
    def connection_status(self) -> ConnectionStatus:
        return self._status

    def is_connected(self) -> bool:
        return self._status == ConnectionStatus.CONNECTED

    def on_connection_change(self, listener: ConnectionListener) -> Callable[[], None]:
        """Register a listener; it is called immediately with the current status."""
        self._connection_listeners.append(listener)
        self._call_listener(listener, self._status)

        def _unsubscribe() -> None:
            try:
                self._connection_listeners.remove(listener)
            except ValueError:
                pass

        return _unsubscribe

    def _call_listener(self, listener: ConnectionListener, status: ConnectionStatus) -> None:
        try:
            listener(status)
        except Exception:
            logger.exception("Connection listener failed")

    def _set_status(self, status: ConnectionStatus) -> None:
        if status == self._status:
            return
        logger.info("Remote store %s -> %s", self._status, status)
        self._status = status
        for listener in list(self._connection_listeners):
            self._call_listener(listener, status)

    async def _call_remote(self, op: str, call: Callable[[], Awaitable[T]]) -> RemoteCall:
        """
        Run one remote call. A refusal (RemoteRejected) still proves the server is
        reachable; any other exception means "remote unavailable".
        """
        try:
            result = await call()
        except RemoteRejected as e:
            logger.warning("Remote %s rejected: %s", op, e)
            self._set_status(ConnectionStatus.CONNECTED)
            return RemoteCall(RemoteOutcome.REJECTED, error=e)
        except Exception as e:
            logger.warning("Remote %s failed (%s); using fallback store", op, e.__class__.__name__)
            logger.debug("Remote %s failure details", op, exc_info=True)
            self._set_status(ConnectionStatus.OFFLINE)
            return RemoteCall(RemoteOutcome.UNAVAILABLE, error=e)
        self._set_status(ConnectionStatus.CONNECTED)
        return RemoteCall(RemoteOutcome.OK, value=result)

    def _settle_write(
        self,
        call: RemoteCall,
        *,
        key: str,
        collection: str,
        doc_id: str,
        op: PendingOp,
        payload: Document | None = None,
        queued: int | None = None,
    ) -> bool:
        """
        Settle the outbox after a direct write. OK clears the intent queued before it
        (a newer one queued meanwhile survives); UNAVAILABLE queues this write;
        REJECTED keeps it local only.
        """
        if call.ok:
            if queued is not None:
                self._fallback.clear_pending(key, seq=queued)
        elif call.outcome == RemoteOutcome.UNAVAILABLE:
            self._fallback.enqueue(key=key, collection=collection, doc_id=doc_id, op=op, payload=payload)
        else:
            logger.warning("Remote store refused %s %s; the change stays local and is not retried", op, key)
        return call.ok

    # ---- helpers ----

    def _local_doc(self, key: str) -> Document | None:
        value = self._fallback.get(key)
        return value if isinstance(value, dict) else None

    @staticmethod
    def _require_id(record_id: Any) -> str:
        rid = "" if record_id is None else str(record_id).strip()
        if not rid:
            raise ValueError("record id is required")
        return rid

    # ---- public API ----

    async def get_record(self, collection: str, record_id: str) -> Document | None:
        rid = self._require_id(record_id)
        key = document_key(collection, rid)

        call = await self._call_remote("get", lambda: self._remote_store.get(collection, rid))
        local = self._local_doc(key)

        if not call.ok:
            return local
        doc = call.value

        if self._fallback.has_pending(key):
            # Local write not pushed yet: the remote copy is older.
            return local

        if doc is None:
            if local is not None:
                self._fallback.delete(key)
                logger.debug("Dropped stale fallback copy %s (not found remotely)", key)
            return None

        doc = dict(doc)
        doc["id"] = rid
        self._fallback.set(key, doc)
        return doc

    async def put_record(
        self,
        collection: str,
        record_id: str,
        data: Document,
        *,
        owner_id: str | None = None,
    ) -> bool:
        """
        Write a full document under a fixed id.

        Returns True if the remote write succeeded. The fallback copy is written either way.
        """
        rid = self._require_id(record_id)
        key = document_key(collection, rid)
        owner = owner_id or self._identity.require_owner_id()

        stamped = stamp_record(data, doc_id=rid, owner_id=owner, now=self._clock(), previous=self._local_doc(key))
        self._fallback.set(key, stamped)
        queued = self._fallback.pending_seq(key)

        call = await self._call_remote("set", lambda: self._remote_store.set(collection, rid, stamped))
        ok = self._settle_write(
            call, key=key, collection=collection, doc_id=rid, op=PendingOp.SET, payload=stamped, queued=queued
        )
        logger.debug("put %s remote=%s", key, call.outcome)
        return ok

    async def add_record(self, collection: str, data: Document) -> str:
        """
        Create a document and return its id.

        The remote store generates the id when reachable; otherwise a local id is
        synthesized and the document is queued for sync under that id.
        """
        require_collection(collection)
        owner = self._identity.require_owner_id()

        now = self._clock()
        body = stamp_record({k: v for k, v in data.items() if k != "id"}, doc_id="", owner_id=owner, now=now)
        body.pop("id", None)

        call = await self._call_remote("add", lambda: self._remote_store.add(collection, body))
        if call.ok and call.value:
            rid = str(call.value)
            self._fallback.set(document_key(collection, rid), {**body, "id": rid})
            logger.debug("add %s:%s (remote id)", collection, rid)
            return rid

        rid = new_local_id()
        key = document_key(collection, rid)
        doc = {**body, "id": rid}
        self._fallback.set(key, doc)
        if call.outcome == RemoteOutcome.REJECTED:
            logger.warning("Remote store refused add to %s; kept locally only as id=%s", collection, rid)
        else:
            self._fallback.enqueue(key=key, collection=collection, doc_id=rid, op=PendingOp.SET, payload=doc)
            logger.info("add %s while offline; synthesized id=%s", collection, rid)
        return rid

    async def update_record(self, collection: str, record_id: str, fields: Document) -> bool:
        """Merge fields into an existing document (id, ownerId and createdAt are never patched)."""
        rid = self._require_id(record_id)
        key = document_key(collection, rid)

        now = self._clock()
        previous = self._local_doc(key)
        patch = stamp_fields(fields, now=now, previous=previous)
        if previous is not None:
            merged = {**previous, **patch}
        else:
            merged = stamp_record(patch, doc_id=rid, owner_id=self._identity.require_owner_id(), now=now)
        self._fallback.set(key, merged)
        queued = self._fallback.pending_seq(key)

        if queued is None:
            call = await self._call_remote("update", lambda: self._remote_store.update(collection, rid, patch))
        else:
            # The remote copy lags behind a queued write; a patch alone would lose it.
            call = await self._call_remote("set", lambda: self._remote_store.set(collection, rid, merged))
        return self._settle_write(
            call, key=key, collection=collection, doc_id=rid, op=PendingOp.SET, payload=merged, queued=queued
        )

    async def list_records(self, collection: str, *, owner_id: str | None = None) -> list[Document]:
        """
        All documents of one owner (the current identity unless owner_id is given),
        newest first. Sorting and owner filtering always happen client-side.
        """
        prefix = collection_prefix(collection)
        owner = owner_id or self._identity.require_owner_id()

        call = await self._call_remote("query", lambda: self._remote_store.query_by_owner(collection, owner))

        if not call.ok:
            local = [v for _, v in self._fallback.items(prefix) if isinstance(v, dict) and is_owned_by(v, owner)]
            return sort_records(local)

        pending = self._fallback.pending_keys(prefix)
        by_key: dict[str, Document] = {}

        for raw in call.value or []:
            if not isinstance(raw, dict) or raw.get("id") in (None, ""):
                continue
            doc = dict(raw)
            doc["id"] = str(doc["id"])
            if not is_owned_by(doc, owner):
                continue
            key = prefix + doc["id"]
            if key in pending:
                continue
            self._fallback.set(key, doc)
            by_key[key] = doc

        for key, op in pending.items():
            if op == PendingOp.DELETE:
                continue
            local = self._local_doc(key)
            if local is not None and is_owned_by(local, owner):
                by_key[key] = local

        # Drop local copies the remote no longer has (deleted elsewhere).
        stale = 0
        for key, value in self._fallback.items(prefix):
            if key in by_key or key in pending:
                continue
            if isinstance(value, dict) and is_owned_by(value, owner):
                self._fallback.delete(key)
                stale += 1
        if stale:
            logger.debug("Dropped %d stale fallback copies in %s", stale, collection)

        return sort_records(list(by_key.values()))

    async def delete_record(self, collection: str, record_id: str) -> bool:
        """Delete from both stores. Deleting an absent id is a no-op success."""
        rid = self._require_id(record_id)
        key = document_key(collection, rid)

        self._fallback.delete(key)
        queued = self._fallback.pending_seq(key)

        call = await self._call_remote("delete", lambda: self._remote_store.delete(collection, rid))
        return self._settle_write(call, key=key, collection=collection, doc_id=rid, op=PendingOp.DELETE, queued=queued)

    async def save_or_create(self, collection: str, record: Document) -> str:
        """
        Persist a record whatever its state:
        - no id                -> add_record (storage-generated id)
        - id, exists           -> update (createdAt preserved)
        - id, does not exist   -> create under that fixed id (counter-issued ids)
        """
        raw_id = record.get("id")
        if raw_id is None or str(raw_id).strip() == "":
            return await self.add_record(collection, record)

        rid = str(raw_id).strip()
        existing = await self.get_record(collection, rid)
        data = dict(record)
        if existing is not None:
            if data.get(CREATED_FIELD) is None and existing.get(CREATED_FIELD) is not None:
                data[CREATED_FIELD] = existing[CREATED_FIELD]
            logger.debug("save_or_create %s:%s -> update", collection, rid)
        else:
            logger.debug("save_or_create %s:%s -> create with fixed id", collection, rid)
        await self.put_record(collection, rid, data)
        return rid

    # ---- offline queue ----

    def pending_count(self) -> int:
        return self._fallback.pending_count()

    async def sync_pending(self, *, limit: int | None = None) -> SyncReport:
        """
        Replay queued writes to the remote store in queue order.

        Stops at the first unavailable call (the remote is still unreachable).
        Entries the server refuses are set aside so the rest can proceed.
        """
        if self._syncing:
            logger.debug("Sync already in progress")
            return SyncReport(synced=0, remaining=self._fallback.pending_count(), skipped=True)

        self._syncing = True
        synced = 0
        rejected = 0
        interrupted = False
        try:
            for entry in self._fallback.pending(limit=limit):
                if entry.op == PendingOp.SET:
                    payload = entry.payload
                    if not isinstance(payload, dict):
                        logger.warning("Dropping pending set without payload key=%s", entry.key)
                        self._fallback.clear_pending(entry.key, seq=entry.seq)
                        continue
                    call = await self._call_remote(
                        "sync set",
                        lambda e=entry, p=payload: self._remote_store.set(e.collection, e.doc_id, p),
                    )
                else:
                    call = await self._call_remote(
                        "sync delete",
                        lambda e=entry: self._remote_store.delete(e.collection, e.doc_id),
                    )

                if call.outcome == RemoteOutcome.UNAVAILABLE:
                    interrupted = True
                    break
                if call.outcome == RemoteOutcome.REJECTED:
                    # Later entries must not wait behind one the server will never accept.
                    self._fallback.set_aside(entry, reason=str(call.error))
                    rejected += 1
                    continue
                self._fallback.clear_pending(entry.key, seq=entry.seq)
                synced += 1
        finally:
            self._syncing = False

        if not interrupted:
            self._last_sync_at = self._clock()
        remaining = self._fallback.pending_count()
        if synced or rejected:
            logger.info("Synced %d pending write(s), set aside %d; %d remaining", synced, rejected, remaining)
        return SyncReport(synced=synced, remaining=remaining, rejected=rejected)

    def rejected_count(self) -> int:
        return self._fallback.rejected_count()

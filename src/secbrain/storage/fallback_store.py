# src/secbrain/storage/fallback_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
import uuid
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

ANONYMOUS_OWNER_PREFIX = "anonymous"
_ANONYMOUS_OWNER_META_KEY = "anonymous_owner_id"


class PendingOp(StrEnum):
    SET = "set"
    DELETE = "delete"


@dataclass(frozen=True, slots=True)
class PendingWrite:
    """A remote write that failed and waits for the next sync."""

    seq: int
    key: str
    collection: str
    doc_id: str
    op: PendingOp
    payload: dict[str, Any] | None
    queued_at: float


class FallbackStore:
    """
    On-device key/value store (SQLite), the durability floor when the remote store
    is unreachable.

    Keys are "{collection}:{documentId}", values are JSON documents.
    A second table keeps the outbox of remote writes still to be replayed; it holds at
    most one entry per key (the latest intent).

    All methods are synchronous and each opens its own SQLite connection.
    """

    def __init__(self, db_path: str | Path = "fallback.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count()
        except Exception:
            total = -1
        logger.info("FallbackStore ready db=%s total=%s", self._db_path, total)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    written_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS pending_writes (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    key TEXT NOT NULL UNIQUE,
                    collection TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    op TEXT NOT NULL,
                    payload TEXT,
                    queued_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS rejected_writes (
                    seq INTEGER PRIMARY KEY,
                    key TEXT NOT NULL,
                    collection TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    op TEXT NOT NULL,
                    payload TEXT,
                    reason TEXT NOT NULL,
                    rejected_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                    name TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _encode(value: Any) -> str:
        return json.dumps(value, ensure_ascii=False, sort_keys=True)

    @staticmethod
    def _decode(raw: str | None, *, key: str) -> Any:
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("FallbackStore: undecodable value for key=%s; ignoring", key)
            return None

    # ---- key/value API ----

    def get(self, key: str) -> Any | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
            return self._decode(row["value"], key=key) if row else None
        finally:
            conn.close()

    def set(self, key: str, value: Any) -> None:
        encoded = self._encode(value)
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO kv(key, value, written_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, written_at = excluded.written_at
                """,
                (key, encoded, time.time()),
            )
            conn.commit()
        finally:
            conn.close()

    def delete(self, key: str) -> bool:
        """Remove a key; returns True if it existed. Absent keys are a no-op."""
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()

    def items(self, prefix: str) -> list[tuple[str, Any]]:
        """All (key, value) pairs whose key starts with prefix."""
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT key, value FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            ).fetchall()
        finally:
            conn.close()

        out: list[tuple[str, Any]] = []
        for row in rows:
            value = self._decode(row["value"], key=row["key"])
            if value is not None:
                out.append((row["key"], value))
        return out

    def count(self, prefix: str = "") -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute(
                "SELECT COUNT(*) FROM kv WHERE substr(key, 1, ?) = ?",
                (len(prefix), prefix),
            ).fetchone()
            return int(n)
        finally:
            conn.close()

    # ---- outbox (pending remote writes) ----

    def enqueue(
        self,
        *,
        key: str,
        collection: str,
        doc_id: str,
        op: PendingOp,
        payload: dict[str, Any] | None = None,
    ) -> None:
        """Queue a remote write. A newer intent for the same key replaces the older one."""
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM pending_writes WHERE key = ?", (key,))
            conn.execute(
                """
                INSERT INTO pending_writes(key, collection, doc_id, op, payload, queued_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    key,
                    collection,
                    doc_id,
                    op.value,
                    None if payload is None else self._encode(payload),
                    time.time(),
                ),
            )
            conn.commit()
            logger.debug("Queued pending %s for %s", op.value, key)
        finally:
            conn.close()

    def pending(self, limit: int | None = None) -> list[PendingWrite]:
        """Pending writes in queue order (oldest first)."""
        sql = "SELECT * FROM pending_writes ORDER BY seq ASC"
        params: tuple[Any, ...] = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (int(limit),)

        conn = self._get_conn()
        try:
            rows = conn.execute(sql, params).fetchall()
        finally:
            conn.close()

        out: list[PendingWrite] = []
        for row in rows:
            try:
                op = PendingOp(row["op"])
            except ValueError:
                logger.warning("Dropping pending write with unknown op=%r key=%s", row["op"], row["key"])
                self.clear_pending(row["key"])
                continue
            out.append(
                PendingWrite(
                    seq=int(row["seq"]),
                    key=row["key"],
                    collection=row["collection"],
                    doc_id=row["doc_id"],
                    op=op,
                    payload=self._decode(row["payload"], key=row["key"]),
                    queued_at=float(row["queued_at"] or 0.0),
                )
            )
        return out

    def pending_seq(self, key: str) -> int | None:
        """Queue position of the pending write for key, or None."""
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT seq FROM pending_writes WHERE key = ?", (key,)).fetchone()
            return int(row["seq"]) if row else None
        finally:
            conn.close()

    def has_pending(self, key: str) -> bool:
        return self.pending_seq(key) is not None

    def pending_keys(self, prefix: str = "") -> dict[str, PendingOp]:
        """Map of key -> queued op for keys under prefix."""
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT key, op FROM pending_writes WHERE substr(key, 1, ?) = ?",
                (len(prefix), prefix),
            ).fetchall()
        finally:
            conn.close()
        out: dict[str, PendingOp] = {}
        for row in rows:
            with contextlib.suppress(ValueError):
                out[row["key"]] = PendingOp(row["op"])
        return out

    def clear_pending(self, key: str, *, seq: int | None = None) -> None:
        """
        Drop the queued write for key.

        With seq, only drop it if it is still that exact entry (a newer intent queued
        while the older one was being replayed must survive).
        """
        conn = self._get_conn()
        try:
            if seq is None:
                conn.execute("DELETE FROM pending_writes WHERE key = ?", (key,))
            else:
                conn.execute("DELETE FROM pending_writes WHERE key = ? AND seq = ?", (key, int(seq)))
            conn.commit()
        finally:
            conn.close()

    def pending_count(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM pending_writes").fetchone()
            return int(n)
        finally:
            conn.close()

    # ---- writes the remote store refused ----

    def set_aside(self, entry: PendingWrite, *, reason: str) -> None:
        """Move a queued write the remote store rejected out of the outbox."""
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT OR REPLACE INTO rejected_writes(seq, key, collection, doc_id, op, payload, reason, rejected_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.seq,
                    entry.key,
                    entry.collection,
                    entry.doc_id,
                    entry.op.value,
                    None if entry.payload is None else self._encode(entry.payload),
                    reason,
                    time.time(),
                ),
            )
            conn.execute("DELETE FROM pending_writes WHERE key = ? AND seq = ?", (entry.key, entry.seq))
            conn.commit()
        finally:
            conn.close()
        logger.warning("Set aside rejected %s for %s: %s", entry.op.value, entry.key, reason)

    def rejected_count(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM rejected_writes").fetchone()
            return int(n)
        finally:
            conn.close()

    # ---- installation metadata ----

    def anonymous_owner_id(self) -> str:
        """
        Owner id of this installation's anonymous user.

        Minted once ("anonymous-<hex>") and kept in the database, so it survives restarts
        and is never shared with another device.
        """
        minted = f"{ANONYMOUS_OWNER_PREFIX}-{uuid.uuid4().hex}"
        conn = self._get_conn()
        try:
            conn.execute(
                "INSERT OR IGNORE INTO meta(name, value) VALUES (?, ?)",
                (_ANONYMOUS_OWNER_META_KEY, minted),
            )
            conn.commit()
            row = conn.execute("SELECT value FROM meta WHERE name = ?", (_ANONYMOUS_OWNER_META_KEY,)).fetchone()
        finally:
            conn.close()
        owner_id = str(row["value"])
        if owner_id == minted:
            logger.info("Minted anonymous owner id for this installation")
        return owner_id

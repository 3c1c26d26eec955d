# src/secbrain/storage/codec.py

"""
Entity codec: pure helpers that stamp/validate record metadata before a document
leaves the process, plus the key and ordering conventions shared by both stores.
"""

from __future__ import annotations

import copy
import threading
import time
from typing import Any

from ..core.errors import InvalidCollectionError
from ..core.ports import Document
from ..core.records import CREATED_FIELD, OWNER_FIELD, UPDATED_FIELD, is_valid_collection

KEY_SEPARATOR = ":"
LOCAL_ID_PREFIX = "local-"

_local_id_lock = threading.Lock()
_last_local_ns = 0


def require_collection(collection: Any) -> str:
    if not is_valid_collection(collection):
        raise InvalidCollectionError(collection)
    return str(collection)


def document_key(collection: str, doc_id: str) -> str:
    """Fallback-store key: "{collection}:{documentId}"."""
    return f"{require_collection(collection)}{KEY_SEPARATOR}{doc_id}"


def collection_prefix(collection: str) -> str:
    return f"{require_collection(collection)}{KEY_SEPARATOR}"


def new_local_id() -> str:
    """
    Synthesize a document id while the remote store is unreachable.

    Based on the wall clock in nanoseconds, forced strictly increasing within the process,
    so an id is never issued twice.
    """
    global _last_local_ns
    with _local_id_lock:
        now_ns = max(time.time_ns(), _last_local_ns + 1)
        _last_local_ns = now_ns
    return f"{LOCAL_ID_PREFIX}{now_ns}"


def is_local_id(doc_id: str) -> bool:
    return str(doc_id).startswith(LOCAL_ID_PREFIX)


def _ts(raw: Any) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def stamp_record(
    data: Document,
    *,
    doc_id: str,
    owner_id: str,
    now: float,
    previous: Document | None = None,
) -> Document:
    """
    Return a stamped deep copy of `data`.

    - id is forced to doc_id, ownerId to owner_id
    - createdAt comes from data, else from the previous copy, else now
    - updatedAt is now, but never earlier than the previous updatedAt
    """
    if not owner_id:
        raise ValueError("owner_id is required")

    out = copy.deepcopy(dict(data))
    prev = previous or {}

    created = _ts(out.get(CREATED_FIELD))
    if created is None:
        created = _ts(prev.get(CREATED_FIELD))
    if created is None:
        created = float(now)

    updated = float(now)
    prev_updated = _ts(prev.get(UPDATED_FIELD))
    if prev_updated is not None and prev_updated > updated:
        updated = prev_updated

    out["id"] = str(doc_id)
    out[OWNER_FIELD] = owner_id
    out[CREATED_FIELD] = created
    out[UPDATED_FIELD] = updated
    return out


def stamp_fields(fields: Document, *, now: float, previous: Document | None = None) -> Document:
    """Stamp a partial update: only updatedAt changes, identity fields are never patched."""
    out = {k: copy.deepcopy(v) for k, v in fields.items() if k not in ("id", OWNER_FIELD, CREATED_FIELD)}
    updated = float(now)
    prev_updated = _ts((previous or {}).get(UPDATED_FIELD))
    if prev_updated is not None and prev_updated > updated:
        updated = prev_updated
    out[UPDATED_FIELD] = updated
    return out


def is_owned_by(doc: Document, owner_id: str) -> bool:
    return doc.get(OWNER_FIELD) == owner_id


def sort_records(docs: list[Document]) -> list[Document]:
    """Newest first: updatedAt desc, ties broken by createdAt desc."""
    return sorted(
        docs,
        key=lambda d: (_ts(d.get(UPDATED_FIELD)) or 0.0, _ts(d.get(CREATED_FIELD)) or 0.0),
        reverse=True,
    )

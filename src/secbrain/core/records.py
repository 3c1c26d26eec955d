# src/secbrain/core/records.py

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from .ports import Document

OWNER_FIELD = "ownerId"
CREATED_FIELD = "createdAt"
UPDATED_FIELD = "updatedAt"
META_FIELDS = ("id", OWNER_FIELD, CREATED_FIELD, UPDATED_FIELD)

COUNTERS_SUFFIX = "_counters"

_COLLECTION_RE = re.compile(r"^[a-z][a-z0-9_]{0,63}$")
_COUNTER_FIELD_RE = re.compile(r"^next[A-Z][A-Za-z]*Id$")


class Collection(StrEnum):
    """Collections used by the dashboard feature modules."""

    PROJECTS = "projects"
    POMODORO_SESSIONS = "pomodoro_sessions"
    POMODORO_SETTINGS = "pomodoro_settings"
    POMODORO_STATE = "pomodoro_state"
    CALENDAR_EVENTS = "calendar_events"
    HABITS = "habits"
    WALLET_TRANSACTIONS = "wallet_transactions"
    GOALS = "goals"

    PROJECTS_COUNTERS = "projects_counters"
    HABITS_COUNTERS = "habits_counters"
    GOALS_COUNTERS = "goals_counters"
    CALENDAR_COUNTERS = "calendar_counters"
    WALLET_COUNTERS = "wallet_counters"


# Everything a signed-in user may have created while anonymous.
OWNER_SCOPED_COLLECTIONS: tuple[str, ...] = tuple(c.value for c in Collection)


def is_valid_collection(name: object) -> bool:
    return isinstance(name, str) and bool(_COLLECTION_RE.match(name))


def is_counter_collection(name: str) -> bool:
    return name.endswith(COUNTERS_SUFFIX)


def is_counter_field(name: str) -> bool:
    return bool(_COUNTER_FIELD_RE.match(name))


def counters_collection(family: str) -> str:
    return f"{family}{COUNTERS_SUFFIX}"


def _opt_float(raw: Any) -> float | None:
    if raw is None:
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


@dataclass(slots=True, kw_only=True)
class BaseRecord:
    """Metadata every persisted document carries."""

    id: str | None = None
    owner_id: str | None = None
    created_at: float | None = None
    updated_at: float | None = None

    def _meta_from_doc(self, doc: Document) -> None:
        raw_id = doc.get("id")
        self.id = None if raw_id is None else str(raw_id)
        self.owner_id = doc.get(OWNER_FIELD)
        self.created_at = _opt_float(doc.get(CREATED_FIELD))
        self.updated_at = _opt_float(doc.get(UPDATED_FIELD))

    def _meta_to_doc(self) -> Document:
        out: Document = {}
        if self.id is not None:
            out["id"] = self.id
        if self.owner_id is not None:
            out[OWNER_FIELD] = self.owner_id
        if self.created_at is not None:
            out[CREATED_FIELD] = self.created_at
        if self.updated_at is not None:
            out[UPDATED_FIELD] = self.updated_at
        return out


@dataclass(slots=True, kw_only=True)
class CounterRecord(BaseRecord):
    """Per-owner singleton of `next*Id` values for one entity family."""

    values: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_doc(cls, doc: Document) -> CounterRecord:
        rec = cls()
        rec._meta_from_doc(doc)
        for key, raw in doc.items():
            if not is_counter_field(key):
                continue
            try:
                rec.values[key] = int(raw)
            except (TypeError, ValueError):
                continue
        return rec

    def to_doc(self) -> Document:
        return {**self._meta_to_doc(), **self.values}


@dataclass(slots=True, kw_only=True)
class GenericRecord(BaseRecord):
    """Any document of a collection without a dedicated model."""

    collection: str
    data: Document = field(default_factory=dict)

    @classmethod
    def from_doc(cls, collection: str, doc: Document) -> GenericRecord:
        rec = cls(collection=collection, data={k: v for k, v in doc.items() if k not in META_FIELDS})
        rec._meta_from_doc(doc)
        return rec

    def to_doc(self) -> Document:
        return {**self.data, **self._meta_to_doc()}


def decode_record(collection: str, doc: Document) -> BaseRecord:
    """Decode a raw document into the record kind registered for its collection."""
    if collection == Collection.PROJECTS:
        from ..projects.models import Project

        return Project.from_doc(doc)
    if is_counter_collection(collection):
        return CounterRecord.from_doc(doc)
    return GenericRecord.from_doc(collection, doc)

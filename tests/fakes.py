# tests/fakes.py

from __future__ import annotations

import copy
from dataclasses import dataclass, field

from secbrain.auth.credentials import auth_error
from secbrain.core.errors import RemoteRejected, RemoteUnavailable
from secbrain.core.ports import CompletionCapture, Document, Principal
from secbrain.projects.models import Task


class FakeClock:
    """Deterministic clock: every call advances by `step` seconds."""

    def __init__(self, start: float = 1_000.0, step: float = 1.0) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        return value


class FakeRemoteStore:
    """
    In-memory RemoteStore.

    - `offline = True` makes every call fail like an unreachable network
    - `fail_ids` makes only operations touching those document ids fail
    - `reject_ids` makes the server refuse operations on those ids (403)
    - `filter_by_owner = False` simulates a server that ignores the owner filter
    """

    def __init__(self) -> None:
        self.docs: dict[tuple[str, str], Document] = {}
        self.calls: list[tuple[str, str, str | None]] = []
        self.offline = False
        self.fail_ids: set[str] = set()
        self.reject_ids: set[str] = set()
        self.filter_by_owner = True
        self._next_id = 0

    def _check(self, op: str, collection: str, doc_id: str | None = None) -> None:
        self.calls.append((op, collection, doc_id))
        if self.offline:
            raise RemoteUnavailable(f"{op} {collection}: offline")
        if doc_id is not None and doc_id in self.fail_ids:
            raise RemoteUnavailable(f"{op} {collection}/{doc_id}: failing")
        if doc_id is not None and doc_id in self.reject_ids:
            raise RemoteRejected(403, f"{op} {collection}/{doc_id}: permission denied")

    def seed(self, collection: str, doc: Document) -> None:
        self.docs[(collection, str(doc["id"]))] = copy.deepcopy(doc)

    def doc(self, collection: str, doc_id: str) -> Document | None:
        return self.docs.get((collection, doc_id))

    def writes(self) -> list[tuple[str, str, str | None]]:
        return [c for c in self.calls if c[0] in ("set", "add", "update", "delete")]

    async def get(self, collection: str, doc_id: str) -> Document | None:
        self._check("get", collection, doc_id)
        doc = self.docs.get((collection, doc_id))
        return copy.deepcopy(doc) if doc is not None else None

    async def set(self, collection: str, doc_id: str, doc: Document) -> None:
        self._check("set", collection, doc_id)
        self.docs[(collection, doc_id)] = {**copy.deepcopy(doc), "id": doc_id}

    async def add(self, collection: str, doc: Document) -> str:
        self._check("add", collection)
        self._next_id += 1
        doc_id = f"r{self._next_id}"
        self.docs[(collection, doc_id)] = {**copy.deepcopy(doc), "id": doc_id}
        return doc_id

    async def update(self, collection: str, doc_id: str, fields: Document) -> None:
        self._check("update", collection, doc_id)
        current = self.docs.get((collection, doc_id))
        if current is None:
            raise RemoteUnavailable(f"update {collection}/{doc_id}: not found")
        current.update(copy.deepcopy(fields))

    async def delete(self, collection: str, doc_id: str) -> None:
        self._check("delete", collection, doc_id)
        self.docs.pop((collection, doc_id), None)

    async def query_by_owner(self, collection: str, owner_id: str) -> list[Document]:
        self._check("query", collection)
        out = []
        for (c, _), doc in self.docs.items():
            if c != collection:
                continue
            if self.filter_by_owner and doc.get("ownerId") != owner_id:
                continue
            out.append(copy.deepcopy(doc))
        return out

    async def aclose(self) -> None:
        return


class FakeCredentialService:
    """Accepts the registered email/password pairs; everything else is a wrong password."""

    def __init__(self, users: dict[str, tuple[str, str]] | None = None) -> None:
        # email -> (password, uid)
        self.users = dict(users or {})
        self.attempts: list[str] = []

    async def sign_in_with_password(self, email: str, password: str) -> Principal:
        self.attempts.append(email)
        if email not in self.users:
            raise auth_error("auth/user-not-found")
        expected, uid = self.users[email]
        if password != expected:
            raise auth_error("auth/wrong-password")
        return Principal(uid=uid, email=email, id_token=f"token-{uid}")

    async def aclose(self) -> None:
        return


@dataclass(slots=True)
class FakeCompletionPrompt:
    """Returns a fixed answer (None = user cancelled) and remembers what it was asked."""

    answer: CompletionCapture | None = field(default_factory=CompletionCapture)
    asked: list[int] = field(default_factory=list)

    async def capture(self, task: Task) -> CompletionCapture | None:
        self.asked.append(task.id)
        return self.answer

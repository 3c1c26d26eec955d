# src/secbrain/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The gateway and the feature modules depend on Protocols instead of concrete
implementations. This keeps the remote store / credential service swappable and
makes testing easier.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from ..projects.models import Task

Document = dict[str, Any]
# Plain JSON-compatible document: {"id": ..., "ownerId": ..., "createdAt": ..., ...}.


class RemoteStore(Protocol):
    """
    Async facade over the network document database.

    Implementations raise (RemoteUnavailable or any transport exception) on failure.
    "Not found" is never a failure: get() returns None and delete() succeeds.
    """

    async def get(self, collection: str, doc_id: str) -> Document | None: ...
    async def set(self, collection: str, doc_id: str, doc: Document) -> None: ...
    async def add(self, collection: str, doc: Document) -> str: ...
    async def update(self, collection: str, doc_id: str, fields: Document) -> None: ...
    async def delete(self, collection: str, doc_id: str) -> None: ...
    async def query_by_owner(self, collection: str, owner_id: str) -> list[Document]: ...
    async def aclose(self) -> None: ...


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated identity returned by the credential service."""

    uid: str
    email: str | None
    id_token: str | None = None


class CredentialService(Protocol):
    """Validates credentials; raises AuthError on rejection."""

    async def sign_in_with_password(self, email: str, password: str) -> Principal: ...
    async def aclose(self) -> None: ...


@dataclass(frozen=True, slots=True)
class CompletionCapture:
    """What the user confirmed when completing a task."""

    hours_spent: float | None = None
    note: str | None = None


class CompletionPrompt(Protocol):
    """
    Completion capture workflow (asks for hours spent and an optional note).

    Returns None when the user cancels.
    """

    async def capture(self, task: Task) -> CompletionCapture | None: ...

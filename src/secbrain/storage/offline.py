# src/secbrain/storage/offline.py

from __future__ import annotations

from ..core.errors import RemoteUnavailable
from ..core.ports import Document


class OfflineRemoteStore:
    """
    Remote store used when no remote endpoint is configured.

    Every call fails as "unreachable", so the gateway serves everything from the
    fallback store and queues writes until a real remote is configured.
    """

    def _fail(self, op: str) -> RemoteUnavailable:
        return RemoteUnavailable(f"offline mode: remote store not configured ({op})")

    async def get(self, collection: str, doc_id: str) -> Document | None:
        raise self._fail("get")

    async def set(self, collection: str, doc_id: str, doc: Document) -> None:
        raise self._fail("set")

    async def add(self, collection: str, doc: Document) -> str:
        raise self._fail("add")

    async def update(self, collection: str, doc_id: str, fields: Document) -> None:
        raise self._fail("update")

    async def delete(self, collection: str, doc_id: str) -> None:
        raise self._fail("delete")

    async def query_by_owner(self, collection: str, owner_id: str) -> list[Document]:
        raise self._fail("query")

    async def aclose(self) -> None:
        return

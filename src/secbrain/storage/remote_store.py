# src/secbrain/storage/remote_store.py

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from ..core.errors import RemoteRejected, RemoteStoreError, RemoteUnavailable
from ..core.ports import Document

logger = logging.getLogger(__name__)

# Client errors worth retrying: expired token, timeout, rate limit.
_RETRYABLE_CLIENT_STATUSES = frozenset({401, 408, 429})


def _make_timeout(timeout_seconds: float) -> httpx.Timeout:
    """
    Connect is capped lower than read: an unreachable host should flip the app to
    offline mode quickly.
    """
    t = max(0.5, float(timeout_seconds))
    return httpx.Timeout(connect=min(t, 5.0), read=t, write=t, pool=min(t, 5.0))


class HttpRemoteStore:
    """
    REST document database client.

    Layout:
      GET    /collections/{c}/documents/{id}
      PUT    /collections/{c}/documents/{id}
      PATCH  /collections/{c}/documents/{id}
      DELETE /collections/{c}/documents/{id}
      POST   /collections/{c}/documents            -> {"id": "..."}
      GET    /collections/{c}/documents?ownerId=…  -> {"documents": [...]}

    Owner queries are single-field filters only; ordering is done by the caller, so the
    server never needs a composite index.

    Transport failures and 5xx are re-raised as RemoteUnavailable / RemoteStoreError.
    Other 4xx answers mean the server refused the request itself: RemoteRejected.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url or not base_url.strip():
            raise ValueError("Remote store base_url is required")

        headers = {"Accept": "application/json"}
        if api_key:
            headers["X-Api-Key"] = api_key

        self._auth_token: str | None = None
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=_make_timeout(timeout_seconds),
            transport=transport,
        )

    def set_auth_token(self, token: str | None) -> None:
        """Attach (or drop) the bearer token of the signed-in user."""
        self._auth_token = token or None

    async def aclose(self) -> None:
        await self._client.aclose()

    # ---- low-level helpers ----

    @staticmethod
    def _path(collection: str, doc_id: str | None = None) -> str:
        base = f"/collections/{quote(collection, safe='')}/documents"
        if doc_id is None:
            return base
        return f"{base}/{quote(str(doc_id), safe='')}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, str] | None = None,
        allow_404: bool = False,
    ) -> httpx.Response:
        headers = {}
        if self._auth_token:
            headers["Authorization"] = f"Bearer {self._auth_token}"

        try:
            resp = await self._client.request(method, path, json=json, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise RemoteUnavailable(f"{method} {path}: {e.__class__.__name__}") from e

        status = resp.status_code
        if status == 404 and allow_404:
            return resp
        if 400 <= status < 500 and status not in _RETRYABLE_CLIENT_STATUSES:
            raise RemoteRejected(status, resp.text[:200])
        if status >= 400:
            raise RemoteStoreError(status, resp.text[:200])
        return resp

    @staticmethod
    def _json_object(resp: httpx.Response) -> dict[str, Any]:
        try:
            data = resp.json()
        except ValueError as e:
            raise RemoteStoreError(resp.status_code, "response is not JSON") from e
        if not isinstance(data, dict):
            raise RemoteStoreError(resp.status_code, "expected a JSON object")
        return data

    # ---- RemoteStore API ----

    async def get(self, collection: str, doc_id: str) -> Document | None:
        resp = await self._request("GET", self._path(collection, doc_id), allow_404=True)
        if resp.status_code == 404:
            return None
        doc = self._json_object(resp)
        doc.setdefault("id", str(doc_id))
        return doc

    async def set(self, collection: str, doc_id: str, doc: Document) -> None:
        await self._request("PUT", self._path(collection, doc_id), json=doc)

    async def add(self, collection: str, doc: Document) -> str:
        resp = await self._request("POST", self._path(collection), json=doc)
        new_id = self._json_object(resp).get("id")
        if not new_id:
            raise RemoteStoreError(resp.status_code, "add() response has no id")
        return str(new_id)

    async def update(self, collection: str, doc_id: str, fields: Document) -> None:
        await self._request("PATCH", self._path(collection, doc_id), json=fields)

    async def delete(self, collection: str, doc_id: str) -> None:
        await self._request("DELETE", self._path(collection, doc_id), allow_404=True)

    async def query_by_owner(self, collection: str, owner_id: str) -> list[Document]:
        resp = await self._request("GET", self._path(collection), params={"ownerId": owner_id})
        docs = self._json_object(resp).get("documents") or []
        if not isinstance(docs, list):
            raise RemoteStoreError(resp.status_code, "documents must be a list")
        out = [d for d in docs if isinstance(d, dict)]
        logger.debug("Remote query %s owner=%s -> %d docs", collection, owner_id, len(out))
        return out

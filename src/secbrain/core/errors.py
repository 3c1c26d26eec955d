# src/secbrain/core/errors.py

"""
Exception taxonomy.

Only ValidationError, MigrationPartialFailure and AuthError are meant to reach callers.
RemoteUnavailable, RemoteStoreError and RemoteRejected are raised by remote adapters and
always caught at the PersistenceGateway boundary.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..storage.migration import FailedRecord


class SecbrainError(Exception):
    """Base exception for all secbrain errors."""


class ValidationError(SecbrainError, ValueError):
    """Input rejected before any write was attempted."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class InvalidCollectionError(SecbrainError, ValueError):
    """Malformed collection name (programming error)."""

    def __init__(self, collection: object) -> None:
        self.collection = collection
        super().__init__(f"Invalid collection name: {collection!r}")


class IdentityTransitionError(SecbrainError, RuntimeError):
    """Illegal identity state change, or an owner id was required but none is set."""


class RemoteUnavailable(SecbrainError):
    """Network/transport failure talking to the remote store."""


class RemoteStoreError(RemoteUnavailable):
    """Remote API answered with an error status."""

    def __init__(self, status_code: int, message: str = "") -> None:
        self.status_code = status_code
        super().__init__(f"Remote store error {status_code}: {message}".rstrip(": "))


class RemoteRejected(SecbrainError):
    """
    The remote store is reachable but refused this request (permission, malformed
    document). Retrying the same request will not help.
    """

    def __init__(self, status_code: int, message: str = "") -> None:
        self.status_code = status_code
        super().__init__(f"Remote store rejected request {status_code}: {message}".rstrip(": "))


class MigrationPartialFailure(SecbrainError):
    """Some records were re-owned, some were not."""

    def __init__(self, failed: list[FailedRecord]) -> None:
        self.failed = list(failed)
        ids = ", ".join(f"{f.collection}:{f.record_id}" for f in self.failed[:10])
        more = "" if len(self.failed) <= 10 else f" (+{len(self.failed) - 10} more)"
        super().__init__(f"Migration failed for {len(self.failed)} record(s): {ids}{more}")


class AuthError(SecbrainError):
    """Credential validation failed."""

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        super().__init__(message)


class ProjectNotFoundError(SecbrainError, LookupError):
    """Project with given id doesn't exist for the current owner."""

    def __init__(self, project_id: str) -> None:
        self.project_id = project_id
        super().__init__(f"Project {project_id} not found")


class TaskNotFoundError(SecbrainError, LookupError):
    """Task with given id doesn't exist in the project."""

    def __init__(self, project_id: str, task_id: int) -> None:
        self.project_id = project_id
        self.task_id = task_id
        super().__init__(f"Task {task_id} not found in project {project_id}")

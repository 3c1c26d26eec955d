# src/secbrain/projects/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..core.ports import Document
from ..core.records import BaseRecord


def _opt_int(raw: Any) -> int | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _opt_float(raw: Any) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def _float(raw: Any, default: float = 0.0) -> float:
    v = _opt_float(raw)
    return default if v is None else v


@dataclass(slots=True)
class Client:
    name: str = ""
    email: str = ""

    @classmethod
    def from_doc(cls, raw: Any) -> Client:
        if not isinstance(raw, dict):
            return cls()
        return cls(name=str(raw.get("name") or ""), email=str(raw.get("email") or ""))

    def to_doc(self) -> Document:
        return {"name": self.name, "email": self.email}


@dataclass(slots=True)
class Task:
    """
    One node of a project's task tree. Embedded in the project document, never
    stored on its own.
    """

    id: int
    name: str
    description: str = ""
    price: float = 0.0
    completed: bool = False
    hours_spent: float | None = None
    completion_note: str | None = None
    completed_at: float | None = None
    parent_task_id: int | None = None
    subtasks: list[Task] = field(default_factory=list)

    def clear_completion(self) -> None:
        self.completed = False
        self.hours_spent = None
        self.completion_note = None
        self.completed_at = None

    @classmethod
    def _from_fields(cls, raw: Document) -> Task:
        note = raw.get("completionNote")
        return cls(
            id=_opt_int(raw.get("id")) or 0,
            name=str(raw.get("name") or ""),
            description=str(raw.get("description") or ""),
            price=_float(raw.get("price")),
            completed=bool(raw.get("completed", False)),
            hours_spent=_opt_float(raw.get("hoursSpent")),
            completion_note=None if note is None else str(note),
            completed_at=_opt_float(raw.get("completedAt")),
            parent_task_id=_opt_int(raw.get("parentTaskId")),
        )

    def _fields_doc(self) -> Document:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "completed": self.completed,
            "hoursSpent": self.hours_spent,
            "completionNote": self.completion_note,
            "completedAt": self.completed_at,
            "parentTaskId": self.parent_task_id,
            "subtasks": [],
        }

    # Both conversions use an explicit stack: trees may be deeper than the recursion limit.

    @classmethod
    def from_doc(cls, raw: Document) -> Task:
        root = cls._from_fields(raw)
        stack: list[tuple[Task, Document]] = [(root, raw)]
        while stack:
            node, src = stack.pop()
            for child_raw in src.get("subtasks") or []:
                if not isinstance(child_raw, dict):
                    continue
                child = cls._from_fields(child_raw)
                node.subtasks.append(child)
                stack.append((child, child_raw))
        return root

    def to_doc(self) -> Document:
        root = self._fields_doc()
        stack: list[tuple[Task, Document]] = [(self, root)]
        while stack:
            node, out = stack.pop()
            for child in node.subtasks:
                child_doc = child._fields_doc()
                out["subtasks"].append(child_doc)
                stack.append((child, child_doc))
        return root


@dataclass(slots=True, kw_only=True)
class Project(BaseRecord):
    name: str
    description: str = ""
    deadline: str | None = None
    client: Client = field(default_factory=Client)
    tasks: list[Task] = field(default_factory=list)
    completed: bool = False

    @classmethod
    def from_doc(cls, doc: Document) -> Project:
        tasks = [Task.from_doc(t) for t in doc.get("tasks") or [] if isinstance(t, dict)]
        deadline = doc.get("deadline")
        project = cls(
            name=str(doc.get("name") or ""),
            description=str(doc.get("description") or ""),
            deadline=str(deadline) if deadline else None,
            client=Client.from_doc(doc.get("client")),
            tasks=tasks,
            completed=bool(doc.get("completed", False)),
        )
        project._meta_from_doc(doc)
        return project

    def to_doc(self) -> Document:
        return {
            **self._meta_to_doc(),
            "name": self.name,
            "description": self.description,
            "deadline": self.deadline,
            "client": self.client.to_doc(),
            "tasks": [t.to_doc() for t in self.tasks],
            "completed": self.completed,
        }

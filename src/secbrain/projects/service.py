# src/secbrain/projects/service.py

"""
ProjectTaskTree: the current owner's projects, each one a task tree embedded in a
single document of the `projects` collection.

Every mutation validates first, edits the in-memory tree, then persists the whole
project document through the gateway.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from ..core.errors import IdentityTransitionError, ProjectNotFoundError, TaskNotFoundError, ValidationError
from ..core.identity import IdentityChange
from ..core.ports import CompletionPrompt
from ..core.records import Collection
from ..core.validation import is_valid_email, is_valid_iso_date, non_negative_number, require_name
from ..storage.counters import CounterService, IdPolicy
from ..storage.gateway import PersistenceGateway
from .models import Client, Project, Task
from .tree import (
    calculate_project_progress,
    cascade_complete,
    find_task,
    max_task_id,
    remove_task,
    task_path,
)

logger = logging.getLogger(__name__)

COUNTER_FAMILY = "projects"
NEXT_PROJECT_ID = "nextProjectId"
NEXT_TASK_ID = "nextTaskId"

_PROJECT_FIELDS = frozenset({"name", "description", "deadline", "client_name", "client_email", "completed"})
_TASK_FIELDS = frozenset({"name", "description", "price"})


def _clean_deadline(value: Any) -> str | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    deadline = str(value).strip()
    if not is_valid_iso_date(deadline):
        raise ValidationError(f"deadline must be a YYYY-MM-DD date, got {value!r}", field="deadline")
    return deadline


def _clean_email(value: Any) -> str:
    email = "" if value is None else str(value).strip()
    if email and not is_valid_email(email):
        raise ValidationError(f"Invalid client email: {email!r}", field="client_email")
    return email


def _cascade_note(parent: Task) -> str:
    return f"Completed with parent task '{parent.name}'"


class ProjectTaskTree:
    def __init__(
        self,
        gateway: PersistenceGateway,
        counters: CounterService,
        *,
        id_policy: IdPolicy = IdPolicy.REMOTE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._gateway = gateway
        self._identity = gateway.identity
        self._counters = counters
        self._id_policy = IdPolicy(id_policy)
        self._clock = clock

        self._projects: list[Project] = []
        self._loaded_owner: str | None = None
        self._load_generation = 0

    @property
    def projects(self) -> list[Project]:
        return list(self._projects)

    @property
    def loaded_owner_id(self) -> str | None:
        return self._loaded_owner

    def attach(self) -> Callable[[], None]:
        """Reload on every identity change; returns the unsubscribe callable."""
        return self._identity.subscribe(self.on_identity_change)

    # ---- loading ----

    async def load(self) -> list[Project]:
        self._load_generation += 1
        generation = self._load_generation
        owner = self._identity.require_owner_id()

        docs = await self._gateway.list_records(Collection.PROJECTS, owner_id=owner)

        if generation != self._load_generation or self._identity.owner_id != owner:
            logger.info("Dropping stale project load for owner=%s", owner)
            return self.projects

        projects: list[Project] = []
        for doc in docs:
            try:
                projects.append(Project.from_doc(doc))
            except Exception:
                logger.exception("Skipping undecodable project id=%s", doc.get("id"))

        self._projects = projects
        self._loaded_owner = owner
        logger.debug("Loaded %d project(s) for owner=%s", len(projects), owner)
        return self.projects

    async def on_identity_change(self, change: IdentityChange) -> None:
        # Previous owner's trees are dropped from memory, never deleted.
        self._projects = []
        self._loaded_owner = None
        await self.load()

    # ---- lookups ----

    def get_project(self, project_id: str) -> Project:
        for project in self._projects:
            if project.id == str(project_id):
                return project
        raise ProjectNotFoundError(str(project_id))

    def find_task_by_id(self, project_id: str, task_id: int) -> Task | None:
        loc = find_task(self.get_project(project_id).tasks, int(task_id))
        return None if loc is None else loc.task

    def _require_task(self, project: Project, task_id: int) -> Task:
        loc = find_task(project.tasks, int(task_id))
        if loc is None:
            raise TaskNotFoundError(str(project.id), int(task_id))
        return loc.task

    def progress(self, project_id: str) -> int:
        return calculate_project_progress(self.get_project(project_id))

    # ---- persistence ----

    def _owner_for_write(self) -> str:
        owner = self._identity.require_owner_id()
        if self._loaded_owner is not None and self._loaded_owner != owner:
            raise IdentityTransitionError("Projects are still loading for the new identity")
        return owner

    def _check_owner(self, owner: str) -> None:
        if self._identity.owner_id != owner:
            raise IdentityTransitionError("Identity changed during the operation; nothing was saved")

    async def _persist(self, project: Project, owner: str) -> str:
        self._check_owner(owner)
        now = self._clock()
        project.owner_id = owner
        if project.created_at is None:
            project.created_at = now
        project.updated_at = max(now, project.updated_at or now)

        doc = project.to_doc()
        if self._id_policy == IdPolicy.REMOTE and project.id is None:
            rid = await self._gateway.add_record(Collection.PROJECTS, doc)
        else:
            rid = await self._gateway.save_or_create(Collection.PROJECTS, doc)
        project.id = rid

        if self._identity.owner_id != owner:
            logger.warning("Project %s was saved for owner=%s after the identity changed", rid, owner)
        return rid

    async def _next_task_id(self) -> int:
        return await self._counters.next_id(
            COUNTER_FAMILY,
            NEXT_TASK_ID,
            floor=max_task_id(self._projects) + 1,
        )

    async def _next_project_id(self) -> str:
        numeric = [int(p.id) for p in self._projects if p.id and p.id.isdigit()]
        value = await self._counters.next_id(COUNTER_FAMILY, NEXT_PROJECT_ID, floor=max(numeric, default=0) + 1)
        return str(value)

    # ---- projects ----

    async def add_project(
        self,
        name: str,
        description: str = "",
        *,
        deadline: str | None = None,
        client_name: str = "",
        client_email: str = "",
    ) -> Project:
        project = Project(
            name=require_name(name),
            description=(description or "").strip(),
            deadline=_clean_deadline(deadline),
            client=Client(name=(client_name or "").strip(), email=_clean_email(client_email)),
        )
        owner = self._owner_for_write()

        if self._id_policy == IdPolicy.COUNTER:
            project.id = await self._next_project_id()

        await self._persist(project, owner)
        self._projects.append(project)
        logger.info("Project %s created (%s)", project.id, project.name)
        return project

    async def edit_project(self, project_id: str, **fields: Any) -> Project:
        unknown = set(fields) - _PROJECT_FIELDS
        if unknown:
            raise ValidationError(f"Unknown project field(s): {', '.join(sorted(unknown))}")

        # Validate everything before touching the project.
        clean: dict[str, Any] = {}
        if "name" in fields:
            clean["name"] = require_name(fields["name"])
        if "description" in fields:
            clean["description"] = str(fields["description"] or "").strip()
        if "deadline" in fields:
            clean["deadline"] = _clean_deadline(fields["deadline"])
        if "client_email" in fields:
            clean["client_email"] = _clean_email(fields["client_email"])
        if "client_name" in fields:
            clean["client_name"] = str(fields["client_name"] or "").strip()
        if "completed" in fields:
            clean["completed"] = bool(fields["completed"])

        project = self.get_project(project_id)
        owner = self._owner_for_write()

        for key, value in clean.items():
            if key == "client_name":
                project.client.name = value
            elif key == "client_email":
                project.client.email = value
            else:
                setattr(project, key, value)

        await self._persist(project, owner)
        return project

    async def delete_project(self, project_id: str) -> None:
        project = self.get_project(project_id)
        owner = self._owner_for_write()
        self._check_owner(owner)
        await self._gateway.delete_record(Collection.PROJECTS, str(project.id))
        self._projects = [p for p in self._projects if p is not project]
        logger.info("Project %s deleted", project_id)

    # ---- tasks ----

    async def add_task(
        self,
        project_id: str,
        name: str,
        *,
        description: str = "",
        price: Any = 0,
        parent_task_id: int | None = None,
    ) -> Task:
        clean_name = require_name(name)
        clean_price = non_negative_number(price, field="price") or 0.0

        project = self.get_project(project_id)
        owner = self._owner_for_write()

        container = project.tasks
        path: list[Task] = []
        if parent_task_id is not None:
            found = task_path(project.tasks, int(parent_task_id))
            if found is None:
                raise TaskNotFoundError(str(project.id), int(parent_task_id))
            path = found
            container = path[-1].subtasks

        task = Task(
            id=await self._next_task_id(),
            name=clean_name,
            description=(description or "").strip(),
            price=clean_price,
            parent_task_id=None if parent_task_id is None else int(parent_task_id),
        )
        self._check_owner(owner)

        container.append(task)
        # An open subtask under a completed ancestor reopens that ancestor.
        for ancestor in path:
            if ancestor.completed:
                ancestor.clear_completion()

        await self._persist(project, owner)
        logger.debug("Task %s added to project %s (parent=%s)", task.id, project.id, parent_task_id)
        return task

    async def edit_task(self, project_id: str, task_id: int, **fields: Any) -> Task:
        unknown = set(fields) - _TASK_FIELDS
        if unknown:
            raise ValidationError(f"Unknown task field(s): {', '.join(sorted(unknown))}")

        clean: dict[str, Any] = {}
        if "name" in fields:
            clean["name"] = require_name(fields["name"])
        if "description" in fields:
            clean["description"] = str(fields["description"] or "").strip()
        if "price" in fields:
            clean["price"] = non_negative_number(fields["price"], field="price")

        project = self.get_project(project_id)
        task = self._require_task(project, task_id)
        owner = self._owner_for_write()

        for key, value in clean.items():
            setattr(task, key, value)
        await self._persist(project, owner)
        return task

    async def toggle_task(self, project_id: str, task_id: int, prompt: CompletionPrompt) -> Task:
        """
        Completed task: reopen it (its subtasks are left alone).
        Open task: ask the completion prompt; cancel leaves everything untouched.
        """
        project = self.get_project(project_id)
        path = task_path(project.tasks, int(task_id))
        if path is None:
            raise TaskNotFoundError(str(project.id), int(task_id))
        task = path[-1]

        if task.completed:
            owner = self._owner_for_write()
            task.clear_completion()
            for ancestor in path[:-1]:
                if ancestor.completed:
                    ancestor.clear_completion()
            await self._persist(project, owner)
            logger.debug("Task %s reopened in project %s", task.id, project.id)
            return task

        capture = await prompt.capture(task)
        if capture is None:
            logger.debug("Completion of task %s cancelled", task.id)
            return task

        return await self.complete_task(
            project_id,
            task.id,
            hours_spent=capture.hours_spent,
            note=capture.note,
        )

    async def complete_task(
        self,
        project_id: str,
        task_id: int,
        *,
        hours_spent: Any = None,
        note: str | None = None,
    ) -> Task:
        hours = non_negative_number(hours_spent, field="hours_spent", allow_none=True)
        clean_note = (note or "").strip() or None

        project = self.get_project(project_id)
        task = self._require_task(project, task_id)
        owner = self._owner_for_write()

        now = self._clock()
        task.completed = True
        task.completed_at = now
        task.hours_spent = hours
        task.completion_note = clean_note
        cascaded = cascade_complete(task, completed_at=now, note=_cascade_note(task))

        await self._persist(project, owner)
        logger.info("Task %s completed in project %s (+%d subtask(s))", task.id, project.id, cascaded)
        return task

    async def delete_task(self, project_id: str, task_id: int) -> Task:
        project = self.get_project(project_id)
        owner = self._owner_for_write()
        removed = remove_task(project.tasks, int(task_id))
        if removed is None:
            raise TaskNotFoundError(str(project.id), int(task_id))
        await self._persist(project, owner)
        return removed

# src/secbrain/projects/tree.py

"""
Task tree helpers.

Every traversal is an explicit-stack pre-order walk yielding TaskLocation tuples
(node, the list that holds it, its index in that list, depth). Structural edits go
through the holding list, so no node needs a back-reference to its parent.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import NamedTuple

from .models import Project, Task


class TaskLocation(NamedTuple):
    task: Task
    siblings: list[Task]
    index: int
    depth: int


def walk_tasks(tasks: list[Task]) -> Iterator[TaskLocation]:
    """Pre-order, left to right. Do not restructure the tree while iterating."""
    stack: list[tuple[list[Task], int, int]] = [(tasks, i, 0) for i in reversed(range(len(tasks)))]
    while stack:
        siblings, index, depth = stack.pop()
        node = siblings[index]
        yield TaskLocation(node, siblings, index, depth)
        for i in reversed(range(len(node.subtasks))):
            stack.append((node.subtasks, i, depth + 1))


def find_task(tasks: list[Task], task_id: int) -> TaskLocation | None:
    """First match wins (ids are unique within a tree)."""
    for loc in walk_tasks(tasks):
        if loc.task.id == task_id:
            return loc
    return None


def task_path(tasks: list[Task], task_id: int) -> list[Task] | None:
    """Root-to-node chain ending with the task, or None."""
    path: list[Task] = []
    for loc in walk_tasks(tasks):
        del path[loc.depth :]
        path.append(loc.task)
        if loc.task.id == task_id:
            return path
    return None


def remove_task(tasks: list[Task], task_id: int) -> Task | None:
    """Detach a task (with its whole subtree) from the tree."""
    loc = find_task(tasks, task_id)
    if loc is None:
        return None
    return loc.siblings.pop(loc.index)


def flatten(tasks: list[Task]) -> list[Task]:
    return [loc.task for loc in walk_tasks(tasks)]


def max_task_id(projects: Iterable[Project]) -> int:
    best = 0
    for project in projects:
        for loc in walk_tasks(project.tasks):
            best = max(best, loc.task.id)
    return best


def cascade_complete(task: Task, *, completed_at: float, note: str) -> int:
    """
    Force every descendant of task to completed. Descendants that already carry
    completion data keep it; the others get `note` and `completed_at`.
    Returns the number of descendants changed.
    """
    changed = 0
    for loc in walk_tasks(task.subtasks):
        node = loc.task
        has_data = node.completed_at is not None or node.hours_spent is not None or bool(node.completion_note)
        if node.completed and has_data:
            continue
        node.completed = True
        if not has_data:
            node.completion_note = note
            node.completed_at = completed_at
        elif node.completed_at is None:
            node.completed_at = completed_at
        changed += 1
    return changed


def calculate_project_progress(project: Project) -> int:
    """Completed share of all tasks at every depth, in percent, rounded half up."""
    total = 0
    done = 0
    for loc in walk_tasks(project.tasks):
        total += 1
        if loc.task.completed:
            done += 1
    if total == 0:
        return 0
    return (done * 200 + total) // (2 * total)

# src/secbrain/cli/commands.py

from __future__ import annotations

import inspect
import logging
import shlex
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import cast

from ..core.errors import AuthError, SecbrainError
from ..core.ports import CompletionCapture
from ..core.records import decode_record, is_valid_collection
from ..core.state import AppState
from ..projects.models import Project, Task
from ..projects.service import COUNTER_FAMILY, NEXT_PROJECT_ID, NEXT_TASK_ID, ProjectTaskTree
from ..projects.tree import calculate_project_progress, walk_tasks

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], Awaitable[str]]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], Awaitable[str]]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /projects, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args" (shell-style quoting).
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        try:
            parts = shlex.split(line[1:])
        except ValueError as e:
            return f"Cannot parse command: {e}"
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return await h3(state, args, emit)
            h2 = cast(CommandHandler2, handler)
            return await h2(state, args)
        except AuthError as e:
            return f"Sign-in failed: {e}"
        except SecbrainError as e:
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _fmt_ts(ts: float | None) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts).astimezone().strftime("%Y-%m-%d %H:%M")


def _parse_task_id(raw: str) -> int | None:
    try:
        return int(raw)
    except ValueError:
        return None


def _render_project(project: Project) -> str:
    done = "x" if project.completed else " "
    deadline = f" due {project.deadline}" if project.deadline else ""
    return f"[{done}] {project.id}: {project.name} ({calculate_project_progress(project)}%){deadline}"


def _render_tasks(tasks: list[Task]) -> list[str]:
    lines: list[str] = []
    for loc in walk_tasks(tasks):
        task = loc.task
        mark = "x" if task.completed else " "
        extra = []
        if task.price:
            extra.append(f"price={task.price:g}")
        if task.hours_spent is not None:
            extra.append(f"hours={task.hours_spent:g}")
        if task.completion_note:
            extra.append(f"note={task.completion_note!r}")
        suffix = f" ({', '.join(extra)})" if extra else ""
        lines.append(f"{'    ' * (loc.depth + 1)}[{mark}] #{task.id} {task.name}{suffix}")
    return lines


class _ImmediateCompletion:
    """Confirms right away with the given capture (non-interactive connectors)."""

    def __init__(self, capture: CompletionCapture) -> None:
        self._capture = capture

    async def capture(self, task: Task) -> CompletionCapture | None:
        return self._capture


async def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


async def cmd_status(state: AppState, args: list[str]) -> str:
    principal = state.auth.principal
    who = f"{principal.email or principal.uid} ({principal.uid})" if principal else "anonymous"
    gateway = state.gateway
    lines = [
        "Status:",
        f"  Identity: {state.identity.state} as {who}",
        f"  Remote store: {gateway.connection_status}",
        f"  Pending writes: {gateway.pending_count()}",
        f"  Refused writes set aside: {gateway.rejected_count()}",
        f"  Last sync: {_fmt_ts(gateway.last_sync_at)}",
        f"  Projects loaded: {len(state.projects.projects)}",
    ]
    if state.identity.owner_id is not None:
        counters = await state.counters.peek(COUNTER_FAMILY)
        lines.append(
            f"  Next ids: project {counters.get(NEXT_PROJECT_ID, 1)}, task {counters.get(NEXT_TASK_ID, 1)}"
        )
    return "\n".join(lines)


async def cmd_projects(state: AppState, args: list[str]) -> str:
    tree: ProjectTaskTree = state.projects
    if args and args[0].lower() in ("reload", "refresh"):
        await tree.load()

    projects = tree.projects
    if not projects:
        return "No projects yet. Use /project add <name> [description]."

    lines = ["Projects:"]
    for project in projects:
        lines.append("  " + _render_project(project))
        lines.extend(_render_tasks(project.tasks))
    return "\n".join(lines)


async def cmd_project(state: AppState, args: list[str]) -> str:
    """
    /project add <name> [description]
    /project rm <id>
    /project done <id>
    """
    usage = "Usage: /project add <name> [description] | /project rm <id> | /project done <id>"
    if not args:
        return usage

    sub = args[0].lower()
    if sub == "add" and len(args) >= 2:
        project = await state.projects.add_project(args[1], " ".join(args[2:]))
        return f"Project created: {project.id} ({project.name})"

    if sub in ("rm", "delete") and len(args) == 2:
        await state.projects.delete_project(args[1])
        return f"Project {args[1]} deleted."

    if sub == "done" and len(args) == 2:
        project = state.projects.get_project(args[1])
        project = await state.projects.edit_project(args[1], completed=not project.completed)
        return f"Project {project.id} marked {'completed' if project.completed else 'open'}."

    return usage


async def cmd_task(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /task add <project> <name> [price] [--parent ID]
    /task toggle <project> <task>
    /task rm <project> <task>
    """
    usage = (
        "Usage: /task add <project> <name> [price] [--parent ID] | "
        "/task toggle <project> <task> | /task rm <project> <task>"
    )
    if len(args) < 3:
        return usage

    sub, project_id = args[0].lower(), args[1]
    rest = args[2:]

    if sub == "add":
        parent_id: int | None = None
        if "--parent" in rest:
            i = rest.index("--parent")
            if i + 1 >= len(rest) or _parse_task_id(rest[i + 1]) is None:
                return "Usage: --parent <task id>"
            parent_id = _parse_task_id(rest[i + 1])
            rest = rest[:i] + rest[i + 2 :]
        if not rest:
            return usage
        price = rest[1] if len(rest) > 1 else 0
        task = await state.projects.add_task(project_id, rest[0], price=price, parent_task_id=parent_id)
        return f"Task #{task.id} added to project {project_id}."

    task_id = _parse_task_id(rest[0])
    if task_id is None:
        return f"Task id must be a number, got {rest[0]!r}."

    if sub == "toggle":
        prompt = state.completion_prompt or _ImmediateCompletion(CompletionCapture())
        task = await state.projects.toggle_task(project_id, task_id, prompt)
        if emit is not None and task.completed:
            emit(f"Task #{task.id} completed.")
        return f"Task #{task.id} is {'completed' if task.completed else 'open'}."

    if sub in ("rm", "delete"):
        removed = await state.projects.delete_task(project_id, task_id)
        return f"Task #{removed.id} deleted (with its subtasks)."

    return usage


async def cmd_progress(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /progress <project>"
    return f"Project {args[0]}: {state.projects.progress(args[0])}% complete."


async def cmd_records(state: AppState, args: list[str]) -> str:
    if len(args) != 1 or not is_valid_collection(args[0]):
        return "Usage: /records <collection>"
    docs = await state.gateway.list_records(args[0])
    if not docs:
        return f"No records in {args[0]}."
    lines = [f"{len(docs)} record(s) in {args[0]}:"]
    for doc in docs:
        rec = decode_record(args[0], doc)
        lines.append(f"  {rec.id}  updated {_fmt_ts(rec.updated_at)}  ({type(rec).__name__})")
    return "\n".join(lines)


async def cmd_signin(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if len(args) != 2:
        return "Usage: /signin <email> <password>"
    if emit is not None:
        emit("Signing in...")

    result = await state.auth.sign_in_with_password(args[0], args[1])
    await result.transition.settled()

    report = result.migration
    msg = f"Signed in as {result.principal.email or result.principal.uid}. Migrated {report.migrated} record(s)."
    if not report.ok:
        msg += f" {len(report.failed)} record(s) are queued and will be retried on /sync."
    return msg


async def cmd_signout(state: AppState, args: list[str]) -> str:
    transition = await state.auth.sign_out()
    await transition.settled()
    return "Signed out. Working anonymously."


async def cmd_sync(state: AppState, args: list[str]) -> str:
    report = await state.gateway.sync_pending()
    if report.skipped:
        return "A sync is already running."
    lines = [f"Synced {report.synced} write(s); {report.remaining} pending."]
    if report.rejected:
        lines.append(f"{report.rejected} write(s) refused by the remote store were set aside.")

    last = state.auth.last_migration
    if last is not None and not last.ok and state.identity.is_authenticated:
        retry = await state.auth.retry_migration(last.failed)
        lines.append(f"Migration retry: {retry.migrated} migrated, {len(retry.failed)} still failing.")
    return "\n".join(lines)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show identity, connection, sync state and next ids.")
registry.register("projects", cmd_projects, help_text="List projects with their task trees: /projects [reload].")
registry.register("project", cmd_project, help_text="/project add <name> [description] | rm <id> | done <id>.")
registry.register(
    "task",
    cmd_task,
    help_text="/task add <project> <name> [price] [--parent ID] | toggle <project> <task> | rm <project> <task>.",
)
registry.register("progress", cmd_progress, help_text="Completion percentage: /progress <project>.")
registry.register("records", cmd_records, help_text="List raw records of a collection: /records <collection>.")
registry.register("signin", cmd_signin, help_text="Sign in and migrate anonymous data: /signin <email> <password>.")
registry.register("signout", cmd_signout, help_text="Sign out (back to anonymous).")
registry.register("sync", cmd_sync, help_text="Push pending writes to the remote store now.")

# src/secbrain/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.ports import CompletionCapture
from ..core.state import AppState
from ..projects.models import Task
from ..storage.gateway import ConnectionStatus

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


async def _ainput(prompt: str) -> str:
    # input() blocks; keep the event loop (sync loop, listeners) running meanwhile.
    return await asyncio.to_thread(input, prompt)


class ConsoleCompletionPrompt:
    """Asks for hours spent and an optional note before a task is completed."""

    async def capture(self, task: Task) -> CompletionCapture | None:
        _print_ts(f"Completing task #{task.id} '{task.name}'. Leave hours empty to skip, type 'c' to cancel.")
        while True:
            raw = (await _ainput("    Hours spent: ")).strip()
            if raw.lower() in ("c", "cancel"):
                return None
            if not raw:
                hours = None
                break
            try:
                hours = float(raw)
            except ValueError:
                print("    Please enter a number.", flush=True)
                continue
            if hours < 0:
                print("    Hours cannot be negative.", flush=True)
                continue
            break

        note = (await _ainput("    Note (optional): ")).strip()
        if note.lower() in ("c", "cancel"):
            return None
        return CompletionCapture(hours_spent=hours, note=note or None)


def _on_connection_change(status: ConnectionStatus) -> None:
    if status == ConnectionStatus.OFFLINE:
        _print_ts("[SYNC] Remote store unreachable; working offline.")
    elif status == ConnectionStatus.CONNECTED:
        _print_ts("[SYNC] Remote store reachable.")


async def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started.")
    _print_ts("[CONSOLE] Use /help for commands. Use /exit to quit.\n")

    state.completion_prompt = ConsoleCompletionPrompt()
    unsubscribe = state.gateway.on_connection_change(_on_connection_change)

    def emit(text: str) -> None:
        _print_ts(text)

    try:
        while True:
            try:
                user_input = (await _ainput(">>> ")).strip()
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break
            except KeyboardInterrupt:
                logger.info("Console KeyboardInterrupt, exiting.")
                print()
                break

            if not user_input:
                continue

            if user_input.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            try:
                response = await command_registry.handle(state, user_input, emit=emit)
            except Exception:
                logger.exception("Command handler crashed.")
                response = "Internal error while handling a command."

            if response is None:
                response = "Commands start with '/'. Use /help to list them."
            _print_ts(response)
    finally:
        unsubscribe()
        state.completion_prompt = None
        logger.info("Console connector finished.")

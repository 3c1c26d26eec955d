# tests/test_console_connector.py

from __future__ import annotations

import pytest

from secbrain.connectors import console_connector
from secbrain.connectors.console_connector import ConsoleCompletionPrompt
from secbrain.projects.models import Task


def _answers(monkeypatch, *lines: str) -> None:
    queue = list(lines)

    async def fake_input(prompt: str) -> str:
        return queue.pop(0)

    monkeypatch.setattr(console_connector, "_ainput", fake_input)


@pytest.mark.asyncio
async def test_prompt_reads_hours_and_note(monkeypatch, capsys) -> None:
    _answers(monkeypatch, "abc", "-2", "3.5", "reviewed")

    capture = await ConsoleCompletionPrompt().capture(Task(id=1, name="Logo"))

    assert capture is not None
    assert capture.hours_spent == 3.5
    assert capture.note == "reviewed"
    out = capsys.readouterr().out
    assert "Please enter a number." in out
    assert "Hours cannot be negative." in out


@pytest.mark.asyncio
async def test_prompt_allows_skipping_and_cancelling(monkeypatch) -> None:
    _answers(monkeypatch, "", "")
    capture = await ConsoleCompletionPrompt().capture(Task(id=1, name="Logo"))
    assert capture is not None
    assert (capture.hours_spent, capture.note) == (None, None)

    _answers(monkeypatch, "c")
    assert await ConsoleCompletionPrompt().capture(Task(id=1, name="Logo")) is None

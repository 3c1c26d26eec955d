# src/secbrain/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, enters the anonymous identity, then runs:
- the background sync loop,
- the console REPL (optional; otherwise waits for SIGINT/SIGTERM).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from ..cli.bootstrap import create_initial_state, shutdown_state, start_state
from ..config import Settings, get_settings
from ..connectors.console_connector import run_console_loop
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _run(settings: Settings) -> None:
    state = create_initial_state(settings=settings)
    await start_state(state)

    try:
        if settings.console_enabled:
            await run_console_loop(state)
        else:
            logger.info("Console disabled. Running the sync loop only. Press Ctrl+C to stop.")
            stop = asyncio.Event()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                # Not supported on every platform (e.g. Windows event loops).
                with contextlib.suppress(NotImplementedError, RuntimeError):
                    loop.add_signal_handler(sig, stop.set)
            await stop.wait()
    finally:
        await shutdown_state(state)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)
    try:
        asyncio.run(_run(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    logger.info("Bye.")


if __name__ == "__main__":
    main()

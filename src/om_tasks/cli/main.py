# src/om_tasks/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, restores the stored token, starts the
background token refresher and runs the console REPL until /exit.
"""

from __future__ import annotations

import asyncio
import logging

from ..api.offline import OfflineApiClient
from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import ConsoleNotifier, run_console_loop
from ..core.errors import OmTasksError
from ..core.notify import report_error
from ..core.state import AppState
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        await state.credentials.stop()
    except Exception:
        logger.exception("Failed to stop the token refresher.")

    try:
        await state.api.aclose()
    except Exception:
        logger.debug("HTTP client close failed.", exc_info=True)


async def run(settings) -> None:
    notifier = ConsoleNotifier()
    state = create_initial_state(settings=settings, notifier=notifier)

    if isinstance(state.api, OfflineApiClient):
        print("[OFFLINE] Demo data. Use /login <any-token> to sign in.", flush=True)

    try:
        try:
            restored = await state.credentials.restore()
        except OmTasksError as exc:
            report_error(notifier, exc, "Could not verify the stored token")
            restored = False
        if not restored and not state.credentials.get_token():
            print("Not authenticated. Use /login <jwt-token>.", flush=True)

        state.credentials.start()
        await run_console_loop(state)
    finally:
        await _shutdown(state)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_dir = getattr(settings, "data_dir", ".local/om-tasks")
    setup_logging(log_dir=log_dir, console_level=console_level)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logger.info("Starting %s...", getattr(settings, "app_name", "om-tasks"))

    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down...")
    logger.info("Bye.")


if __name__ == "__main__":
    main()

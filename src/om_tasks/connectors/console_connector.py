# src/om_tasks/connectors/console_connector.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from collections.abc import Awaitable, Callable
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.notify import Severity
from ..core.state import AppState

logger = logging.getLogger(__name__)

InputFn = Callable[[str], str]
OutputFn = Callable[[str], None]


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


class ConsoleNotifier:
    """Notifier that prints user-facing messages to the terminal with a timestamp."""

    def __init__(self, output: OutputFn = _print_ts) -> None:
        self._output = output

    def notify(self, severity: Severity, message: str) -> None:
        prefix = {Severity.WARNING: "[WARN] ", Severity.ERROR: "[ERROR] "}.get(severity, "")
        self._output(f"{prefix}{message}")


async def _read_line(prompt: str, input_fn: InputFn) -> str:
    """
    Read one line without blocking the event loop.

    The read runs on a daemon thread, never the default executor, so a read
    still blocked on stdin at Ctrl-C does not hold up interpreter exit.
    """
    loop = asyncio.get_running_loop()
    fut: asyncio.Future[str] = loop.create_future()

    def _deliver(result: str | None, exc: BaseException | None) -> None:
        if fut.done():
            return
        if exc is not None:
            fut.set_exception(exc)
        else:
            fut.set_result(result or "")

    def _post(result: str | None, exc: BaseException | None) -> None:
        # The loop is gone if the console was closed while this read was pending.
        with contextlib.suppress(RuntimeError):
            loop.call_soon_threadsafe(_deliver, result, exc)

    def _worker() -> None:
        try:
            line = input_fn(prompt)
        except BaseException as exc:
            _post(None, exc)
        else:
            _post(line, None)

    threading.Thread(target=_worker, name="om-tasks-console-input", daemon=True).start()
    return await fut


async def run_console_loop(
    state: AppState,
    *,
    input_fn: InputFn = input,
    output: OutputFn = _print_ts,
    handle: Callable[[AppState, str], Awaitable[str | None]] | None = None,
) -> None:
    handle = handle or command_registry.handle
    logger.info("Console connector started.")
    output("[CONSOLE] Use /help for commands, /tasks to browse. Use /exit to quit.\n")

    while True:
        try:
            user_input = (await _read_line(">>> ", input_fn)).strip()
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
            response = await handle(state, user_input)
        except Exception:
            logger.exception("Command handler crashed.")
            response = "Internal error while handling a command."

        if response is None:
            response = "Commands start with '/'. Use /help to list them."
        output(response)

# src/om_tasks/core/notify.py

from __future__ import annotations

import logging
from enum import StrEnum

from .ports import Notifier

logger = logging.getLogger(__name__)


class Severity(StrEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


class LoggingNotifier:
    """
    Notifier that only writes to the log.

    Used when no interactive host is attached (tests, background-only runs).
    """

    def notify(self, severity: Severity, message: str) -> None:
        logger.log(_LOG_LEVELS.get(severity, logging.INFO), "%s", message)


def report_error(notifier: Notifier | None, error: BaseException, message: str) -> str:
    """Log an error with context and surface it to the user. Returns the text shown."""
    detail = str(error).strip() or error.__class__.__name__
    text = f"{message}: {detail}"
    logger.warning("%s", text)
    if notifier is not None:
        notifier.notify(Severity.ERROR, text)
    return text

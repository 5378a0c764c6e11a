# src/om_tasks/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..auth.credentials import CredentialManager
from ..tree.aggregator import TaskAggregator
from .ports import Notifier


@dataclass
class AppState:
    """
    Everything one session owns.

    Components are constructed per session (see cli.bootstrap) and reach each
    other through this object, so several sessions or tests can run side by side.
    """

    settings: Any

    # ApiClient or OfflineApiClient (same public surface).
    api: Any
    credentials: CredentialManager
    tree: TaskAggregator
    notifier: Notifier

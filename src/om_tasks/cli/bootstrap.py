# src/om_tasks/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (API client, credentials, tree),
- connects credential events to cache/tree invalidation.
"""

from __future__ import annotations

import logging

import httpx

from ..api.client import ApiClient
from ..api.offline import OfflineApiClient
from ..auth.credentials import CredentialEvent, CredentialManager
from ..auth.secrets import FileSecretStore, TokenVault
from ..config import get_settings
from ..core.errors import ConfigError
from ..core.notify import LoggingNotifier, Severity
from ..core.ports import Notifier, SecretStore
from ..core.state import AppState
from ..tree.aggregator import TaskAggregator

logger = logging.getLogger(__name__)

OFFLINE_WEB_APP_URL = "http://localhost:8585"


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.secrets_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(
    *,
    settings=None,
    notifier: Notifier | None = None,
    secret_store: SecretStore | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()
    if notifier is None:
        notifier = LoggingNotifier()

    _ensure_local_dirs(settings)

    vault = TokenVault(secret_store if secret_store is not None else FileSecretStore(settings.secrets_path))

    offline = bool(settings.offline)
    if not offline:
        try:
            settings.validate()
        except ConfigError as exc:
            # Fallback for demos / local runs without a server.
            logger.warning("Invalid configuration (%s); using the offline API", exc)
            notifier.notify(Severity.WARNING, f"{exc} Running in offline demo mode.")
            offline = True

    if offline:
        api = OfflineApiClient(token_source=vault, web_app_url=settings.web_app_url or OFFLINE_WEB_APP_URL)
        logger.info("Using offline OpenMetadata API")
    else:
        api = ApiClient.from_settings(settings, token_source=vault, transport=transport)
        api.on_unauthorized = lambda: notifier.notify(
            Severity.WARNING,
            "OpenMetadata rejected the stored token. Use /login to authenticate again.",
        )

    credentials = CredentialManager(
        vault,
        api,
        notifier=notifier,
        refresh_interval=settings.token_refresh_interval_seconds,
    )
    tree = TaskAggregator(api, page_size=settings.page_size, notifier=notifier)

    def _on_credentials(event: CredentialEvent) -> None:
        # Anything fetched under the previous identity is stale.
        if event in (CredentialEvent.AUTHENTICATED, CredentialEvent.SIGNED_OUT, CredentialEvent.EXPIRED):
            api.clear_cache()
            tree.refresh()

    credentials.add_listener(_on_credentials)

    return AppState(
        settings=settings,
        api=api,
        credentials=credentials,
        tree=tree,
        notifier=notifier,
    )

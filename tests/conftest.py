# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from om_tasks.auth.secrets import TOKEN_KEY
from om_tasks.cli.bootstrap import create_initial_state
from om_tasks.core.state import AppState

from .fakes import FakeNotifier, FakeSecretStore


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with bootstrap and the API client.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated from the environment and any local .env.
    """

    def validate() -> None:
        return None

    return SimpleNamespace(
        app_name="om-tasks-test",
        log_level="DEBUG",
        api_url="http://om.test",
        web_app_url="http://om.test",
        offline=True,
        bot_name="ingestion-bot",
        data_dir=tmp_path / "data",
        secrets_path=tmp_path / "data" / "secrets.json",
        page_size=3,
        rate_limit_max_concurrent=5,
        rate_limit_interval_seconds=0.01,
        cache_ttl_seconds=300.0,
        token_refresh_interval_seconds=3600.0,
        connect_timeout_seconds=1.0,
        read_timeout_seconds=1.0,
        validate=validate,
    )


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture()
def secret_store() -> FakeSecretStore:
    return FakeSecretStore()


@pytest.fixture()
def state(settings: SimpleNamespace, notifier: FakeNotifier, secret_store: FakeSecretStore) -> AppState:
    """Offline AppState, signed out."""
    return create_initial_state(settings=settings, notifier=notifier, secret_store=secret_store)


@pytest.fixture()
def signed_in_state(settings: SimpleNamespace, notifier: FakeNotifier) -> AppState:
    store = FakeSecretStore({TOKEN_KEY: "demo-token"})
    return create_initial_state(settings=settings, notifier=notifier, secret_store=store)

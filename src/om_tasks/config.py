# src/om_tasks/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object per session, passed to the components that need it.
- No secrets in settings: the bearer token lives in the secret store.
- Nothing required at import time; validation happens in validate().
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from urllib.parse import urlparse

from dotenv import load_dotenv

from .core.errors import ConfigError

ENV_PREFIX = "OMT"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def _is_http_url(raw: str) -> bool:
    parsed = urlparse(raw)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- OpenMetadata ----
    api_url: str
    web_app_url: str
    offline: bool
    bot_name: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    secrets_path: Path

    # ---- Request orchestration ----
    page_size: int
    rate_limit_max_concurrent: int
    rate_limit_interval_seconds: float
    cache_ttl_seconds: float
    token_refresh_interval_seconds: float
    connect_timeout_seconds: float
    read_timeout_seconds: float

    @staticmethod
    def from_env() -> "Settings":
        load_dotenv(override=False)

        app_name = _env(_k("APP_NAME"), "om-tasks") or "om-tasks"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        api_url = _env(_k("API_URL")).strip().rstrip("/")
        # The web app usually lives at the same origin as the API.
        web_app_url = (_env(_k("WEB_APP_URL")).strip() or api_url).rstrip("/")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/om-tasks"))
        secrets_path = _env_path(_k("SECRETS_PATH"), data_dir / "secrets.json")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            api_url=api_url,
            web_app_url=web_app_url,
            offline=_env_bool(_k("OFFLINE"), False),
            bot_name=_env(_k("BOT_NAME"), "ingestion-bot"),
            data_dir=data_dir,
            secrets_path=secrets_path,
            page_size=max(1, _env_int(_k("PAGE_SIZE"), 20)),
            rate_limit_max_concurrent=max(1, _env_int(_k("RATE_LIMIT_MAX_CONCURRENT"), 5)),
            rate_limit_interval_seconds=max(0.0, _env_float(_k("RATE_LIMIT_INTERVAL_SECONDS"), 1.0)),
            cache_ttl_seconds=max(0.0, _env_float(_k("CACHE_TTL_SECONDS"), 300.0)),
            token_refresh_interval_seconds=max(1.0, _env_float(_k("TOKEN_REFRESH_INTERVAL_SECONDS"), 3600.0)),
            connect_timeout_seconds=_env_float(_k("CONNECT_TIMEOUT_SECONDS"), 5.0),
            read_timeout_seconds=_env_float(_k("READ_TIMEOUT_SECONDS"), 30.0),
        )

    def validate(self) -> None:
        """Raise ConfigError if the settings cannot talk to a server."""
        if self.offline:
            return
        if not self.api_url or not self.web_app_url:
            raise ConfigError(
                "OpenMetadata API URL and Web Application URL must be configured "
                f"({_k('API_URL')} / {_k('WEB_APP_URL')})."
            )
        if not _is_http_url(self.api_url) or not _is_http_url(self.web_app_url):
            raise ConfigError("Invalid API URL or Web Application URL")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()

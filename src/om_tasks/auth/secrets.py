# src/om_tasks/auth/secrets.py

from __future__ import annotations

import contextlib
import json
import logging
import os
from pathlib import Path

from ..core.ports import SecretStore

logger = logging.getLogger(__name__)

TOKEN_KEY = "openmetadata-jwt-token"


class FileSecretStore:
    """
    Named secrets kept in a small JSON file.

    Writes go to a temp file and are swapped in with os.replace; the file is
    chmod 600 after every write since it holds bearer tokens.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text("utf-8"))
        except (OSError, ValueError):
            logger.exception("Failed to read secret store %s", self._path)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items() if isinstance(v, str)}

    def _save(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), "utf-8")
        os.replace(tmp, self._path)
        with contextlib.suppress(OSError):
            os.chmod(self._path, 0o600)

    def get(self, name: str) -> str | None:
        return self._load().get(name)

    def set(self, name: str, value: str) -> None:
        data = self._load()
        data[name] = value
        self._save(data)

    def delete(self, name: str) -> None:
        data = self._load()
        if name in data:
            del data[name]
            self._save(data)


class TokenVault:
    """
    The single stored bearer token.

    Read by every API call, written only by the credential manager. The value is
    kept in memory after the first read so reads never touch the disk again.
    """

    def __init__(self, store: SecretStore, key: str = TOKEN_KEY) -> None:
        self._store = store
        self._key = key
        self._loaded = False
        self._token: str | None = None

    def get_token(self) -> str | None:
        if not self._loaded:
            self._token = self._store.get(self._key) or None
            self._loaded = True
        return self._token

    def set_token(self, token: str) -> None:
        self._store.set(self._key, token)
        self._token = token
        self._loaded = True

    def clear_token(self) -> None:
        self._store.delete(self._key)
        self._token = None
        self._loaded = True

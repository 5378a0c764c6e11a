# src/om_tasks/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the HTTP client, secret storage and the host UI swappable
and makes testing easier.
"""

from typing import TYPE_CHECKING, Awaitable, Protocol

if TYPE_CHECKING:
    from ..api.models import Page
    from .notify import Severity


class SecretStore(Protocol):
    """Opaque named-string storage (keychain, file, memory...)."""

    def get(self, name: str) -> str | None: ...
    def set(self, name: str, value: str) -> None: ...
    def delete(self, name: str) -> None: ...


class Notifier(Protocol):
    """
    Host notification surface.

    The core only decides content and severity; the host decides how to show it
    (console line, toast, status bar...).
    """

    def notify(self, severity: Severity, message: str) -> None: ...


class TokenSource(Protocol):
    def get_token(self) -> str | None: ...


class TaskSource(Protocol):
    """What the tree aggregator needs from the API client."""

    def list_tasks(self, limit: int = 20, after: str | None = None) -> Awaitable[Page]: ...


class AuthApi(Protocol):
    """What the credential manager needs from the API client."""

    def probe_token(self, token: str) -> Awaitable[None]: ...
    def refresh_token(self, token: str) -> Awaitable[str | None]: ...

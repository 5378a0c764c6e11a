# src/om_tasks/core/errors.py

"""
Error taxonomy.

Every failure raised by the client layer is one of these classes. They share a
common base so hosts can catch "anything from om_tasks" in one place, but none
of them subclasses another: a 401 is never also a generic ApiError.
"""

from __future__ import annotations


class OmTasksError(Exception):
    """Base class for all errors raised by om_tasks."""


class ConfigError(OmTasksError):
    """Settings are missing or invalid."""


class NotAuthenticatedError(OmTasksError):
    """No credential is stored; nothing was sent."""

    def __init__(self, message: str = "Not authenticated. Please authenticate first.") -> None:
        super().__init__(message)


class AuthOrNotFoundError(OmTasksError):
    """The server answered with a 4xx status."""

    def __init__(self, message: str, status_code: int, hint: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.hint = hint

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code in (401, 403)


class TransportError(OmTasksError):
    """No response was received (connection refused, timeout, dropped socket)."""

    def __init__(self, message: str = "OpenMetadata API Error: No response received") -> None:
        super().__init__(message)


class ApiError(OmTasksError):
    """Any other failure: 5xx, malformed payloads, unexpected shapes."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CredentialRefreshFailure(OmTasksError):
    """
    Background token refresh failed.

    expired=True  -> the token was rejected and has been cleared; re-auth required.
    expired=False -> transient problem; the existing token was kept.
    """

    def __init__(self, message: str, *, expired: bool) -> None:
        super().__init__(message)
        self.expired = expired

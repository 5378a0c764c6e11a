# src/om_tasks/auth/credentials.py

from __future__ import annotations

"""
Credential lifecycle.

UNAUTHENTICATED -> AUTHENTICATED        authenticate(token) succeeded
AUTHENTICATED   -> AUTHENTICATED        background refresh returned a new token
AUTHENTICATED   -> UNAUTHENTICATED      sign_out(), or refresh says the token expired

A transient refresh failure (network, 5xx) never clears the token.
The refresh timer fires on a fixed interval; token expiry claims are not parsed.
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from enum import StrEnum

from ..core.errors import ApiError, AuthOrNotFoundError, CredentialRefreshFailure, TransportError
from ..core.notify import Severity
from ..core.ports import AuthApi, Notifier
from .secrets import TokenVault

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL_SECONDS = 60.0 * 60.0


class CredentialState(StrEnum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


class CredentialEvent(StrEnum):
    AUTHENTICATED = "authenticated"
    REFRESHED = "refreshed"
    EXPIRED = "expired"
    REFRESH_FAILED = "refresh_failed"
    SIGNED_OUT = "signed_out"


CredentialListener = Callable[[CredentialEvent], None]


class CredentialManager:
    def __init__(
        self,
        vault: TokenVault,
        api: AuthApi,
        *,
        notifier: Notifier | None = None,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL_SECONDS,
    ) -> None:
        self._vault = vault
        self._api = api
        self._notifier = notifier
        self._refresh_interval = float(refresh_interval)
        self._listeners: list[CredentialListener] = []
        self._task: asyncio.Task[None] | None = None

    @property
    def state(self) -> CredentialState:
        if self._vault.get_token():
            return CredentialState.AUTHENTICATED
        return CredentialState.UNAUTHENTICATED

    @property
    def refresh_interval(self) -> float:
        return self._refresh_interval

    def add_listener(self, listener: CredentialListener) -> None:
        self._listeners.append(listener)

    def _emit(self, event: CredentialEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Credential listener failed on %s", event.value)

    def _notify(self, severity: Severity, message: str) -> None:
        if self._notifier is not None:
            self._notifier.notify(severity, message)

    # ---- token access ----

    def get_token(self) -> str | None:
        return self._vault.get_token()

    def clear_token(self) -> None:
        self._vault.clear_token()

    # ---- explicit actions ----

    async def authenticate(self, token: str) -> None:
        """
        Validate a token with a probe call, then store it.

        On failure nothing is stored and the error propagates (no retry).
        """
        token = (token or "").strip()
        if not token:
            raise ValueError("Token is empty")

        await self._api.probe_token(token)

        self._vault.set_token(token)
        logger.info("Authenticated with OpenMetadata")
        self._emit(CredentialEvent.AUTHENTICATED)

    def sign_out(self) -> None:
        self._vault.clear_token()
        logger.info("Signed out")
        self._emit(CredentialEvent.SIGNED_OUT)

    async def restore(self) -> bool:
        """
        Re-validate a token persisted by an earlier session.

        Returns True if a stored token was accepted. A rejected token (401/403)
        is cleared; any other failure propagates and the token is kept.
        """
        token = self._vault.get_token()
        if not token:
            return False
        try:
            await self._api.probe_token(token)
        except AuthOrNotFoundError as exc:
            if not exc.is_unauthorized:
                raise
            self._vault.clear_token()
            logger.info("Stored token is invalid (status=%s)", exc.status_code)
            self._notify(Severity.WARNING, "Stored token is invalid. Please authenticate again.")
            self._emit(CredentialEvent.EXPIRED)
            return False
        logger.info("Restored stored OpenMetadata token")
        self._emit(CredentialEvent.AUTHENTICATED)
        return True

    # ---- background refresh ----

    def _expire(self) -> None:
        self._vault.clear_token()
        logger.warning("OpenMetadata token has expired; cleared")
        self._notify(Severity.WARNING, "OpenMetadata token has expired. Please authenticate again.")
        self._emit(CredentialEvent.EXPIRED)

    async def refresh_once(self) -> str | None:
        """
        Try one refresh of the stored token.

        Returns the new token, or None when nothing is stored.
        Raises CredentialRefreshFailure(expired=True) after clearing the token,
        or CredentialRefreshFailure(expired=False) after keeping it.
        """
        token = self._vault.get_token()
        if not token:
            return None

        try:
            new_token = await self._api.refresh_token(token)
        except AuthOrNotFoundError as exc:
            if exc.is_unauthorized:
                self._expire()
                raise CredentialRefreshFailure(str(exc), expired=True) from exc
            self._emit(CredentialEvent.REFRESH_FAILED)
            raise CredentialRefreshFailure(str(exc), expired=False) from exc
        except (TransportError, ApiError) as exc:
            self._emit(CredentialEvent.REFRESH_FAILED)
            raise CredentialRefreshFailure(str(exc), expired=False) from exc

        if not new_token:
            self._expire()
            raise CredentialRefreshFailure("Token refresh returned no token", expired=True)

        if self._vault.get_token() != token:
            # Signed out or re-authenticated while the refresh was in flight.
            logger.info("Token changed during refresh; discarding refreshed token")
            return self._vault.get_token()

        self._vault.set_token(new_token)
        logger.info("OpenMetadata token refreshed")
        self._emit(CredentialEvent.REFRESHED)
        return new_token

    async def run_refresh_loop(self) -> None:
        """
        Refresh on a fixed interval until cancelled.

        Failures are logged; only the expired branch reaches the user (via refresh_once).
        """
        sleep_s = max(0.01, self._refresh_interval)
        while True:
            await asyncio.sleep(sleep_s)
            try:
                await self.refresh_once()
            except CredentialRefreshFailure as exc:
                if exc.expired:
                    logger.warning("Token refresh: expired (%s)", exc)
                else:
                    logger.warning("Token refresh failed, keeping current token: %s", exc)
            except Exception:
                logger.exception("Token refresh crashed")

    def start(self) -> asyncio.Task[None]:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_refresh_loop(), name="om-tasks-token-refresh")
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

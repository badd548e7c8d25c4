from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from typing import Callable

from roster_scanner.domain.models import AccessToken
from roster_scanner.ports.auth_port import AuthPort

LOGGER = logging.getLogger(__name__)


class TokenManager:
    """Hands out bearer tokens for the roster function.

    Refreshes are coalesced: while one refresh is in flight every other
    caller waits on the same future. The slot stays occupied for a short
    grace period after the refresh settles so callers arriving right after
    reuse the fresh token.
    """

    def __init__(
        self,
        auth: AuthPort,
        refresh_threshold_seconds: float = 60.0,
        release_grace_seconds: float = 0.1,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._auth = auth
        self._refresh_threshold_seconds = refresh_threshold_seconds
        self._release_grace_seconds = release_grace_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._in_flight: Future[AccessToken | None] | None = None

    def get_valid_token(self, force_refresh: bool = False) -> AccessToken | None:
        try:
            session = self._auth.get_session()
        except Exception as exc:
            LOGGER.error("Failed to read auth session: %s", exc)
            session = None
        if session is None or not session.token:
            return None

        if not force_refresh and not self._is_expiring_soon(session):
            if self._is_valid(session.token):
                return session
            LOGGER.info("Cached session token rejected; refreshing")

        refreshed = self.refresh()
        if refreshed is not None and self._is_valid(refreshed.token):
            return refreshed
        return None

    def refresh(self) -> AccessToken | None:
        with self._lock:
            pending = self._in_flight
            owner = pending is None
            if owner:
                pending = Future()
                self._in_flight = pending
        if not owner:
            return pending.result()

        token: AccessToken | None = None
        try:
            token = self._auth.refresh_session()
            if token is None or not token.token:
                LOGGER.warning("Session refresh returned no access token")
                token = None
        except Exception as exc:
            LOGGER.warning("Session refresh failed: %s", exc)
            token = None
        finally:
            pending.set_result(token)
            self._schedule_release(pending)
        return token

    def _schedule_release(self, pending: Future) -> None:
        if self._release_grace_seconds <= 0:
            self._release(pending)
            return
        timer = threading.Timer(self._release_grace_seconds, self._release, args=(pending,))
        timer.daemon = True
        timer.start()

    def _release(self, pending: Future) -> None:
        with self._lock:
            if self._in_flight is pending:
                self._in_flight = None

    def _is_expiring_soon(self, session: AccessToken) -> bool:
        if not session.expires_at:
            return False
        return session.expires_at - self._clock() < self._refresh_threshold_seconds

    def _is_valid(self, token: str) -> bool:
        try:
            return bool(self._auth.validate_token(token))
        except Exception as exc:
            LOGGER.warning("Token validation failed: %s", exc)
            return False

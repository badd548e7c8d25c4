from __future__ import annotations

import logging
import threading
from typing import Callable

from roster_scanner.domain.models import AccessToken
from roster_scanner.ports.auth_port import SIGNED_IN, AuthPort

LOGGER = logging.getLogger(__name__)

PendingAction = Callable[[], None]
SignInPrompt = Callable[[str | None], None]


class AuthGate:
    """Runs actions that need a signed-in user.

    A guest's action is parked in a single pending slot and the sign-in
    prompt is raised; the next SIGNED_IN event runs it exactly once.
    """

    def __init__(self, auth: AuthPort, prompt: SignInPrompt | None = None) -> None:
        self._auth = auth
        self._prompt = prompt
        self._lock = threading.Lock()
        self._pending: PendingAction | None = None
        self._pending_message: str | None = None
        self._subscription = auth.on_auth_state_change(self._on_auth_event)

    @property
    def is_authenticated(self) -> bool:
        return self._auth.get_session() is not None

    @property
    def has_pending_action(self) -> bool:
        with self._lock:
            return self._pending is not None

    @property
    def pending_message(self) -> str | None:
        with self._lock:
            return self._pending_message

    def require_auth(self, action: PendingAction, message: str | None = None) -> bool:
        """Run ``action`` now if signed in; otherwise park it. Returns True if it ran."""

        if self.is_authenticated:
            action()
            return True
        with self._lock:
            self._pending = action
            self._pending_message = message
        if self._prompt is not None:
            self._prompt(message)
        return False

    def clear_pending_action(self) -> None:
        with self._lock:
            self._pending = None
            self._pending_message = None

    def close(self) -> None:
        self.clear_pending_action()
        self._subscription.unsubscribe()

    def _on_auth_event(self, event: str, session: AccessToken | None) -> None:
        if event != SIGNED_IN:
            return
        with self._lock:
            action = self._pending
            self._pending = None
            self._pending_message = None
        if action is None:
            return
        LOGGER.info("Running action deferred until sign-in")
        action()

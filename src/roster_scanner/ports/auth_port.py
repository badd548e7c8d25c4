from __future__ import annotations

from typing import Callable, Protocol, runtime_checkable

from roster_scanner.domain.models import AccessToken

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"

AuthListener = Callable[[str, AccessToken | None], None]


class AuthSubscription(Protocol):
    def unsubscribe(self) -> None:
        """Stop delivering auth events to the listener."""


@runtime_checkable
class AuthPort(Protocol):
    def get_session(self) -> AccessToken | None:
        """Return the cached session, or None when signed out."""

    def validate_token(self, token: str) -> bool:
        """Return True when the auth provider accepts the token."""

    def refresh_session(self) -> AccessToken | None:
        """Exchange the refresh token for a new session."""

    def sign_out(self) -> None:
        """Drop the local session."""

    def on_auth_state_change(self, listener: AuthListener) -> AuthSubscription:
        """Register a listener for SIGNED_IN / SIGNED_OUT / TOKEN_REFRESHED events."""

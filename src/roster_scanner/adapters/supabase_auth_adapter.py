from __future__ import annotations

import logging
import threading
import time
from typing import Any

import keyring
import requests

from roster_scanner.domain.models import AccessToken
from roster_scanner.ports.auth_port import (
    SIGNED_IN,
    SIGNED_OUT,
    TOKEN_REFRESHED,
    AuthListener,
    AuthPort,
)

LOGGER = logging.getLogger(__name__)

_KEYRING_REFRESH_TOKEN = "refresh_token"


class _ListenerSubscription:
    def __init__(self, adapter: SupabaseAuthAdapter, listener: AuthListener) -> None:
        self._adapter = adapter
        self._listener = listener
        self._active = True

    def unsubscribe(self) -> None:
        if self._active:
            self._active = False
            self._adapter._remove_listener(self._listener)


class SupabaseAuthAdapter(AuthPort):
    """Supabase GoTrue session holder.

    The access token lives in memory; the refresh token is kept in the OS
    keychain so a restart can resume the session.
    """

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        keyring_service: str,
        timeout_seconds: float = 20,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._anon_key = anon_key
        self._keyring_service = keyring_service
        self._timeout_seconds = timeout_seconds
        self._lock = threading.Lock()
        self._session: AccessToken | None = None
        self._listeners: list[AuthListener] = []

    def sign_in_with_password(self, email: str, password: str) -> AccessToken:
        response = requests.post(
            f"{self._base_url}/auth/v1/token",
            params={"grant_type": "password"},
            headers=self._headers(),
            json={"email": email, "password": password},
            timeout=self._timeout_seconds,
        )
        self._raise_for_status(response, context="sign in")
        session = self._session_from_payload(response.json())
        self._store_session(session)
        self._emit(SIGNED_IN, session)
        return session

    def restore_session(self) -> AccessToken | None:
        """Resume from the refresh token saved in the keychain, if any."""

        if self._get_keyring_value(_KEYRING_REFRESH_TOKEN) is None:
            return None
        session = self.refresh_session()
        if session is not None:
            self._emit(SIGNED_IN, session)
        return session

    def get_session(self) -> AccessToken | None:
        with self._lock:
            return self._session

    def validate_token(self, token: str) -> bool:
        response = requests.get(
            f"{self._base_url}/auth/v1/user",
            headers=self._headers(token),
            timeout=self._timeout_seconds,
        )
        if response.status_code in (401, 403):
            return False
        self._raise_for_status(response, context="validate token")
        payload = response.json()
        return isinstance(payload, dict) and bool(payload.get("id"))

    def refresh_session(self) -> AccessToken | None:
        with self._lock:
            refresh_token = self._session.refresh_token if self._session else None
        if not refresh_token:
            refresh_token = self._get_keyring_value(_KEYRING_REFRESH_TOKEN)
        if not refresh_token:
            return None
        response = requests.post(
            f"{self._base_url}/auth/v1/token",
            params={"grant_type": "refresh_token"},
            headers=self._headers(),
            json={"refresh_token": refresh_token},
            timeout=self._timeout_seconds,
        )
        self._raise_for_status(response, context="refresh session")
        session = self._session_from_payload(response.json())
        self._store_session(session)
        self._emit(TOKEN_REFRESHED, session)
        return session

    def sign_out(self) -> None:
        with self._lock:
            session = self._session
            self._session = None
        self._delete_keyring_value(_KEYRING_REFRESH_TOKEN)
        if session is not None:
            try:
                requests.post(
                    f"{self._base_url}/auth/v1/logout",
                    params={"scope": "local"},
                    headers=self._headers(session.token),
                    timeout=self._timeout_seconds,
                )
            except requests.RequestException as exc:
                LOGGER.warning("Remote sign-out failed: %s", exc)
        self._emit(SIGNED_OUT, None)

    def on_auth_state_change(self, listener: AuthListener) -> _ListenerSubscription:
        with self._lock:
            self._listeners.append(listener)
        return _ListenerSubscription(self, listener)

    def _remove_listener(self, listener: AuthListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _emit(self, event: str, session: AccessToken | None) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event, session)
            except Exception as exc:
                LOGGER.error("Auth listener failed on %s: %s", event, exc)

    def _store_session(self, session: AccessToken) -> None:
        with self._lock:
            self._session = session
        if session.refresh_token and not self._set_keyring_value(
            _KEYRING_REFRESH_TOKEN, session.refresh_token
        ):
            LOGGER.warning(
                "OS keychain unavailable; the session will not survive a restart"
            )

    def _headers(self, token: str | None = None) -> dict[str, str]:
        headers = {"apikey": self._anon_key, "Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    @staticmethod
    def _session_from_payload(payload: Any) -> AccessToken:
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise RuntimeError("Auth response did not include an access token.")
        expires_at = payload.get("expires_at")
        if not isinstance(expires_at, (int, float)):
            expires_in = payload.get("expires_in", 3600)
            expires_at = time.time() + int(expires_in)
        user = payload.get("user") if isinstance(payload.get("user"), dict) else {}
        return AccessToken(
            token=payload["access_token"],
            expires_at=float(expires_at),
            refresh_token=payload.get("refresh_token"),
            user_id=user.get("id"),
            email=user.get("email"),
        )

    def _get_keyring_value(self, key: str) -> str | None:
        try:
            return keyring.get_password(self._keyring_service, key)
        except Exception:
            return None

    def _set_keyring_value(self, key: str, value: str) -> bool:
        try:
            keyring.set_password(self._keyring_service, key, value)
            return True
        except Exception:
            return False

    def _delete_keyring_value(self, key: str) -> None:
        try:
            keyring.delete_password(self._keyring_service, key)
        except Exception:
            return

    @staticmethod
    def _raise_for_status(response: requests.Response, context: str) -> None:
        if response.status_code in (400, 401, 403):
            raise RuntimeError(f"Auth rejected while attempting to {context}.")
        if response.status_code >= 400:
            raise RuntimeError(
                f"Auth API error {response.status_code} while attempting to {context}."
            )

import pytest

from roster_scanner.adapters import supabase_auth_adapter
from roster_scanner.adapters.supabase_auth_adapter import SupabaseAuthAdapter
from roster_scanner.ports.auth_port import SIGNED_IN, SIGNED_OUT, TOKEN_REFRESHED

SESSION_PAYLOAD = {
    "access_token": "access-1",
    "refresh_token": "refresh-1",
    "expires_at": 1_900_000_000,
    "user": {"id": "user-1", "email": "alex@example.com"},
}


class FakeKeyring:
    def __init__(self, fail: bool = False) -> None:
        self.values: dict[tuple[str, str], str] = {}
        self.fail = fail

    def get_password(self, service: str, key: str):
        if self.fail:
            raise RuntimeError("no backend")
        return self.values.get((service, key))

    def set_password(self, service: str, key: str, value: str) -> None:
        if self.fail:
            raise RuntimeError("no backend")
        self.values[(service, key)] = value

    def delete_password(self, service: str, key: str) -> None:
        if self.fail:
            raise RuntimeError("no backend")
        self.values.pop((service, key), None)


class DummyResponse:
    def __init__(self, status_code: int, body=None) -> None:
        self.status_code = status_code
        self._body = body

    def json(self):
        return self._body


class Recorder:
    def __init__(self, *responses: DummyResponse) -> None:
        self.responses = list(responses)
        self.calls: list[dict] = []

    def __call__(self, url, **kwargs):
        self.calls.append({"url": url, **kwargs})
        return self.responses.pop(0)


@pytest.fixture
def fake_keyring(monkeypatch) -> FakeKeyring:
    fake = FakeKeyring()
    monkeypatch.setattr(supabase_auth_adapter, "keyring", fake)
    return fake


def _adapter() -> SupabaseAuthAdapter:
    return SupabaseAuthAdapter("https://example.supabase.co/", "anon", "test-service")


def test_sign_in_caches_session_and_stores_refresh_token(monkeypatch, fake_keyring) -> None:
    post = Recorder(DummyResponse(200, SESSION_PAYLOAD))
    monkeypatch.setattr(supabase_auth_adapter.requests, "post", post)
    adapter = _adapter()
    events = []
    adapter.on_auth_state_change(lambda event, session: events.append((event, session)))

    session = adapter.sign_in_with_password("alex@example.com", "secret")

    assert session.token == "access-1"
    assert session.user_id == "user-1"
    assert session.email == "alex@example.com"
    assert session.expires_at == 1_900_000_000
    assert adapter.get_session() == session
    assert fake_keyring.values[("test-service", "refresh_token")] == "refresh-1"
    assert events == [(SIGNED_IN, session)]
    call = post.calls[0]
    assert call["url"] == "https://example.supabase.co/auth/v1/token"
    assert call["params"] == {"grant_type": "password"}
    assert call["headers"]["apikey"] == "anon"


def test_sign_in_rejected_raises(monkeypatch, fake_keyring) -> None:
    monkeypatch.setattr(
        supabase_auth_adapter.requests, "post", Recorder(DummyResponse(400, {}))
    )

    with pytest.raises(RuntimeError, match="sign in"):
        _adapter().sign_in_with_password("alex@example.com", "wrong")


def test_sign_in_survives_missing_keychain(monkeypatch) -> None:
    monkeypatch.setattr(supabase_auth_adapter, "keyring", FakeKeyring(fail=True))
    monkeypatch.setattr(
        supabase_auth_adapter.requests, "post", Recorder(DummyResponse(200, SESSION_PAYLOAD))
    )

    session = _adapter().sign_in_with_password("alex@example.com", "secret")

    assert session.token == "access-1"


def test_restore_session_uses_keychain_refresh_token(monkeypatch, fake_keyring) -> None:
    fake_keyring.values[("test-service", "refresh_token")] = "saved"
    post = Recorder(DummyResponse(200, {**SESSION_PAYLOAD, "refresh_token": "refresh-2"}))
    monkeypatch.setattr(supabase_auth_adapter.requests, "post", post)
    adapter = _adapter()
    events = []
    adapter.on_auth_state_change(lambda event, session: events.append(event))

    session = adapter.restore_session()

    assert session.token == "access-1"
    assert post.calls[0]["json"] == {"refresh_token": "saved"}
    assert post.calls[0]["params"] == {"grant_type": "refresh_token"}
    assert fake_keyring.values[("test-service", "refresh_token")] == "refresh-2"
    assert events == [TOKEN_REFRESHED, SIGNED_IN]


def test_refresh_without_refresh_token_returns_none(monkeypatch, fake_keyring) -> None:
    post = Recorder()
    monkeypatch.setattr(supabase_auth_adapter.requests, "post", post)

    assert _adapter().refresh_session() is None
    assert post.calls == []


def test_validate_token(monkeypatch, fake_keyring) -> None:
    get = Recorder(DummyResponse(200, {"id": "user-1"}), DummyResponse(401, {}))
    monkeypatch.setattr(supabase_auth_adapter.requests, "get", get)
    adapter = _adapter()

    assert adapter.validate_token("good") is True
    assert adapter.validate_token("bad") is False
    assert get.calls[0]["headers"]["Authorization"] == "Bearer good"


def test_sign_out_clears_session_and_keychain(monkeypatch, fake_keyring) -> None:
    post = Recorder(DummyResponse(200, SESSION_PAYLOAD), DummyResponse(204, None))
    monkeypatch.setattr(supabase_auth_adapter.requests, "post", post)
    adapter = _adapter()
    adapter.sign_in_with_password("alex@example.com", "secret")
    events = []
    subscription = adapter.on_auth_state_change(lambda event, session: events.append(event))

    adapter.sign_out()
    subscription.unsubscribe()
    adapter.sign_out()

    assert adapter.get_session() is None
    assert fake_keyring.values == {}
    assert post.calls[1]["url"].endswith("/auth/v1/logout")
    assert events == [SIGNED_OUT]


def test_listener_errors_do_not_break_sign_in(monkeypatch, fake_keyring) -> None:
    monkeypatch.setattr(
        supabase_auth_adapter.requests, "post", Recorder(DummyResponse(200, SESSION_PAYLOAD))
    )
    adapter = _adapter()

    def _broken(event, session):
        raise ValueError("listener bug")

    adapter.on_auth_state_change(_broken)

    assert adapter.sign_in_with_password("alex@example.com", "secret").token == "access-1"

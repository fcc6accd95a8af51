"""Tests for the persisted auth session store."""

from datetime import datetime, timedelta, timezone

from covenant_guardian.auth.schemas import AuthSession, TokenPair
from covenant_guardian.auth.session import SessionStore
from tests.conftest import ADMIN_USER, ANALYST_USER


def _session(**overrides) -> AuthSession:
    fields = {"user": ADMIN_USER, "auth_token": "token-1", "refresh_token": "refresh-1"}
    fields.update(overrides)
    return AuthSession(**fields)


class TestLifecycle:
    def test_start_exposes_credentials(self):
        store = SessionStore()
        store.start(_session())
        assert store.is_authenticated
        assert store.auth_token == "token-1"
        assert store.bank_id == "bank_1"

    def test_user_without_bank_has_no_bank_id(self):
        store = SessionStore()
        store.start(_session(user=ADMIN_USER.model_copy(update={"bank_id": None})))
        assert store.bank_id is None

    def test_update_tokens_keeps_refresh_token_when_omitted(self):
        store = SessionStore()
        store.start(_session())
        store.update_tokens(TokenPair(auth_token="token-2"))
        assert store.auth_token == "token-2"
        assert store.refresh_token == "refresh-1"

    def test_update_user(self):
        store = SessionStore()
        store.start(_session())
        store.update_user(ANALYST_USER)
        assert store.user.role.value == "analyst"

    def test_clear(self):
        store = SessionStore()
        store.start(_session())
        store.clear()
        assert store.session is None
        assert store.is_authenticated is False

    def test_expired_session_is_not_authenticated(self):
        store = SessionStore()
        store.start(_session(expires_at=datetime.now(timezone.utc) - timedelta(minutes=1)))
        assert store.is_authenticated is False


class TestPersistence:
    def test_round_trip_through_file(self, tmp_path):
        path = tmp_path / "session.json"
        SessionStore(path).start(_session())

        restored = SessionStore(path)
        assert restored.load() is not None
        assert restored.auth_token == "token-1"
        assert restored.user.email == ADMIN_USER.email

    def test_clear_removes_file(self, tmp_path):
        path = tmp_path / "session.json"
        store = SessionStore(path)
        store.start(_session())
        store.clear()
        assert not path.exists()

    def test_corrupt_file_is_discarded(self, tmp_path):
        path = tmp_path / "session.json"
        path.write_text("{not json", encoding="utf-8")
        store = SessionStore(path)
        assert store.load() is None
        assert not path.exists()

    def test_expired_file_is_discarded(self, tmp_path):
        path = tmp_path / "session.json"
        SessionStore(path).start(_session(expires_at=datetime.now(timezone.utc) - timedelta(hours=1)))
        store = SessionStore(path)
        assert store.load() is None
        assert not path.exists()

    def test_no_path_means_no_file(self):
        assert SessionStore().load() is None


class TestSubscribe:
    def test_listeners_see_changes_until_unsubscribed(self):
        store = SessionStore()
        seen = []
        unsubscribe = store.subscribe(seen.append)

        store.start(_session())
        store.update_tokens(TokenPair(auth_token="token-2"))
        unsubscribe()
        store.clear()

        assert [s.auth_token for s in seen] == ["token-1", "token-2"]

    def test_clear_without_session_does_not_notify(self):
        store = SessionStore()
        seen = []
        store.subscribe(seen.append)
        store.clear()
        assert seen == []

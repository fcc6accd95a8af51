"""Tests for login, logout, refresh and the current-user lookup."""

import pytest

from covenant_guardian.auth.schemas import LoginCredentials
from covenant_guardian.auth.service import AuthService
from covenant_guardian.core.errors import BackendAPIError, ErrorCode
from covenant_guardian.core.retry import RetryPolicy
from covenant_guardian.services.backend import BackendClient
from tests.conftest import ADMIN_USER, BACKEND_URL

pytestmark = pytest.mark.anyio

LOGIN_RESPONSE = {
    "user": ADMIN_USER.model_dump(mode="json"),
    "auth_token": "session-token",
    "refresh_token": "refresh-1",
}


@pytest.fixture
def session_backend(http_client, session_store) -> BackendClient:
    return BackendClient(http_client, base_url=BACKEND_URL, session=session_store, retry_policy=RetryPolicy.no_retry())


async def test_login_starts_session(session_backend, session_store, backend_stub):
    backend_stub.add("POST", "/auth/login", LOGIN_RESPONSE)

    auth = await AuthService(session_backend, session_store).login(
        LoginCredentials(email="admin@bank.test", password="secret")
    )

    assert auth.user.id == ADMIN_USER.id
    assert session_store.auth_token == "session-token"
    assert session_store.bank_id == str(ADMIN_USER.bank_id)
    assert backend_stub.json_body("POST", "/auth/login") == {"email": "admin@bank.test", "password": "secret"}


async def test_malformed_login_response(session_backend, session_store, backend_stub):
    backend_stub.add("POST", "/auth/login", {"token": "???"})

    with pytest.raises(BackendAPIError) as exc_info:
        await AuthService(session_backend, session_store).login(LoginCredentials(email="a@b.c", password="x"))

    assert exc_info.value.code == ErrorCode.INVALID_CREDENTIALS
    assert session_store.session is None


async def test_logout_clears_session_even_when_backend_fails(session_backend, logged_in_session, backend_stub):
    backend_stub.add("POST", "/auth/logout", {"message": "boom"}, status_code=500)

    await AuthService(session_backend, logged_in_session).logout()

    assert logged_in_session.session is None
    assert len(backend_stub.calls("POST", "/auth/logout")) == 1


async def test_refresh_rotates_tokens(session_backend, logged_in_session, backend_stub):
    backend_stub.add("POST", "/auth/refresh", {"auth_token": "fresh-token", "refresh_token": "refresh-2"})

    token = await AuthService(session_backend, logged_in_session).refresh()

    assert token == "fresh-token"
    assert logged_in_session.refresh_token == "refresh-2"


async def test_me_updates_session_user(session_backend, logged_in_session, backend_stub):
    backend_stub.add("GET", "/auth/me", {**ADMIN_USER.model_dump(mode="json"), "full_name": "Ada Admin"})

    user = await AuthService(session_backend, logged_in_session).me()

    assert user.full_name == "Ada Admin"
    assert logged_in_session.user.full_name == "Ada Admin"


async def test_http_login_leaves_process_session_alone(client, session_store, backend_stub):
    backend_stub.add("POST", "/auth/login", LOGIN_RESPONSE)

    response = await client.post("/v1/auth/login", json={"email": "admin@bank.test", "password": "secret"})

    assert response.status_code == 200
    assert response.json()["auth_token"] == "session-token"
    assert session_store.session is None

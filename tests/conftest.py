"""Shared test fixtures for the Covenant Guardian test suite."""

import json
from collections.abc import AsyncGenerator, Callable
from typing import Any

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from covenant_guardian.auth.dependencies import get_current_user
from covenant_guardian.auth.schemas import AuthSession, AuthUser, UserRole
from covenant_guardian.auth.session import SessionStore
from covenant_guardian.core.config import settings
from covenant_guardian.core.retry import RetryPolicy
from covenant_guardian.main import app
from covenant_guardian.modules.extraction.service import ExtractionService
from covenant_guardian.services.backend import BackendClient
from covenant_guardian.services.gemini import GeminiClient

BACKEND_URL = "http://backend.test/api"
BANK_ID = "bank_1"
OTHER_BANK_ID = "bank_2"

ADMIN_USER = AuthUser(id="user_admin", email="admin@bank.test", role=UserRole.ADMIN, bank_id=BANK_ID)
ANALYST_USER = AuthUser(id="user_analyst", email="analyst@bank.test", role=UserRole.ANALYST, bank_id=BANK_ID)
VIEWER_USER = AuthUser(id="user_viewer", email="viewer@bank.test", role=UserRole.VIEWER, bank_id=BANK_ID)


class BackendStub:
    """``httpx.MockTransport`` handler serving canned JSON per (method, path).

    Paths are matched without the ``/api`` base prefix. A route body may be a
    callable taking the request; unknown routes answer 404.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], tuple[int, Any]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, body: Any = None, status_code: int = 200) -> None:
        self.routes[(method.upper(), path)] = (status_code, body)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and self._path(r) == path]

    def json_body(self, method: str, path: str, index: int = -1) -> Any:
        return json.loads(self.calls(method, path)[index].content)

    @staticmethod
    def _path(request: httpx.Request) -> str:
        path = request.url.path
        return path[len("/api"):] if path.startswith("/api/") else path

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, self._path(request)))
        if route is None:
            return httpx.Response(404, json={"message": "Not found"})
        status_code, body = route
        if callable(body):
            body = body(request)
        if body is None:
            return httpx.Response(status_code)
        return httpx.Response(status_code, json=body)


def gemini_response(payload: Any) -> dict:
    """A generateContent body whose first candidate carries ``payload`` as JSON text."""
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def override_user(user: AuthUser) -> Callable:
    async def _override():
        return user
    return _override


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    """Retries keep their attempt count but never sleep."""
    monkeypatch.setattr(settings, "RETRY_INITIAL_DELAY_SECONDS", 0.0)
    monkeypatch.setattr(settings, "RETRY_MAX_DELAY_SECONDS", 0.0)
    monkeypatch.setattr(settings, "BACKEND_API_URL", BACKEND_URL)


@pytest.fixture
def backend_stub() -> BackendStub:
    return BackendStub()


@pytest.fixture
async def http_client(backend_stub: BackendStub) -> AsyncGenerator[httpx.AsyncClient]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(backend_stub)) as client:
        yield client


@pytest.fixture
def backend(http_client: httpx.AsyncClient) -> BackendClient:
    return BackendClient(
        http_client,
        base_url=BACKEND_URL,
        auth_token="token-abc",
        bank_id=BANK_ID,
        retry_policy=RetryPolicy(max_attempts=3, initial_delay=0.0, max_delay=0.0),
    )


@pytest.fixture
def session_store() -> SessionStore:
    return SessionStore()


@pytest.fixture
def logged_in_session(session_store: SessionStore) -> SessionStore:
    session_store.start(AuthSession(user=ADMIN_USER, auth_token="session-token", refresh_token="refresh-1"))
    return session_store


@pytest.fixture
def disabled_gemini(http_client: httpx.AsyncClient) -> GeminiClient:
    return GeminiClient(api_key="", http_client=http_client)


@pytest.fixture
async def app_state(
    http_client: httpx.AsyncClient,
    session_store: SessionStore,
    disabled_gemini: GeminiClient,
) -> AsyncGenerator[None]:
    """What the lifespan would create, wired to the backend stub."""
    extraction = ExtractionService(disabled_gemini, retry_base_delay=0.0)
    app.state.http_client = http_client
    app.state.session = session_store
    app.state.gemini = disabled_gemini
    app.state.extraction = extraction
    yield
    await extraction.aclose()


@pytest.fixture
async def client(app_state) -> AsyncGenerator[AsyncClient]:
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def as_admin():
    app.dependency_overrides[get_current_user] = override_user(ADMIN_USER)


@pytest.fixture
def as_analyst():
    app.dependency_overrides[get_current_user] = override_user(ANALYST_USER)


@pytest.fixture
def as_viewer():
    app.dependency_overrides[get_current_user] = override_user(VIEWER_USER)

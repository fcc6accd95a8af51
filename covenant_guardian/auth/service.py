"""Login, logout and token refresh against the backend, driving a ``SessionStore``."""

from __future__ import annotations

import structlog
from pydantic import ValidationError

from covenant_guardian.auth.schemas import AuthSession, AuthUser, LoginCredentials
from covenant_guardian.auth.session import SessionStore
from covenant_guardian.core.errors import BackendAPIError, ErrorCode
from covenant_guardian.services.backend import BackendClient

logger = structlog.get_logger()


class AuthService:
    def __init__(self, backend: BackendClient, session: SessionStore) -> None:
        self.backend = backend
        self.session = session

    async def login(self, credentials: LoginCredentials) -> AuthSession:
        data = await self.backend.post("/auth/login", json=credentials.model_dump())
        try:
            auth = AuthSession.model_validate(data)
        except ValidationError as exc:
            raise BackendAPIError(
                401,
                "Login failed: Invalid response",
                code=ErrorCode.INVALID_CREDENTIALS,
            ) from exc

        self.session.start(auth)
        logger.info("user_logged_in", user_id=str(auth.user.id), bank_id=auth.user.bank_id)
        return auth

    async def logout(self) -> None:
        """End the session; the local session is cleared even when the backend call fails."""
        try:
            if self.session.is_authenticated:
                await self.backend.post("/auth/logout")
        except BackendAPIError as exc:
            logger.warning("logout_request_failed", status_code=exc.status_code, error=exc.message)
        finally:
            self.session.clear()

    async def refresh(self) -> str:
        tokens = await self.backend.refresh_tokens()
        return tokens.auth_token

    async def me(self) -> AuthUser:
        data = await self.backend.get("/auth/me")
        user = AuthUser.model_validate(data)
        if self.session.session is not None:
            self.session.update_user(user)
        return user

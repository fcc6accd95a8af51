"""FastAPI auth dependencies: get_backend, get_current_user, require_role, require_permission."""

import sentry_sdk
import structlog
from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError

from covenant_guardian.auth.rbac import belongs_to_bank, check_permission, has_role
from covenant_guardian.auth.schemas import AuthUser, UserRole
from covenant_guardian.core.errors import BackendAPIError
from covenant_guardian.modules.extraction.service import ExtractionService
from covenant_guardian.services.backend import BackendClient
from covenant_guardian.services.gemini import GeminiClient

logger = structlog.get_logger()

bearer_scheme = HTTPBearer(auto_error=False)


def get_gemini(request: Request) -> GeminiClient:
    return request.app.state.gemini


def get_extraction_service(request: Request) -> ExtractionService:
    return request.app.state.extraction


async def get_backend(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    x_bank_id: str | None = Header(default=None),
) -> BackendClient:
    """
    Backend client acting on behalf of the caller.

    Only the caller's own bearer token and X-Bank-ID are forwarded. The
    process session is never lent to an HTTP request.
    """
    return BackendClient(
        request.app.state.http_client,
        auth_token=credentials.credentials if credentials else None,
        bank_id=x_bank_id,
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    x_bank_id: str | None = Header(default=None),
    backend: BackendClient = Depends(get_backend),
) -> AuthUser:
    """
    Resolve the calling user through the backend's /auth/me.

    A missing bearer token is a 401. An X-Bank-ID naming another bank is a 403.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        data = await backend.get("/auth/me")
        user = AuthUser.model_validate(data)
    except BackendAPIError as exc:
        if exc.status_code not in (401, 403):
            raise
        logger.warning("token_verification_failed", status_code=exc.status_code)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    except ValidationError as exc:
        logger.warning("user_payload_invalid", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        ) from exc

    if x_bank_id is not None and not belongs_to_bank(user, x_bank_id):
        logger.warning("cross_tenant_access_denied", user_id=str(user.id), bank_id=x_bank_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied: user does not belong to this bank",
        )

    # Sentry scope carries ids only, never the email
    sentry_sdk.set_user({"id": str(user.id)})
    if user.bank_id is not None:
        sentry_sdk.set_tag("bank_id", str(user.bank_id))
    sentry_sdk.set_tag("user_role", user.role.value)

    return user


def require_role(minimum: UserRole):
    """
    Dependency factory: the current user must hold ``minimum`` or a higher role.

    Usage:
        @router.get("/users", dependencies=[Depends(require_role(UserRole.ADMIN))])
    """

    async def _check_role(
        current_user: AuthUser = Depends(get_current_user),
    ) -> AuthUser:
        if not has_role(current_user, minimum):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{current_user.role.value}' not authorized. Required: {minimum.value}",
            )
        return current_user

    return _check_role


def require_permission(action: str, resource_type: str):
    """
    Dependency factory: the current user's role must grant ``action`` on ``resource_type``.

    Usage:
        @router.post("/covenants/{id}/health", dependencies=[Depends(require_permission("update", "covenants"))])
    """

    async def _check_perm(
        current_user: AuthUser = Depends(get_current_user),
    ) -> AuthUser:
        if not check_permission(current_user.role, action, resource_type):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: {action} on {resource_type}",
            )
        return current_user

    return _check_perm

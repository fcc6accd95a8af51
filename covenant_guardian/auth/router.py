"""Auth API router: login, logout, current user and permissions."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from covenant_guardian.auth.dependencies import get_backend, get_current_user
from covenant_guardian.auth.rbac import get_permissions_for_role
from covenant_guardian.auth.schemas import AuthSession, AuthUser, LoginCredentials
from covenant_guardian.auth.service import AuthService
from covenant_guardian.auth.session import SessionStore
from covenant_guardian.services.backend import BackendClient

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/login", response_model=AuthSession)
async def login(
    body: LoginCredentials,
    backend: BackendClient = Depends(get_backend),
):
    """Exchange credentials for backend tokens; the session is returned to the caller."""
    svc = AuthService(backend, SessionStore())
    return await svc.login(body)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(backend: BackendClient = Depends(get_backend)):
    await backend.post("/auth/logout")


@router.get("/me", response_model=AuthUser)
async def me(current_user: AuthUser = Depends(get_current_user)):
    return current_user


@router.get("/permissions", response_model=dict[str, list[str]])
async def permissions(current_user: AuthUser = Depends(get_current_user)):
    """Permissions of the current user grouped by resource type."""
    return get_permissions_for_role(current_user.role)

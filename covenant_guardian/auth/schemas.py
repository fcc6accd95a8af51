"""Auth schemas: users, sessions and login payloads."""

from __future__ import annotations

import enum
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict


class UserRole(str, enum.Enum):
    VIEWER = "viewer"
    ANALYST = "analyst"
    ADMIN = "admin"


class AuthUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int | str
    email: str
    role: UserRole
    bank_id: int | str | None = None
    bank_name: str | None = None
    full_name: str | None = None


class LoginCredentials(BaseModel):
    email: str
    password: str


class AuthSession(BaseModel):
    """Authenticated user plus the tokens used against the backend."""

    model_config = ConfigDict(extra="ignore")

    user: AuthUser
    auth_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        expires = self.expires_at if self.expires_at.tzinfo else self.expires_at.replace(tzinfo=timezone.utc)
        return now >= expires


class TokenPair(BaseModel):
    model_config = ConfigDict(extra="ignore")

    auth_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None

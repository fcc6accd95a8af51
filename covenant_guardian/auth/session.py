"""Explicit auth session store.

A ``SessionStore`` is created by whoever owns the process lifecycle (the
FastAPI lifespan, a script, a test) and passed to the clients that need
tokens. Lifecycle: ``load()`` once at startup, ``start()`` after login,
``update_tokens()`` after a refresh, ``clear()`` on logout or when a refresh
fails. Listeners registered with ``subscribe()`` see every change.
"""

from __future__ import annotations

import json
import os
from collections.abc import Callable
from pathlib import Path

import structlog
from pydantic import ValidationError

from covenant_guardian.auth.schemas import AuthSession, AuthUser, TokenPair

logger = structlog.get_logger()

SessionListener = Callable[[AuthSession | None], None]


class SessionStore:
    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path else None
        self._session: AuthSession | None = None
        self._listeners: list[SessionListener] = []

    # ── State ─────────────────────────────────────────────────────────────────

    @property
    def session(self) -> AuthSession | None:
        return self._session

    @property
    def user(self) -> AuthUser | None:
        return self._session.user if self._session else None

    @property
    def auth_token(self) -> str | None:
        return self._session.auth_token if self._session else None

    @property
    def refresh_token(self) -> str | None:
        return self._session.refresh_token if self._session else None

    @property
    def bank_id(self) -> str | None:
        if self._session is None or self._session.user.bank_id is None:
            return None
        return str(self._session.user.bank_id)

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None and not self._session.is_expired()

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def load(self) -> AuthSession | None:
        """Restore a persisted session; corrupt or expired files are discarded."""
        if self.path is None or not self.path.exists():
            return None
        try:
            session = AuthSession.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValidationError, ValueError) as exc:
            logger.warning("session_load_failed", path=str(self.path), error=str(exc))
            self._remove_file()
            return None

        if session.is_expired():
            logger.info("session_expired_on_load", user_id=str(session.user.id))
            self._remove_file()
            return None

        self._session = session
        self._notify()
        return session

    def start(self, session: AuthSession) -> None:
        self._session = session
        self._persist()
        self._notify()
        logger.info("session_started", user_id=str(session.user.id), bank_id=session.user.bank_id)

    def update_tokens(self, tokens: TokenPair) -> None:
        if self._session is None:
            raise RuntimeError("Cannot update tokens without an active session")
        self._session = self._session.model_copy(
            update={
                "auth_token": tokens.auth_token,
                "refresh_token": tokens.refresh_token or self._session.refresh_token,
                "expires_at": tokens.expires_at or self._session.expires_at,
            }
        )
        self._persist()
        self._notify()

    def update_user(self, user: AuthUser) -> None:
        if self._session is None:
            raise RuntimeError("Cannot update user without an active session")
        self._session = self._session.model_copy(update={"user": user})
        self._persist()
        self._notify()

    def clear(self) -> None:
        had_session = self._session is not None
        self._session = None
        self._remove_file()
        if had_session:
            logger.info("session_cleared")
            self._notify()

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener; the returned callable unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ── Internals ─────────────────────────────────────────────────────────────

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._session)

    def _persist(self) -> None:
        if self.path is None or self._session is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._session.model_dump(mode="json")), encoding="utf-8")
        os.replace(tmp, self.path)

    def _remove_file(self) -> None:
        if self.path is not None and self.path.exists():
            self.path.unlink()

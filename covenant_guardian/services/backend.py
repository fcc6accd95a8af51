"""Async client for the hosted REST backend (Xano).

The backend answers either with raw JSON or with a ``{success, data, error,
pagination}`` envelope; both are unwrapped here so services only ever see the
payload. Non-success responses become ``BackendAPIError``. Transient failures
are retried by the injected ``RetryPolicy``, writes only when they never reached
the backend. A 401 triggers one token refresh
through the ``SessionStore`` before giving up.
"""

from __future__ import annotations

import uuid
from typing import Any

import httpx
import structlog
from pydantic import AliasChoices, BaseModel, Field

from covenant_guardian.auth.schemas import TokenPair
from covenant_guardian.auth.session import SessionStore
from covenant_guardian.core.config import settings
from covenant_guardian.core.errors import BackendAPIError, ErrorCode
from covenant_guardian.core.retry import RetryPolicy

logger = structlog.get_logger()

# status -> (code, message) when the backend gives no structured error
_STATUS_ERRORS: dict[int, tuple[str, str]] = {
    400: (ErrorCode.VALIDATION_ERROR, "Invalid request data"),
    401: (ErrorCode.INVALID_CREDENTIALS, "Authentication required"),
    403: (ErrorCode.INSUFFICIENT_PERMISSIONS, "Insufficient permissions"),
    404: (ErrorCode.NOT_FOUND, "Resource not found"),
    422: (ErrorCode.VALIDATION_ERROR, "Validation failed"),
    502: (ErrorCode.SERVICE_UNAVAILABLE, "External service unavailable"),
    503: (ErrorCode.SERVICE_UNAVAILABLE, "External service unavailable"),
}


# Methods the backend may safely see twice
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})


def is_replayable_write(exc: BaseException) -> bool:
    """A POST/PATCH is resent only when the backend cannot have applied it."""
    if not isinstance(exc, BackendAPIError):
        return False
    if exc.status_code in (429, 503):
        return True
    return isinstance(exc.__cause__, (httpx.ConnectError, httpx.ConnectTimeout))


class Pagination(BaseModel):
    page: int = 1
    limit: int = 0
    total: int = 0
    total_pages: int = Field(default=0, validation_alias=AliasChoices("total_pages", "totalPages"))


class BackendResponse(BaseModel):
    data: Any = None
    pagination: Pagination | None = None


def _error_from_response(resp: httpx.Response) -> BackendAPIError:
    body: Any = None
    try:
        body = resp.json()
    except ValueError:
        pass

    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        error = body["error"]
        return BackendAPIError(
            status_code=resp.status_code,
            code=error.get("code") or ErrorCode.UNKNOWN_ERROR,
            message=error.get("message") or f"Backend error {resp.status_code}",
            details=error.get("details"),
        )

    code, message = _STATUS_ERRORS.get(resp.status_code, (ErrorCode.UNKNOWN_ERROR, "An unexpected error occurred"))
    details = body.get("message") if isinstance(body, dict) else (resp.text[:500] or None)
    return BackendAPIError(status_code=resp.status_code, code=code, message=message, details=details)


def unwrap(status_code: int, body: Any) -> BackendResponse:
    """Strip the optional success envelope; a ``success: false`` body is an error."""
    if isinstance(body, dict) and "success" in body:
        if not body.get("success"):
            error = body.get("error") or {}
            if not isinstance(error, dict):
                error = {"message": str(error)}
            raise BackendAPIError(
                status_code=status_code,
                code=error.get("code") or ErrorCode.UNKNOWN_ERROR,
                message=error.get("message") or "Request failed",
                details=error.get("details"),
            )
        pagination = body.get("pagination")
        return BackendResponse(
            data=body.get("data"),
            pagination=Pagination.model_validate(pagination) if isinstance(pagination, dict) else None,
        )
    return BackendResponse(data=body)


class BackendClient:
    """Per-caller view of the backend sharing one ``httpx.AsyncClient``.

    Credentials come from an explicit ``auth_token``/``bank_id`` (forwarded from
    an incoming request) or, when those are absent, from the ``SessionStore``.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        base_url: str | None = None,
        session: SessionStore | None = None,
        auth_token: str | None = None,
        bank_id: int | str | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout: float | None = None,
    ) -> None:
        self._http = http_client
        self.base_url = (base_url or settings.BACKEND_API_URL).rstrip("/")
        self.session = session
        self._auth_token = auth_token
        self._bank_id = str(bank_id) if bank_id is not None else None
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.timeout = timeout or settings.BACKEND_TIMEOUT_SECONDS

    @property
    def auth_token(self) -> str | None:
        if self._auth_token:
            return self._auth_token
        return self.session.auth_token if self.session else None

    @property
    def bank_id(self) -> str | None:
        if self._bank_id:
            return self._bank_id
        return self.session.bank_id if self.session else None

    def _headers(self) -> dict[str, str]:
        headers = {"X-Request-ID": f"req_{uuid.uuid4().hex[:16]}"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        if self.bank_id:
            headers["X-Bank-ID"] = self.bank_id
        return headers

    # ── Public HTTP methods ───────────────────────────────────────────────────

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return (await self.request("GET", path, params=params)).data

    async def get_page(self, path: str, params: dict[str, Any] | None = None) -> BackendResponse:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Any = None) -> Any:
        return (await self.request("POST", path, json=json)).data

    async def put(self, path: str, json: Any = None) -> Any:
        return (await self.request("PUT", path, json=json)).data

    async def patch(self, path: str, json: Any = None) -> Any:
        return (await self.request("PATCH", path, json=json)).data

    async def delete(self, path: str) -> Any:
        return (await self.request("DELETE", path)).data

    async def upload(
        self,
        path: str,
        data: dict[str, str],
        files: dict[str, tuple[str, bytes, str]] | None = None,
    ) -> Any:
        """POST a multipart form (plus optional file parts)."""
        return (await self.request("POST", path, data=data, files=files)).data

    async def health_check(self) -> bool:
        try:
            await self.get("/health")
            return True
        except BackendAPIError as exc:
            logger.warning("backend_health_check_failed", status_code=exc.status_code, error=exc.message)
            return False

    # ── Core request ──────────────────────────────────────────────────────────

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        data: dict[str, str] | None = None,
        files: dict[str, Any] | None = None,
    ) -> BackendResponse:
        kwargs = {"params": _clean_params(params), "json": json, "data": data, "files": files}
        if method.upper() not in IDEMPOTENT_METHODS:
            kwargs["should_retry"] = is_replayable_write
        try:
            return await self.retry_policy.call(self._send, method, path, **kwargs)
        except BackendAPIError as exc:
            if exc.status_code != 401 or not self._can_refresh():
                raise
            logger.info("backend_token_refresh", path=path)

        await self.refresh_tokens()
        return await self.retry_policy.call(self._send, method, path, **kwargs)

    async def refresh_tokens(self) -> TokenPair:
        if self.session is None or not self.session.refresh_token:
            raise BackendAPIError(401, "No refresh token available", code=ErrorCode.TOKEN_EXPIRED)
        try:
            body = await self._send(
                "POST",
                "/auth/refresh",
                json={"refresh_token": self.session.refresh_token},
                auth=False,
            )
            tokens = TokenPair.model_validate(body.data)
        except (BackendAPIError, ValueError) as exc:
            logger.warning("backend_token_refresh_failed", error=str(exc))
            self.session.clear()
            raise BackendAPIError(401, "Session expired", code=ErrorCode.TOKEN_EXPIRED) from exc

        self.session.update_tokens(tokens)
        return tokens

    def _can_refresh(self) -> bool:
        # forwarded request tokens belong to the caller and are not refreshed here
        return self._auth_token is None and self.session is not None and bool(self.session.refresh_token)

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        data: dict[str, str] | None = None,
        files: dict[str, Any] | None = None,
        auth: bool = True,
    ) -> BackendResponse:
        headers = self._headers()
        if not auth:
            headers.pop("Authorization", None)

        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            resp = await self._http.request(
                method,
                url,
                params=params,
                json=json,
                data=data,
                files=files,
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as exc:
            logger.warning("backend_timeout", method=method, path=path)
            raise BackendAPIError(0, "Request timed out", code=ErrorCode.TIMEOUT_ERROR, details=str(exc)) from exc
        except httpx.TransportError as exc:
            logger.warning("backend_unreachable", method=method, path=path, error=str(exc))
            raise BackendAPIError(0, "Unable to reach backend", code=ErrorCode.NETWORK_ERROR, details=str(exc)) from exc

        if resp.status_code >= 400:
            error = _error_from_response(resp)
            logger.warning(
                "backend_request_failed",
                method=method,
                path=path,
                status_code=resp.status_code,
                code=error.code,
            )
            raise error

        if resp.status_code == 204 or not resp.content:
            return BackendResponse(data=None)

        try:
            body = resp.json()
        except ValueError as exc:
            raise BackendAPIError(
                resp.status_code,
                "Backend returned a non-JSON body",
                code=ErrorCode.UNKNOWN_ERROR,
            ) from exc
        return unwrap(resp.status_code, body)


def page_items(response: BackendResponse) -> tuple[list[Any], Pagination | None]:
    """Items and pagination of a list response, whether paginated in the envelope or in the payload."""
    data = response.data
    pagination = response.pagination
    if isinstance(data, dict):
        if pagination is None and isinstance(data.get("pagination"), dict):
            pagination = Pagination.model_validate(data["pagination"])
        data = data.get("data", data.get("items"))
    return (data if isinstance(data, list) else []), pagination


def _clean_params(params: dict[str, Any] | None) -> dict[str, Any] | None:
    if not params:
        return None
    return {k: v for k, v in params.items() if v is not None}

"""Error catalogue, typed exceptions and the JSON error envelope used by every endpoint."""
from typing import Any

import httpx
import sentry_sdk
import structlog
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = structlog.get_logger()


class ErrorResponse(BaseModel):
    """Standard error envelope returned by all API error handlers."""
    error: str
    message: str
    detail: Any = None
    request_id: str = "unknown"


class ErrorMessage(BaseModel):
    """User-facing description of a failure."""
    title: str
    message: str
    action: str | None = None
    retryable: bool


class ErrorCode:
    # Authentication
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"

    # Contracts
    CONTRACT_NOT_FOUND = "CONTRACT_NOT_FOUND"
    INVALID_CONTRACT_DATA = "INVALID_CONTRACT_DATA"
    CONTRACT_UPLOAD_FAILED = "CONTRACT_UPLOAD_FAILED"

    # Covenants
    COVENANT_EXTRACTION_FAILED = "COVENANT_EXTRACTION_FAILED"
    COVENANT_NOT_FOUND = "COVENANT_NOT_FOUND"
    INVALID_COVENANT_THRESHOLD = "INVALID_COVENANT_THRESHOLD"

    # Financial data
    FINANCIAL_DATA_INVALID = "FINANCIAL_DATA_INVALID"
    FINANCIAL_API_UNAVAILABLE = "FINANCIAL_API_UNAVAILABLE"
    STALE_FINANCIAL_DATA = "STALE_FINANCIAL_DATA"

    # Alerts
    ALERT_NOT_FOUND = "ALERT_NOT_FOUND"
    ALERT_ALREADY_ACKNOWLEDGED = "ALERT_ALREADY_ACKNOWLEDGED"

    # Multi-tenant
    CROSS_TENANT_ACCESS_DENIED = "CROSS_TENANT_ACCESS_DENIED"
    BANK_NOT_FOUND = "BANK_NOT_FOUND"

    # External services
    GEMINI_API_ERROR = "GEMINI_API_ERROR"
    NEWS_API_ERROR = "NEWS_API_ERROR"

    # System
    DATABASE_ERROR = "DATABASE_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


RETRYABLE_ERROR_CODES: frozenset[str] = frozenset({
    ErrorCode.GEMINI_API_ERROR,
    ErrorCode.NEWS_API_ERROR,
    ErrorCode.FINANCIAL_API_UNAVAILABLE,
    ErrorCode.DATABASE_ERROR,
    ErrorCode.SERVICE_UNAVAILABLE,
    ErrorCode.NETWORK_ERROR,
    ErrorCode.TIMEOUT_ERROR,
})


def _msg(title: str, message: str, retryable: bool, action: str | None = None) -> ErrorMessage:
    return ErrorMessage(title=title, message=message, action=action, retryable=retryable)


ERROR_MESSAGES: dict[str, ErrorMessage] = {
    ErrorCode.INVALID_CREDENTIALS: _msg(
        "Login Failed",
        "The email or password you entered is incorrect. Please try again.",
        True,
        "Check your credentials and try again",
    ),
    ErrorCode.TOKEN_EXPIRED: _msg(
        "Session Expired",
        "Your session has expired. Please log in again to continue.",
        False,
        "Log in again",
    ),
    ErrorCode.INSUFFICIENT_PERMISSIONS: _msg(
        "Access Denied",
        "You do not have permission to perform this action. "
        "Contact your administrator if you need access.",
        False,
    ),
    ErrorCode.CONTRACT_NOT_FOUND: _msg(
        "Contract Not Found",
        "The contract you are looking for could not be found. "
        "It may have been deleted or you may not have access.",
        False,
    ),
    ErrorCode.INVALID_CONTRACT_DATA: _msg(
        "Invalid Contract Data",
        "Some of the contract information is invalid. Please review the form and correct any errors.",
        True,
        "Review and correct the form",
    ),
    ErrorCode.CONTRACT_UPLOAD_FAILED: _msg(
        "Upload Failed",
        "We could not upload your contract document. Please check the file and try again.",
        True,
        "Try uploading again",
    ),
    ErrorCode.COVENANT_EXTRACTION_FAILED: _msg(
        "Covenant Extraction Failed",
        "We could not automatically extract covenants from the document. "
        "You can add covenants manually or try uploading a clearer document.",
        True,
        "Add covenants manually or retry",
    ),
    ErrorCode.COVENANT_NOT_FOUND: _msg(
        "Covenant Not Found",
        "The covenant you are looking for could not be found.",
        False,
    ),
    ErrorCode.INVALID_COVENANT_THRESHOLD: _msg(
        "Invalid Threshold",
        "The covenant threshold value is invalid. Please enter a valid number.",
        True,
        "Enter a valid threshold value",
    ),
    ErrorCode.FINANCIAL_DATA_INVALID: _msg(
        "Invalid Financial Data",
        "The financial data you entered contains errors. Please review and correct the values.",
        True,
        "Review and correct the data",
    ),
    ErrorCode.FINANCIAL_API_UNAVAILABLE: _msg(
        "Financial Data Service Unavailable",
        "We are unable to fetch financial data at the moment. Please try again later.",
        True,
        "Try again later",
    ),
    ErrorCode.STALE_FINANCIAL_DATA: _msg(
        "Outdated Financial Data",
        "The financial data may be outdated. Consider updating with more recent figures.",
        False,
        "Update financial data",
    ),
    ErrorCode.ALERT_NOT_FOUND: _msg(
        "Alert Not Found",
        "The alert you are looking for could not be found.",
        False,
    ),
    ErrorCode.ALERT_ALREADY_ACKNOWLEDGED: _msg(
        "Already Acknowledged",
        "This alert has already been acknowledged by another user.",
        False,
    ),
    ErrorCode.CROSS_TENANT_ACCESS_DENIED: _msg(
        "Access Denied",
        "You do not have access to this resource. It belongs to a different organization.",
        False,
    ),
    ErrorCode.BANK_NOT_FOUND: _msg(
        "Organization Not Found",
        "Your organization could not be found. Please contact support.",
        False,
    ),
    ErrorCode.GEMINI_API_ERROR: _msg(
        "AI Service Unavailable",
        "Our AI analysis service is temporarily unavailable. Some features may be limited.",
        True,
        "Try again later",
    ),
    ErrorCode.NEWS_API_ERROR: _msg(
        "News Service Unavailable",
        "We could not fetch the latest news. Please try again later.",
        True,
        "Try again later",
    ),
    ErrorCode.DATABASE_ERROR: _msg(
        "System Error",
        "A system error occurred. Our team has been notified. Please try again.",
        True,
        "Try again",
    ),
    ErrorCode.VALIDATION_ERROR: _msg(
        "Validation Error",
        "Please check your input and correct any errors.",
        True,
        "Review and correct the form",
    ),
    ErrorCode.UNKNOWN_ERROR: _msg(
        "Something Went Wrong",
        "An unexpected error occurred. Please try again or contact support if the problem persists.",
        True,
        "Try again",
    ),
}

DEFAULT_ERROR = _msg("Error", "An unexpected error occurred. Please try again.", True, "Try again")


def error_from_code(code: str) -> ErrorMessage:
    return ERROR_MESSAGES.get(code, DEFAULT_ERROR)


def error_from_api_error(
    code: str | None = None,
    message: str | None = None,
    details: str | None = None,
) -> ErrorMessage:
    """Map a backend error payload onto a user-facing message.

    Known codes use the catalogue entry (with backend details appended);
    otherwise the backend's own message is surfaced as retryable.
    """
    if code and code in ERROR_MESSAGES:
        config = ERROR_MESSAGES[code]
        if details:
            return config.model_copy(update={"message": f"{config.message} {details}"})
        return config
    if message:
        return ErrorMessage(title="Error", message=message, retryable=True)
    return DEFAULT_ERROR


_HTTP_STATUS_MESSAGES: dict[int, ErrorMessage] = {
    400: _msg("Invalid Request", "The request was invalid. Please check your input and try again.", True),
    401: _msg("Authentication Required", "Please log in to continue.", False),
    403: _msg("Access Denied", "You do not have permission to perform this action.", False),
    404: _msg("Not Found", "The requested resource could not be found.", False),
    408: _msg("Request Timeout", "The request took too long. Please try again.", True, "Try again"),
    422: _msg("Validation Error", "Please check your input and correct any errors.", True),
    429: _msg(
        "Too Many Requests",
        "You have made too many requests. Please wait a moment and try again.",
        True,
        "Wait and try again",
    ),
    500: _msg(
        "Server Error",
        "A server error occurred. Our team has been notified.",
        True,
        "Try again later",
    ),
}

_SERVICE_UNAVAILABLE = _msg(
    "Service Unavailable",
    "The service is temporarily unavailable. Please try again later.",
    True,
    "Try again later",
)


def error_from_http_status(status_code: int) -> ErrorMessage:
    if status_code in (502, 503, 504):
        return _SERVICE_UNAVAILABLE
    return _HTTP_STATUS_MESSAGES.get(status_code, DEFAULT_ERROR)


def error_from_network_error(exc: Exception) -> ErrorMessage:
    if isinstance(exc, httpx.TimeoutException) or "timeout" in str(exc).lower():
        return _msg(
            "Request Timeout",
            "The request took too long to complete. Please try again.",
            True,
            "Try again",
        )
    if isinstance(exc, httpx.TransportError):
        return _msg(
            "Connection Error",
            "Unable to connect to the server. Please check your internet connection and try again.",
            True,
            "Check connection and retry",
        )
    return DEFAULT_ERROR


# ── Exceptions ────────────────────────────────────────────────────────────────


class BackendAPIError(Exception):
    """Non-success response (or transport failure) from the hosted backend."""

    def __init__(
        self,
        status_code: int,
        message: str,
        code: str = ErrorCode.UNKNOWN_ERROR,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details

    @property
    def is_retryable(self) -> bool:
        if self.code in RETRYABLE_ERROR_CODES:
            return True
        # status_code 0 means no response reached us
        return self.status_code == 0 or self.status_code == 429 or self.status_code >= 500

    @property
    def user_message(self) -> ErrorMessage:
        if self.code in ERROR_MESSAGES:
            details = self.details if isinstance(self.details, str) else None
            return error_from_api_error(self.code, self.message, details)
        if self.status_code:
            return error_from_http_status(self.status_code)
        return DEFAULT_ERROR


class ValidationFailedError(ValueError):
    """Input rejected before any backend call was made."""

    def __init__(self, errors: list[str], code: str = ErrorCode.VALIDATION_ERROR) -> None:
        super().__init__("; ".join(errors) or "Validation failed")
        self.errors = errors
        self.code = code


def is_retryable_error(exc: BaseException) -> bool:
    """Transient failures: network, timeouts, 429, 5xx and retryable error codes."""
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code
        return status_code == 429 or status_code >= 500
    retryable = getattr(exc, "is_retryable", None)
    if isinstance(retryable, bool):
        return retryable
    return False


# ── Handlers ──────────────────────────────────────────────────────────────────


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch unhandled exceptions and return a consistent JSON envelope."""
    request_id = request.headers.get("x-request-id", "unknown")

    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        request_id=request_id,
    )

    sentry_sdk.capture_exception(exc)

    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Our team has been notified.",
            "request_id": request_id,
        },
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Standardize HTTPException responses into the same JSON envelope."""
    request_id = request.headers.get("x-request-id", "unknown")

    if isinstance(exc.detail, dict):
        error = exc.detail.get("error", f"http_{exc.status_code}")
        message = exc.detail.get("message", str(exc.detail))
        detail: Any = exc.detail.get("detail")
    else:
        error = f"http_{exc.status_code}"
        message = str(exc.detail)
        detail = exc.detail

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": error,
            "message": message,
            "detail": detail,
            "request_id": request_id,
        },
        headers=dict(exc.headers or {}),
    )


async def backend_error_handler(request: Request, exc: BackendAPIError) -> JSONResponse:
    """Relay backend failures with their user-facing message."""
    request_id = request.headers.get("x-request-id", "unknown")
    status_code = exc.status_code if 400 <= exc.status_code < 600 else 502

    logger.warning(
        "backend_error",
        status_code=exc.status_code,
        code=exc.code,
        error=exc.message,
        path=request.url.path,
        request_id=request_id,
    )

    friendly = exc.user_message
    return JSONResponse(
        status_code=status_code,
        content={
            "error": exc.code.lower(),
            "message": friendly.message,
            "detail": {"title": friendly.title, "retryable": exc.is_retryable, "action": friendly.action},
            "request_id": request_id,
        },
    )


async def validation_failed_handler(request: Request, exc: ValidationFailedError) -> JSONResponse:
    request_id = request.headers.get("x-request-id", "unknown")
    return JSONResponse(
        status_code=422,
        content={
            "error": exc.code.lower(),
            "message": str(exc),
            "detail": exc.errors,
            "request_id": request_id,
        },
    )

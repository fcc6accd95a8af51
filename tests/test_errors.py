"""Tests for the error catalogue and retryability rules."""

import httpx
import pytest

from covenant_guardian.core.errors import (
    DEFAULT_ERROR,
    BackendAPIError,
    ErrorCode,
    ValidationFailedError,
    error_from_api_error,
    error_from_code,
    error_from_http_status,
    error_from_network_error,
    is_retryable_error,
)


class TestCatalogue:
    def test_known_code(self):
        message = error_from_code(ErrorCode.TOKEN_EXPIRED)
        assert message.title == "Session Expired"
        assert message.retryable is False

    def test_unknown_code_uses_default(self):
        assert error_from_code("SOMETHING_ELSE") == DEFAULT_ERROR

    def test_api_error_appends_details(self):
        message = error_from_api_error(ErrorCode.CONTRACT_NOT_FOUND, details="Contract 12")
        assert message.message.endswith("Contract 12")

    def test_api_error_surfaces_backend_message(self):
        message = error_from_api_error("CUSTOM", "Quota exceeded")
        assert message.message == "Quota exceeded"
        assert message.retryable is True

    @pytest.mark.parametrize("status_code", [502, 503, 504])
    def test_gateway_statuses_are_service_unavailable(self, status_code):
        assert error_from_http_status(status_code).title == "Service Unavailable"

    def test_timeout_message(self):
        assert error_from_network_error(httpx.ReadTimeout("slow")).title == "Request Timeout"

    def test_connection_message(self):
        assert error_from_network_error(httpx.ConnectError("refused")).title == "Connection Error"


class TestRetryable:
    @pytest.mark.parametrize(
        "exc,expected",
        [
            (httpx.ConnectError("refused"), True),
            (httpx.ReadTimeout("slow"), True),
            (BackendAPIError(0, "unreachable", code=ErrorCode.NETWORK_ERROR), True),
            (BackendAPIError(429, "slow down"), True),
            (BackendAPIError(500, "boom"), True),
            (BackendAPIError(400, "bad", code=ErrorCode.VALIDATION_ERROR), False),
            (BackendAPIError(404, "missing", code=ErrorCode.NOT_FOUND), False),
            (BackendAPIError(400, "ai down", code=ErrorCode.GEMINI_API_ERROR), True),
            (ValueError("nope"), False),
        ],
    )
    def test_classification(self, exc, expected):
        assert is_retryable_error(exc) is expected

    def test_user_message_prefers_code(self):
        exc = BackendAPIError(404, "missing", code=ErrorCode.ALERT_NOT_FOUND)
        assert exc.user_message.title == "Alert Not Found"

    def test_user_message_falls_back_to_status(self):
        assert BackendAPIError(429, "slow down", code="RATE_LIMITED").user_message.title == "Too Many Requests"


def test_validation_failed_joins_errors():
    exc = ValidationFailedError(["Contract name is required", "Principal amount must be greater than 0"])
    assert str(exc) == "Contract name is required; Principal amount must be greater than 0"
    assert exc.code == ErrorCode.VALIDATION_ERROR

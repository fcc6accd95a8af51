"""Sentry error reporting for the Covenant Guardian API."""

import structlog
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.httpx import HttpxIntegration

logger = structlog.get_logger()

REDACTED = "[REDACTED]"
_SECRET_HEADERS = frozenset({"authorization", "cookie", "x-api-key", "x-goog-api-key", "x-bank-id"})


def redact_event(event: dict, hint: dict) -> dict:
    """Blank out credentials: auth headers and the Gemini ``key=`` query parameter."""
    request = event.get("request") or {}
    headers = request.get("headers") or {}
    request["headers"] = {
        name: REDACTED if name.lower() in _SECRET_HEADERS else value for name, value in headers.items()
    }
    query = request.get("query_string")
    if isinstance(query, str) and "key=" in query:
        request["query_string"] = REDACTED
    return event


def init_sentry(dsn: str | None, environment: str = "development", release: str | None = None) -> None:
    """Start the SDK once per process; without a DSN this only logs and returns."""
    if not dsn:
        logger.warning("sentry_disabled", reason="SENTRY_DSN not set")
        return

    sample_rate = 0.1 if environment == "production" else 1.0
    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        release=release,
        traces_sample_rate=sample_rate,
        integrations=[FastApiIntegration(transaction_style="endpoint"), HttpxIntegration()],
        send_default_pii=False,
        before_send=redact_event,
    )
    logger.info("sentry_initialized", environment=environment, traces_sample_rate=sample_rate)

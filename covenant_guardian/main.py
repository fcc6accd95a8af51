from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import httpx
import structlog
from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from covenant_guardian.auth.router import router as auth_router
from covenant_guardian.auth.session import SessionStore
from covenant_guardian.core.config import settings
from covenant_guardian.core.errors import (
    BackendAPIError,
    ValidationFailedError,
    backend_error_handler,
    global_exception_handler,
    http_exception_handler,
    validation_failed_handler,
)
from covenant_guardian.core.sentry import init_sentry
from covenant_guardian.modules.adverse_events.router import router as adverse_events_router
from covenant_guardian.modules.alerts.router import router as alerts_router
from covenant_guardian.modules.borrowers.router import router as borrowers_router
from covenant_guardian.modules.contracts.router import router as contracts_router
from covenant_guardian.modules.covenant_health.router import router as covenant_health_router
from covenant_guardian.modules.dashboard.router import router as dashboard_router
from covenant_guardian.modules.extraction.router import router as extraction_router
from covenant_guardian.modules.extraction.service import ExtractionService
from covenant_guardian.modules.financial_data.router import router as financial_data_router
from covenant_guardian.modules.reports.router import router as reports_router
from covenant_guardian.modules.users.router import router as users_router
from covenant_guardian.services.backend import BackendClient
from covenant_guardian.services.gemini import GeminiClient

# ── Error reporting is started before the app object exists ─────────────────
init_sentry(settings.SENTRY_DSN, settings.SENTRY_ENVIRONMENT, settings.APP_VERSION)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    logger.info("Starting Covenant Guardian API", env=settings.APP_ENV)

    http_client = httpx.AsyncClient()
    session = SessionStore(settings.SESSION_FILE or None)
    session.load()
    gemini = GeminiClient(http_client=http_client)
    if not gemini.enabled:
        logger.warning("gemini_disabled", reason="GEMINI_API_KEY not set")

    app.state.http_client = http_client
    app.state.session = session
    app.state.gemini = gemini
    app.state.extraction = ExtractionService(gemini)

    yield

    logger.info("Shutting down Covenant Guardian API")
    await app.state.extraction.aclose()
    await http_client.aclose()


_is_prod = settings.APP_ENV == "production"

app = FastAPI(
    title="Covenant Guardian API",
    description="Loan covenant monitoring: health evaluation, adverse-event risk and AI-assisted extraction.",
    version=settings.APP_VERSION,
    docs_url=None if _is_prod else "/docs",
    redoc_url=None if _is_prod else "/redoc",
    openapi_url=None if _is_prod else "/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID", "X-Bank-ID"],
)

app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(BackendAPIError, backend_error_handler)
app.add_exception_handler(ValidationFailedError, validation_failed_handler)
app.add_exception_handler(Exception, global_exception_handler)


# ── Versioning ──────────────────────────────────────────────────────────────


@app.middleware("http")
async def add_version_header(request: Request, call_next) -> Response:
    response = await call_next(request)
    response.headers["X-API-Version"] = "v1"
    return response


# ── Liveness ────────────────────────────────────────────────────────────────


@app.get("/health")
async def health_check(request: Request) -> dict:
    """Checks the backend; Gemini is reported as configured or disabled."""
    backend = BackendClient(request.app.state.http_client, session=request.app.state.session)
    backend_ok = await backend.health_check()
    gemini: GeminiClient = request.app.state.gemini

    checks = {
        "backend": {"status": "healthy" if backend_ok else "unhealthy"},
        "gemini": {"status": "configured" if gemini.enabled else "disabled"},
        "extraction_queue": request.app.state.extraction.get_queue_stats().model_dump(),
    }
    return {
        "status": "healthy" if backend_ok else "degraded",
        "service": "covenant-guardian",
        "version": settings.APP_VERSION,
        "checks": checks,
    }


# ── Routes ──────────────────────────────────────────────────────────────────

api_v1 = APIRouter(prefix="/v1")

api_v1.include_router(auth_router)
api_v1.include_router(covenant_health_router)
api_v1.include_router(financial_data_router)
api_v1.include_router(adverse_events_router)
api_v1.include_router(extraction_router)
api_v1.include_router(contracts_router)
api_v1.include_router(alerts_router)
api_v1.include_router(reports_router)
api_v1.include_router(users_router)
api_v1.include_router(borrowers_router)
api_v1.include_router(dashboard_router)

app.include_router(api_v1)

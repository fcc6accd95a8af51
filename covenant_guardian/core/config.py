import warnings

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    APP_ENV: str = "development"
    APP_VERSION: str = "0.1.0"
    FRONTEND_URL: str = "http://localhost:5173"

    # Hosted backend (Xano)
    BACKEND_API_URL: str = "http://localhost:8080/api"
    BACKEND_TIMEOUT_SECONDS: float = 30.0

    # Gemini
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-1.5-flash"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    AI_TIMEOUT_SECONDS: float = 60.0

    # Retry policy shared by backend and AI calls
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_INITIAL_DELAY_SECONDS: float = 1.0
    RETRY_MAX_DELAY_SECONDS: float = 10.0
    RETRY_BACKOFF_MULTIPLIER: float = 2.0

    # Covenant health
    COVENANT_WARNING_MARGIN_PCT: float = 10.0
    TREND_STABLE_THRESHOLD_PCT: float = 5.0
    REPORTING_PERIOD_DAYS: int = 90
    STALE_FINANCIAL_DATA_DAYS: int = 120

    # Adverse events
    RISK_RECENCY_WINDOW_DAYS: int = 30
    RISK_DECAY_DAYS: int = 90
    HIGH_RISK_EVENT_THRESHOLD: float = 7.0

    # Covenant extraction
    EXTRACTION_MAX_CONCURRENT_JOBS: int = 3
    EXTRACTION_MAX_RETRIES: int = 3
    EXTRACTION_MIN_CONFIDENCE: float = 0.3
    EXTRACTION_POLL_INTERVAL_SECONDS: float = 3.0

    # Session persistence; empty disables the session file
    SESSION_FILE: str = ""

    # Sentry
    SENTRY_DSN: str = ""
    SENTRY_ENVIRONMENT: str = "development"

    @model_validator(mode="after")
    def _validate_production_settings(self) -> "Settings":
        if self.APP_ENV == "production":
            if not self.GEMINI_API_KEY:
                warnings.warn(
                    "GEMINI_API_KEY not set in production, AI features fall back to heuristics",
                    stacklevel=2,
                )
            if not self.SENTRY_DSN:
                warnings.warn(
                    "SENTRY_DSN not set in production, errors will be invisible",
                    stacklevel=2,
                )
        return self


settings = Settings()

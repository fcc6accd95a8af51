"""Request and result models for covenant extraction."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from covenant_guardian.modules.covenant_health.schemas import (
    CheckFrequency,
    CovenantType,
    Operator,
)

JobStatus = Literal["pending", "processing", "completed", "failed"]
JobPriority = Literal["low", "normal", "high"]

PRIORITY_ORDER: dict[str, int] = {"high": 3, "normal": 2, "low": 1}


class ExtractedCovenant(BaseModel):
    """One covenant as returned by the model, after normalization."""
    covenant_name: str
    covenant_type: CovenantType = "other"
    metric_name: str | None = None
    operator: Operator | None = None
    threshold_value: float | None = None
    threshold_unit: str | None = None
    check_frequency: CheckFrequency = "quarterly"
    covenant_clause: str | None = None
    confidence_score: float = Field(default=0.5, ge=0, le=1)
    repairs: list[str] = []


class CovenantExtractionResult(BaseModel):
    covenants: list[ExtractedCovenant] = []
    extraction_summary: str = "Covenant extraction completed"
    processing_time_ms: int = 0


class ExtractionJob(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    contract_id: int | str
    status: JobStatus = "pending"
    priority: JobPriority = "normal"
    progress_percentage: int = Field(default=0, ge=0, le=100)
    extracted_covenants_count: int = 0
    retry_count: int = 0
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime
    source: Literal["backend", "local"] = "local"


class QueueStats(BaseModel):
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    total: int = 0


# ── API request/response bodies ───────────────────────────────────────────────


class QueueExtractionRequest(BaseModel):
    contract_text: str = Field(min_length=1)
    priority: JobPriority = "normal"


class QueueExtractionResponse(BaseModel):
    job_id: str
    contract_id: int | str


class ImmediateExtractionRequest(BaseModel):
    contract_text: str = Field(min_length=1)
    contract_id: int | str | None = None

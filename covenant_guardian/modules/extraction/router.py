"""Covenant extraction API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from covenant_guardian.auth.dependencies import (
    get_backend,
    get_extraction_service,
    require_permission,
    require_role,
)
from covenant_guardian.auth.schemas import AuthUser, UserRole
from covenant_guardian.modules.extraction.schemas import (
    CovenantExtractionResult,
    ExtractionJob,
    ImmediateExtractionRequest,
    QueueExtractionRequest,
    QueueExtractionResponse,
    QueueStats,
)
from covenant_guardian.modules.extraction.service import ExtractionService
from covenant_guardian.services.backend import BackendClient

router = APIRouter(prefix="/extraction", tags=["Covenant Extraction"])


@router.post(
    "/contracts/{contract_id}",
    response_model=QueueExtractionResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def queue_extraction(
    contract_id: str,
    body: QueueExtractionRequest,
    current_user: AuthUser = Depends(require_permission("create", "covenants")),
    backend: BackendClient = Depends(get_backend),
    svc: ExtractionService = Depends(get_extraction_service),
):
    """Queue covenant extraction for a contract; poll the job for progress."""
    job_id = await svc.queue_extraction(backend, contract_id, body.contract_text, body.priority)
    return QueueExtractionResponse(job_id=job_id, contract_id=contract_id)


@router.get("/contracts/{contract_id}/status", response_model=ExtractionJob)
async def contract_extraction_status(
    contract_id: str,
    current_user: AuthUser = Depends(require_permission("read", "contracts")),
    backend: BackendClient = Depends(get_backend),
    svc: ExtractionService = Depends(get_extraction_service),
):
    job = await svc.get_contract_extraction_status(backend, contract_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"No extraction found for contract {contract_id}")
    return job


@router.post("/immediate", response_model=CovenantExtractionResult)
async def extract_immediately(
    body: ImmediateExtractionRequest,
    current_user: AuthUser = Depends(require_permission("create", "covenants")),
    backend: BackendClient = Depends(get_backend),
    svc: ExtractionService = Depends(get_extraction_service),
):
    """Extract covenants synchronously without storing them."""
    return await svc.extract_immediately(backend, body.contract_text, body.contract_id)


@router.get("/jobs/{job_id}", response_model=ExtractionJob)
async def job_status(
    job_id: str,
    current_user: AuthUser = Depends(require_permission("read", "covenants")),
    backend: BackendClient = Depends(get_backend),
    svc: ExtractionService = Depends(get_extraction_service),
):
    job = svc.get_job_status(job_id) or await svc.get_remote_job_status(backend, job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Extraction job {job_id} not found")
    return job


@router.get("/stats", response_model=QueueStats)
async def queue_stats(
    current_user: AuthUser = Depends(require_permission("read", "covenants")),
    svc: ExtractionService = Depends(get_extraction_service),
):
    """Counts of local extraction jobs by status."""
    return svc.get_queue_stats()


@router.post("/cleanup", response_model=dict[str, int])
async def cleanup_jobs(
    max_age_hours: float = Query(24, gt=0),
    current_user: AuthUser = Depends(require_role(UserRole.ADMIN)),
    svc: ExtractionService = Depends(get_extraction_service),
):
    """Drop finished jobs older than ``max_age_hours``; admins only."""
    return {"removed": svc.cleanup_old_jobs(max_age_hours)}

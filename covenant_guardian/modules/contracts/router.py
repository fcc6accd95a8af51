"""Contracts API router."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status

from covenant_guardian.auth.dependencies import (
    get_backend,
    get_extraction_service,
    require_permission,
)
from covenant_guardian.auth.schemas import AuthUser
from covenant_guardian.modules.contracts.schemas import (
    Contract,
    ContractCreateInput,
    ContractFilters,
    ContractPage,
    ContractStats,
    ContractStatus,
    ContractUpdateInput,
    DocumentFile,
    ExtractionStatus,
)
from covenant_guardian.modules.contracts.service import ContractService
from covenant_guardian.modules.extraction.service import ExtractionService
from covenant_guardian.services.backend import BackendClient

router = APIRouter(prefix="/contracts", tags=["Contracts"])


@router.get("", response_model=ContractPage)
async def list_contracts(
    status_filter: ContractStatus | None = Query(None, alias="status"),
    borrower_id: str | None = None,
    search: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: AuthUser = Depends(require_permission("read", "contracts")),
    backend: BackendClient = Depends(get_backend),
):
    filters = ContractFilters(
        status=status_filter,
        borrower_id=borrower_id,
        search=search,
        date_from=date_from,
        date_to=date_to,
    )
    return await ContractService(backend).list_contracts(filters, page, limit)


@router.post("", response_model=Contract, status_code=status.HTTP_201_CREATED)
async def create_contract(
    borrower_id: str = Form(""),
    contract_name: str = Form(""),
    principal_amount: float = Form(0),
    currency: str = Form(""),
    origination_date: date | None = Form(None),
    maturity_date: date | None = Form(None),
    contract_number: str | None = Form(None),
    interest_rate: float | None = Form(None),
    raw_document_text: str | None = Form(None),
    document_file: UploadFile | None = File(None),
    current_user: AuthUser = Depends(require_permission("create", "contracts")),
    backend: BackendClient = Depends(get_backend),
    extraction: ExtractionService = Depends(get_extraction_service),
):
    """Create a contract from a multipart form; document text queues covenant extraction."""
    document = None
    if document_file is not None:
        document = DocumentFile(
            filename=document_file.filename or "document",
            content=await document_file.read(),
            content_type=document_file.content_type or "application/octet-stream",
        )
    body = ContractCreateInput(
        borrower_id=borrower_id,
        contract_name=contract_name,
        contract_number=contract_number,
        principal_amount=principal_amount,
        currency=currency,
        origination_date=origination_date,
        maturity_date=maturity_date,
        interest_rate=interest_rate,
        raw_document_text=raw_document_text,
    )
    return await ContractService(backend, extraction).create_contract(body, document)


@router.get("/stats", response_model=ContractStats)
async def contract_stats(
    current_user: AuthUser = Depends(require_permission("read", "dashboard")),
    backend: BackendClient = Depends(get_backend),
):
    return await ContractService(backend).get_contract_stats()


@router.get("/{contract_id}", response_model=Contract)
async def get_contract(
    contract_id: str,
    current_user: AuthUser = Depends(require_permission("read", "contracts")),
    backend: BackendClient = Depends(get_backend),
):
    try:
        return await ContractService(backend).get_contract(contract_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.put("/{contract_id}", response_model=Contract)
async def update_contract(
    contract_id: str,
    body: ContractUpdateInput,
    current_user: AuthUser = Depends(require_permission("update", "contracts")),
    backend: BackendClient = Depends(get_backend),
):
    return await ContractService(backend).update_contract(contract_id, body)


@router.delete("/{contract_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_contract(
    contract_id: str,
    current_user: AuthUser = Depends(require_permission("delete", "contracts")),
    backend: BackendClient = Depends(get_backend),
):
    await ContractService(backend).delete_contract(contract_id)


@router.get("/{contract_id}/extraction-status", response_model=ExtractionStatus)
async def extraction_status(
    contract_id: str,
    current_user: AuthUser = Depends(require_permission("read", "contracts")),
    backend: BackendClient = Depends(get_backend),
    extraction: ExtractionService = Depends(get_extraction_service),
):
    return await ContractService(backend, extraction).get_extraction_status(contract_id)

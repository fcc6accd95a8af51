"""Borrowers API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from covenant_guardian.auth.dependencies import get_backend, require_permission
from covenant_guardian.auth.schemas import AuthUser
from covenant_guardian.modules.borrowers.schemas import (
    Borrower,
    BorrowerCreateInput,
    BorrowerDetails,
    BorrowerFilters,
    BorrowerPage,
    BorrowerUpdateInput,
)
from covenant_guardian.modules.borrowers.service import BorrowerService
from covenant_guardian.services.backend import BackendClient

router = APIRouter(prefix="/borrowers", tags=["Borrowers"])


@router.get("", response_model=BorrowerPage)
async def list_borrowers(
    search: str | None = None,
    industry: str | None = None,
    country: str | None = None,
    credit_rating: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: AuthUser = Depends(require_permission("read", "borrowers")),
    backend: BackendClient = Depends(get_backend),
):
    filters = BorrowerFilters(search=search, industry=industry, country=country, credit_rating=credit_rating)
    return await BorrowerService(backend).list_borrowers(filters, page, limit)


@router.post("", response_model=Borrower, status_code=status.HTTP_201_CREATED)
async def create_borrower(
    body: BorrowerCreateInput,
    current_user: AuthUser = Depends(require_permission("create", "borrowers")),
    backend: BackendClient = Depends(get_backend),
):
    return await BorrowerService(backend).create_borrower(body)


@router.get("/search", response_model=list[Borrower])
async def search_borrowers(
    q: str = Query(..., min_length=1),
    limit: int = Query(10, ge=1, le=50),
    current_user: AuthUser = Depends(require_permission("read", "borrowers")),
    backend: BackendClient = Depends(get_backend),
):
    """Match borrowers by legal name or ticker."""
    return await BorrowerService(backend).search_borrowers(q, limit)


@router.get("/high-risk", response_model=list[BorrowerDetails])
async def high_risk_borrowers(
    current_user: AuthUser = Depends(require_permission("read", "borrowers")),
    backend: BackendClient = Depends(get_backend),
):
    return await BorrowerService(backend).get_high_risk_borrowers()


@router.get("/needing-update", response_model=list[Borrower])
async def borrowers_needing_update(
    days: int | None = Query(None, ge=1),
    current_user: AuthUser = Depends(require_permission("read", "borrowers")),
    backend: BackendClient = Depends(get_backend),
):
    return await BorrowerService(backend).get_borrowers_needing_update(days)


@router.get("/{borrower_id}", response_model=BorrowerDetails)
async def get_borrower(
    borrower_id: str,
    current_user: AuthUser = Depends(require_permission("read", "borrowers")),
    backend: BackendClient = Depends(get_backend),
):
    """Borrower with contracts, latest financials, recent events and risk summary."""
    try:
        return await BorrowerService(backend).get_borrower_details(borrower_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.put("/{borrower_id}", response_model=Borrower)
async def update_borrower(
    borrower_id: str,
    body: BorrowerUpdateInput,
    current_user: AuthUser = Depends(require_permission("update", "borrowers")),
    backend: BackendClient = Depends(get_backend),
):
    return await BorrowerService(backend).update_borrower(borrower_id, body)

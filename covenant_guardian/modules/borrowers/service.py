"""Borrower management over the backend, plus the combined borrower detail view."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import structlog

from covenant_guardian.core.config import settings
from covenant_guardian.core.errors import BackendAPIError
from covenant_guardian.modules.adverse_events.aggregation import DEFAULT_EVENT_SCORE
from covenant_guardian.modules.adverse_events.schemas import AdverseEvent
from covenant_guardian.modules.borrowers.schemas import (
    Borrower,
    BorrowerCreateInput,
    BorrowerDetails,
    BorrowerFilters,
    BorrowerPage,
    BorrowerRiskSummary,
    BorrowerUpdateInput,
)
from covenant_guardian.modules.contracts.schemas import Contract
from covenant_guardian.modules.covenant_health.schemas import FinancialMetrics
from covenant_guardian.modules.covenant_health.service import CovenantHealthService
from covenant_guardian.modules.reports.analytics import AT_RISK_CONTRACT_STATUSES
from covenant_guardian.services.backend import BackendClient, page_items

logger = structlog.get_logger()

RECENT_EVENTS_LIMIT = 10


def summarize_borrower_risk(
    contracts: Sequence[Contract],
    events: Sequence[AdverseEvent],
) -> BorrowerRiskSummary:
    """Exposure and contract counts, plus the mean event score (unscored events count as 5)."""
    scores = [e.risk_score if e.risk_score is not None else DEFAULT_EVENT_SCORE for e in events]
    return BorrowerRiskSummary(
        total_exposure=sum(c.principal_amount for c in contracts),
        active_contracts=sum(1 for c in contracts if c.status == "active"),
        at_risk_contracts=sum(1 for c in contracts if c.status in AT_RISK_CONTRACT_STATUSES),
        avg_event_risk=sum(scores) / len(scores) if scores else 0.0,
    )


class BorrowerService:
    def __init__(self, backend: BackendClient) -> None:
        self.backend = backend

    # ── CRUD ──────────────────────────────────────────────────────────────────

    async def list_borrowers(
        self,
        filters: BorrowerFilters | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> BorrowerPage:
        params = {"page": page, "limit": limit}
        if filters is not None:
            params.update(filters.model_dump(exclude_none=True))
        items, pagination = page_items(await self.backend.get_page("/borrowers", params=params))
        return BorrowerPage(items=[Borrower.model_validate(i) for i in items], pagination=pagination)

    async def get_borrower(self, borrower_id: int | str) -> Borrower:
        try:
            data = await self.backend.get(f"/borrowers/{borrower_id}")
        except BackendAPIError as exc:
            if exc.status_code == 404:
                raise LookupError(f"Borrower {borrower_id} not found") from exc
            raise
        if not data:
            raise LookupError(f"Borrower {borrower_id} not found")
        return Borrower.model_validate(data)

    async def create_borrower(self, data: BorrowerCreateInput) -> Borrower:
        created = await self.backend.post("/borrowers", json=data.model_dump(exclude_none=True))
        borrower = Borrower.model_validate(created)
        logger.info("borrower_created", borrower_id=str(borrower.id))
        return borrower

    async def update_borrower(self, borrower_id: int | str, updates: BorrowerUpdateInput) -> Borrower:
        data = await self.backend.put(f"/borrowers/{borrower_id}", json=updates.model_dump(exclude_none=True))
        return Borrower.model_validate(data)

    async def search_borrowers(self, query: str, limit: int = 10) -> list[Borrower]:
        items, _ = page_items(await self.backend.get_page("/borrowers", params={"search": query, "limit": limit}))
        return [Borrower.model_validate(i) for i in items]

    # ── Related records ───────────────────────────────────────────────────────

    async def get_borrower_contracts(self, borrower_id: int | str) -> list[Contract]:
        items, _ = page_items(await self.backend.get_page("/contracts", params={"borrower_id": borrower_id}))
        return [Contract.model_validate(i) for i in items]

    async def get_latest_financials(self, borrower_id: int | str) -> FinancialMetrics | None:
        try:
            return await CovenantHealthService(self.backend).get_latest_financials(borrower_id)
        except BackendAPIError as exc:
            logger.warning("borrower_financials_unavailable", borrower_id=str(borrower_id), error=exc.message)
            return None

    async def get_recent_events(self, borrower_id: int | str, limit: int = RECENT_EVENTS_LIMIT) -> list[AdverseEvent]:
        try:
            response = await self.backend.get_page(
                "/adverse-events",
                params={"borrower_id": borrower_id, "limit": limit},
            )
        except BackendAPIError as exc:
            logger.warning("borrower_events_unavailable", borrower_id=str(borrower_id), error=exc.message)
            return []
        items, _ = page_items(response)
        return [AdverseEvent.model_validate(i) for i in items]

    async def get_borrower_details(self, borrower_id: int | str) -> BorrowerDetails:
        """Borrower with its contracts, latest financials, recent events and a risk summary."""
        borrower = await self.get_borrower(borrower_id)
        contracts, financials, events = await asyncio.gather(
            self.get_borrower_contracts(borrower_id),
            self.get_latest_financials(borrower_id),
            self.get_recent_events(borrower_id),
        )
        return BorrowerDetails(
            **borrower.model_dump(),
            contracts=contracts,
            latest_financials=financials,
            recent_events=events,
            risk_summary=summarize_borrower_risk(contracts, events),
        )

    # ── Portfolio views ───────────────────────────────────────────────────────

    async def get_high_risk_borrowers(self) -> list[BorrowerDetails]:
        items, _ = page_items(await self.backend.get_page("/borrowers", params={"risk_level": "high"}))
        borrowers = [Borrower.model_validate(i) for i in items]
        return list(await asyncio.gather(*(self.get_borrower_details(b.id) for b in borrowers)))

    async def get_borrowers_needing_update(self, days: int | None = None) -> list[Borrower]:
        """Borrowers whose latest financials are older than ``days`` (default: one reporting period)."""
        days = settings.REPORTING_PERIOD_DAYS if days is None else days
        items, _ = page_items(await self.backend.get_page("/borrowers", params={"stale_data_days": days}))
        return [Borrower.model_validate(i) for i in items]

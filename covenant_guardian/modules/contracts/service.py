"""Contract management over the backend."""

from __future__ import annotations

import asyncio
import re
import time

import structlog

from covenant_guardian.core.config import settings
from covenant_guardian.core.errors import BackendAPIError, ErrorCode, ValidationFailedError
from covenant_guardian.modules.contracts.schemas import (
    Contract,
    ContractCreateInput,
    ContractFilters,
    ContractPage,
    ContractStats,
    ContractUpdateInput,
    DocumentFile,
    ExtractionStatus,
)
from covenant_guardian.modules.extraction.service import ExtractionService
from covenant_guardian.services.backend import BackendClient, page_items

logger = structlog.get_logger()

MAX_PRINCIPAL_AMOUNT = 1_000_000_000_000
CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")
TERMINAL_EXTRACTION_STATES = ("completed", "failed")


def validate_contract_input(data: ContractCreateInput) -> list[str]:
    errors: list[str] = []

    if not data.borrower_id.strip():
        errors.append("Borrower ID is required")
    if not data.contract_name.strip():
        errors.append("Contract name is required")
    if data.principal_amount <= 0:
        errors.append("Principal amount must be greater than 0")
    if not data.currency.strip():
        errors.append("Currency is required")
    if data.origination_date is None:
        errors.append("Origination date is required")
    if data.maturity_date is None:
        errors.append("Maturity date is required")

    if data.origination_date and data.maturity_date and data.maturity_date <= data.origination_date:
        errors.append("Maturity date must be after origination date")
    if data.interest_rate is not None and not 0 <= data.interest_rate <= 100:
        errors.append("Interest rate must be between 0 and 100")
    if data.currency and not CURRENCY_PATTERN.match(data.currency):
        errors.append("Currency must be a valid 3-letter ISO code (e.g., USD, EUR)")
    if data.principal_amount > MAX_PRINCIPAL_AMOUNT:
        errors.append("Principal amount exceeds maximum allowed value")

    return errors


def contract_form(data: ContractCreateInput) -> dict[str, str]:
    form = {
        "borrower_id": data.borrower_id,
        "contract_name": data.contract_name,
        "principal_amount": str(data.principal_amount),
        "currency": data.currency,
        "origination_date": data.origination_date.isoformat(),
        "maturity_date": data.maturity_date.isoformat(),
    }
    if data.contract_number:
        form["contract_number"] = data.contract_number
    if data.interest_rate is not None:
        form["interest_rate"] = str(data.interest_rate)
    if data.raw_document_text:
        form["raw_document_text"] = data.raw_document_text
    return form


class ContractService:
    def __init__(self, backend: BackendClient, extraction: ExtractionService | None = None) -> None:
        self.backend = backend
        self.extraction = extraction

    async def create_contract(
        self,
        data: ContractCreateInput,
        document: DocumentFile | None = None,
    ) -> Contract:
        """Create a contract and queue covenant extraction when document text is supplied."""
        errors = validate_contract_input(data)
        if errors:
            raise ValidationFailedError(errors, code=ErrorCode.INVALID_CONTRACT_DATA)

        files = None
        if document is not None:
            files = {"document_file": (document.filename, document.content, document.content_type)}

        created = await self.backend.upload("/contracts", data=contract_form(data), files=files)
        if not created:
            raise BackendAPIError(502, "Failed to create contract", code=ErrorCode.CONTRACT_UPLOAD_FAILED)
        contract = Contract.model_validate(created)
        logger.info("contract_created", contract_id=str(contract.id), borrower_id=data.borrower_id)

        if data.raw_document_text and self.extraction is not None:
            try:
                await self.extraction.queue_extraction(self.backend, contract.id, data.raw_document_text)
            except BackendAPIError as exc:
                logger.warning("contract_extraction_queue_failed", contract_id=str(contract.id), error=exc.message)
        return contract

    async def list_contracts(
        self,
        filters: ContractFilters | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> ContractPage:
        params = {"page": page, "limit": limit}
        if filters is not None:
            params.update(filters.model_dump(mode="json", exclude_none=True))
        items, pagination = page_items(await self.backend.get_page("/contracts", params=params))
        return ContractPage(items=[Contract.model_validate(i) for i in items], pagination=pagination)

    async def get_contract(self, contract_id: int | str) -> Contract:
        try:
            data = await self.backend.get(f"/contracts/{contract_id}")
        except BackendAPIError as exc:
            if exc.status_code == 404:
                raise LookupError(f"Contract {contract_id} not found") from exc
            raise
        if not data:
            raise LookupError(f"Contract {contract_id} not found")
        return Contract.model_validate(data)

    async def update_contract(self, contract_id: int | str, updates: ContractUpdateInput) -> Contract:
        data = await self.backend.put(
            f"/contracts/{contract_id}",
            json=updates.model_dump(mode="json", exclude_none=True),
        )
        return Contract.model_validate(data)

    async def delete_contract(self, contract_id: int | str) -> None:
        await self.backend.delete(f"/contracts/{contract_id}")
        logger.info("contract_deleted", contract_id=str(contract_id))

    async def get_extraction_status(self, contract_id: int | str) -> ExtractionStatus:
        """Extraction progress; a contract with no known extraction reports completed/100/0."""
        job = None
        if self.extraction is not None:
            job = await self.extraction.get_contract_extraction_status(self.backend, contract_id)
        else:
            try:
                data = await self.backend.get(f"/contracts/{contract_id}/covenants/extraction-status")
                if data:
                    return ExtractionStatus.model_validate(data)
            except BackendAPIError as exc:
                logger.warning("extraction_status_unavailable", contract_id=str(contract_id), error=exc.message)

        if job is None:
            return ExtractionStatus(status="completed", progress_percentage=100, extracted_covenants_count=0)
        return ExtractionStatus.model_validate(job.model_dump())

    async def wait_for_extraction(
        self,
        contract_id: int | str,
        timeout: float = 300.0,
        interval: float | None = None,
    ) -> ExtractionStatus:
        """Poll until extraction finishes; a failed poll just waits for the next one."""
        interval = settings.EXTRACTION_POLL_INTERVAL_SECONDS if interval is None else interval
        deadline = time.monotonic() + timeout

        while True:
            try:
                status = await self.get_extraction_status(contract_id)
                if status.status in TERMINAL_EXTRACTION_STATES:
                    return status
            except BackendAPIError as exc:
                logger.warning("extraction_poll_failed", contract_id=str(contract_id), error=exc.message)

            if time.monotonic() + interval > deadline:
                raise TimeoutError(f"Extraction for contract {contract_id} did not finish within {timeout}s")
            await asyncio.sleep(interval)

    async def get_contract_stats(self) -> ContractStats:
        return ContractStats.model_validate(await self.backend.get("/contracts/stats") or {})

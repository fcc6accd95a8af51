"""Tests for contract validation and the contract service."""

from datetime import date

import pytest

from covenant_guardian.core.errors import ValidationFailedError
from covenant_guardian.modules.contracts.schemas import ContractCreateInput, ContractFilters, DocumentFile
from covenant_guardian.modules.contracts.service import ContractService, validate_contract_input
from covenant_guardian.modules.extraction.service import ExtractionService

CONTRACT_ROW = {
    "id": 12,
    "borrower_id": "b1",
    "contract_name": "Term Loan A",
    "principal_amount": 25_000_000,
    "currency": "USD",
    "origination_date": "2024-01-15",
    "maturity_date": "2029-01-15",
    "status": "active",
}


def _input(**overrides) -> ContractCreateInput:
    fields = {
        "borrower_id": "b1",
        "contract_name": "Term Loan A",
        "principal_amount": 25_000_000,
        "currency": "USD",
        "origination_date": date(2024, 1, 15),
        "maturity_date": date(2029, 1, 15),
    }
    fields.update(overrides)
    return ContractCreateInput(**fields)


class TestValidation:
    def test_valid_input(self):
        assert validate_contract_input(_input()) == []

    def test_empty_input_lists_every_missing_field(self):
        errors = validate_contract_input(ContractCreateInput())
        assert errors == [
            "Borrower ID is required",
            "Contract name is required",
            "Principal amount must be greater than 0",
            "Currency is required",
            "Origination date is required",
            "Maturity date is required",
        ]

    def test_maturity_before_origination(self):
        errors = validate_contract_input(_input(maturity_date=date(2023, 1, 1)))
        assert errors == ["Maturity date must be after origination date"]

    @pytest.mark.parametrize("rate", [-1, 101])
    def test_interest_rate_range(self, rate):
        assert validate_contract_input(_input(interest_rate=rate)) == ["Interest rate must be between 0 and 100"]

    @pytest.mark.parametrize("currency", ["usd", "US", "EURO"])
    def test_currency_must_be_iso(self, currency):
        assert "Currency must be a valid 3-letter ISO code (e.g., USD, EUR)" in validate_contract_input(
            _input(currency=currency)
        )

    def test_principal_ceiling(self):
        errors = validate_contract_input(_input(principal_amount=2_000_000_000_000))
        assert errors == ["Principal amount exceeds maximum allowed value"]


@pytest.mark.anyio
class TestContractService:
    async def test_invalid_input_never_reaches_backend(self, backend, backend_stub):
        with pytest.raises(ValidationFailedError) as exc_info:
            await ContractService(backend).create_contract(_input(contract_name=" "))

        assert exc_info.value.errors == ["Contract name is required"]
        assert backend_stub.requests == []

    async def test_create_uploads_form_and_document(self, backend, backend_stub):
        backend_stub.add("POST", "/contracts", CONTRACT_ROW)

        contract = await ContractService(backend).create_contract(
            _input(interest_rate=5.25),
            DocumentFile(filename="term-loan.pdf", content=b"%PDF-1.7", content_type="application/pdf"),
        )

        assert contract.id == 12
        request = backend_stub.calls("POST", "/contracts")[0]
        assert request.headers["Content-Type"].startswith("multipart/form-data")
        assert b"term-loan.pdf" in request.content
        assert b"5.25" in request.content

    async def test_create_queues_extraction_for_document_text(self, backend, backend_stub, disabled_gemini):
        backend_stub.add("POST", "/contracts", CONTRACT_ROW)
        backend_stub.add("POST", "/xano/covenant-extraction/queue", {"job_id": "remote-1"})

        await ContractService(backend, ExtractionService(disabled_gemini)).create_contract(
            _input(raw_document_text="The Borrower shall maintain a Leverage Ratio not exceeding 3.50x.")
        )

        body = backend_stub.json_body("POST", "/xano/covenant-extraction/queue")
        assert body["contract_id"] == 12
        assert body["priority"] == "normal"

    async def test_list_passes_filters_and_paging(self, backend, backend_stub):
        backend_stub.add(
            "GET",
            "/contracts",
            {"success": True, "data": [CONTRACT_ROW], "pagination": {"page": 2, "limit": 5, "total": 6}},
        )

        page = await ContractService(backend).list_contracts(ContractFilters(status="active", search="Term"), 2, 5)

        assert [c.contract_name for c in page.items] == ["Term Loan A"]
        assert page.pagination.total == 6
        params = backend_stub.calls("GET", "/contracts")[0].url.params
        assert params["status"] == "active"
        assert params["search"] == "Term"
        assert params["page"] == "2"

    async def test_missing_contract_is_lookup_error(self, backend):
        with pytest.raises(LookupError):
            await ContractService(backend).get_contract(999)

    async def test_extraction_status_defaults_to_completed(self, backend):
        status = await ContractService(backend).get_extraction_status(12)
        assert status.status == "completed"
        assert status.progress_percentage == 100
        assert status.extracted_covenants_count == 0

    async def test_extraction_status_from_backend(self, backend, backend_stub):
        backend_stub.add(
            "GET",
            "/contracts/12/covenants/extraction-status",
            {"status": "processing", "progress_percentage": 60},
        )
        status = await ContractService(backend).get_extraction_status(12)
        assert status.status == "processing"
        assert status.progress_percentage == 60

    async def test_wait_for_extraction_times_out(self, backend, backend_stub):
        backend_stub.add(
            "GET",
            "/contracts/12/covenants/extraction-status",
            {"status": "processing", "progress_percentage": 30},
        )
        with pytest.raises(TimeoutError):
            await ContractService(backend).wait_for_extraction(12, timeout=0.0, interval=0.01)

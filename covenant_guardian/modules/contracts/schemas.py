"""Contract schemas, including the multipart upload payload."""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict

from covenant_guardian.modules.covenant_health.schemas import BorrowerRef, Covenant
from covenant_guardian.modules.extraction.schemas import JobStatus
from covenant_guardian.services.backend import Pagination

ContractStatus = Literal["active", "closed", "default", "watch"]


class Contract(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int | str
    bank_id: int | str | None = None
    borrower_id: int | str
    contract_name: str
    contract_number: str | None = None
    principal_amount: float
    currency: str = "USD"
    origination_date: date
    maturity_date: date
    interest_rate: float | None = None
    status: ContractStatus = "active"
    raw_document_text: str | None = None
    document_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    borrower: BorrowerRef | None = None
    covenants: list[Covenant] = []


class ContractCreateInput(BaseModel):
    """Unvalidated contract form; ``validate_contract_input`` reports every problem at once."""
    borrower_id: str = ""
    contract_name: str = ""
    contract_number: str | None = None
    principal_amount: float = 0
    currency: str = ""
    origination_date: date | None = None
    maturity_date: date | None = None
    interest_rate: float | None = None
    raw_document_text: str | None = None


class ContractUpdateInput(BaseModel):
    contract_name: str | None = None
    contract_number: str | None = None
    principal_amount: float | None = None
    currency: str | None = None
    maturity_date: date | None = None
    interest_rate: float | None = None
    status: ContractStatus | None = None


class ContractFilters(BaseModel):
    status: ContractStatus | None = None
    borrower_id: str | None = None
    search: str | None = None
    date_from: date | None = None
    date_to: date | None = None
    principal_min: float | None = None
    principal_max: float | None = None


class ContractPage(BaseModel):
    items: list[Contract] = []
    pagination: Pagination | None = None


class DocumentFile(BaseModel):
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


class ExtractionStatus(BaseModel):
    status: JobStatus
    progress_percentage: int = 0
    extracted_covenants_count: int = 0
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


class ContractStats(BaseModel):
    model_config = ConfigDict(extra="ignore")

    total_contracts: int = 0
    active_contracts: int = 0
    total_principal_usd: float = 0.0
    contracts_by_status: dict[str, int] = {}
    recent_contracts: list[Contract] = []

"""Pydantic data models shared by every pipeline stage."""

from __future__ import annotations

import re
from datetime import date, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

# --- Type Aliases ---

AccessionNumber = str
CIK = str
CUSIP = str

_CUSIP_RE = re.compile(r"^[0-9A-Z]{8}[0-9]$")
_ACCESSION_RE = re.compile(r"^\d{18}$")


def is_valid_cusip(value: str | None) -> bool:
    """Return True for 8 uppercase alphanumerics followed by one digit."""
    if not isinstance(value, str):
        return False
    return _CUSIP_RE.fullmatch(value) is not None


def normalize_cik(value: str | int) -> CIK:
    """Zero-pad a filer identifier to the 10-digit form EDGAR uses."""
    text = str(value).strip()
    if not text.isdigit():
        raise ValueError(f"CIK must be numeric, got: {value!r}")
    return text.zfill(10)


def normalize_accession(value: str) -> AccessionNumber:
    """Format an accession number as XXXXXXXXXX-YY-ZZZZZZ."""
    digits = value.strip().replace("-", "")
    if not _ACCESSION_RE.match(digits):
        raise ValueError(f"Invalid accession number format: {value!r}")
    return f"{digits[:10]}-{digits[10:12]}-{digits[12:]}"


# --- Enumerations ---


class FormType(StrEnum):
    """13F form types handled by the ingestion pipeline."""

    FORM_13F_HR = "13F-HR"
    FORM_13F_HR_A = "13F-HR/A"


class DocumentFormat(StrEnum):
    """Dialect a filing document was parsed from (provenance marker)."""

    XML = "xml"
    HTML = "html"
    TEXT = "text"


class ChangeType(StrEnum):
    """Classification of a period-over-period position change."""

    NEW = "NEW"
    SOLD = "SOLD"
    INCREASED = "INCREASED"
    DECREASED = "DECREASED"
    UNCHANGED = "UNCHANGED"


class StorageBackend(StrEnum):
    """Supported storage backends."""

    SQLITE = "sqlite"


# --- Source Index Models ---


class FilingIndexEntry(BaseModel):
    """One row of an EDGAR filing index or submissions listing."""

    model_config = ConfigDict(frozen=True)

    accession_number: AccessionNumber
    filer_id: CIK
    filer_name: str
    form_type: str
    date_filed: date
    file_name: str

    @field_validator("filer_id", mode="before")
    @classmethod
    def filer_id_numeric(cls, v: str | int) -> str:
        return normalize_cik(v)

    @field_validator("accession_number")
    @classmethod
    def accession_format(cls, v: str) -> str:
        return normalize_accession(v)

    @field_validator("form_type")
    @classmethod
    def form_type_stripped(cls, v: str) -> str:
        return v.strip().upper()


# --- Parsed Document Models ---


class VotingAuthority(BaseModel):
    """Sole / shared / none voting-authority share counts."""

    model_config = ConfigDict(frozen=True)

    sole: int = 0
    shared: int = 0
    none: int = 0


class ParsedHolding(BaseModel):
    """A single position from a filing's information table.

    `value` is in whole currency units: the filer's figure (stated in
    thousands) multiplied by 1,000.
    """

    model_config = ConfigDict(frozen=True)

    issuer_name: str
    title_of_class: str = ""
    cusip: CUSIP
    value: int
    shares: int
    share_type: str = "SH"
    put_call: str | None = None
    investment_discretion: str = "SOLE"
    voting: VotingAuthority = VotingAuthority()

    @field_validator("cusip")
    @classmethod
    def cusip_valid(cls, v: str) -> str:
        if not is_valid_cusip(v):
            raise ValueError(f"Invalid CUSIP: {v!r}")
        return v


class CoverPage(BaseModel):
    """Cover metadata extracted from a filing."""

    model_config = ConfigDict(frozen=True)

    report_calendar_or_quarter: str = ""
    period_end_date: date | None = None
    is_amendment: bool = False
    amendment_no: str | None = None
    submission_type: str = FormType.FORM_13F_HR.value


class SummaryPage(BaseModel):
    """Filing summary.

    `table_entry_total` and `table_value_total` are derived from the parsed
    holdings. The `declared_*` fields keep what the filer stated, for
    cross-checking only.
    """

    model_config = ConfigDict(frozen=True)

    other_included_managers_count: int = 0
    table_entry_total: int
    table_value_total: int
    declared_entry_total: int | None = None
    declared_value_total: int | None = None


class ParsedFiling(BaseModel):
    """Canonical result of parsing one filing document."""

    model_config = ConfigDict(frozen=True)

    cover_page: CoverPage
    summary_page: SummaryPage
    holdings: list[ParsedHolding]
    source_format: DocumentFormat


# --- Persisted Entities ---


class FundManager(BaseModel):
    """A reporting institutional investment manager."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    cik: CIK
    name: str
    address: str | None = None
    phone: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("cik", mode="before")
    @classmethod
    def cik_numeric(cls, v: str | int) -> str:
        return normalize_cik(v)


class Security(BaseModel):
    """A security identified by CUSIP."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    cusip: CUSIP
    ticker: str | None = None
    company_name: str
    security_type: str | None = None
    sector: str | None = None
    industry: str | None = None
    created_at: datetime | None = None

    @field_validator("cusip")
    @classmethod
    def cusip_valid(cls, v: str) -> str:
        if not is_valid_cusip(v):
            raise ValueError(f"Invalid CUSIP: {v!r}")
        return v


class Filing(BaseModel):
    """A persisted 13F filing. Monetary totals are in minor units (cents)."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    fund_manager_id: int
    accession_number: AccessionNumber
    filing_date: date
    period_end_date: date
    form_type: str
    total_value: int
    total_positions: int
    declared_total_value: int | None = None
    declared_total_positions: int | None = None
    filing_url: str
    source_format: DocumentFormat
    is_amendment: bool = False
    processed_at: datetime | None = None

    @field_validator("accession_number")
    @classmethod
    def accession_format(cls, v: str) -> str:
        return normalize_accession(v)

    @field_validator("filing_url")
    @classmethod
    def url_must_be_https(cls, v: str) -> str:
        if not v.startswith("https://"):
            raise ValueError("URL must use HTTPS")
        return v


class Holding(BaseModel):
    """One persisted position. `market_value` is in minor units (cents)."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    filing_id: int
    security_id: int
    fund_manager_id: int
    period_end_date: date
    shares_held: int
    market_value: int
    percent_of_portfolio: float | None = None
    share_type: str = "SH"
    put_call: str | None = None
    investment_discretion: str = "SOLE"
    voting: VotingAuthority = VotingAuthority()

    @field_validator("market_value")
    @classmethod
    def market_value_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("market_value cannot be negative")
        return v


class PositionChange(BaseModel):
    """Derived change of one (fund, security) pair between two periods."""

    model_config = ConfigDict(frozen=True)

    fund_manager_id: int
    security_id: int
    from_period: date
    to_period: date
    shares_change: int
    value_change: int
    percent_change: float
    change_type: ChangeType


# --- Run Reporting ---


class RunSummary(BaseModel):
    """Outcome of one ingestion run. Never raised, always returned."""

    processed_filings: int = 0
    skipped_filings: int = 0
    new_holdings: int = 0
    updated_securities: int = 0
    new_fund_managers: int = 0
    position_changes: int = 0
    errors: list[str] = Field(default_factory=list)
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return not self.errors


class IngestionStats(BaseModel):
    """Aggregate row counts of the holdings dataset."""

    model_config = ConfigDict(frozen=True)

    total_fund_managers: int
    total_securities: int
    total_filings: int
    total_holdings: int
    total_position_changes: int = 0
    last_run_at: datetime | None = None

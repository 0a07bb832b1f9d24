"""Shared pytest fixtures for edgar13f."""

from __future__ import annotations

from datetime import date

import pytest

from edgar13f.core.config import EdgarConfig, IngestionConfig, StorageConfig
from edgar13f.core.models import FilingIndexEntry, StorageBackend
from edgar13f.ingestion.store import SqliteStore

BERKSHIRE_CIK = "0001067983"
BERKSHIRE_ACCESSION = "0000950123-24-008740"


@pytest.fixture
def edgar_config() -> EdgarConfig:
    return EdgarConfig(
        user_agent="TestAgent test@example.com",
        rate_limit=10,
        request_timeout=5,
    )


@pytest.fixture
def ingestion_config() -> IngestionConfig:
    return IngestionConfig(max_concurrent=3, retry_backoff=0.0)


@pytest.fixture
async def store():
    """An initialized in-memory SqliteStore."""
    config = StorageConfig(backend=StorageBackend.SQLITE, sqlite_path=":memory:")
    s = SqliteStore(config)
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def make_entry():
    """Factory for FilingIndexEntry with overridable defaults."""

    def _make(**overrides) -> FilingIndexEntry:
        defaults = dict(
            accession_number=BERKSHIRE_ACCESSION,
            filer_id=BERKSHIRE_CIK,
            filer_name="BERKSHIRE HATHAWAY INC",
            form_type="13F-HR",
            date_filed=date(2024, 8, 14),
            file_name=f"edgar/data/1067983/{BERKSHIRE_ACCESSION}.txt",
        )
        defaults.update(overrides)
        return FilingIndexEntry(**defaults)

    return _make


@pytest.fixture
def make_info_table_xml():
    """Factory for 13F information-table XML documents.

    Each holding is a tuple (issuer, cusip, value_in_thousands, shares).
    `period` (MM-DD-YYYY) adds a cover page; `prefix` namespaces every tag.
    """

    def _make(
        holdings: list[tuple[str, str, int, int]],
        period: str | None = None,
        prefix: str = "",
    ) -> str:
        p = f"{prefix}:" if prefix else ""
        ns_attr = (
            f' xmlns:{prefix}="http://www.sec.gov/edgar/document/thirteenf/informationtable"'
            if prefix
            else ' xmlns="http://www.sec.gov/edgar/document/thirteenf/informationtable"'
        )
        rows = "".join(
            f"""
  <{p}infoTable>
    <{p}nameOfIssuer>{issuer}</{p}nameOfIssuer>
    <{p}titleOfClass>COM</{p}titleOfClass>
    <{p}cusip>{cusip}</{p}cusip>
    <{p}value>{value}</{p}value>
    <{p}shrsOrPrnAmt>
      <{p}sshPrnamt>{shares}</{p}sshPrnamt>
      <{p}sshPrnamtType>SH</{p}sshPrnamtType>
    </{p}shrsOrPrnAmt>
    <{p}investmentDiscretion>SOLE</{p}investmentDiscretion>
    <{p}votingAuthority>
      <{p}Sole>{shares}</{p}Sole>
      <{p}Shared>0</{p}Shared>
      <{p}None>0</{p}None>
    </{p}votingAuthority>
  </{p}infoTable>"""
            for issuer, cusip, value, shares in holdings
        )
        table = f"<{p}informationTable{ns_attr}>{rows}\n</{p}informationTable>"
        if period is None:
            return f'<?xml version="1.0" encoding="UTF-8"?>\n{table}\n'
        return (
            '<?xml version="1.0" encoding="UTF-8"?>\n'
            "<edgarSubmission>\n"
            "  <formData><coverPage>\n"
            f"    <reportCalendarOrQuarter>{period}</reportCalendarOrQuarter>\n"
            "  </coverPage></formData>\n"
            f"{table}\n"
            "</edgarSubmission>\n"
        )

    return _make


@pytest.fixture
def berkshire_document(make_info_table_xml) -> str:
    """Two-holding information table used by the end-to-end scenarios."""
    return make_info_table_xml(
        [
            ("APPLE INC", "037833100", 17_400_000, 915_560_000),
            ("BANK AMER CORP", "059428107", 4_100_000, 1_032_720_000),
        ]
    )

"""Integration test fixtures: real SQLite files and HTTP mocked with respx."""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest
import respx

from edgar13f.core.config import EdgarConfig, Edgar13FConfig, LoggingConfig, StorageConfig
from edgar13f.core.models import StorageBackend
from edgar13f.ingestion.store import SqliteStore

DAILY_INDEX_URL = "https://www.sec.gov/Archives/edgar/daily-index/2024/QTR3/form.20240814.idx"
BERKSHIRE_DIR = "https://www.sec.gov/Archives/edgar/data/1067983/000095012324008740"
SOME_CAPITAL_DIR = "https://www.sec.gov/Archives/edgar/data/1234567/000123456724000002"

DAILY_INDEX = (
    "Description:           Daily Index of EDGAR Dissemination Feed by Form Type\n"
    "Last Data Received:    August 14, 2024\n"
    "\n"
    "Form Type   Company Name                                                  CIK         Date Filed  File Name\n"
    "-----------------------------------------------------------------------------------------------------------\n"
    "10-Q             APPLE INC                                                     320193      20240814    edgar/data/320193/0000320193-24-000081.txt\n"
    "13F-HR           BERKSHIRE HATHAWAY INC                                        1067983     20240814    edgar/data/1067983/0000950123-24-008740.txt\n"
    "13F-HR/A         SOME CAPITAL LLC                                              1234567     20240814    edgar/data/1234567/0001234567-24-000002.txt\n"
)

AMENDED_TEXT_FILING = """\
ACCESSION NUMBER:		0001234567-24-000002
CONFORMED SUBMISSION TYPE:	13F-HR/A
CONFORMED PERIOD OF REPORT:	20240630

                          FORM 13F INFORMATION TABLE

NAME OF ISSUER   TITLE OF CLASS   CUSIP      VALUE    SHARES   SH/PRN  DISCRETION  SOLE    SHARED  NONE

APPLE INC        COM              037833100  2000     10000    SH      SOLE        10000   0       0
MICROSOFT CORP   COM              594918104  3000     7000     SH      SOLE        7000    0       0
"""


@pytest.fixture
async def integration_store(tmp_path: Path) -> SqliteStore:
    """An initialized file-backed SqliteStore."""
    config = StorageConfig(
        backend=StorageBackend.SQLITE,
        sqlite_path=str(tmp_path / "integration.db"),
    )
    store = SqliteStore(config)
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def integration_config(tmp_path: Path) -> Edgar13FConfig:
    return Edgar13FConfig(
        edgar=EdgarConfig(user_agent="TestAgent test@example.com"),
        storage=StorageConfig(
            backend=StorageBackend.SQLITE,
            sqlite_path=str(tmp_path / "integration.db"),
        ),
        logging=LoggingConfig(level="WARNING"),
    )


@pytest.fixture
def edgar_routes(berkshire_document):
    """Register the EDGAR endpoints for the 2024-08-14 daily index.

    Berkshire resolves at the information-table XML. Some Capital's XML
    candidates are missing, so its full-text submission is used.
    Returns the routes keyed by name for call-count assertions.
    """
    with respx.mock(assert_all_called=False) as router:
        routes = {
            "index": router.get(DAILY_INDEX_URL).mock(
                return_value=httpx.Response(200, text=DAILY_INDEX)
            ),
            "berkshire": router.get(f"{BERKSHIRE_DIR}/form13fInfoTable.xml").mock(
                return_value=httpx.Response(200, text=berkshire_document)
            ),
            "some_capital_xml": router.get(f"{SOME_CAPITAL_DIR}/form13fInfoTable.xml").mock(
                return_value=httpx.Response(404)
            ),
            "some_capital_primary": router.get(f"{SOME_CAPITAL_DIR}/primary_doc.xml").mock(
                return_value=httpx.Response(404)
            ),
            "some_capital_txt": router.get(
                f"{SOME_CAPITAL_DIR}/0001234567-24-000002.txt"
            ).mock(return_value=httpx.Response(200, text=AMENDED_TEXT_FILING)),
        }
        yield routes

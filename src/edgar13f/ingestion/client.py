"""Rate-limited async HTTP client for SEC EDGAR 13F data."""

from __future__ import annotations

import logging
import re
from datetime import date, timedelta

import httpx

from edgar13f.core.config import EdgarConfig
from edgar13f.core.exceptions import (
    FilingNotFoundError,
    ForbiddenError,
    IngestionError,
    NotFoundError,
    RateLimitError,
    TransientError,
)
from edgar13f.core.models import FilingIndexEntry, FormType, normalize_accession, normalize_cik
from edgar13f.ingestion.ratelimit import IntervalGate, RateGate

logger = logging.getLogger(__name__)

# EDGAR endpoints
_ARCHIVES_BASE = "https://www.sec.gov/Archives"
_DAILY_INDEX_URL = _ARCHIVES_BASE + "/edgar/daily-index/{year}/QTR{quarter}/form.{stamp}.idx"
_SUBMISSIONS_URL = "https://data.sec.gov/submissions/CIK{cik}.json"
_SUBMISSIONS_PAGE_URL = "https://data.sec.gov/submissions/{name}"
_FILING_DIR_URL = _ARCHIVES_BASE + "/edgar/data/{cik}/{accession_nodash}"

# Candidate 13F document names, in priority order
_DOCUMENT_CANDIDATES = (
    "form13fInfoTable.xml",
    "primary_doc.xml",
    "{accession}.txt",
)

_ACCESSION_IN_PATH = re.compile(r"(\d{10}-\d{2}-\d{6})")
_COLUMN_SPLIT = re.compile(r"\s{2,}|\t")
_DEFAULT_RETRY_AFTER = 10


class EdgarClient:
    """Rate-limited async client for the EDGAR index and archive endpoints.

    Every request passes through one shared `RateGate` before dispatch. The
    client never retries: 429, 403 and 404 responses, 5xx responses and
    transport failures are raised as distinct `IngestionError` subclasses so
    the caller can decide what to do.

    Use via `async with EdgarClient(...) as client:`.
    """

    def __init__(self, config: EdgarConfig, gate: RateGate | None = None) -> None:
        self._config = config
        self._gate = gate if gate is not None else IntervalGate(config.rate_limit)
        self._client = httpx.AsyncClient(
            headers={
                "User-Agent": config.user_agent,
                "Accept-Encoding": "gzip, deflate",
            },
            timeout=httpx.Timeout(config.request_timeout),
            follow_redirects=True,
        )

    async def __aenter__(self) -> EdgarClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client. Called automatically by __aexit__."""
        await self._client.aclose()

    # --- Index Discovery ---

    async def fetch_daily_index(self, day: date) -> list[FilingIndexEntry]:
        """Fetch and parse the EDGAR daily form index for one date.

        Args:
            day: Calendar date of the index.

        Returns:
            All entries of that day's index, any form type. An empty list
            when EDGAR publishes no index for the date (weekends, holidays).

        Raises:
            RateLimitError, ForbiddenError, TransientError, IngestionError.
        """
        quarter = (day.month - 1) // 3 + 1
        url = _DAILY_INDEX_URL.format(
            year=day.year, quarter=quarter, stamp=day.strftime("%Y%m%d")
        )
        try:
            response = await self._request(url, accept="text/plain")
        except NotFoundError:
            logger.debug("No daily index published for %s", day)
            return []
        return self.parse_index(response.text)

    async def fetch_filings_in_range(
        self,
        start: date,
        end: date,
        form_types: list[str] | None = None,
    ) -> list[FilingIndexEntry]:
        """Collect index entries of the given form types, day by day.

        Args:
            start: First day (inclusive).
            end: Last day (inclusive).
            form_types: Form types to keep. Default: 13F-HR and 13F-HR/A.

        Returns:
            Entries in date order, then index order.
        """
        if start > end:
            raise ValueError(f"start ({start}) must not be after end ({end})")
        if form_types is None:
            form_types = [ft.value for ft in FormType]
        wanted = {ft.strip().upper() for ft in form_types}

        results: list[FilingIndexEntry] = []
        day = start
        while day <= end:
            entries = await self.fetch_daily_index(day)
            results.extend(e for e in entries if e.form_type in wanted)
            day += timedelta(days=1)

        logger.info(
            "Found %d filings of %s between %s and %s",
            len(results), sorted(wanted), start, end,
        )
        return results

    async def fetch_filer_filings(
        self,
        filer_id: str,
        form_type: str = FormType.FORM_13F_HR.value,
        limit: int = 100,
    ) -> list[FilingIndexEntry]:
        """Return the most recent filings of one type for one filer.

        Amendments (`<form_type>/A`) are included.

        Args:
            filer_id: Filer CIK, any padding.
            form_type: Base form type, e.g. "13F-HR".
            limit: Maximum number of entries returned.

        Returns:
            Up to `limit` entries, most recent first.

        Raises:
            NotFoundError: If EDGAR has no submissions for the filer.
            IngestionError: If the submissions payload is not shaped as expected.
        """
        cik = normalize_cik(filer_id)
        url = _SUBMISSIONS_URL.format(cik=cik)
        data = await self._fetch_json_object(url)
        filer_name = data.get("name")
        filings = data.get("filings")
        if not isinstance(filer_name, str) or not isinstance(filings, dict):
            raise IngestionError(
                f"Malformed submissions payload from {url}",
                context={"url": url, "reason": "missing name or filings"},
            )
        recent = filings.get("recent", {})
        files = filings.get("files", [])
        if not isinstance(recent, dict) or not isinstance(files, list):
            raise IngestionError(
                f"Malformed submissions payload from {url}",
                context={"url": url, "reason": "filings.recent or filings.files"},
            )
        wanted = {form_type.upper(), f"{form_type.upper()}/A"}

        results = self._entries_from_submissions(recent, cik, filer_name, wanted)

        # Older history is split across additional files
        for file_ref in files:
            if len(results) >= limit:
                break
            name = file_ref.get("name") if isinstance(file_ref, dict) else None
            if not isinstance(name, str) or not name:
                raise IngestionError(
                    f"Malformed submissions file reference from {url}",
                    context={"url": url, "reason": "file entry without name"},
                )
            page = await self._fetch_json_object(_SUBMISSIONS_PAGE_URL.format(name=name))
            results.extend(self._entries_from_submissions(page, cik, filer_name, wanted))

        results.sort(key=lambda e: e.date_filed, reverse=True)
        return results[:limit]

    async def _fetch_json_object(self, url: str) -> dict:
        response = await self._request(url, accept="application/json")
        try:
            data = response.json()
        except ValueError as e:
            raise IngestionError(
                f"Invalid JSON from {url}", context={"url": url, "error": str(e)}
            ) from e
        if not isinstance(data, dict):
            raise IngestionError(
                f"Expected a JSON object from {url}, got {type(data).__name__}",
                context={"url": url},
            )
        return data

    def _entries_from_submissions(
        self,
        columns: dict,
        cik: str,
        filer_name: str,
        wanted: set[str],
    ) -> list[FilingIndexEntry]:
        """Turn the parallel arrays of a submissions payload into entries."""
        accessions = _list_column(columns, "accessionNumber")
        forms = _list_column(columns, "form")
        dates = _list_column(columns, "filingDate")
        documents = _list_column(columns, "primaryDocument")

        entries: list[FilingIndexEntry] = []
        for i, accession in enumerate(accessions):
            form = forms[i] if i < len(forms) else ""
            if not isinstance(form, str) or form.upper() not in wanted:
                continue
            if i >= len(dates) or not isinstance(dates[i], str):
                continue
            try:
                entries.append(
                    FilingIndexEntry(
                        accession_number=accession,
                        filer_id=cik,
                        filer_name=filer_name,
                        form_type=form,
                        date_filed=date.fromisoformat(dates[i]),
                        file_name=documents[i] if i < len(documents) else "",
                    )
                )
            except ValueError:
                logger.debug("Skipping malformed submission row %s", accession)
        return entries

    # --- Filing Document Retrieval ---

    async def download_filing_document(self, accession_number: str, filer_id: str) -> str:
        """Download the 13F document for one filing.

        Candidate paths are tried in fixed order: the information table XML,
        the primary XML document, then the full-text submission. A 404 moves
        on to the next candidate; any other failure is raised immediately.

        Returns:
            Raw document text from the first candidate that resolves.

        Raises:
            FilingNotFoundError: If every candidate answered 404.
        """
        accession = normalize_accession(accession_number)
        directory = self.filing_directory(accession, filer_id)
        tried: list[str] = []

        for candidate in _DOCUMENT_CANDIDATES:
            url = f"{directory}/{candidate.format(accession=accession)}"
            tried.append(url)
            try:
                response = await self._request(url, accept="text/plain, application/xml")
            except NotFoundError:
                logger.debug("No document at %s, trying next candidate", url)
                continue
            return response.text

        raise FilingNotFoundError(
            f"13F filing not found for accession {accession}",
            context={"accession_number": accession, "tried": tried},
        )

    @staticmethod
    def filing_directory(accession_number: str, filer_id: str) -> str:
        """Archive folder URL for a filing. EDGAR paths use the unpadded CIK."""
        return _FILING_DIR_URL.format(
            cik=int(normalize_cik(filer_id)),
            accession_nodash=accession_number.replace("-", ""),
        )

    @classmethod
    def filing_url(cls, entry: FilingIndexEntry) -> str:
        """Public URL of the document an index entry points at."""
        if entry.file_name.startswith("edgar/"):
            return f"{_ARCHIVES_BASE}/{entry.file_name}"
        directory = cls.filing_directory(entry.accession_number, entry.filer_id)
        if not entry.file_name:
            return f"{directory}/{entry.accession_number}.txt"
        return f"{directory}/{entry.file_name.rsplit('/', 1)[-1]}"

    # --- Index Parsing ---

    @staticmethod
    def parse_index(content: str) -> list[FilingIndexEntry]:
        """Parse a fixed-width EDGAR index file (form.idx or company.idx).

        Column order is taken from the header line: form.idx starts with
        Form Type, company.idx with Company Name. The last three columns
        (CIK, Date Filed, File Name) are the same in both.
        """
        lines = content.splitlines()
        data_start = -1
        form_first = True
        for i, line in enumerate(lines):
            if "Company Name" in line and "Form Type" in line:
                form_first = line.index("Form Type") < line.index("Company Name")
                data_start = i + 1
                break
        if data_start == -1:
            return []

        entries: list[FilingIndexEntry] = []
        for line in lines[data_start:]:
            line = line.strip()
            if not line or set(line) == {"-"}:
                continue

            parts = _COLUMN_SPLIT.split(line)
            if len(parts) < 5:
                continue
            cik, date_str, file_name = parts[-3], parts[-2], parts[-1]
            leading = parts[:-3]
            if form_first:
                form_type, filer_name = leading[0], " ".join(leading[1:])
            else:
                form_type, filer_name = leading[-1], " ".join(leading[:-1])

            match = _ACCESSION_IN_PATH.search(file_name)
            if match is None:
                continue
            try:
                entries.append(
                    FilingIndexEntry(
                        accession_number=match.group(1),
                        filer_id=cik,
                        filer_name=filer_name.strip(),
                        form_type=form_type,
                        date_filed=_parse_index_date(date_str),
                        file_name=file_name,
                    )
                )
            except ValueError:
                logger.debug("Skipping malformed index line: %s", line)
        return entries

    # --- Transport ---

    async def _request(self, url: str, accept: str) -> httpx.Response:
        """Dispatch one GET through the rate gate and classify the outcome.

        Returns:
            httpx.Response with status 200.

        Raises:
            NotFoundError: HTTP 404.
            RateLimitError: HTTP 429.
            ForbiddenError: HTTP 403.
            TransientError: HTTP 5xx, timeouts, connection failures.
            IngestionError: Any other non-200 status.
        """
        await self._gate.acquire()
        try:
            response = await self._client.get(url, headers={"Accept": accept})
        except httpx.TimeoutException as e:
            raise TransientError(
                f"Timed out fetching {url}", context={"url": url, "error": str(e)}
            ) from e
        except httpx.TransportError as e:
            raise TransientError(
                f"Connection failed for {url}: {e}",
                context={"url": url, "error": str(e)},
            ) from e

        status = response.status_code
        if status == 200:
            return response

        context = {"url": url, "status_code": status}
        if status == 404:
            raise NotFoundError(f"HTTP 404 from {url}", context=context)
        if status == 429:
            retry_after = _retry_after(response)
            logger.warning("Rate limited (429) on %s, retry after %ds", url, retry_after)
            raise RateLimitError(
                f"Rate limit exceeded: {url}",
                context={**context, "retry_after": retry_after},
            )
        if status == 403:
            raise ForbiddenError(
                f"Access forbidden - check User-Agent header: {url}", context=context
            )
        if status >= 500:
            raise TransientError(f"Server error {status} from {url}", context=context)
        raise IngestionError(f"HTTP {status} from {url}", context=context)


def _list_column(columns: dict, key: str) -> list:
    value = columns.get(key)
    return value if isinstance(value, list) else []


def _parse_index_date(value: str) -> date:
    """Daily indexes use YYYYMMDD; full indexes use YYYY-MM-DD."""
    value = value.strip()
    if len(value) == 8 and value.isdigit():
        return date(int(value[:4]), int(value[4:6]), int(value[6:]))
    return date.fromisoformat(value)


def _retry_after(response: httpx.Response) -> int:
    try:
        return int(response.headers.get("Retry-After", _DEFAULT_RETRY_AFTER))
    except ValueError:
        return _DEFAULT_RETRY_AFTER

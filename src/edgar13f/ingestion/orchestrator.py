"""Ingestion orchestrator: enumerate, fan out, persist, derive changes."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Awaitable, Callable, TypeVar

from edgar13f.core.config import IngestionConfig
from edgar13f.core.exceptions import Edgar13FError, TransientError
from edgar13f.core.models import (
    Filing,
    FilingIndexEntry,
    Holding,
    IngestionStats,
    ParsedFiling,
    RunSummary,
    normalize_cik,
)
from edgar13f.ingestion.client import EdgarClient
from edgar13f.ingestion.parser import FilingParser
from edgar13f.ingestion.store import StorageProtocol
from edgar13f.positions import derive_position_changes

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Whole currency units -> minor units (cents)
MINOR_UNITS = 100


def previous_quarter_end(day: date) -> date:
    """Last calendar quarter end strictly before `day`."""
    quarter_start = date(day.year, 3 * ((day.month - 1) // 3) + 1, 1)
    return quarter_start - timedelta(days=1)


@dataclass(frozen=True)
class FilingOutcome:
    """What processing one filing contributed to the run."""

    skipped: bool = False
    new_holdings: int = 0
    new_securities: int = 0
    new_fund_manager: bool = False


class IngestionOrchestrator:
    """Coordinates one ingestion run end to end.

    Candidate filings are processed in fixed-size batches: every filing in a
    batch runs concurrently, and the next batch starts only after the whole
    batch has settled. A failing filing is recorded in the run's error list
    and never stops the rest of the run. After the last batch one
    position-change pass runs over the most recent holdings.

    Usage:
        orchestrator = IngestionOrchestrator(client, FilingParser(), store, config.ingestion)
        summary = await orchestrator.ingest(start=date(2024, 8, 1), end=date(2024, 8, 15))
    """

    def __init__(
        self,
        client: EdgarClient,
        parser: FilingParser,
        store: StorageProtocol,
        config: IngestionConfig,
    ) -> None:
        self._client = client
        self._parser = parser
        self._store = store
        self._config = config

    async def ingest(
        self,
        start: date | None = None,
        end: date | None = None,
        filer_ids: list[str] | None = None,
        skip_existing: bool | None = None,
        max_concurrent: int | None = None,
    ) -> RunSummary:
        """Run one ingestion over a date window, a filer set, or both.

        With neither a window nor filers, the window is the last
        ``lookback_days`` days ending today. Never raises: every failure
        ends up in ``RunSummary.errors``.
        """
        started = time.monotonic()
        summary = RunSummary()
        skip = self._config.skip_existing if skip_existing is None else skip_existing
        batch_size = self._config.max_concurrent if max_concurrent is None else max_concurrent
        if batch_size < 1:
            summary.errors.append(f"run: max_concurrent must be >= 1, got {batch_size}")
            summary.duration_ms = _elapsed_ms(started)
            return summary

        try:
            await self._run(summary, start, end, filer_ids, skip, batch_size)
        except Exception as e:
            logger.exception("Ingestion run aborted")
            summary.errors.append(f"run: {e}")

        summary.duration_ms = _elapsed_ms(started)
        logger.info(
            "Run finished: %d processed, %d skipped, %d holdings, %d errors in %dms",
            summary.processed_filings,
            summary.skipped_filings,
            summary.new_holdings,
            len(summary.errors),
            summary.duration_ms,
        )
        return summary

    async def ingest_for_filers(
        self,
        filer_ids: list[str],
        skip_existing: bool | None = None,
        max_concurrent: int | None = None,
    ) -> RunSummary:
        """Directed ingestion of the most recent filings of each filer."""
        return await self.ingest(
            filer_ids=filer_ids,
            skip_existing=skip_existing,
            max_concurrent=max_concurrent,
        )

    async def get_stats(self) -> IngestionStats:
        return await self._store.get_stats()

    async def _run(
        self,
        summary: RunSummary,
        start: date | None,
        end: date | None,
        filer_ids: list[str] | None,
        skip: bool,
        batch_size: int,
    ) -> None:
        entries = await self._enumerate(start, end, filer_ids, summary)
        logger.info(
            "Ingesting %d candidate filings in batches of %d", len(entries), batch_size
        )

        for offset in range(0, len(entries), batch_size):
            batch = entries[offset:offset + batch_size]
            results = await asyncio.gather(
                *(self._process_filing(entry, skip) for entry in batch),
                return_exceptions=True,
            )
            for entry, result in zip(batch, results):
                if isinstance(result, BaseException):
                    if not isinstance(result, Exception):
                        raise result
                    logger.warning(
                        "Filing %s failed: %s", entry.accession_number, result
                    )
                    summary.errors.append(f"{entry.accession_number}: {result}")
                    continue
                self._apply_outcome(summary, result)

        await self._derive_position_changes(summary)

    # --- Enumeration ---

    async def _enumerate(
        self,
        start: date | None,
        end: date | None,
        filer_ids: list[str] | None,
        summary: RunSummary,
    ) -> list[FilingIndexEntry]:
        windowed = start is not None or end is not None
        entries: list[FilingIndexEntry] = []

        if filer_ids and not windowed:
            for filer_id in filer_ids:
                try:
                    entries.extend(
                        await self._with_retry(
                            lambda f=filer_id: self._client.fetch_filer_filings(
                                f, limit=self._config.filer_filing_limit
                            ),
                            filer_id,
                        )
                    )
                except (Edgar13FError, ValueError) as e:
                    logger.warning("Listing filings for %s failed: %s", filer_id, e)
                    summary.errors.append(f"{filer_id}: {e}")
            return _unique(entries)

        if end is None:
            end = date.today()
        if start is None:
            start = end - timedelta(days=self._config.lookback_days - 1)
        try:
            entries = await self._with_retry(
                lambda: self._client.fetch_filings_in_range(
                    start, end, self._config.form_types
                ),
                f"{start}..{end}",
            )
        except (Edgar13FError, ValueError) as e:
            logger.warning("Enumerating %s..%s failed: %s", start, end, e)
            summary.errors.append(f"{start}..{end}: {e}")
            return []

        if filer_ids:
            wanted = set()
            for filer_id in filer_ids:
                try:
                    wanted.add(normalize_cik(filer_id))
                except ValueError as e:
                    summary.errors.append(f"{filer_id}: {e}")
            entries = [e for e in entries if e.filer_id in wanted]
        return _unique(entries)

    # --- Per-filing processing ---

    async def _process_filing(
        self, entry: FilingIndexEntry, skip_existing: bool
    ) -> FilingOutcome:
        accession = entry.accession_number
        if await self._store.filing_exists(accession):
            logger.info("Skipping %s: already ingested", accession)
            return FilingOutcome(skipped=True)

        if skip_existing:
            known = await self._store.get_fund_manager_by_cik(entry.filer_id)
            if known is not None and await self._store.filing_exists_for(
                known.id, entry.date_filed
            ):
                logger.info(
                    "Skipping %s: %s already has a filing dated %s",
                    accession,
                    entry.filer_id,
                    entry.date_filed,
                )
                return FilingOutcome(skipped=True)

        manager, manager_created = await self._store.upsert_fund_manager(
            entry.filer_id, entry.filer_name
        )

        document = await self._with_retry(
            lambda: self._client.download_filing_document(accession, entry.filer_id),
            accession,
        )
        parsed = self._parser.parse(document)

        security_ids: dict[str, int] = {}
        new_securities = 0
        for parsed_holding in parsed.holdings:
            if parsed_holding.cusip in security_ids:
                continue
            security, created = await self._store.upsert_security(
                parsed_holding.cusip,
                parsed_holding.issuer_name,
                parsed_holding.title_of_class or None,
            )
            security_ids[parsed_holding.cusip] = security.id
            new_securities += int(created)

        filing = await self._store.insert_filing(
            self._build_filing(entry, parsed, manager.id)
        )
        try:
            holdings = [
                Holding(
                    filing_id=filing.id,
                    security_id=security_ids[h.cusip],
                    fund_manager_id=manager.id,
                    period_end_date=filing.period_end_date,
                    shares_held=h.shares,
                    market_value=h.value * MINOR_UNITS,
                    share_type=h.share_type,
                    put_call=h.put_call,
                    investment_discretion=h.investment_discretion,
                    voting=h.voting,
                )
                for h in parsed.holdings
            ]
            inserted = await self._store.insert_holdings(holdings)
            await self._store.recompute_portfolio_weights(filing.id)
        except Exception:
            # Leave no half-ingested filing behind
            await self._store.delete_filing(filing.id)
            raise

        logger.debug(
            "Ingested %s (%s): %d holdings, %s",
            accession,
            manager.name,
            inserted,
            parsed.source_format,
        )
        return FilingOutcome(
            new_holdings=inserted,
            new_securities=new_securities,
            new_fund_manager=manager_created,
        )

    def _build_filing(
        self, entry: FilingIndexEntry, parsed: ParsedFiling, fund_manager_id: int
    ) -> Filing:
        cover = parsed.cover_page
        summary_page = parsed.summary_page
        declared_value = summary_page.declared_value_total
        return Filing(
            fund_manager_id=fund_manager_id,
            accession_number=entry.accession_number,
            filing_date=entry.date_filed,
            period_end_date=cover.period_end_date or previous_quarter_end(entry.date_filed),
            form_type=entry.form_type,
            total_value=summary_page.table_value_total * MINOR_UNITS,
            total_positions=summary_page.table_entry_total,
            declared_total_value=(
                declared_value * MINOR_UNITS if declared_value is not None else None
            ),
            declared_total_positions=summary_page.declared_entry_total,
            filing_url=EdgarClient.filing_url(entry),
            source_format=parsed.source_format,
            is_amendment=cover.is_amendment or entry.form_type.endswith("/A"),
        )

    # --- Position changes ---

    async def _derive_position_changes(self, summary: RunSummary) -> None:
        try:
            holdings = await self._store.recent_holdings(self._config.position_window)
            changes = derive_position_changes(
                holdings, classify_entries_exits=self._config.classify_entries_exits
            )
            summary.position_changes = await self._store.upsert_position_changes(changes)
        except Edgar13FError as e:
            logger.warning("Position change derivation failed: %s", e)
            summary.errors.append(f"position changes: {e}")

    # --- Helpers ---

    async def _with_retry(
        self, operation: Callable[[], Awaitable[T]], label: str
    ) -> T:
        """Await `operation`, retrying TransientError with exponential backoff."""
        attempt = 0
        while True:
            try:
                return await operation()
            except TransientError as e:
                if attempt >= self._config.retry_attempts:
                    raise
                delay = self._config.retry_backoff * 2**attempt
                logger.warning(
                    "Transient failure for %s (attempt %d/%d): %s. Retrying in %.1fs.",
                    label,
                    attempt + 1,
                    self._config.retry_attempts + 1,
                    e,
                    delay,
                )
                await asyncio.sleep(delay)
                attempt += 1

    @staticmethod
    def _apply_outcome(summary: RunSummary, outcome: FilingOutcome) -> None:
        if outcome.skipped:
            summary.skipped_filings += 1
            return
        summary.processed_filings += 1
        summary.new_holdings += outcome.new_holdings
        summary.updated_securities += outcome.new_securities
        summary.new_fund_managers += int(outcome.new_fund_manager)


def _unique(entries: list[FilingIndexEntry]) -> list[FilingIndexEntry]:
    seen: set[str] = set()
    result: list[FilingIndexEntry] = []
    for entry in entries:
        if entry.accession_number not in seen:
            seen.add(entry.accession_number)
            result.append(entry)
    return result


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)

"""Interval scheduler for unattended ingestion runs."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from edgar13f.core.models import RunSummary

logger = logging.getLogger(__name__)


class IngestionScheduler:
    """Starts one ingestion run per interval, never two at once.

    The first run starts immediately. A run that is still in progress when
    the next tick comes due causes that tick to be skipped with a warning.
    A run that raises is logged and the schedule carries on.

    Usage:
        scheduler = IngestionScheduler(lambda: orchestrator.ingest(), 7 * 24 * 3600)
        await scheduler.run_forever()
    """

    def __init__(
        self,
        run: Callable[[], Awaitable[RunSummary]],
        interval_seconds: float,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be > 0, got {interval_seconds}")
        self._run = run
        self._interval = interval_seconds
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def run_once(self) -> RunSummary | None:
        """Run one ingestion unless one is already in progress.

        Returns the run's summary, or None when the run was skipped or failed.
        """
        if self._running:
            logger.warning("Ingestion already running, skipping scheduled run")
            return None

        self._running = True
        try:
            logger.info("Starting scheduled ingestion")
            summary = await self._run()
        except Exception:
            logger.exception("Scheduled ingestion failed")
            return None
        finally:
            self._running = False

        logger.info(
            "Scheduled ingestion completed: %d processed, %d holdings, "
            "%d new securities, %d new fund managers, %d errors in %dms",
            summary.processed_filings,
            summary.new_holdings,
            summary.updated_securities,
            summary.new_fund_managers,
            len(summary.errors),
            summary.duration_ms,
        )
        if summary.errors:
            logger.warning("Ingestion completed with errors: %s", summary.errors)
        return summary

    async def run_forever(self, max_runs: int | None = None) -> None:
        """Tick every interval until cancelled.

        With ``max_runs`` the loop stops after that many ticks, skipped ones
        included, and waits for the run still in progress.
        """
        logger.info("Scheduler started: one ingestion every %.1f minutes", self._interval / 60)
        pending: set[asyncio.Task] = set()
        ticks = 0
        while True:
            task = asyncio.create_task(self.run_once())
            pending.add(task)
            task.add_done_callback(pending.discard)
            ticks += 1
            if max_runs is not None and ticks >= max_runs:
                break
            await asyncio.sleep(self._interval)

        await asyncio.gather(*pending)
        logger.info("Scheduler finished after %d scheduled runs", ticks)

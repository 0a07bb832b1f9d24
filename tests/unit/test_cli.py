"""Tests for the CLI module."""

from __future__ import annotations

import json
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from edgar13f.cli import cli
from edgar13f.core.exceptions import ConfigError, StorageError
from edgar13f.core.models import IngestionStats, RunSummary


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def mock_config():
    """Minimal Edgar13FConfig mock for CLI tests."""
    config = MagicMock()
    config.storage.sqlite_path = ":memory:"
    config.logging.level = "INFO"
    return config


@pytest.fixture(autouse=True)
def mock_logging():
    with patch("edgar13f.cli._configure_logging") as configure:
        yield configure


@pytest.fixture
def clean_summary():
    return RunSummary(
        processed_filings=2,
        skipped_filings=1,
        new_holdings=40,
        updated_securities=12,
        new_fund_managers=1,
        position_changes=3,
        duration_ms=1500,
    )


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


class TestCLIGroup:
    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "13F institutional holdings" in result.output
        for command in ("ingest", "ingest-filers", "stats", "schedule"):
            assert command in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_unknown_command(self, runner):
        result = runner.invoke(cli, ["nonexistent"])
        assert result.exit_code != 0

    @patch("edgar13f.core.load_config")
    def test_config_error_exits_nonzero(self, mock_load, runner):
        mock_load.side_effect = ConfigError(
            "Missing required field: edgar.user_agent",
            context={"field": "edgar.user_agent"},
        )
        result = runner.invoke(cli, ["stats"])
        assert result.exit_code == 1
        assert "Configuration error" in result.output

    @patch("edgar13f.core.load_config")
    @patch("edgar13f.cli._run_ingestion", new_callable=AsyncMock)
    def test_verbose_enables_debug(
        self, mock_run, mock_load, runner, mock_config, clean_summary, mock_logging
    ):
        mock_load.return_value = mock_config
        mock_run.return_value = clean_summary
        result = runner.invoke(cli, ["-v", "ingest"])
        assert result.exit_code == 0
        mock_logging.assert_called_once_with("DEBUG")


# ---------------------------------------------------------------------------
# ingest
# ---------------------------------------------------------------------------


class TestIngestCommand:
    def test_ingest_help(self, runner):
        result = runner.invoke(cli, ["ingest", "--help"])
        assert result.exit_code == 0
        for option in ("--start", "--end", "--filer", "--skip-existing", "--max-concurrent"):
            assert option in result.output

    def test_rejects_bad_date(self, runner):
        result = runner.invoke(cli, ["ingest", "--start", "08/01/2024"])
        assert result.exit_code != 0

    def test_rejects_zero_concurrency(self, runner):
        result = runner.invoke(cli, ["ingest", "--max-concurrent", "0"])
        assert result.exit_code != 0

    @patch("edgar13f.core.load_config")
    @patch("edgar13f.cli._run_ingestion", new_callable=AsyncMock)
    def test_ingest_passes_options(
        self, mock_run, mock_load, runner, mock_config, clean_summary, mock_logging
    ):
        mock_load.return_value = mock_config
        mock_run.return_value = clean_summary

        result = runner.invoke(
            cli,
            [
                "ingest",
                "--start", "2024-08-01",
                "--end", "2024-08-15",
                "--filer", "1067983",
                "--filer", "102909",
                "--no-skip-existing",
                "--max-concurrent", "4",
            ],
        )

        assert result.exit_code == 0, result.output
        mock_run.assert_awaited_once_with(
            mock_config,
            start=date(2024, 8, 1),
            end=date(2024, 8, 15),
            filer_ids=["1067983", "102909"],
            skip_existing=False,
            max_concurrent=4,
        )
        mock_logging.assert_called_once_with("INFO")

    @patch("edgar13f.core.load_config")
    @patch("edgar13f.cli._run_ingestion", new_callable=AsyncMock)
    def test_ingest_defaults(self, mock_run, mock_load, runner, mock_config, clean_summary):
        mock_load.return_value = mock_config
        mock_run.return_value = clean_summary

        result = runner.invoke(cli, ["ingest"])

        assert result.exit_code == 0
        mock_run.assert_awaited_once_with(
            mock_config,
            start=None,
            end=None,
            filer_ids=None,
            skip_existing=None,
            max_concurrent=None,
        )

    @patch("edgar13f.core.load_config")
    @patch("edgar13f.cli._run_ingestion", new_callable=AsyncMock)
    def test_table_output(self, mock_run, mock_load, runner, mock_config, clean_summary):
        mock_load.return_value = mock_config
        mock_run.return_value = clean_summary

        result = runner.invoke(cli, ["ingest"])

        assert result.exit_code == 0
        assert "Ingestion Run" in result.output
        assert "Processed filings" in result.output
        assert "1.5s" in result.output

    @patch("edgar13f.core.load_config")
    @patch("edgar13f.cli._run_ingestion", new_callable=AsyncMock)
    def test_json_output(self, mock_run, mock_load, runner, mock_config, clean_summary):
        mock_load.return_value = mock_config
        mock_run.return_value = clean_summary

        result = runner.invoke(cli, ["ingest", "--format", "json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["processed_filings"] == 2
        assert data["new_holdings"] == 40
        assert data["errors"] == []

    @patch("edgar13f.core.load_config")
    @patch("edgar13f.cli._run_ingestion", new_callable=AsyncMock)
    def test_errors_exit_nonzero(self, mock_run, mock_load, runner, mock_config):
        mock_load.return_value = mock_config
        mock_run.return_value = RunSummary(
            processed_filings=1,
            errors=["0000950123-24-000002: No filing document found"],
        )

        result = runner.invoke(cli, ["ingest"])

        assert result.exit_code == 1
        assert "No filing document found" in result.output


# ---------------------------------------------------------------------------
# ingest-filers
# ---------------------------------------------------------------------------


class TestIngestFilersCommand:
    def test_requires_filer_ids(self, runner):
        result = runner.invoke(cli, ["ingest-filers"])
        assert result.exit_code != 0

    @patch("edgar13f.core.load_config")
    @patch("edgar13f.cli._run_ingestion", new_callable=AsyncMock)
    def test_passes_filers_without_window(
        self, mock_run, mock_load, runner, mock_config, clean_summary
    ):
        mock_load.return_value = mock_config
        mock_run.return_value = clean_summary

        result = runner.invoke(cli, ["ingest-filers", "1067983", "102909", "--max-concurrent", "2"])

        assert result.exit_code == 0, result.output
        mock_run.assert_awaited_once_with(
            mock_config,
            filer_ids=["1067983", "102909"],
            skip_existing=None,
            max_concurrent=2,
        )


# ---------------------------------------------------------------------------
# stats
# ---------------------------------------------------------------------------


class TestStatsCommand:
    @pytest.fixture
    def mock_store(self):
        store = MagicMock()
        store.get_stats = AsyncMock(
            return_value=IngestionStats(
                total_fund_managers=3,
                total_securities=120,
                total_filings=5,
                total_holdings=400,
                total_position_changes=90,
                last_run_at=datetime(2024, 8, 15, 12, 30, tzinfo=timezone.utc),
            )
        )
        store.close = AsyncMock()
        return store

    @patch("edgar13f.core.load_config")
    @patch("edgar13f.cli._create_store_async")
    def test_table_output(self, mock_store_fn, mock_load, runner, mock_config, mock_store):
        mock_load.return_value = mock_config
        mock_store_fn.return_value = mock_store

        result = runner.invoke(cli, ["stats"])

        assert result.exit_code == 0
        assert "edgar13f Status" in result.output
        assert "400" in result.output
        assert "2024-08-15T12:30:00" in result.output
        mock_store.close.assert_awaited_once()

    @patch("edgar13f.core.load_config")
    @patch("edgar13f.cli._create_store_async")
    def test_json_output(self, mock_store_fn, mock_load, runner, mock_config, mock_store):
        mock_load.return_value = mock_config
        mock_store_fn.return_value = mock_store

        result = runner.invoke(cli, ["stats", "--format", "json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["total_filings"] == 5
        assert data["total_position_changes"] == 90
        assert data["last_run_at"].startswith("2024-08-15T12:30:00")

    @patch("edgar13f.core.load_config")
    @patch("edgar13f.cli._create_store_async")
    def test_empty_dataset(self, mock_store_fn, mock_load, runner, mock_config, mock_store):
        mock_load.return_value = mock_config
        mock_store.get_stats.return_value = IngestionStats(
            total_fund_managers=0, total_securities=0, total_filings=0, total_holdings=0
        )
        mock_store_fn.return_value = mock_store

        result = runner.invoke(cli, ["stats"])

        assert result.exit_code == 0
        assert "N/A" in result.output


# ---------------------------------------------------------------------------
# storage failures
# ---------------------------------------------------------------------------


class TestStorageErrors:
    @pytest.fixture
    def broken_store(self):
        return StorageError(
            "Failed to open database: unable to open database file",
            context={"operation": "initialize", "table": "*"},
        )

    @patch("edgar13f.core.load_config")
    @patch("edgar13f.cli._create_store_async")
    def test_ingest_reports_storage_error(
        self, mock_store_fn, mock_load, runner, mock_config, broken_store
    ):
        mock_load.return_value = mock_config
        mock_store_fn.side_effect = broken_store

        result = runner.invoke(cli, ["ingest"])

        assert result.exit_code == 1
        assert "Storage error" in result.output
        assert "Traceback" not in result.output

    @patch("edgar13f.core.load_config")
    @patch("edgar13f.cli._create_store_async")
    def test_ingest_filers_reports_storage_error(
        self, mock_store_fn, mock_load, runner, mock_config, broken_store
    ):
        mock_load.return_value = mock_config
        mock_store_fn.side_effect = broken_store

        result = runner.invoke(cli, ["ingest-filers", "1067983"])

        assert result.exit_code == 1
        assert "Storage error" in result.output

    @patch("edgar13f.core.load_config")
    @patch("edgar13f.cli._create_store_async")
    def test_stats_reports_storage_error(
        self, mock_store_fn, mock_load, runner, mock_config, broken_store
    ):
        mock_load.return_value = mock_config
        mock_store_fn.side_effect = broken_store

        result = runner.invoke(cli, ["stats"])

        assert result.exit_code == 1
        assert "Storage error" in result.output


# ---------------------------------------------------------------------------
# schedule
# ---------------------------------------------------------------------------


class TestScheduleCommand:
    def test_schedule_help(self, runner):
        result = runner.invoke(cli, ["schedule", "--help"])
        assert result.exit_code == 0
        assert "--interval-minutes" in result.output
        assert "--max-runs" in result.output

    def test_rejects_zero_interval(self, runner):
        result = runner.invoke(cli, ["schedule", "--interval-minutes", "0"])
        assert result.exit_code != 0

    @patch("edgar13f.core.load_config")
    @patch("edgar13f.cli._run_ingestion", new_callable=AsyncMock)
    def test_runs_default_window_each_tick(
        self, mock_run, mock_load, runner, mock_config, clean_summary
    ):
        mock_load.return_value = mock_config
        mock_run.return_value = clean_summary

        result = runner.invoke(
            cli, ["schedule", "--interval-minutes", "0.0001", "--max-runs", "2"]
        )

        assert result.exit_code == 0, result.output
        assert mock_run.await_count == 2
        mock_run.assert_awaited_with(mock_config)
        assert "Scheduling ingestion every 0.0001 minutes" in result.output

    @patch("edgar13f.core.load_config")
    @patch("edgar13f.cli._run_ingestion", new_callable=AsyncMock)
    def test_failed_run_keeps_schedule_alive(self, mock_run, mock_load, runner, mock_config):
        mock_load.return_value = mock_config
        mock_run.side_effect = StorageError("database is locked")

        result = runner.invoke(
            cli, ["schedule", "--interval-minutes", "0.0001", "--max-runs", "2"]
        )

        assert result.exit_code == 0, result.output
        assert mock_run.await_count == 2

    @patch("edgar13f.core.load_config")
    @patch("edgar13f.cli._run_async")
    def test_ctrl_c_stops_scheduler(self, mock_run_async, mock_load, runner, mock_config):
        mock_load.return_value = mock_config
        mock_config.schedule.interval_minutes = 10080.0

        def interrupt(coro):
            coro.close()
            raise KeyboardInterrupt

        mock_run_async.side_effect = interrupt

        result = runner.invoke(cli, ["schedule"])

        assert result.exit_code == 0
        assert "every 10080 minutes" in result.output
        assert "Scheduler stopped" in result.output

"""Storage backend: Protocol definition, SQLite implementation, factory."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import ClassVar, Protocol, runtime_checkable

import aiosqlite

from edgar13f.core.config import StorageConfig
from edgar13f.core.exceptions import StorageError
from edgar13f.core.models import (
    ChangeType,
    DocumentFormat,
    Filing,
    FundManager,
    Holding,
    IngestionStats,
    PositionChange,
    Security,
    StorageBackend as StorageBackendEnum,
    VotingAuthority,
    normalize_cik,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class StorageProtocol(Protocol):
    """Abstract storage interface for the 13F holdings dataset."""

    async def upsert_fund_manager(
        self, cik: str, name: str
    ) -> tuple[FundManager, bool]: ...
    async def get_fund_manager_by_cik(self, cik: str) -> FundManager | None: ...
    async def upsert_security(
        self, cusip: str, company_name: str, security_type: str | None = None
    ) -> tuple[Security, bool]: ...
    async def get_security_by_cusip(self, cusip: str) -> Security | None: ...
    async def filing_exists(self, accession_number: str) -> bool: ...
    async def filing_exists_for(
        self, fund_manager_id: int, filing_date: date
    ) -> bool: ...
    async def insert_filing(self, filing: Filing) -> Filing: ...
    async def get_filing(self, accession_number: str) -> Filing | None: ...
    async def list_filings(
        self, fund_manager_id: int | None = None, limit: int | None = None
    ) -> list[Filing]: ...
    async def delete_filing(self, filing_id: int) -> None: ...
    async def insert_holdings(self, holdings: list[Holding]) -> int: ...
    async def list_holdings(self, filing_id: int) -> list[Holding]: ...
    async def recent_holdings(
        self, limit: int, periods_per_fund: int = 2
    ) -> list[Holding]: ...
    async def recompute_portfolio_weights(self, filing_id: int) -> int: ...
    async def upsert_position_changes(self, changes: list[PositionChange]) -> int: ...
    async def list_position_changes(
        self, fund_manager_id: int | None = None
    ) -> list[PositionChange]: ...
    async def get_stats(self) -> IngestionStats: ...
    async def initialize(self) -> None: ...
    async def close(self) -> None: ...
    async def health_check(self) -> bool: ...


class SqliteStore:
    """SQLite implementation of the storage protocol.

    Uses aiosqlite for async access, WAL mode for concurrent reads,
    and a version-tracked migration system. Writes from concurrent
    ingestion tasks are serialized through one lock so each operation
    commits as a unit.
    """

    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial schema",
            [
                """CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS fund_managers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    cik TEXT NOT NULL UNIQUE,
                    name TEXT NOT NULL,
                    address TEXT,
                    phone TEXT,
                    created_at TEXT DEFAULT (datetime('now')),
                    updated_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS securities (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    cusip TEXT NOT NULL UNIQUE,
                    ticker TEXT,
                    company_name TEXT NOT NULL,
                    security_type TEXT,
                    sector TEXT,
                    industry TEXT,
                    created_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS filings (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    fund_manager_id INTEGER NOT NULL REFERENCES fund_managers(id),
                    accession_number TEXT NOT NULL UNIQUE,
                    filing_date TEXT NOT NULL,
                    period_end_date TEXT NOT NULL,
                    form_type TEXT NOT NULL,
                    total_value INTEGER NOT NULL,
                    total_positions INTEGER NOT NULL,
                    declared_total_value INTEGER,
                    declared_total_positions INTEGER,
                    filing_url TEXT NOT NULL,
                    source_format TEXT NOT NULL,
                    is_amendment INTEGER NOT NULL DEFAULT 0,
                    processed_at TEXT NOT NULL
                )""",
                """CREATE TABLE IF NOT EXISTS holdings (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    filing_id INTEGER NOT NULL REFERENCES filings(id),
                    security_id INTEGER NOT NULL REFERENCES securities(id),
                    fund_manager_id INTEGER NOT NULL REFERENCES fund_managers(id),
                    period_end_date TEXT NOT NULL,
                    shares_held INTEGER NOT NULL,
                    market_value INTEGER NOT NULL CHECK (market_value >= 0),
                    percent_of_portfolio REAL,
                    share_type TEXT NOT NULL DEFAULT 'SH',
                    put_call TEXT,
                    investment_discretion TEXT NOT NULL DEFAULT 'SOLE',
                    voting_sole INTEGER NOT NULL DEFAULT 0,
                    voting_shared INTEGER NOT NULL DEFAULT 0,
                    voting_none INTEGER NOT NULL DEFAULT 0
                )""",
                """CREATE TABLE IF NOT EXISTS position_changes (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    fund_manager_id INTEGER NOT NULL REFERENCES fund_managers(id),
                    security_id INTEGER NOT NULL REFERENCES securities(id),
                    from_period TEXT NOT NULL,
                    to_period TEXT NOT NULL,
                    shares_change INTEGER NOT NULL,
                    value_change INTEGER NOT NULL,
                    percent_change REAL NOT NULL,
                    change_type TEXT NOT NULL,
                    computed_at TEXT DEFAULT (datetime('now')),
                    UNIQUE(fund_manager_id, security_id, to_period)
                )""",
                # Indexes
                "CREATE INDEX IF NOT EXISTS idx_filings_manager_date ON filings(fund_manager_id, filing_date)",
                "CREATE INDEX IF NOT EXISTS idx_filings_period ON filings(period_end_date)",
                "CREATE INDEX IF NOT EXISTS idx_holdings_filing ON holdings(filing_id)",
                "CREATE INDEX IF NOT EXISTS idx_holdings_period ON holdings(period_end_date)",
                "CREATE INDEX IF NOT EXISTS idx_holdings_manager_security ON holdings(fund_manager_id, security_id)",
                "CREATE INDEX IF NOT EXISTS idx_changes_manager ON position_changes(fund_manager_id)",
            ],
        ),
    }

    def __init__(self, config: StorageConfig) -> None:
        self._path = config.sqlite_path
        self._db: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Open connection, enable WAL + FK, run migrations."""
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self._path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode=WAL")
            await self._db.execute("PRAGMA foreign_keys=ON")
            current = await self._get_schema_version()
            await self._apply_migrations(current)
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to initialize SQLite store: {e}",
                context={"operation": "initialize", "path": self._path},
            ) from e

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def health_check(self) -> bool:
        if self._db is None:
            return False
        try:
            async with self._db.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
            return row is not None
        except Exception:
            return False

    @asynccontextmanager
    async def _transaction(self):
        """Serialize a multi-statement write; commit on success, else roll back."""
        async with self._write_lock:
            try:
                yield
                await self._db.commit()
            except BaseException:
                await self._db.rollback()
                raise

    # --- Schema Migration ---

    async def _get_schema_version(self) -> int:
        try:
            async with self._db.execute(
                "SELECT MAX(version) FROM schema_version"
            ) as cursor:
                row = await cursor.fetchone()
            return row[0] if row[0] is not None else 0
        except aiosqlite.OperationalError:
            return 0

    async def _apply_migrations(self, current_version: int) -> None:
        for version in sorted(self._MIGRATIONS.keys()):
            if version <= current_version:
                continue
            desc, statements = self._MIGRATIONS[version]
            logger.info("Applying migration %d: %s", version, desc)
            for sql in statements:
                await self._db.execute(sql)
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )

    # --- Reference Entities ---

    async def upsert_fund_manager(
        self, cik: str, name: str
    ) -> tuple[FundManager, bool]:
        """Insert the manager unless the CIK exists; return (row, created).

        The first name seen for a CIK is kept.
        """
        cik = normalize_cik(cik)
        try:
            async with self._write_lock:
                cursor = await self._db.execute(
                    """INSERT INTO fund_managers (cik, name) VALUES (?, ?)
                       ON CONFLICT(cik) DO NOTHING""",
                    (cik, name),
                )
                created = cursor.rowcount == 1
                await self._db.commit()
            manager = await self.get_fund_manager_by_cik(cik)
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to upsert fund manager: {e}",
                context={"operation": "upsert", "table": "fund_managers", "cik": cik},
            ) from e
        if manager is None:
            raise StorageError(
                "Fund manager missing after upsert",
                context={"operation": "upsert", "table": "fund_managers", "cik": cik},
            )
        return manager, created

    async def get_fund_manager_by_cik(self, cik: str) -> FundManager | None:
        try:
            async with self._db.execute(
                "SELECT * FROM fund_managers WHERE cik = ?",
                (normalize_cik(cik),),
            ) as cursor:
                row = await cursor.fetchone()
            return self._row_to_fund_manager(row) if row else None
        except Exception as e:
            raise StorageError(
                f"Failed to get fund manager: {e}",
                context={"operation": "query", "table": "fund_managers"},
            ) from e

    async def upsert_security(
        self, cusip: str, company_name: str, security_type: str | None = None
    ) -> tuple[Security, bool]:
        """Insert the security unless the CUSIP exists; return (row, created)."""
        try:
            async with self._write_lock:
                cursor = await self._db.execute(
                    """INSERT INTO securities (cusip, company_name, security_type)
                       VALUES (?, ?, ?)
                       ON CONFLICT(cusip) DO NOTHING""",
                    (cusip, company_name, security_type),
                )
                created = cursor.rowcount == 1
                await self._db.commit()
            security = await self.get_security_by_cusip(cusip)
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to upsert security: {e}",
                context={"operation": "upsert", "table": "securities", "cusip": cusip},
            ) from e
        if security is None:
            raise StorageError(
                "Security missing after upsert",
                context={"operation": "upsert", "table": "securities", "cusip": cusip},
            )
        return security, created

    async def get_security_by_cusip(self, cusip: str) -> Security | None:
        try:
            async with self._db.execute(
                "SELECT * FROM securities WHERE cusip = ?", (cusip,)
            ) as cursor:
                row = await cursor.fetchone()
            return self._row_to_security(row) if row else None
        except Exception as e:
            raise StorageError(
                f"Failed to get security: {e}",
                context={"operation": "query", "table": "securities"},
            ) from e

    # --- Filing Operations ---

    async def filing_exists(self, accession_number: str) -> bool:
        try:
            async with self._db.execute(
                "SELECT 1 FROM filings WHERE accession_number = ?",
                (accession_number,),
            ) as cursor:
                row = await cursor.fetchone()
            return row is not None
        except Exception as e:
            raise StorageError(
                f"Failed to check filing existence: {e}",
                context={"operation": "query", "table": "filings"},
            ) from e

    async def filing_exists_for(self, fund_manager_id: int, filing_date: date) -> bool:
        try:
            async with self._db.execute(
                "SELECT 1 FROM filings WHERE fund_manager_id = ? AND filing_date = ?",
                (fund_manager_id, filing_date.isoformat()),
            ) as cursor:
                row = await cursor.fetchone()
            return row is not None
        except Exception as e:
            raise StorageError(
                f"Failed to check filing existence: {e}",
                context={"operation": "query", "table": "filings"},
            ) from e

    async def insert_filing(self, filing: Filing) -> Filing:
        """Insert a filing row and return it with its id and processed_at."""
        processed_at = filing.processed_at or datetime.now(timezone.utc)
        try:
            async with self._transaction():
                cursor = await self._db.execute(
                    """INSERT INTO filings
                       (fund_manager_id, accession_number, filing_date,
                        period_end_date, form_type, total_value, total_positions,
                        declared_total_value, declared_total_positions,
                        filing_url, source_format, is_amendment, processed_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        filing.fund_manager_id,
                        filing.accession_number,
                        filing.filing_date.isoformat(),
                        filing.period_end_date.isoformat(),
                        filing.form_type,
                        filing.total_value,
                        filing.total_positions,
                        filing.declared_total_value,
                        filing.declared_total_positions,
                        filing.filing_url,
                        str(filing.source_format),
                        int(filing.is_amendment),
                        processed_at.isoformat(),
                    ),
                )
                filing_id = cursor.lastrowid
        except Exception as e:
            raise StorageError(
                f"Failed to insert filing: {e}",
                context={
                    "operation": "insert",
                    "table": "filings",
                    "accession_number": filing.accession_number,
                },
            ) from e
        return filing.model_copy(update={"id": filing_id, "processed_at": processed_at})

    async def get_filing(self, accession_number: str) -> Filing | None:
        try:
            async with self._db.execute(
                "SELECT * FROM filings WHERE accession_number = ?",
                (accession_number,),
            ) as cursor:
                row = await cursor.fetchone()
            return self._row_to_filing(row) if row else None
        except Exception as e:
            raise StorageError(
                f"Failed to get filing: {e}",
                context={
                    "operation": "query",
                    "table": "filings",
                    "accession_number": accession_number,
                },
            ) from e

    async def list_filings(
        self, fund_manager_id: int | None = None, limit: int | None = None
    ) -> list[Filing]:
        try:
            query = "SELECT * FROM filings WHERE 1=1"
            params: list = []
            if fund_manager_id is not None:
                query += " AND fund_manager_id = ?"
                params.append(fund_manager_id)
            query += " ORDER BY filing_date DESC, id DESC"
            if limit is not None:
                query += " LIMIT ?"
                params.append(limit)
            async with self._db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_filing(r) for r in rows]
        except Exception as e:
            raise StorageError(
                f"Failed to list filings: {e}",
                context={"operation": "query", "table": "filings"},
            ) from e

    async def delete_filing(self, filing_id: int) -> None:
        """Remove a filing and its holdings in one transaction."""
        try:
            async with self._transaction():
                await self._db.execute(
                    "DELETE FROM holdings WHERE filing_id = ?", (filing_id,)
                )
                await self._db.execute("DELETE FROM filings WHERE id = ?", (filing_id,))
        except Exception as e:
            raise StorageError(
                f"Failed to delete filing: {e}",
                context={"operation": "delete", "table": "filings", "filing_id": filing_id},
            ) from e

    # --- Holding Operations ---

    async def insert_holdings(self, holdings: list[Holding]) -> int:
        if not holdings:
            return 0
        try:
            async with self._transaction():
                await self._db.executemany(
                    """INSERT INTO holdings
                       (filing_id, security_id, fund_manager_id, period_end_date,
                        shares_held, market_value, percent_of_portfolio,
                        share_type, put_call, investment_discretion,
                        voting_sole, voting_shared, voting_none)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    [
                        (
                            h.filing_id,
                            h.security_id,
                            h.fund_manager_id,
                            h.period_end_date.isoformat(),
                            h.shares_held,
                            h.market_value,
                            h.percent_of_portfolio,
                            h.share_type,
                            h.put_call,
                            h.investment_discretion,
                            h.voting.sole,
                            h.voting.shared,
                            h.voting.none,
                        )
                        for h in holdings
                    ],
                )
            return len(holdings)
        except Exception as e:
            raise StorageError(
                f"Failed to insert holdings: {e}",
                context={"operation": "insert", "table": "holdings"},
            ) from e

    async def list_holdings(self, filing_id: int) -> list[Holding]:
        try:
            async with self._db.execute(
                "SELECT * FROM holdings WHERE filing_id = ? ORDER BY id",
                (filing_id,),
            ) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_holding(r) for r in rows]
        except Exception as e:
            raise StorageError(
                f"Failed to list holdings: {e}",
                context={"operation": "query", "table": "holdings"},
            ) from e

    async def recent_holdings(
        self, limit: int, periods_per_fund: int = 2
    ) -> list[Holding]:
        """Most recently reported holdings, newest period first.

        The window is built from whole (fund, period) groups: each fund's
        `periods_per_fund` latest periods, taken newest first while fewer
        than `limit` rows have been collected. The last group taken may
        overshoot `limit`; no group is ever split.
        """
        try:
            async with self._db.execute(
                """WITH period_groups AS (
                       SELECT fund_manager_id, period_end_date, COUNT(*) AS n,
                              DENSE_RANK() OVER (
                                  PARTITION BY fund_manager_id
                                  ORDER BY period_end_date DESC
                              ) AS period_rank
                       FROM holdings
                       GROUP BY fund_manager_id, period_end_date
                   ),
                   windowed AS (
                       SELECT fund_manager_id, period_end_date,
                              SUM(n) OVER (
                                  ORDER BY period_end_date DESC, fund_manager_id
                                  ROWS UNBOUNDED PRECEDING
                              ) - n AS rows_before
                       FROM period_groups
                       WHERE period_rank <= ?
                   )
                   SELECT h.* FROM holdings h
                   JOIN windowed w
                     ON h.fund_manager_id = w.fund_manager_id
                    AND h.period_end_date = w.period_end_date
                   WHERE w.rows_before < ?
                   ORDER BY h.period_end_date DESC, h.id DESC""",
                (periods_per_fund, limit),
            ) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_holding(r) for r in rows]
        except Exception as e:
            raise StorageError(
                f"Failed to query recent holdings: {e}",
                context={"operation": "query", "table": "holdings"},
            ) from e

    async def recompute_portfolio_weights(self, filing_id: int) -> int:
        """Set each holding's weight from the persisted values of its filing.

        Returns the number of holdings updated. A filing whose holdings are
        all worth zero gets weight 0 on every row.
        """
        try:
            async with self._transaction():
                async with self._db.execute(
                    "SELECT COALESCE(SUM(market_value), 0) FROM holdings WHERE filing_id = ?",
                    (filing_id,),
                ) as cursor:
                    row = await cursor.fetchone()
                total = row[0]
                if total > 0:
                    cursor = await self._db.execute(
                        """UPDATE holdings
                           SET percent_of_portfolio = ROUND(market_value * 100.0 / ?, 4)
                           WHERE filing_id = ?""",
                        (total, filing_id),
                    )
                else:
                    cursor = await self._db.execute(
                        "UPDATE holdings SET percent_of_portfolio = 0 WHERE filing_id = ?",
                        (filing_id,),
                    )
                updated = cursor.rowcount
            return updated
        except Exception as e:
            raise StorageError(
                f"Failed to recompute portfolio weights: {e}",
                context={"operation": "update", "table": "holdings", "filing_id": filing_id},
            ) from e

    # --- Position Changes ---

    async def upsert_position_changes(self, changes: list[PositionChange]) -> int:
        if not changes:
            return 0
        try:
            async with self._transaction():
                await self._db.executemany(
                    """INSERT INTO position_changes
                       (fund_manager_id, security_id, from_period, to_period,
                        shares_change, value_change, percent_change, change_type)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                       ON CONFLICT(fund_manager_id, security_id, to_period) DO UPDATE SET
                           from_period = excluded.from_period,
                           shares_change = excluded.shares_change,
                           value_change = excluded.value_change,
                           percent_change = excluded.percent_change,
                           change_type = excluded.change_type,
                           computed_at = datetime('now')""",
                    [
                        (
                            c.fund_manager_id,
                            c.security_id,
                            c.from_period.isoformat(),
                            c.to_period.isoformat(),
                            c.shares_change,
                            c.value_change,
                            c.percent_change,
                            str(c.change_type),
                        )
                        for c in changes
                    ],
                )
            return len(changes)
        except Exception as e:
            raise StorageError(
                f"Failed to upsert position changes: {e}",
                context={"operation": "upsert", "table": "position_changes"},
            ) from e

    async def list_position_changes(
        self, fund_manager_id: int | None = None
    ) -> list[PositionChange]:
        try:
            query = "SELECT * FROM position_changes"
            params: list = []
            if fund_manager_id is not None:
                query += " WHERE fund_manager_id = ?"
                params.append(fund_manager_id)
            query += " ORDER BY to_period DESC, fund_manager_id, security_id"
            async with self._db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_position_change(r) for r in rows]
        except Exception as e:
            raise StorageError(
                f"Failed to list position changes: {e}",
                context={"operation": "query", "table": "position_changes"},
            ) from e

    # --- Stats ---

    async def get_stats(self) -> IngestionStats:
        try:
            async with self._db.execute(
                """SELECT
                       (SELECT COUNT(*) FROM fund_managers) AS fund_managers,
                       (SELECT COUNT(*) FROM securities) AS securities,
                       (SELECT COUNT(*) FROM filings) AS filings,
                       (SELECT COUNT(*) FROM holdings) AS holdings,
                       (SELECT COUNT(*) FROM position_changes) AS position_changes,
                       (SELECT MAX(processed_at) FROM filings) AS last_run_at"""
            ) as cursor:
                row = await cursor.fetchone()
            return IngestionStats(
                total_fund_managers=row["fund_managers"],
                total_securities=row["securities"],
                total_filings=row["filings"],
                total_holdings=row["holdings"],
                total_position_changes=row["position_changes"],
                last_run_at=(
                    datetime.fromisoformat(row["last_run_at"])
                    if row["last_run_at"]
                    else None
                ),
            )
        except Exception as e:
            raise StorageError(
                f"Failed to compute stats: {e}",
                context={"operation": "query", "table": "*"},
            ) from e

    # --- Row Conversion Helpers ---

    @staticmethod
    def _row_to_fund_manager(row: aiosqlite.Row) -> FundManager:
        return FundManager(
            id=row["id"],
            cik=row["cik"],
            name=row["name"],
            address=row["address"],
            phone=row["phone"],
            created_at=_parse_timestamp(row["created_at"]),
            updated_at=_parse_timestamp(row["updated_at"]),
        )

    @staticmethod
    def _row_to_security(row: aiosqlite.Row) -> Security:
        return Security(
            id=row["id"],
            cusip=row["cusip"],
            ticker=row["ticker"],
            company_name=row["company_name"],
            security_type=row["security_type"],
            sector=row["sector"],
            industry=row["industry"],
            created_at=_parse_timestamp(row["created_at"]),
        )

    @staticmethod
    def _row_to_filing(row: aiosqlite.Row) -> Filing:
        return Filing(
            id=row["id"],
            fund_manager_id=row["fund_manager_id"],
            accession_number=row["accession_number"],
            filing_date=date.fromisoformat(row["filing_date"]),
            period_end_date=date.fromisoformat(row["period_end_date"]),
            form_type=row["form_type"],
            total_value=row["total_value"],
            total_positions=row["total_positions"],
            declared_total_value=row["declared_total_value"],
            declared_total_positions=row["declared_total_positions"],
            filing_url=row["filing_url"],
            source_format=DocumentFormat(row["source_format"]),
            is_amendment=bool(row["is_amendment"]),
            processed_at=_parse_timestamp(row["processed_at"]),
        )

    @staticmethod
    def _row_to_holding(row: aiosqlite.Row) -> Holding:
        return Holding(
            id=row["id"],
            filing_id=row["filing_id"],
            security_id=row["security_id"],
            fund_manager_id=row["fund_manager_id"],
            period_end_date=date.fromisoformat(row["period_end_date"]),
            shares_held=row["shares_held"],
            market_value=row["market_value"],
            percent_of_portfolio=row["percent_of_portfolio"],
            share_type=row["share_type"],
            put_call=row["put_call"],
            investment_discretion=row["investment_discretion"],
            voting=VotingAuthority(
                sole=row["voting_sole"],
                shared=row["voting_shared"],
                none=row["voting_none"],
            ),
        )

    @staticmethod
    def _row_to_position_change(row: aiosqlite.Row) -> PositionChange:
        return PositionChange(
            fund_manager_id=row["fund_manager_id"],
            security_id=row["security_id"],
            from_period=date.fromisoformat(row["from_period"]),
            to_period=date.fromisoformat(row["to_period"]),
            shares_change=row["shares_change"],
            value_change=row["value_change"],
            percent_change=row["percent_change"],
            change_type=ChangeType(row["change_type"]),
        )


def _parse_timestamp(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


async def create_store(config: StorageConfig) -> SqliteStore:
    """Create and initialize a storage backend based on configuration."""
    if config.backend == StorageBackendEnum.SQLITE:
        store = SqliteStore(config)
        await store.initialize()
        return store
    raise StorageError(
        f"Unsupported storage backend: {config.backend}",
        context={"operation": "create_store", "backend": str(config.backend)},
    )

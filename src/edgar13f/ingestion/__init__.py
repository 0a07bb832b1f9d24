"""13F ingestion: client, parser, storage, and orchestration."""

from edgar13f.ingestion.client import EdgarClient
from edgar13f.ingestion.orchestrator import IngestionOrchestrator, previous_quarter_end
from edgar13f.ingestion.parser import FilingParser
from edgar13f.ingestion.ratelimit import IntervalGate, NullGate, RateGate
from edgar13f.ingestion.scheduler import IngestionScheduler
from edgar13f.ingestion.store import SqliteStore, StorageProtocol, create_store

__all__ = [
    "EdgarClient",
    "FilingParser",
    "IngestionOrchestrator",
    "IngestionScheduler",
    "IntervalGate",
    "NullGate",
    "RateGate",
    "SqliteStore",
    "StorageProtocol",
    "create_store",
    "previous_quarter_end",
]

"""edgar13f.core: foundation types, config, and exceptions."""

from edgar13f.core.config import (
    EdgarConfig,
    Edgar13FConfig,
    IngestionConfig,
    LoggingConfig,
    ScheduleConfig,
    StorageConfig,
    load_config,
)
from edgar13f.core.exceptions import (
    ConfigError,
    Edgar13FError,
    FilingNotFoundError,
    ForbiddenError,
    IngestionError,
    MissingInformationTableError,
    NotFoundError,
    ParsingError,
    RateLimitError,
    StorageError,
    TransientError,
    UnsupportedFormatError,
)
from edgar13f.core.models import (
    CIK,
    CUSIP,
    AccessionNumber,
    ChangeType,
    CoverPage,
    DocumentFormat,
    Filing,
    FilingIndexEntry,
    FormType,
    FundManager,
    Holding,
    IngestionStats,
    ParsedFiling,
    ParsedHolding,
    PositionChange,
    RunSummary,
    Security,
    StorageBackend,
    SummaryPage,
    VotingAuthority,
    is_valid_cusip,
    normalize_accession,
    normalize_cik,
)

__all__ = [
    # Type aliases
    "AccessionNumber",
    "CIK",
    "CUSIP",
    # Enums
    "FormType",
    "DocumentFormat",
    "ChangeType",
    "StorageBackend",
    # Source / parse models
    "FilingIndexEntry",
    "VotingAuthority",
    "ParsedHolding",
    "CoverPage",
    "SummaryPage",
    "ParsedFiling",
    # Persisted entities
    "FundManager",
    "Security",
    "Filing",
    "Holding",
    "PositionChange",
    # Reporting
    "RunSummary",
    "IngestionStats",
    # Helpers
    "is_valid_cusip",
    "normalize_accession",
    "normalize_cik",
    # Config
    "Edgar13FConfig",
    "EdgarConfig",
    "StorageConfig",
    "IngestionConfig",
    "LoggingConfig",
    "ScheduleConfig",
    "load_config",
    # Exceptions
    "Edgar13FError",
    "ConfigError",
    "IngestionError",
    "RateLimitError",
    "ForbiddenError",
    "NotFoundError",
    "FilingNotFoundError",
    "TransientError",
    "ParsingError",
    "UnsupportedFormatError",
    "MissingInformationTableError",
    "StorageError",
]

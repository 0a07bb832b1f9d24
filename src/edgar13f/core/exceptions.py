"""Custom exception hierarchy for edgar13f."""

from typing import Any


class Edgar13FError(Exception):
    """Base exception for all edgar13f errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(Edgar13FError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field: str - the config field that failed validation
        value: Any - the invalid value
    """


class IngestionError(Edgar13FError):
    """Failed to fetch data from EDGAR.

    Policy: abort the current filing, record the failure, continue the run.

    Context keys:
        url: str - the URL that was being fetched
        status_code: int | None - HTTP status, when a response was received
    """


class RateLimitError(IngestionError):
    """EDGAR answered HTTP 429.

    Policy: never retried by the client. The caller decides whether to
    back off or abort.

    Context keys:
        retry_after: int | None - seconds suggested by the server
    """


class ForbiddenError(IngestionError):
    """EDGAR answered HTTP 403, usually a missing or rejected User-Agent."""


class NotFoundError(IngestionError):
    """EDGAR answered HTTP 404 for a single resource."""


class FilingNotFoundError(NotFoundError):
    """Every candidate document path for a filing answered 404.

    Context keys:
        accession_number: str
        tried: list[str] - the paths attempted, in order
    """


class TransientError(IngestionError):
    """Timeout, connection failure, or 5xx response.

    The only failure class the orchestrator may retry.
    """


class ParsingError(IngestionError):
    """Could not turn a filing document into holdings.

    Policy: terminal for the filing. Individual malformed rows are dropped
    without raising.

    Context keys:
        reason: str - why parsing failed
    """


class UnsupportedFormatError(ParsingError):
    """Document matched none of the XML, HTML or text dialects."""


class MissingInformationTableError(ParsingError):
    """Dialect was recognized but no information table could be located."""


class StorageError(Edgar13FError):
    """Database operation failed.

    Policy: abort the remaining steps of the current filing.

    Context keys:
        operation: str - "insert", "query", "migrate", etc.
        table: str - the table involved
    """

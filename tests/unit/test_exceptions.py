"""Tests for edgar13f.core.exceptions."""

import pytest

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


class TestExceptionHierarchy:
    """Verify the exception class hierarchy."""

    def test_config_is_subclass(self):
        assert issubclass(ConfigError, Edgar13FError)

    def test_storage_is_subclass(self):
        assert issubclass(StorageError, Edgar13FError)
        assert not issubclass(StorageError, IngestionError)

    @pytest.mark.parametrize(
        "exc", [RateLimitError, ForbiddenError, NotFoundError, TransientError, ParsingError]
    )
    def test_transport_and_parse_errors_are_ingestion_errors(self, exc):
        assert issubclass(exc, IngestionError)
        assert issubclass(exc, Edgar13FError)

    def test_filing_not_found_is_not_found(self):
        assert issubclass(FilingNotFoundError, NotFoundError)

    def test_parse_failures(self):
        assert issubclass(UnsupportedFormatError, ParsingError)
        assert issubclass(MissingInformationTableError, ParsingError)

    def test_only_transient_is_retryable_class(self):
        assert not issubclass(RateLimitError, TransientError)
        assert not issubclass(ParsingError, TransientError)


class TestExceptionContext:
    def test_default_context_is_empty_dict(self):
        e = Edgar13FError("boom")
        assert e.context == {}
        assert str(e) == "boom"

    def test_context_preserved(self):
        e = RateLimitError("slow down", context={"url": "https://x", "retry_after": 10})
        assert e.context["retry_after"] == 10

    def test_catchable_as_base(self):
        with pytest.raises(Edgar13FError):
            raise FilingNotFoundError("gone", context={"tried": []})

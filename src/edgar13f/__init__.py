"""edgar13f: 13F holdings ingestion from SEC EDGAR."""

__version__ = "0.1.0"

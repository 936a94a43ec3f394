"""Custom exceptions for the market snapshot collector.

Provider, persistence and configuration errors live here so that the
provider layer, the assembler and the entry points can share them
without circular imports.
"""


class CollectorError(Exception):
    """Base exception for all collector errors."""


class ConfigurationError(CollectorError):
    """Raised at startup when required configuration is missing."""


class ProviderError(CollectorError):
    """Raised when an upstream provider call fails.

    Covers network errors, timeouts, non-2xx responses and bodies that
    cannot be parsed. Always caught at the source or chain boundary.
    """


class AllBasesExhausted(ProviderError):
    """Raised when every mirror base URL failed for one logical call."""

    def __init__(self, path: str, attempted: int) -> None:
        super().__init__(f"all {attempted} bases failed for {path}")
        self.path = path
        self.attempted = attempted


class StoreError(CollectorError):
    """Raised when the snapshot store cannot be reached or written."""

"""Abstract exchange client interface.

Defines the read-only contract the fallback chains need from a secondary
derivatives exchange. ccxt details stay in the concrete implementation.
"""

from abc import ABC, abstractmethod


class ExchangeClient(ABC):
    """Abstract base class for secondary derivatives exchange clients."""

    @property
    @abstractmethod
    def exchange_id(self) -> str:
        """Short exchange name used in source tags (e.g. ``bybit``)."""
        ...

    @abstractmethod
    async def connect(self) -> None:
        """Load markets so later calls can resolve unified symbols."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release network resources."""
        ...

    @abstractmethod
    async def fetch_funding_rate_history(self, symbol: str, limit: int = 16) -> list[float]:
        """Recent settled funding rates, oldest first."""
        ...

    @abstractmethod
    async def fetch_funding_rate(self, symbol: str) -> float | None:
        """Current (single point) funding rate."""
        ...

    @abstractmethod
    async def fetch_long_short_ratio(self, symbol: str, timeframe: str = "30m") -> float | None:
        """Latest long/short account ratio for the timeframe."""
        ...

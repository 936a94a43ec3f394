"""Market data scanning -- leaderboard over the perpetual universe."""

from collector.market_data.scanner import BoundedConcurrencyScanner

__all__ = ["BoundedConcurrencyScanner"]

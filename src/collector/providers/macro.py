"""Macro equity index quotes: Yahoo Finance with a Stooq CSV fallback."""

from dataclasses import dataclass

from collector.exceptions import ProviderError
from collector.metrics.series import finite_or_none
from collector.providers.http import HttpClient

YAHOO_QUOTE_URL = "https://query1.finance.yahoo.com/v7/finance/quote"
STOOQ_DAILY_URL = "https://stooq.com/q/d/l/"

#: Close column of Stooq's Date,Open,High,Low,Close,Volume layout.
_STOOQ_CLOSE = 4


@dataclass
class DailyClose:
    price: float
    pct_day: float


def parse_stooq_csv(csv: str) -> DailyClose | None:
    """Last close and its day-over-day change from a Stooq daily CSV.

    Needs a header plus at least two data rows.
    """
    rows = [line for line in str(csv or "").strip().splitlines() if line.strip()]
    if len(rows) < 3:
        return None
    last = rows[-1].split(",")
    prev = rows[-2].split(",")
    if len(last) <= _STOOQ_CLOSE or len(prev) <= _STOOQ_CLOSE:
        return None

    close_last = finite_or_none(last[_STOOQ_CLOSE])
    close_prev = finite_or_none(prev[_STOOQ_CLOSE])
    if close_last is None or close_prev is None or close_prev == 0:
        return None
    return DailyClose(price=close_last, pct_day=(close_last - close_prev) / close_prev * 100)


class MacroQuoteClient:
    """Quotes for the macro index and its proxies.

    Args:
        http: Shared HTTP client.
        timeout: Per-call timeout; these feeds are given less time than the rest.
    """

    def __init__(self, http: HttpClient, timeout: float | None = 7.0) -> None:
        self._http = http
        self._timeout = timeout

    async def yahoo_price(self, ticker: str) -> float | None:
        """regularMarketPrice for one Yahoo ticker (e.g. ``^GSPC``, ``SPY``)."""
        data = await self._http.get_json(
            YAHOO_QUOTE_URL, params={"symbols": ticker}, timeout=self._timeout
        )
        try:
            quote = data["quoteResponse"]["result"][0]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"yahoo quote body for {ticker} has no result") from e
        return finite_or_none(quote.get("regularMarketPrice"))

    async def stooq_daily(self, ticker: str = "^spx") -> DailyClose | None:
        csv = await self._http.get_text(
            STOOQ_DAILY_URL, params={"s": ticker, "i": "d"}, timeout=self._timeout
        )
        return parse_stooq_csv(csv)

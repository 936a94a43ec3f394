"""Sentiment index provider (alternative.me Fear & Greed index)."""

from collector.exceptions import ProviderError
from collector.metrics.series import finite_or_none
from collector.models import SentimentReading
from collector.providers.http import HttpClient

FEAR_GREED_URL = "https://api.alternative.me/fng/"


class SentimentClient:
    def __init__(self, http: HttpClient, url: str = FEAR_GREED_URL) -> None:
        self._http = http
        self._url = url

    async def latest(self) -> SentimentReading:
        """Most recent index value; raises ProviderError when the body is empty."""
        data = await self._http.get_json(self._url, params={"limit": 1})
        items = data.get("data") if isinstance(data, dict) else None
        if not isinstance(items, list) or not items or not isinstance(items[0], dict):
            raise ProviderError("sentiment body has no data")

        item = items[0]
        ts = finite_or_none(item.get("timestamp"))
        return SentimentReading(
            value=finite_or_none(item.get("value")),
            classification=item.get("value_classification") or None,
            timestamp_ms=int(ts * 1000) if ts is not None else None,
        )

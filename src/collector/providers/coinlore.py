"""Secondary dominance provider (CoinLore global stats)."""

from collector.exceptions import ProviderError
from collector.metrics.series import finite_or_none
from collector.providers.http import HttpClient

COINLORE_GLOBAL_URL = "https://api.coinlore.net/api/global/"


class CoinLoreClient:
    def __init__(self, http: HttpClient, timeout: float | None = 7.0) -> None:
        self._http = http
        self._timeout = timeout

    async def btc_dominance(self) -> float | None:
        data = await self._http.get_json(COINLORE_GLOBAL_URL, timeout=self._timeout)
        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            raise ProviderError("coinlore global body is empty")
        row = data[0]
        for key in ("btc_d", "bitcoin_dominance_percentage", "btc_dominance"):
            value = finite_or_none(row.get(key))
            if value is not None:
                return value
        return None

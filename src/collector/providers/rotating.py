"""Route one logical call across interchangeable mirror hosts."""

from collections.abc import Callable, Sequence
from typing import Any

from collector.exceptions import AllBasesExhausted, ProviderError
from collector.logging import get_logger
from collector.providers.http import HttpClient

logger = get_logger(__name__)


class RotatingEndpointClient:
    """Try each base URL strictly in order; first success wins.

    A base fails when the request errors, returns non-2xx, returns a body
    that does not parse, or (when ``accept`` is given) returns a body that
    ``accept`` rejects. Failures are swallowed until every base has been
    tried. There is no retry within a base.
    """

    def __init__(self, http: HttpClient, timeout: float | None = None) -> None:
        self._http = http
        self._timeout = timeout

    async def call(
        self,
        bases: Sequence[str],
        path: str,
        params: dict[str, Any] | None = None,
        accept: Callable[[Any], bool] | None = None,
    ) -> Any:
        for base in bases:
            url = f"{base.rstrip('/')}{path}"
            try:
                data = await self._http.get_json(url, params=params, timeout=self._timeout)
            except ProviderError as e:
                logger.debug("mirror_failed", url=url, error=str(e))
                continue
            if accept is not None and not accept(data):
                logger.debug("mirror_unexpected_body", url=url)
                continue
            return data

        raise AllBasesExhausted(path, len(bases))

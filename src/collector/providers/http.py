"""Thin aiohttp wrapper shared by all HTTP providers in one cycle.

Every failure mode (connection error, timeout, non-2xx status, body that
does not parse) surfaces as ProviderError so callers only ever catch one
exception type.
"""

import asyncio
import json
from typing import Any, Self

import aiohttp

from collector.exceptions import ProviderError
from collector.logging import get_logger

logger = get_logger(__name__)


def _encode_params(params: dict[str, Any] | None) -> dict[str, str] | None:
    """aiohttp only accepts str/int/float query values; bools become lowercase."""
    if not params:
        return None
    encoded: dict[str, str] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            encoded[key] = "true" if value else "false"
        else:
            encoded[key] = str(value)
    return encoded


def _decode(raw: bytes, charset: str | None, request: str) -> str:
    """Decode a body with its declared charset, UTF-8 when none is declared."""
    try:
        return raw.decode(charset or "utf-8")
    except (UnicodeDecodeError, LookupError) as e:
        raise ProviderError(f"{request} returned an undecodable body") from e


class HttpClient:
    """Async HTTP client with a default per-call timeout.

    Usage:
        async with HttpClient(timeout=10.0) as http:
            data = await http.get_json("https://example.com/api", params={"a": 1})
    """

    def __init__(
        self,
        timeout: float = 10.0,
        user_agent: str = "market-snapshot-collector/1.0",
    ) -> None:
        self._timeout = timeout
        self._headers = {"User-Agent": user_agent, "Accept": "application/json"}
        self._session: aiohttp.ClientSession | None = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self._headers,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _get(
        self,
        url: str,
        params: dict[str, Any] | None,
        headers: dict[str, str] | None,
        timeout: float | None,
    ) -> str:
        client_timeout = aiohttp.ClientTimeout(total=timeout or self._timeout)
        try:
            async with self.session.get(
                url,
                params=_encode_params(params),
                headers=headers,
                timeout=client_timeout,
            ) as resp:
                if resp.status < 200 or resp.status >= 300:
                    raise ProviderError(f"GET {url} returned HTTP {resp.status}")
                raw = await resp.read()
                charset = resp.charset
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderError(f"GET {url} failed: {e!r}") from e
        return _decode(raw, charset, f"GET {url}")

    async def get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """GET and decode a JSON body."""
        body = await self._get(url, params, headers, timeout)
        try:
            return json.loads(body)
        except ValueError as e:
            raise ProviderError(f"GET {url} returned malformed JSON") from e

    async def get_text(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> str:
        """GET a raw text body (CSV feeds)."""
        return await self._get(url, params, headers, timeout)

    async def post_json(
        self,
        url: str,
        payload: dict[str, Any],
        timeout: float | None = None,
    ) -> Any:
        """POST a JSON payload and decode the JSON reply."""
        client_timeout = aiohttp.ClientTimeout(total=timeout or self._timeout)
        try:
            async with self.session.post(url, json=payload, timeout=client_timeout) as resp:
                if resp.status < 200 or resp.status >= 300:
                    raise ProviderError(f"POST {url} returned HTTP {resp.status}")
                raw = await resp.read()
                charset = resp.charset
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderError(f"POST {url} failed: {e!r}") from e
        body = _decode(raw, charset, f"POST {url}")
        try:
            return json.loads(body) if body else None
        except ValueError as e:
            raise ProviderError(f"POST {url} returned malformed JSON") from e

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()

"""Best-effort liveness ping at the end of a successful cycle."""

from collector.exceptions import ProviderError
from collector.logging import get_logger
from collector.providers.http import HttpClient

logger = get_logger(__name__)


async def ping_healthcheck(http: HttpClient, url: str, timeout: float = 7.0) -> bool:
    """GET ``url`` once. Failure is logged and otherwise ignored."""
    try:
        await http.get_text(url, timeout=timeout)
    except ProviderError as e:
        logger.warning("healthcheck_ping_failed", url=url, error=str(e))
        return False
    logger.debug("healthcheck_pinged", url=url)
    return True

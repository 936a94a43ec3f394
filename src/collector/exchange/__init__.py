"""Secondary exchange layer -- ccxt-backed funding and positioning fallbacks."""

from collector.exchange.ccxt_client import CcxtExchangeClient, perpetual_symbol
from collector.exchange.client import ExchangeClient

__all__ = ["CcxtExchangeClient", "ExchangeClient", "perpetual_symbol"]

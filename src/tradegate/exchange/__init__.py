"""Exchange connector layer -- venue clients via ccxt, symbol resolution, connector cache."""

from tradegate.exchange.client import ExchangeClient
from tradegate.exchange.registry import ConnectorRegistry
from tradegate.exchange.symbols import SymbolResolver, TradingPair
from tradegate.exchange.venues import VENUE_CLIENTS

__all__ = [
    "VENUE_CLIENTS",
    "ConnectorRegistry",
    "ExchangeClient",
    "SymbolResolver",
    "TradingPair",
]

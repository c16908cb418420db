"""Abstract venue client interface.

Defines the capability set every supported venue exposes. The order manager
and connector registry depend only on this interface; venue-specific wiring
stays in tradegate.exchange.venues.
"""

from abc import ABC, abstractmethod
from decimal import Decimal

from tradegate.exchange.symbols import TradingPair
from tradegate.models import OrderSide, PlacedOrder, Ticker


class ExchangeClient(ABC):
    """Abstract base class for an authenticated session to one venue."""

    venue: str = ""

    @abstractmethod
    async def connect(self) -> None:
        """Initialize the session and load markets."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release HTTP resources (CRITICAL for ccxt async)."""
        ...

    @abstractmethod
    async def fetch_balances(self) -> dict[str, Decimal]:
        """Return available balance per currency code, positive amounts only."""
        ...

    @abstractmethod
    async def fetch_ticker(self, pair: TradingPair) -> Ticker:
        """Fetch the current ticker for a pair."""
        ...

    @abstractmethod
    async def place_market_order(
        self, side: OrderSide, amount: Decimal, pair: TradingPair
    ) -> PlacedOrder:
        """Place a market order and return the venue acknowledgement."""
        ...

    @abstractmethod
    async def place_limit_order(
        self, side: OrderSide, amount: Decimal, pair: TradingPair, price: Decimal
    ) -> PlacedOrder:
        """Place a limit order and return the venue acknowledgement."""
        ...

    @abstractmethod
    async def cancel_order(self, remote_id: str, pair: TradingPair) -> bool:
        """Cancel an open order.

        Returns:
            True if the venue confirmed the cancellation, False if it
            answered but declined.
        """
        ...

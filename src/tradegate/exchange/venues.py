"""Venue client implementations via ccxt async.

CcxtExchangeClient wraps a ccxt.async_support exchange with credential
wiring, sandbox selection, market loading, Decimal conversion, and async
cleanup. Each supported venue is one subclass plus one VENUE_CLIENTS entry.
"""

from decimal import Decimal

import ccxt.async_support as ccxt_async

from tradegate.exchange.client import ExchangeClient
from tradegate.exchange.symbols import TradingPair
from tradegate.logging import get_logger
from tradegate.models import FillReport, OrderSide, OrderType, PlacedOrder, Ticker, VenueCredentials

logger = get_logger(__name__)


def _to_decimal(value: object) -> Decimal | None:
    """Convert a ccxt numeric field through str() to avoid float artefacts."""
    if value is None or value == "":
        return None
    return Decimal(str(value))


def parse_fill(result: dict) -> FillReport | None:
    """Extract execution progress from a ccxt order structure, if any."""
    filled = _to_decimal(result.get("filled"))
    if not filled or filled <= 0:
        return None

    average = _to_decimal(result.get("average")) or _to_decimal(result.get("price"))
    if average is None:
        return None

    fee_info = result.get("fee") or {}
    return FillReport(
        filled_amount=filled,
        average_price=average,
        total_cost=_to_decimal(result.get("cost")),
        fee_amount=_to_decimal(fee_info.get("cost")),
        fee_currency=fee_info.get("currency"),
    )


class CcxtExchangeClient(ExchangeClient):
    """Concrete venue client backed by a ccxt async exchange.

    Args:
        credentials: Decrypted API credentials.
        sandbox: Use the venue's test environment when it has one.
        timeout_seconds: HTTP timeout applied by ccxt to every request.
    """

    venue = ""
    supports_sandbox = False
    requires_passphrase = False

    def __init__(
        self,
        credentials: VenueCredentials,
        sandbox: bool = False,
        timeout_seconds: float = 10.0,
    ) -> None:
        config: dict = {
            "apiKey": credentials.api_key,
            "secret": credentials.api_secret,
            "enableRateLimit": True,
            "timeout": int(timeout_seconds * 1000),
        }
        if credentials.passphrase:
            config["password"] = credentials.passphrase

        self._exchange = self._create_exchange(config)
        self._sandbox = sandbox and self.supports_sandbox
        if self._sandbox:
            self._exchange.set_sandbox_mode(True)
        elif sandbox:
            logger.warning("sandbox_unsupported", venue=self.venue)
        self._markets: dict = {}

    def _create_exchange(self, config: dict) -> ccxt_async.Exchange:
        raise NotImplementedError

    @property
    def exchange(self) -> ccxt_async.Exchange:
        """Access the underlying ccxt exchange instance."""
        return self._exchange

    @property
    def sandbox(self) -> bool:
        return self._sandbox

    async def connect(self) -> None:
        """Initialize connection by loading markets."""
        logger.info("connecting_to_venue", venue=self.venue, sandbox=self._sandbox)
        self._markets = await self._exchange.load_markets()
        logger.info(
            "venue_connected",
            venue=self.venue,
            market_count=len(self._markets),
            sandbox=self._sandbox,
        )

    async def close(self) -> None:
        """Clean up ccxt async resources. Must be called to avoid leaked sessions."""
        await self._exchange.close()
        logger.info("venue_connection_closed", venue=self.venue)

    async def fetch_balances(self) -> dict[str, Decimal]:
        balance = await self._exchange.fetch_balance()
        free = balance.get("free") or {}
        balances: dict[str, Decimal] = {}
        for currency, amount in free.items():
            value = _to_decimal(amount)
            if value is not None and value > 0:
                balances[currency] = value
        return balances

    async def fetch_ticker(self, pair: TradingPair) -> Ticker:
        raw = await self._exchange.fetch_ticker(pair.symbol)
        timestamp = raw.get("timestamp")
        return Ticker(
            symbol=pair.symbol,
            last=_to_decimal(raw.get("last")),
            bid=_to_decimal(raw.get("bid")),
            ask=_to_decimal(raw.get("ask")),
            high=_to_decimal(raw.get("high")),
            low=_to_decimal(raw.get("low")),
            volume=_to_decimal(raw.get("baseVolume")),
            timestamp=float(timestamp) / 1000.0 if timestamp else None,
        )

    async def place_market_order(
        self, side: OrderSide, amount: Decimal, pair: TradingPair
    ) -> PlacedOrder:
        return await self._place(OrderType.MARKET, side, amount, pair, None)

    async def place_limit_order(
        self, side: OrderSide, amount: Decimal, pair: TradingPair, price: Decimal
    ) -> PlacedOrder:
        return await self._place(OrderType.LIMIT, side, amount, pair, price)

    async def _place(
        self,
        order_type: OrderType,
        side: OrderSide,
        amount: Decimal,
        pair: TradingPair,
        price: Decimal | None,
    ) -> PlacedOrder:
        logger.info(
            "creating_order",
            venue=self.venue,
            symbol=pair.symbol,
            order_type=order_type.value,
            side=side.value,
            amount=str(amount),
        )
        result = await self._exchange.create_order(
            pair.symbol,
            order_type.value,
            side.value,
            float(amount),
            float(price) if price is not None else None,
        )
        return PlacedOrder(remote_id=str(result.get("id", "")), fill=parse_fill(result))

    async def cancel_order(self, remote_id: str, pair: TradingPair) -> bool:
        logger.info("cancelling_order", venue=self.venue, remote_id=remote_id)
        result = await self._exchange.cancel_order(remote_id, pair.symbol)
        status = (result or {}).get("status")
        # ccxt reports "canceled"; some venues only echo the id back
        return status in (None, "canceled", "cancelled")


class BinanceClient(CcxtExchangeClient):
    venue = "binance"
    supports_sandbox = True

    def _create_exchange(self, config: dict) -> ccxt_async.Exchange:
        return ccxt_async.binance(config)


class CoinbaseClient(CcxtExchangeClient):
    """Coinbase Exchange (formerly Coinbase Pro). Requires the key passphrase."""

    venue = "coinbase"
    supports_sandbox = True
    requires_passphrase = True

    def _create_exchange(self, config: dict) -> ccxt_async.Exchange:
        return ccxt_async.coinbaseexchange(config)


class KrakenClient(CcxtExchangeClient):
    """Kraken has no separate sandbox; the sandbox flag is ignored with a warning."""

    venue = "kraken"

    def _create_exchange(self, config: dict) -> ccxt_async.Exchange:
        return ccxt_async.kraken(config)


VENUE_CLIENTS: dict[str, type[CcxtExchangeClient]] = {
    BinanceClient.venue: BinanceClient,
    CoinbaseClient.venue: CoinbaseClient,
    KrakenClient.venue: KrakenClient,
}

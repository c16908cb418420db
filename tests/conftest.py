"""Shared test fixtures for tradegate.

Venue access is replaced by FakeExchangeClient instances built through a
FakeVenue factory, which counts constructions and lets a test script the
venue's answers. Each test gets its own in-memory SQLite database.
"""

import asyncio
from decimal import Decimal

import ccxt
import pytest
import pytest_asyncio

from tradegate.config import ExchangeSettings, RateLimitSettings, SecuritySettings, TradingSettings
from tradegate.credentials.manager import CredentialManager
from tradegate.data.database import TradeDatabase
from tradegate.data.store import CredentialStore, OrderStore
from tradegate.exchange.client import ExchangeClient
from tradegate.exchange.registry import ConnectorRegistry
from tradegate.exchange.symbols import TradingPair
from tradegate.execution.order_manager import OrderManager
from tradegate.models import FillReport, OrderSide, PlacedOrder, Ticker, VenueCredentials
from tradegate.risk.order_validator import OrderValidator
from tradegate.risk.rate_limiter import RateLimiter
from tradegate.security.vault import CredentialVault, generate_key
from tradegate.service import TradingDesk

BINANCE_KEY = "k" * 64
BINANCE_SECRET = "s" * 64


class FakeExchangeClient(ExchangeClient):
    """In-memory venue client driven by its FakeVenue's script."""

    def __init__(self, venue: "FakeVenue", name: str, credentials: VenueCredentials) -> None:
        self._venue = venue
        self.venue = name
        self.credentials = credentials
        self.closed = False

    async def connect(self) -> None:
        self._venue.connects += 1
        if self._venue.connect_delay:
            await asyncio.sleep(self._venue.connect_delay)

    async def close(self) -> None:
        self.closed = True

    async def fetch_balances(self) -> dict[str, Decimal]:
        if self._venue.balance_error is not None:
            raise self._venue.balance_error
        return dict(self._venue.balances)

    async def fetch_ticker(self, pair: TradingPair) -> Ticker:
        return Ticker(
            symbol=pair.symbol,
            last=Decimal("50000"),
            bid=Decimal("49999"),
            ask=Decimal("50001"),
            high=Decimal("51000"),
            low=Decimal("49000"),
            volume=Decimal("1234.5"),
            timestamp=1_700_000_000.0,
        )

    async def _place(self, **order: object) -> PlacedOrder:
        self._venue.placed.append(order)
        if self._venue.place_delay:
            await asyncio.sleep(self._venue.place_delay)
        if self._venue.place_error is not None:
            raise self._venue.place_error
        return PlacedOrder(remote_id=self._venue.remote_id, fill=self._venue.fill)

    async def place_market_order(
        self, side: OrderSide, amount: Decimal, pair: TradingPair
    ) -> PlacedOrder:
        return await self._place(kind="market", side=side, amount=amount, pair=pair)

    async def place_limit_order(
        self, side: OrderSide, amount: Decimal, pair: TradingPair, price: Decimal
    ) -> PlacedOrder:
        return await self._place(
            kind="limit", side=side, amount=amount, pair=pair, price=price
        )

    async def cancel_order(self, remote_id: str, pair: TradingPair) -> bool:
        self._venue.cancelled.append(remote_id)
        if self._venue.cancel_error is not None:
            raise self._venue.cancel_error
        return self._venue.cancel_result


class FakeVenue:
    """Scriptable stand-in for every supported venue."""

    def __init__(self) -> None:
        self.constructed = 0
        self.connects = 0
        self.connect_delay = 0.0
        self.clients: list[FakeExchangeClient] = []
        self.balances: dict[str, Decimal] = {"BTC": Decimal("0.5"), "USDT": Decimal("1000")}
        self.balance_error: Exception | None = None
        self.remote_id = "X123"
        self.fill: FillReport | None = None
        self.place_delay = 0.0
        self.place_error: Exception | None = None
        self.placed: list[dict] = []
        self.cancel_result = True
        self.cancel_error: Exception | None = None
        self.cancelled: list[str] = []

    def factory(self, name: str):  # type: ignore[no-untyped-def]
        def build(credentials: VenueCredentials, sandbox: bool, timeout: float) -> FakeExchangeClient:
            self.constructed += 1
            client = FakeExchangeClient(self, name, credentials)
            self.clients.append(client)
            return client

        return build

    def factories(self) -> dict:
        return {name: self.factory(name) for name in ("binance", "coinbase", "kraken")}

    def fail_placement(self, message: str = "insufficient balance") -> None:
        self.place_error = ccxt.InsufficientFunds(message)


@pytest.fixture
def fake_venue() -> FakeVenue:
    return FakeVenue()


@pytest.fixture
def vault() -> CredentialVault:
    return CredentialVault(generate_key())


@pytest.fixture
def exchange_settings() -> ExchangeSettings:
    return ExchangeSettings(sandbox_mode=True, request_timeout_seconds=0.5)


@pytest.fixture
def trading_settings() -> TradingSettings:
    return TradingSettings()


@pytest_asyncio.fixture
async def database():
    db = TradeDatabase(":memory:")
    await db.connect()
    yield db
    await db.close()


@pytest.fixture
def credential_store(database: TradeDatabase) -> CredentialStore:
    return CredentialStore(database)


@pytest.fixture
def order_store(database: TradeDatabase) -> OrderStore:
    return OrderStore(database)


@pytest.fixture
def rate_limiter() -> RateLimiter:
    return RateLimiter(RateLimitSettings())


@pytest.fixture
def registry(
    credential_store: CredentialStore,
    vault: CredentialVault,
    exchange_settings: ExchangeSettings,
    fake_venue: FakeVenue,
) -> ConnectorRegistry:
    return ConnectorRegistry(
        credential_store, vault, exchange_settings, client_factories=fake_venue.factories()
    )


@pytest.fixture
def credential_manager(
    credential_store: CredentialStore,
    vault: CredentialVault,
    registry: ConnectorRegistry,
    rate_limiter: RateLimiter,
) -> CredentialManager:
    return CredentialManager(
        credential_store, vault, registry, rate_limiter, SecuritySettings()
    )


@pytest.fixture
def order_manager(
    order_store: OrderStore,
    credential_store: CredentialStore,
    registry: ConnectorRegistry,
    rate_limiter: RateLimiter,
    trading_settings: TradingSettings,
) -> OrderManager:
    validator = OrderValidator(trading_settings, order_store)
    return OrderManager(order_store, credential_store, registry, rate_limiter, validator)


@pytest.fixture
def desk(
    credential_manager: CredentialManager,
    order_manager: OrderManager,
    order_store: OrderStore,
) -> TradingDesk:
    return TradingDesk(credential_manager, order_manager, order_store)


@pytest.fixture
def binance_keys() -> tuple[str, str]:
    """A key/secret pair that passes the Binance format check."""
    return BINANCE_KEY, BINANCE_SECRET

"""Tests for pre-trade OrderValidator checks and daily volume accounting."""

import time
from decimal import Decimal

import pytest

from tradegate.config import TradingSettings
from tradegate.data.store import OrderStore
from tradegate.exceptions import InvalidSymbolError, ValidationError
from tradegate.models import OrderRecord, OrderSide, OrderStatus, OrderType
from tradegate.risk.order_validator import OrderValidator, parse_decimal, start_of_utc_day


@pytest.fixture
def validator(trading_settings: TradingSettings, order_store: OrderStore) -> OrderValidator:
    return OrderValidator(trading_settings, order_store)


async def _record_filled(order_store: OrderStore, cost: str, executed_at: float) -> None:
    order = await order_store.insert(
        OrderRecord(
            principal_id="alice",
            venue="binance",
            symbol="BTCUSDT",
            order_type=OrderType.LIMIT,
            side=OrderSide.BUY,
            amount=Decimal("1"),
            price=Decimal(cost),
        )
    )
    order.status = OrderStatus.FILLED
    order.filled_amount = Decimal("1")
    order.average_price = Decimal(cost)
    order.total_cost = Decimal(cost)
    order.executed_at = executed_at
    await order_store.update(order)


class TestCheckOrderParameters:
    """Synchronous checks, in their fixed order."""

    def test_valid_limit(self, validator: OrderValidator) -> None:
        allowed, reason = validator.check_order_parameters(
            "binance", OrderType.LIMIT, OrderSide.BUY, Decimal("0.01"), Decimal("50000")
        )
        assert allowed is True
        assert reason == ""

    def test_unsupported_venue(self, validator: OrderValidator) -> None:
        allowed, reason = validator.check_order_parameters(
            "ftx", OrderType.MARKET, OrderSide.BUY, Decimal("1"), None
        )
        assert allowed is False
        assert "Unsupported exchange" in reason

    def test_missing_type_and_side(self, validator: OrderValidator) -> None:
        assert validator.check_order_parameters(
            "binance", None, OrderSide.BUY, Decimal("1"), None
        ) == (False, "Unsupported order type")
        assert validator.check_order_parameters(
            "binance", OrderType.MARKET, None, Decimal("1"), None
        ) == (False, "Invalid order side")

    @pytest.mark.parametrize("amount", [None, Decimal("0"), Decimal("-1")])
    def test_non_positive_amount(self, validator: OrderValidator, amount) -> None:  # type: ignore[no-untyped-def]
        allowed, reason = validator.check_order_parameters(
            "binance", OrderType.MARKET, OrderSide.BUY, amount, None
        )
        assert allowed is False
        assert reason == "Amount must be greater than zero"

    @pytest.mark.parametrize("price", [None, Decimal("0"), Decimal("-5")])
    def test_limit_needs_positive_price(self, validator: OrderValidator, price) -> None:  # type: ignore[no-untyped-def]
        allowed, reason = validator.check_order_parameters(
            "binance", OrderType.LIMIT, OrderSide.SELL, Decimal("1"), price
        )
        assert allowed is False
        assert "Price must be greater than zero" in reason

    def test_market_with_price_rejected(self, validator: OrderValidator) -> None:
        allowed, reason = validator.check_order_parameters(
            "binance", OrderType.MARKET, OrderSide.BUY, Decimal("1"), Decimal("100")
        )
        assert allowed is False
        assert "market orders" in reason

    def test_max_order_size(self, validator: OrderValidator) -> None:
        allowed, reason = validator.check_order_parameters(
            "binance", OrderType.LIMIT, OrderSide.BUY, Decimal("1000.01"), Decimal("1")
        )
        assert allowed is False
        assert "maximum allowed" in reason

        allowed, _ = validator.check_order_parameters(
            "binance", OrderType.LIMIT, OrderSide.BUY, Decimal("1000"), Decimal("1")
        )
        assert allowed is True


class TestParsing:
    def test_parse_decimal_from_string_and_float(self) -> None:
        assert parse_decimal("0.01", "Amount") == Decimal("0.01")
        assert parse_decimal(0.1, "Amount") == Decimal("0.1")
        assert parse_decimal(None, "Amount") is None
        assert parse_decimal("", "Price") is None

    @pytest.mark.parametrize("value", ["abc", "NaN", "Infinity"])
    def test_parse_decimal_rejects_non_finite(self, value: str) -> None:
        with pytest.raises(ValidationError):
            parse_decimal(value, "Amount")

    def test_start_of_utc_day(self) -> None:
        # 2024-01-02 13:45:00 UTC
        assert start_of_utc_day(1704203100.0) == 1704153600.0


class TestValidate:
    @pytest.mark.asyncio
    async def test_normalises_input(self, validator: OrderValidator) -> None:
        validated = await validator.validate(
            "alice", " Binance ", "btc-usdt", "LIMIT", "Buy", "0.01", "50000"
        )
        assert validated.venue == "binance"
        assert validated.pair.symbol == "BTC/USDT"
        assert validated.order_type is OrderType.LIMIT
        assert validated.side is OrderSide.BUY
        assert validated.amount == Decimal("0.01")
        assert validated.price == Decimal("50000")

    @pytest.mark.asyncio
    async def test_unknown_side_rejected(self, validator: OrderValidator) -> None:
        with pytest.raises(ValidationError, match="Invalid order side"):
            await validator.validate("alice", "binance", "BTCUSDT", "market", "hold", "1")

    @pytest.mark.asyncio
    async def test_bad_symbol_raises_invalid_symbol(self, validator: OrderValidator) -> None:
        with pytest.raises(InvalidSymbolError):
            await validator.validate("alice", "binance", "AB", "market", "buy", "0.01")

    @pytest.mark.asyncio
    async def test_parameter_errors_win_over_symbol_errors(
        self, validator: OrderValidator
    ) -> None:
        with pytest.raises(ValidationError):
            await validator.validate("alice", "binance", "AB", "market", "buy", "0")

    @pytest.mark.asyncio
    async def test_daily_limit_counts_executed_volume(
        self, validator: OrderValidator, order_store: OrderStore
    ) -> None:
        await _record_filled(order_store, "9600", time.time())

        # 9600 executed + 0.01 x 50000 = 10100 > 10000
        with pytest.raises(ValidationError, match="daily volume limit"):
            await validator.validate("alice", "binance", "BTCUSDT", "limit", "buy", "0.01", "50000")

        # 9600 + 0.008 x 50000 = 10000, exactly at the limit
        validated = await validator.validate(
            "alice", "binance", "BTCUSDT", "limit", "buy", "0.008", "50000"
        )
        assert validated.amount == Decimal("0.008")

    @pytest.mark.asyncio
    async def test_market_orders_use_reference_price(self, validator: OrderValidator) -> None:
        # 0.3 x 50000 reference = 15000 > 10000
        with pytest.raises(ValidationError, match="daily volume limit"):
            await validator.validate("alice", "binance", "BTCUSDT", "market", "buy", "0.3")

    @pytest.mark.asyncio
    async def test_volume_from_previous_days_ignored(
        self, validator: OrderValidator, order_store: OrderStore
    ) -> None:
        await _record_filled(order_store, "9999", time.time() - 3 * 86400)
        validated = await validator.validate(
            "alice", "binance", "BTCUSDT", "limit", "buy", "0.1", "50000"
        )
        assert validated.amount == Decimal("0.1")

    @pytest.mark.asyncio
    async def test_volume_is_per_principal(
        self, validator: OrderValidator, order_store: OrderStore
    ) -> None:
        await _record_filled(order_store, "9999", time.time())
        assert await validator.daily_volume("bob") == Decimal("0")
        assert await validator.daily_volume("alice") == Decimal("9999")

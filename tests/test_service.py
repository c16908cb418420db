"""Tests for TradingDesk result conversion."""

import pytest

from tradegate.exceptions import ErrorKind
from tradegate.models import OrderStatus
from tradegate.service import TradingDesk


async def _attach(desk: TradingDesk, binance_keys) -> None:  # type: ignore[no-untyped-def]
    result = await desk.add_credential("alice", "binance", *binance_keys)
    assert result.ok


class TestTradingDesk:
    @pytest.mark.asyncio
    async def test_success_carries_value(self, desk: TradingDesk, binance_keys) -> None:
        await _attach(desk, binance_keys)
        result = await desk.create_order(
            "alice", "binance", "BTC/USDT", "LIMIT", "BUY", "0.01", "50000"
        )
        assert result.ok is True
        assert result.error is None
        assert result.value.status is OrderStatus.PENDING

    @pytest.mark.asyncio
    async def test_validation_failure_not_recorded(self, desk: TradingDesk) -> None:
        result = await desk.create_order(
            "alice", "binance", "BTC/USDT", "LIMIT", "BUY", "-1", "50000"
        )
        assert result.ok is False
        assert result.recorded is False
        assert result.value is None
        assert result.error.kind is ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_no_credential_not_recorded(self, desk: TradingDesk) -> None:
        result = await desk.create_order(
            "alice", "binance", "BTC/USDT", "MARKET", "SELL", "0.01"
        )
        assert result.error.kind is ErrorKind.NO_CREDENTIAL
        assert result.recorded is False

        listed = await desk.list_orders("alice")
        assert listed.ok and listed.value == []

    @pytest.mark.asyncio
    async def test_placement_failure_returns_failed_record(
        self, desk: TradingDesk, binance_keys, fake_venue
    ) -> None:
        await _attach(desk, binance_keys)
        fake_venue.fail_placement("insufficient balance")

        result = await desk.create_order(
            "alice", "binance", "BTC/USDT", "LIMIT", "BUY", "0.01", "50000"
        )

        assert result.ok is False
        assert result.recorded is True
        assert result.error.kind is ErrorKind.EXCHANGE
        assert "insufficient balance" in result.error.reason
        assert result.value.status is OrderStatus.FAILED
        assert "insufficient balance" in result.value.error_message

    @pytest.mark.asyncio
    async def test_cancel_unknown_order(self, desk: TradingDesk) -> None:
        result = await desk.cancel_order("alice", 999)
        assert result.error.kind is ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_cancel_failed_order_is_invalid_state(
        self, desk: TradingDesk, binance_keys, fake_venue
    ) -> None:
        await _attach(desk, binance_keys)
        fake_venue.fail_placement()
        failed = await desk.create_order(
            "alice", "binance", "BTC/USDT", "LIMIT", "BUY", "0.01", "50000"
        )

        result = await desk.cancel_order("alice", failed.value.id)
        assert result.error.kind is ErrorKind.INVALID_STATE
        assert result.recorded is False

    @pytest.mark.asyncio
    async def test_queries(self, desk: TradingDesk, binance_keys) -> None:
        await _attach(desk, binance_keys)

        credentials = await desk.list_credentials("alice")
        assert [c.venue for c in credentials.value] == ["binance"]

        balance = await desk.get_balance("alice", "binance")
        assert balance.ok

        ticker = await desk.get_ticker("alice", "binance", "BTC/USDT")
        assert ticker.ok

        stats = await desk.get_trading_stats("alice")
        assert stats.value["total_orders"] == 0

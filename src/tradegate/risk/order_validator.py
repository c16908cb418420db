"""Pre-trade order validation.

Checks run in a fixed order and stop at the first failure: venue, order
type, side, amount, limit price, max single-order size, symbol, daily
volume. Nothing here writes to the record store, so a rejected order leaves
no trace beyond a log line.

MARKET orders are valued against the daily limit with a configured reference
price, not a live quote. A large market buy of an asset priced above the
reference is under-counted.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from tradegate.config import TradingSettings
from tradegate.exceptions import ValidationError
from tradegate.exchange.symbols import SymbolResolver, TradingPair
from tradegate.logging import get_logger
from tradegate.models import OrderSide, OrderType

if TYPE_CHECKING:
    from tradegate.data.store import OrderStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class ValidatedOrder:
    """Normalised order parameters that passed every pre-trade check."""

    venue: str
    pair: TradingPair
    order_type: OrderType
    side: OrderSide
    amount: Decimal
    price: Decimal | None


def parse_decimal(value: object, field_name: str) -> Decimal | None:
    """Convert caller input to a finite Decimal, or None if absent.

    Raises:
        ValidationError: If the value is not a finite number.
    """
    if value is None or value == "":
        return None
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"{field_name} must be a number") from exc
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")
    return result


def start_of_utc_day(now: float) -> float:
    day = datetime.fromtimestamp(now, tz=timezone.utc).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    return day.timestamp()


class OrderValidator:
    """Validates order requests against venue support and trading limits.

    Args:
        settings: Supported venues, max order size, daily volume limit,
            and the MARKET reference price.
        order_store: Source of the principal's executed volume.
        resolver: Symbol resolver.
        clock: Wall-clock time source (Unix seconds). Injectable for tests.
    """

    def __init__(
        self,
        settings: TradingSettings,
        order_store: OrderStore,
        resolver: SymbolResolver | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings
        self._order_store = order_store
        self._resolver = resolver or SymbolResolver()
        self._clock = clock

    def check_order_parameters(
        self,
        venue: str,
        order_type: OrderType | None,
        side: OrderSide | None,
        amount: Decimal | None,
        price: Decimal | None,
    ) -> tuple[bool, str]:
        """Check request parameters that need no I/O.

        Returns:
            Tuple of (allowed, reason). If allowed is True, reason is "".
        """
        if venue not in self._settings.supported_venues:
            return False, f"Unsupported exchange: {venue}"

        if order_type is None:
            return False, "Unsupported order type"

        if side is None:
            return False, "Invalid order side"

        if amount is None or amount <= Decimal("0"):
            return False, "Amount must be greater than zero"

        if order_type == OrderType.LIMIT and (price is None or price <= Decimal("0")):
            return False, "Price must be greater than zero for limit orders"

        if order_type == OrderType.MARKET and price is not None:
            return False, "Price must not be set for market orders"

        if amount > self._settings.max_order_size:
            return False, (
                f"Order size exceeds maximum allowed: {self._settings.max_order_size}"
            )

        return True, ""

    def estimate_order_value(
        self, order_type: OrderType, amount: Decimal, price: Decimal | None
    ) -> Decimal:
        """Quote-currency value of an order for daily-limit purposes."""
        if order_type == OrderType.LIMIT and price is not None:
            return amount * price
        return amount * self._settings.market_reference_price

    async def daily_volume(self, principal_id: str) -> Decimal:
        """Executed volume since 00:00 UTC today."""
        since = start_of_utc_day(self._clock())
        return await self._order_store.executed_volume_since(principal_id, since)

    async def validate(
        self,
        principal_id: str,
        venue: str,
        symbol: str,
        order_type: str | OrderType,
        side: str | OrderSide,
        amount: object,
        price: object = None,
    ) -> ValidatedOrder:
        """Run every pre-trade check and return normalised parameters.

        Raises:
            ValidationError: With the first failing check's reason.
            InvalidSymbolError: If the symbol cannot be resolved.
        """
        venue = (venue or "").strip().lower()
        parsed_type = _parse_enum(OrderType, order_type)
        parsed_side = _parse_enum(OrderSide, side)
        parsed_amount = parse_decimal(amount, "Amount")
        parsed_price = parse_decimal(price, "Price")

        allowed, reason = self.check_order_parameters(
            venue, parsed_type, parsed_side, parsed_amount, parsed_price
        )
        if not allowed:
            logger.info("order_rejected", principal_id=principal_id, reason=reason)
            raise ValidationError(reason)
        assert parsed_type is not None and parsed_side is not None
        assert parsed_amount is not None

        pair = self._resolver.resolve(symbol)

        estimated = self.estimate_order_value(parsed_type, parsed_amount, parsed_price)
        volume = await self.daily_volume(principal_id)
        if volume + estimated > self._settings.daily_volume_limit:
            reason = (
                f"Order would exceed daily volume limit: {self._settings.daily_volume_limit}"
            )
            logger.info(
                "order_rejected",
                principal_id=principal_id,
                reason=reason,
                daily_volume=str(volume),
                estimated_value=str(estimated),
            )
            raise ValidationError(reason)

        return ValidatedOrder(
            venue=venue,
            pair=pair,
            order_type=parsed_type,
            side=parsed_side,
            amount=parsed_amount,
            price=parsed_price,
        )


def _parse_enum(enum_cls: type, value: object):  # type: ignore[no-untyped-def]
    if isinstance(value, enum_cls):
        return value
    if not isinstance(value, str):
        return None
    try:
        return enum_cls(value.strip().lower())
    except ValueError:
        return None

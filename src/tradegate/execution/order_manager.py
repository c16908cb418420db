"""Order lifecycle management across venues.

Order placement flow:
1. Rate-limit gate (trading category, per principal)
2. Pre-trade validation and symbol resolution (OrderValidator)
3. Active credential lookup for the venue
4. Persist a PENDING record before any outbound call
5. Obtain a connector and place the order under the per-order lock;
   a failure is written onto the record (FAILED) and then raised

Steps 1-3 have no side effects. From step 4 on, every outcome is recorded,
so the local history stays an honest audit trail even when the venue call
fails. A FAILED record means the local attempt failed, not that the venue
certainly did not execute; resolving that needs reconciliation against
venue history.

All mutations of one order serialise on a per-order lock, so a cancel
racing a reconciliation fill report cannot lose either update.
"""

from decimal import Decimal

from tradegate.data.store import CredentialStore, OrderStore
from tradegate.exceptions import (
    ExchangeError,
    NoCredentialError,
    NotFoundError,
    TradeGateError,
)
from tradegate.exchange.registry import ConnectorRegistry
from tradegate.exchange.symbols import SymbolResolver
from tradegate.execution import state_machine
from tradegate.locks import KeyedLocks
from tradegate.logging import get_logger
from tradegate.models import (
    CredentialRecord,
    FillReport,
    OrderRecord,
    OrderStatus,
    OrderType,
    Ticker,
)
from tradegate.risk.order_validator import OrderValidator
from tradegate.risk.rate_limiter import RateCategory, RateLimiter

logger = get_logger(__name__)


class OrderManager:
    """Places, cancels and tracks orders; serves balance and ticker queries.

    Args:
        order_store: Persistence for order records.
        credential_store: Active credential lookup and last-used updates.
        registry: Connector cache and outbound call wrapper.
        rate_limiter: Admission gate evaluated before any outbound work.
        validator: Pre-trade checks.
        resolver: Symbol resolver for ticker queries and cancellation.
    """

    def __init__(
        self,
        order_store: OrderStore,
        credential_store: CredentialStore,
        registry: ConnectorRegistry,
        rate_limiter: RateLimiter,
        validator: OrderValidator,
        resolver: SymbolResolver | None = None,
    ) -> None:
        self._order_store = order_store
        self._credential_store = credential_store
        self._registry = registry
        self._rate_limiter = rate_limiter
        self._validator = validator
        self._resolver = resolver or SymbolResolver()
        self._order_locks = KeyedLocks()

    async def _active_credential(self, principal_id: str, venue: str) -> CredentialRecord:
        credential = await self._credential_store.get_active(principal_id, venue)
        if credential is None:
            raise NoCredentialError(f"No active API key found for exchange: {venue}")
        return credential

    # ──────────────────────────────────────────────
    # Order lifecycle
    # ──────────────────────────────────────────────

    async def create_order(
        self,
        principal_id: str,
        venue: str,
        symbol: str,
        order_type: str | OrderType,
        side: str,
        amount: object,
        price: object = None,
    ) -> OrderRecord:
        """Validate, persist and place an order.

        Returns:
            The persisted record: PENDING with the venue's order id, or
            PARTIALLY_FILLED / FILLED when the venue reported an immediate
            execution. An inconsistent immediate report is logged and left
            for reconciliation; the record stays PENDING with its remote id.

        Raises:
            RateLimitedError: Trading budget exhausted. No record.
            ValidationError: Invalid request or limit breach. No record.
            InvalidSymbolError: Unresolvable symbol. No record.
            NoCredentialError: No active credential for the venue. No record.
            ExchangeError: Venue placement failed. The record exists as
                FAILED and its id is on the exception.
            CryptoError: Stored credential could not be decrypted. The record
                exists as FAILED.
        """
        await self._rate_limiter.admit(RateCategory.TRADING, principal_id)

        validated = await self._validator.validate(
            principal_id, venue, symbol, order_type, side, amount, price
        )
        credential = await self._active_credential(principal_id, validated.venue)

        order = await self._order_store.insert(
            OrderRecord(
                principal_id=principal_id,
                venue=validated.venue,
                symbol=validated.pair.compact,
                order_type=validated.order_type,
                side=validated.side,
                amount=validated.amount,
                price=validated.price,
            )
        )
        assert order.id is not None
        log = logger.bind(order_id=order.id, principal_id=principal_id, venue=order.venue)

        async with self._order_locks.hold(order.id):
            try:
                client = await self._registry.get_connector(principal_id, order.venue)
                if validated.order_type == OrderType.MARKET:
                    placed = await self._registry.call(
                        order.venue,
                        "place_order",
                        lambda: client.place_market_order(
                            validated.side, validated.amount, validated.pair
                        ),
                    )
                else:
                    assert validated.price is not None
                    placed = await self._registry.call(
                        order.venue,
                        "place_order",
                        lambda: client.place_limit_order(
                            validated.side,
                            validated.amount,
                            validated.pair,
                            validated.price,
                        ),
                    )
            except TradeGateError as exc:
                state_machine.mark_failed(order, f"Failed to place order: {exc.reason}")
                await self._order_store.update(order)
                log.error("order_placement_failed", error=exc.reason, kind=exc.kind.value)
                if isinstance(exc, NotFoundError | NoCredentialError):
                    raise ExchangeError(
                        order.error_message or exc.reason,
                        venue=order.venue,
                        operation="place_order",
                        order_id=order.id,
                    ) from exc
                exc.order_id = order.id
                raise

            order.exchange_order_id = placed.remote_id
            await self._order_store.update(order)

            if placed.fill is not None:
                try:
                    if state_machine.apply_fill(order, placed.fill):
                        await self._order_store.update(order)
                except TradeGateError as exc:
                    # The remote order is live; keep it tracked for reconciliation
                    log.warning(
                        "immediate_fill_rejected",
                        exchange_order_id=order.exchange_order_id,
                        filled_amount=str(placed.fill.filled_amount),
                        error=exc.reason,
                    )

        await self._credential_store.touch_last_used(credential.id)  # type: ignore[arg-type]
        log.info(
            "order_placed",
            exchange_order_id=order.exchange_order_id,
            side=order.side.value,
            order_type=order.order_type.value,
            amount=str(order.amount),
            symbol=order.symbol,
            status=order.status.value,
        )
        return order

    async def cancel_order(self, principal_id: str, order_id: int) -> OrderRecord:
        """Cancel a PENDING order on its venue.

        Raises:
            NotFoundError: Order absent or owned by another principal.
            InvalidStateError: Order is not PENDING. Record unchanged.
            NoCredentialError: No active credential for the order's venue.
            ExchangeError: Venue call failed or the venue declined.
                Record unchanged.
        """
        order = await self._order_store.get_for_principal(order_id, principal_id)
        if order is None:
            raise NotFoundError("Order not found")

        async with self._order_locks.hold(order_id):
            # Re-read under the lock: a fill report may have landed meanwhile
            order = await self._order_store.get_for_principal(order_id, principal_id)
            assert order is not None
            state_machine.ensure_cancellable(order)

            await self._active_credential(principal_id, order.venue)
            client = await self._registry.get_connector(principal_id, order.venue)
            pair = self._resolver.resolve(order.symbol)
            remote_id = order.exchange_order_id or ""

            cancelled = await self._registry.call(
                order.venue,
                "cancel_order",
                lambda: client.cancel_order(remote_id, pair),
            )
            if not cancelled:
                logger.warning(
                    "order_cancel_declined", order_id=order_id, venue=order.venue
                )
                raise ExchangeError(
                    "Venue declined to cancel the order",
                    venue=order.venue,
                    operation="cancel_order",
                )

            state_machine.mark_cancelled(order)
            await self._order_store.update(order)

        logger.info(
            "order_cancelled",
            order_id=order_id,
            principal_id=principal_id,
            exchange_order_id=order.exchange_order_id,
        )
        return order

    async def apply_fill_report(self, order_id: int, report: FillReport) -> OrderRecord:
        """Fold a reconciliation fill report into an order. Idempotent.

        Raises:
            NotFoundError: Unknown order id.
            ValidationError: Report overfills the order.
            InvalidStateError: Order is CANCELLED or FAILED.
        """
        async with self._order_locks.hold(order_id):
            order = await self._order_store.get(order_id)
            if order is None:
                raise NotFoundError("Order not found")
            if state_machine.apply_fill(order, report):
                await self._order_store.update(order)
                logger.info(
                    "order_fill_applied",
                    order_id=order_id,
                    status=order.status.value,
                    filled_amount=str(order.filled_amount),
                )
        return order

    async def mark_unrecoverable(self, order_id: int, reason: str) -> OrderRecord:
        """Move a non-terminal order to FAILED after reconciliation gives up on it."""
        async with self._order_locks.hold(order_id):
            order = await self._order_store.get(order_id)
            if order is None:
                raise NotFoundError("Order not found")
            state_machine.mark_failed(order, reason)
            await self._order_store.update(order)
        logger.warning("order_marked_unrecoverable", order_id=order_id, reason=reason)
        return order

    # ──────────────────────────────────────────────
    # Queries
    # ──────────────────────────────────────────────

    async def get_order(self, principal_id: str, order_id: int) -> OrderRecord:
        order = await self._order_store.get_for_principal(order_id, principal_id)
        if order is None:
            raise NotFoundError("Order not found")
        return order

    async def list_orders(
        self,
        principal_id: str,
        venue: str | None = None,
        status: OrderStatus | None = None,
    ) -> list[OrderRecord]:
        return await self._order_store.list_for_principal(
            principal_id, venue.lower() if venue else None, status
        )

    async def get_trading_stats(self, principal_id: str) -> dict:
        return await self._order_store.get_stats(principal_id)

    async def get_balance(self, principal_id: str, venue: str) -> dict[str, Decimal]:
        """Available balances on a venue, positive amounts only. Read-only."""
        venue = venue.lower()
        await self._rate_limiter.admit(RateCategory.API, principal_id)
        credential = await self._active_credential(principal_id, venue)
        client = await self._registry.get_connector(principal_id, venue)
        balances = await self._registry.call(venue, "fetch_balance", client.fetch_balances)
        await self._credential_store.touch_last_used(credential.id)  # type: ignore[arg-type]
        return balances

    async def get_ticker(self, principal_id: str, venue: str, symbol: str) -> Ticker:
        """Current ticker for a symbol on a venue. Read-only."""
        venue = venue.lower()
        await self._rate_limiter.admit(RateCategory.API, principal_id)
        pair = self._resolver.resolve(symbol)
        credential = await self._active_credential(principal_id, venue)
        client = await self._registry.get_connector(principal_id, venue)
        ticker = await self._registry.call(
            venue, "fetch_ticker", lambda: client.fetch_ticker(pair)
        )
        await self._credential_store.touch_last_used(credential.id)  # type: ignore[arg-type]
        return ticker

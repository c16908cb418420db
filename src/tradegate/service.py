"""Public operation surface.

TradingDesk wraps the credential and order managers and turns every
TradeGateError into an OperationResult. A caller can then tell a failure
that left no trace (``recorded`` False) from one already written onto an
order record (``recorded`` True, the FAILED record in ``value``).
Unexpected exceptions are not converted; they propagate.
"""

from collections.abc import Awaitable
from dataclasses import dataclass
from decimal import Decimal
from typing import Generic, TypeVar

from tradegate.credentials.manager import CredentialManager
from tradegate.data.store import OrderStore
from tradegate.exceptions import ErrorKind, TradeGateError
from tradegate.execution.order_manager import OrderManager
from tradegate.logging import get_logger
from tradegate.models import (
    CredentialSummary,
    FillReport,
    OrderRecord,
    OrderStatus,
    Ticker,
)

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ErrorDetail:
    kind: ErrorKind
    reason: str


@dataclass
class OperationResult(Generic[T]):
    """Outcome of one desk operation.

    Attributes:
        ok: True on success.
        value: The operation's result on success; on a recorded failure,
            the FAILED order record.
        error: Failure kind and reason, None on success.
        recorded: True when the failure was persisted onto an order record.
    """

    ok: bool
    value: T | None = None
    error: ErrorDetail | None = None
    recorded: bool = False

    @classmethod
    def success(cls, value: T | None = None) -> "OperationResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(
        cls, exc: TradeGateError, value: object = None, recorded: bool = False
    ) -> "OperationResult[T]":
        return cls(
            ok=False,
            value=value,  # type: ignore[arg-type]
            error=ErrorDetail(kind=exc.kind, reason=exc.reason),
            recorded=recorded,
        )


class TradingDesk:
    """Result-returning facade over CredentialManager and OrderManager.

    Args:
        credentials: Credential management.
        orders: Order lifecycle management.
        order_store: Used to load the FAILED record for recorded failures.
    """

    def __init__(
        self,
        credentials: CredentialManager,
        orders: OrderManager,
        order_store: OrderStore,
    ) -> None:
        self._credentials = credentials
        self._orders = orders
        self._order_store = order_store

    async def _run(self, operation: str, call: Awaitable[T]) -> OperationResult[T]:
        try:
            return OperationResult.success(await call)
        except TradeGateError as exc:
            logger.info(
                "operation_failed",
                operation=operation,
                kind=exc.kind.value,
                reason=exc.reason,
            )
            if exc.order_id is not None:
                record = await self._order_store.get(exc.order_id)
                return OperationResult.failure(exc, value=record, recorded=True)
            return OperationResult.failure(exc)

    # ──────────────────────────────────────────────
    # Credentials
    # ──────────────────────────────────────────────

    async def add_credential(
        self,
        principal_id: str,
        venue: str,
        api_key: str | None,
        api_secret: str | None,
        passphrase: str | None = None,
    ) -> OperationResult[CredentialSummary]:
        return await self._run(
            "add_credential",
            self._credentials.add_credential(
                principal_id, venue, api_key, api_secret, passphrase
            ),
        )

    async def list_credentials(
        self, principal_id: str
    ) -> OperationResult[list[CredentialSummary]]:
        return await self._run(
            "list_credentials", self._credentials.list_credentials(principal_id)
        )

    async def delete_credential(
        self, principal_id: str, credential_id: int, hard: bool = False
    ) -> OperationResult[None]:
        return await self._run(
            "delete_credential",
            self._credentials.delete_credential(principal_id, credential_id, hard),
        )

    async def test_credential(
        self, principal_id: str, credential_id: int
    ) -> OperationResult[tuple[bool, CredentialSummary]]:
        return await self._run(
            "test_credential",
            self._credentials.test_credential(principal_id, credential_id),
        )

    async def rotate_credential(
        self,
        principal_id: str,
        credential_id: int,
        api_key: str | None,
        api_secret: str | None,
        passphrase: str | None = None,
    ) -> OperationResult[CredentialSummary]:
        return await self._run(
            "rotate_credential",
            self._credentials.rotate_credential(
                principal_id, credential_id, api_key, api_secret, passphrase
            ),
        )

    # ──────────────────────────────────────────────
    # Orders
    # ──────────────────────────────────────────────

    async def create_order(
        self,
        principal_id: str,
        venue: str,
        symbol: str,
        order_type: str,
        side: str,
        amount: object,
        price: object = None,
    ) -> OperationResult[OrderRecord]:
        return await self._run(
            "create_order",
            self._orders.create_order(
                principal_id, venue, symbol, order_type, side, amount, price
            ),
        )

    async def cancel_order(
        self, principal_id: str, order_id: int
    ) -> OperationResult[OrderRecord]:
        return await self._run(
            "cancel_order", self._orders.cancel_order(principal_id, order_id)
        )

    async def apply_fill_report(
        self, order_id: int, report: FillReport
    ) -> OperationResult[OrderRecord]:
        return await self._run(
            "apply_fill_report", self._orders.apply_fill_report(order_id, report)
        )

    async def list_orders(
        self,
        principal_id: str,
        venue: str | None = None,
        status: OrderStatus | None = None,
    ) -> OperationResult[list[OrderRecord]]:
        return await self._run(
            "list_orders", self._orders.list_orders(principal_id, venue, status)
        )

    async def get_order(
        self, principal_id: str, order_id: int
    ) -> OperationResult[OrderRecord]:
        return await self._run("get_order", self._orders.get_order(principal_id, order_id))

    async def get_trading_stats(self, principal_id: str) -> OperationResult[dict]:
        return await self._run(
            "get_trading_stats", self._orders.get_trading_stats(principal_id)
        )

    # ──────────────────────────────────────────────
    # Venue queries
    # ──────────────────────────────────────────────

    async def get_balance(
        self, principal_id: str, venue: str
    ) -> OperationResult[dict[str, Decimal]]:
        return await self._run(
            "get_balance", self._orders.get_balance(principal_id, venue)
        )

    async def get_ticker(
        self, principal_id: str, venue: str, symbol: str
    ) -> OperationResult[Ticker]:
        return await self._run(
            "get_ticker", self._orders.get_ticker(principal_id, venue, symbol)
        )

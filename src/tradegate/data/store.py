"""Typed SQLite read/write abstraction for credential and order records.

All SQL is isolated behind CredentialStore and OrderStore. Ciphertext columns
are opaque blobs: written and read back, never filtered on.

CRITICAL: All monetary values stored as TEXT in SQLite, restored as Decimal on read.
"""

import sqlite3
import time
from decimal import Decimal

from tradegate.data.database import TradeDatabase
from tradegate.exceptions import ValidationError
from tradegate.logging import get_logger
from tradegate.models import (
    ConnectionTestStatus,
    CredentialRecord,
    OrderRecord,
    OrderSide,
    OrderStatus,
    OrderType,
)

logger = get_logger(__name__)

_CREDENTIAL_COLUMNS = (
    "id, principal_id, venue, encrypted_api_key, encrypted_api_secret, "
    "encrypted_passphrase, is_active, created_at, updated_at, last_used_at, "
    "test_status, tested_at"
)

_ORDER_COLUMNS = (
    "id, principal_id, venue, symbol, order_type, side, amount, price, status, "
    "filled_amount, average_price, total_cost, fee_amount, fee_currency, "
    "exchange_order_id, error_message, created_at, updated_at, executed_at, "
    "cancelled_at"
)


def _dec(value: str | None) -> Decimal | None:
    return Decimal(value) if value is not None else None


def _text(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


def _row_to_credential(row: tuple) -> CredentialRecord:
    return CredentialRecord(
        id=row[0],
        principal_id=row[1],
        venue=row[2],
        encrypted_api_key=row[3],
        encrypted_api_secret=row[4],
        encrypted_passphrase=row[5],
        is_active=bool(row[6]),
        created_at=row[7],
        updated_at=row[8],
        last_used_at=row[9],
        test_status=ConnectionTestStatus(row[10]),
        tested_at=row[11],
    )


def _row_to_order(row: tuple) -> OrderRecord:
    return OrderRecord(
        id=row[0],
        principal_id=row[1],
        venue=row[2],
        symbol=row[3],
        order_type=OrderType(row[4]),
        side=OrderSide(row[5]),
        amount=Decimal(row[6]),
        price=_dec(row[7]),
        status=OrderStatus(row[8]),
        filled_amount=Decimal(row[9]),
        average_price=_dec(row[10]),
        total_cost=_dec(row[11]),
        fee_amount=_dec(row[12]),
        fee_currency=row[13],
        exchange_order_id=row[14],
        error_message=row[15],
        created_at=row[16],
        updated_at=row[17],
        executed_at=row[18],
        cancelled_at=row[19],
    )


class CredentialStore:
    """Async SQLite store for credential records.

    The partial unique index on (principal_id, venue) WHERE is_active = 1
    backs the one-active-credential-per-venue invariant even if two attach
    requests race past the manager's duplicate check.
    """

    def __init__(self, database: TradeDatabase) -> None:
        self._database = database

    # ──────────────────────────────────────────────
    # Write methods
    # ──────────────────────────────────────────────

    async def insert(self, record: CredentialRecord) -> CredentialRecord:
        """Insert a credential record and return it with its assigned id.

        Raises:
            ValidationError: If an active credential already exists for
                the same (principal, venue).
        """
        try:
            async with self._database.transaction() as db:
                cursor = await db.execute(
                    "INSERT INTO credentials "
                    "(principal_id, venue, encrypted_api_key, encrypted_api_secret, "
                    "encrypted_passphrase, is_active, created_at, test_status) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        record.principal_id,
                        record.venue,
                        record.encrypted_api_key,
                        record.encrypted_api_secret,
                        record.encrypted_passphrase,
                        1 if record.is_active else 0,
                        record.created_at,
                        record.test_status.value,
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise ValidationError(
                f"Credential for {record.venue} already exists"
            ) from exc
        record.id = cursor.lastrowid
        return record

    async def update_secrets(
        self,
        credential_id: int,
        encrypted_api_key: str,
        encrypted_api_secret: str,
        encrypted_passphrase: str | None,
    ) -> None:
        """Replace the ciphertext of an existing record and reset its test status."""
        async with self._database.transaction() as db:
            await db.execute(
                "UPDATE credentials SET encrypted_api_key = ?, encrypted_api_secret = ?, "
                "encrypted_passphrase = ?, updated_at = ?, test_status = ?, tested_at = NULL "
                "WHERE id = ?",
                (
                    encrypted_api_key,
                    encrypted_api_secret,
                    encrypted_passphrase,
                    time.time(),
                    ConnectionTestStatus.NOT_TESTED.value,
                    credential_id,
                ),
            )

    async def deactivate(self, credential_id: int) -> None:
        async with self._database.transaction() as db:
            await db.execute(
                "UPDATE credentials SET is_active = 0, updated_at = ? WHERE id = ?",
                (time.time(), credential_id),
            )

    async def delete(self, credential_id: int) -> None:
        async with self._database.transaction() as db:
            await db.execute(
                "DELETE FROM credentials WHERE id = ?", (credential_id,)
            )

    async def touch_last_used(self, credential_id: int) -> None:
        async with self._database.transaction() as db:
            await db.execute(
                "UPDATE credentials SET last_used_at = ? WHERE id = ?",
                (time.time(), credential_id),
            )

    async def record_test_result(
        self, credential_id: int, status: ConnectionTestStatus
    ) -> float:
        """Store a connection test outcome. Returns the test timestamp."""
        tested_at = time.time()
        async with self._database.transaction() as db:
            await db.execute(
                "UPDATE credentials SET test_status = ?, tested_at = ? WHERE id = ?",
                (status.value, tested_at, credential_id),
            )
        return tested_at

    # ──────────────────────────────────────────────
    # Read methods
    # ──────────────────────────────────────────────

    async def get(self, credential_id: int, principal_id: str) -> CredentialRecord | None:
        """Return a credential owned by the principal, or None."""
        cursor = await self._database.db.execute(
            f"SELECT {_CREDENTIAL_COLUMNS} FROM credentials "
            "WHERE id = ? AND principal_id = ?",
            (credential_id, principal_id),
        )
        row = await cursor.fetchone()
        return _row_to_credential(row) if row is not None else None

    async def get_active(self, principal_id: str, venue: str) -> CredentialRecord | None:
        cursor = await self._database.db.execute(
            f"SELECT {_CREDENTIAL_COLUMNS} FROM credentials "
            "WHERE principal_id = ? AND venue = ? AND is_active = 1",
            (principal_id, venue),
        )
        row = await cursor.fetchone()
        return _row_to_credential(row) if row is not None else None

    async def list_for_principal(
        self, principal_id: str, active_only: bool = True
    ) -> list[CredentialRecord]:
        query = f"SELECT {_CREDENTIAL_COLUMNS} FROM credentials WHERE principal_id = ?"
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY id ASC"
        cursor = await self._database.db.execute(query, (principal_id,))
        rows = await cursor.fetchall()
        return [_row_to_credential(row) for row in rows]


class OrderStore:
    """Async SQLite store for order records. Records are never deleted."""

    def __init__(self, database: TradeDatabase) -> None:
        self._database = database

    # ──────────────────────────────────────────────
    # Write methods
    # ──────────────────────────────────────────────

    async def insert(self, order: OrderRecord) -> OrderRecord:
        """Insert an order record and return it with its assigned id."""
        async with self._database.transaction() as db:
            cursor = await db.execute(
                "INSERT INTO orders "
                "(principal_id, venue, symbol, order_type, side, amount, price, status, "
                "filled_amount, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    order.principal_id,
                    order.venue,
                    order.symbol,
                    order.order_type.value,
                    order.side.value,
                    str(order.amount),
                    _text(order.price),
                    order.status.value,
                    str(order.filled_amount),
                    order.created_at,
                ),
            )
        order.id = cursor.lastrowid
        logger.debug("order_inserted", order_id=order.id, status=order.status.value)
        return order

    async def update(self, order: OrderRecord) -> None:
        """Persist every mutable field of an order record."""
        order.updated_at = time.time()
        async with self._database.transaction() as db:
            await db.execute(
                "UPDATE orders SET status = ?, filled_amount = ?, average_price = ?, "
                "total_cost = ?, fee_amount = ?, fee_currency = ?, exchange_order_id = ?, "
                "error_message = ?, updated_at = ?, executed_at = ?, cancelled_at = ? "
                "WHERE id = ?",
                (
                    order.status.value,
                    str(order.filled_amount),
                    _text(order.average_price),
                    _text(order.total_cost),
                    _text(order.fee_amount),
                    order.fee_currency,
                    order.exchange_order_id,
                    order.error_message,
                    order.updated_at,
                    order.executed_at,
                    order.cancelled_at,
                    order.id,
                ),
            )

    # ──────────────────────────────────────────────
    # Read methods
    # ──────────────────────────────────────────────

    async def get(self, order_id: int) -> OrderRecord | None:
        cursor = await self._database.db.execute(
            f"SELECT {_ORDER_COLUMNS} FROM orders WHERE id = ?", (order_id,)
        )
        row = await cursor.fetchone()
        return _row_to_order(row) if row is not None else None

    async def get_for_principal(
        self, order_id: int, principal_id: str
    ) -> OrderRecord | None:
        """Return the order only if it belongs to the principal."""
        cursor = await self._database.db.execute(
            f"SELECT {_ORDER_COLUMNS} FROM orders WHERE id = ? AND principal_id = ?",
            (order_id, principal_id),
        )
        row = await cursor.fetchone()
        return _row_to_order(row) if row is not None else None

    async def list_for_principal(
        self,
        principal_id: str,
        venue: str | None = None,
        status: OrderStatus | None = None,
    ) -> list[OrderRecord]:
        """Query a principal's orders, newest first, with optional filters."""
        conditions = ["principal_id = ?"]
        params: list = [principal_id]

        if venue is not None:
            conditions.append("venue = ?")
            params.append(venue)
        if status is not None:
            conditions.append("status = ?")
            params.append(status.value)

        where = " AND ".join(conditions)
        cursor = await self._database.db.execute(
            f"SELECT {_ORDER_COLUMNS} FROM orders WHERE {where} "
            "ORDER BY created_at DESC, id DESC",
            params,
        )
        rows = await cursor.fetchall()
        return [_row_to_order(row) for row in rows]

    async def executed_volume_since(self, principal_id: str, since: float) -> Decimal:
        """Sum the quote value executed by a principal since a timestamp.

        FILLED orders contribute total_cost; PARTIALLY_FILLED orders contribute
        filled_amount x average_price. Summed in Python to keep Decimal precision.
        """
        cursor = await self._database.db.execute(
            "SELECT status, filled_amount, average_price, total_cost FROM orders "
            "WHERE principal_id = ? AND status IN (?, ?) "
            "AND COALESCE(executed_at, updated_at, created_at) >= ?",
            (
                principal_id,
                OrderStatus.FILLED.value,
                OrderStatus.PARTIALLY_FILLED.value,
                since,
            ),
        )
        rows = await cursor.fetchall()

        total = Decimal("0")
        for status, filled, average, cost in rows:
            if status == OrderStatus.FILLED.value and cost is not None:
                total += Decimal(cost)
            elif average is not None:
                total += Decimal(filled) * Decimal(average)
        return total

    async def get_stats(self, principal_id: str) -> dict:
        """Aggregate trading statistics for one principal.

        Returns dict with total_orders, filled_orders, failed_orders,
        pending_orders, cancelled_orders, partially_filled_orders,
        filled_volume, success_rate (percent of all orders that filled).
        """
        db = self._database.db

        cursor = await db.execute(
            "SELECT status, COUNT(*) FROM orders WHERE principal_id = ? GROUP BY status",
            (principal_id,),
        )
        counts = {row[0]: row[1] for row in await cursor.fetchall()}

        cursor = await db.execute(
            "SELECT total_cost FROM orders WHERE principal_id = ? AND status = ? "
            "AND total_cost IS NOT NULL",
            (principal_id, OrderStatus.FILLED.value),
        )
        filled_volume = sum(
            (Decimal(row[0]) for row in await cursor.fetchall()), Decimal("0")
        )

        total = sum(counts.values())
        filled = counts.get(OrderStatus.FILLED.value, 0)
        success_rate = (
            Decimal(filled) / Decimal(total) * Decimal("100") if total else Decimal("0")
        )

        return {
            "total_orders": total,
            "filled_orders": filled,
            "failed_orders": counts.get(OrderStatus.FAILED.value, 0),
            "pending_orders": counts.get(OrderStatus.PENDING.value, 0),
            "cancelled_orders": counts.get(OrderStatus.CANCELLED.value, 0),
            "partially_filled_orders": counts.get(OrderStatus.PARTIALLY_FILLED.value, 0),
            "filled_volume": filled_volume,
            "success_rate": success_rate,
        }

"""Shared data models for tradegate.

CRITICAL: All monetary values use Decimal. Never use float for prices, amounts, or fees.
Timestamps are Unix seconds (float).
"""

import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class OrderSide(str, Enum):
    """Order direction. Values match the ccxt unified API."""

    BUY = "buy"
    SELL = "sell"


class OrderType(str, Enum):
    """Order kind. Values match the ccxt unified API."""

    MARKET = "market"
    LIMIT = "limit"


class OrderStatus(str, Enum):
    """Lifecycle status of an order record."""

    PENDING = "PENDING"
    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


TERMINAL_STATUSES = frozenset(
    {OrderStatus.FILLED, OrderStatus.CANCELLED, OrderStatus.FAILED}
)


class ConnectionTestStatus(str, Enum):
    """Outcome of the last credential connection test."""

    NOT_TESTED = "NOT_TESTED"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


@dataclass
class CredentialRecord:
    """Encrypted-at-rest API key material for one (principal, venue).

    Only ciphertext is held here; plaintext exists solely inside
    VenueCredentials for the duration of a connector build.
    """

    principal_id: str
    venue: str
    encrypted_api_key: str
    encrypted_api_secret: str
    encrypted_passphrase: str | None = None
    is_active: bool = True
    id: int | None = None
    created_at: float = field(default_factory=time.time)
    updated_at: float | None = None
    last_used_at: float | None = None
    test_status: ConnectionTestStatus = ConnectionTestStatus.NOT_TESTED
    tested_at: float | None = None

    @property
    def has_passphrase(self) -> bool:
        return bool(self.encrypted_passphrase and self.encrypted_passphrase.strip())


@dataclass
class CredentialSummary:
    """Public view of a credential record. Carries no ciphertext."""

    id: int
    venue: str
    is_active: bool
    has_passphrase: bool
    created_at: float
    last_used_at: float | None
    test_status: ConnectionTestStatus
    tested_at: float | None

    @classmethod
    def from_record(cls, record: CredentialRecord) -> "CredentialSummary":
        assert record.id is not None
        return cls(
            id=record.id,
            venue=record.venue,
            is_active=record.is_active,
            has_passphrase=record.has_passphrase,
            created_at=record.created_at,
            last_used_at=record.last_used_at,
            test_status=record.test_status,
            tested_at=record.tested_at,
        )


@dataclass
class VenueCredentials:
    """Decrypted credentials handed to a venue client constructor."""

    api_key: str = field(repr=False)
    api_secret: str = field(repr=False)
    passphrase: str | None = field(default=None, repr=False)


@dataclass
class OrderRecord:
    """Durable representation of one trade intent and its lifecycle.

    Invariants: filled_amount <= amount; price is set iff order_type is LIMIT.
    Mutated only by OrderManager through the state machine, never deleted.
    """

    principal_id: str
    venue: str
    symbol: str
    order_type: OrderType
    side: OrderSide
    amount: Decimal
    price: Decimal | None = None
    status: OrderStatus = OrderStatus.PENDING
    filled_amount: Decimal = Decimal("0")
    average_price: Decimal | None = None
    total_cost: Decimal | None = None
    fee_amount: Decimal | None = None
    fee_currency: str | None = None
    exchange_order_id: str | None = None
    error_message: str | None = None
    id: int | None = None
    created_at: float = field(default_factory=time.time)
    updated_at: float | None = None
    executed_at: float | None = None
    cancelled_at: float | None = None

    @property
    def remaining_amount(self) -> Decimal:
        return self.amount - self.filled_amount

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass
class FillReport:
    """Execution progress observed on the venue for one order."""

    filled_amount: Decimal
    average_price: Decimal
    total_cost: Decimal | None = None
    fee_amount: Decimal | None = None
    fee_currency: str | None = None

    @property
    def cost(self) -> Decimal:
        """Total cost, derived from fill amount and price when the venue omits it."""
        if self.total_cost is not None:
            return self.total_cost
        return self.filled_amount * self.average_price


@dataclass
class PlacedOrder:
    """Venue acknowledgement of a placed order."""

    remote_id: str
    fill: FillReport | None = None


@dataclass
class Ticker:
    """Snapshot of top-of-book and 24h statistics for one pair."""

    symbol: str
    last: Decimal | None
    bid: Decimal | None
    ask: Decimal | None
    high: Decimal | None
    low: Decimal | None
    volume: Decimal | None
    timestamp: float | None

"""Error taxonomy for tradegate.

Every failure the core reports carries a stable ``kind`` (an ErrorKind value)
and a human-readable ``reason``. Reasons never include secret material.
All exceptions live here to avoid circular imports between modules.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Stable failure kinds exposed to callers."""

    VALIDATION = "VALIDATION"
    RATE_LIMITED = "RATE_LIMITED"
    NO_CREDENTIAL = "NO_CREDENTIAL"
    NOT_FOUND = "NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    CRYPTO = "CRYPTO"
    INVALID_SYMBOL = "INVALID_SYMBOL"
    EXCHANGE = "EXCHANGE"


class TradeGateError(Exception):
    """Base exception for all tradegate errors.

    ``order_id`` is set when the failure was written onto an
    already-persisted order record.
    """

    kind: ErrorKind = ErrorKind.VALIDATION
    order_id: int | None = None

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class ValidationError(TradeGateError):
    """Raised when request input is invalid. No record is created."""

    kind = ErrorKind.VALIDATION


class RateLimitedError(TradeGateError):
    """Raised when the rate limiter denies admission. No side effect."""

    kind = ErrorKind.RATE_LIMITED


class NoCredentialError(TradeGateError):
    """Raised when the principal has no active credential for a venue."""

    kind = ErrorKind.NO_CREDENTIAL


class NotFoundError(TradeGateError):
    """Raised when a record is absent, not owned by the caller, or a venue is unknown."""

    kind = ErrorKind.NOT_FOUND


class InvalidStateError(TradeGateError):
    """Raised when an operation is not legal for the order's current status."""

    kind = ErrorKind.INVALID_STATE


class CryptoError(TradeGateError):
    """Raised on encryption/decryption failure (bad key or corrupt ciphertext)."""

    kind = ErrorKind.CRYPTO


class InvalidSymbolError(TradeGateError):
    """Raised when a trading pair string cannot be resolved."""

    kind = ErrorKind.INVALID_SYMBOL


class ExchangeError(TradeGateError):
    """Raised when a remote venue call fails (transport, timeout, or venue-reported).

    Attributes:
        venue: Venue the call was made against, if known.
        operation: Short name of the failed operation (e.g. "place_order").
        order_id: Local order record id when the failure was written onto
            an already-persisted record.
    """

    kind = ErrorKind.EXCHANGE

    def __init__(
        self,
        reason: str,
        venue: str | None = None,
        operation: str | None = None,
        order_id: int | None = None,
    ) -> None:
        super().__init__(reason)
        self.venue = venue
        self.operation = operation
        self.order_id = order_id

"""Order status transitions.

    PENDING ──cancel ok──────────────► CANCELLED
    PENDING ──fill report──┬─────────► FILLED
    PARTIALLY_FILLED ──────┴─────────► PARTIALLY_FILLED | FILLED
    PENDING | PARTIALLY_FILLED ─fail─► FAILED

FILLED, CANCELLED and FAILED are terminal. Every function here mutates the
record in place and leaves it untouched when it raises.
"""

import time

from tradegate.exceptions import InvalidStateError, ValidationError
from tradegate.models import FillReport, OrderRecord, OrderStatus

_FILLABLE = frozenset({OrderStatus.PENDING, OrderStatus.PARTIALLY_FILLED})


def can_cancel(order: OrderRecord) -> bool:
    return order.status == OrderStatus.PENDING


def ensure_cancellable(order: OrderRecord) -> None:
    """Raise InvalidStateError unless the order may be cancelled."""
    if not can_cancel(order):
        raise InvalidStateError(f"Cannot cancel order with status: {order.status.value}")


def mark_cancelled(order: OrderRecord) -> None:
    ensure_cancellable(order)
    order.status = OrderStatus.CANCELLED
    order.cancelled_at = time.time()


def mark_failed(order: OrderRecord, error_message: str) -> None:
    """Move a non-terminal order to FAILED with the error detail."""
    if order.is_terminal:
        raise InvalidStateError(
            f"Cannot fail order with terminal status: {order.status.value}"
        )
    order.status = OrderStatus.FAILED
    order.error_message = error_message


def apply_fill(order: OrderRecord, report: FillReport) -> bool:
    """Fold a fill report into the order.

    Reports are idempotent and monotonic: a report that does not advance the
    filled amount beyond what is already recorded changes nothing. A report
    for an already FILLED order with the same amount is accepted as a no-op.

    Returns:
        True if the record changed, False for a no-op report.

    Raises:
        ValidationError: If the report is negative or overfills the order.
        InvalidStateError: If the order is CANCELLED or FAILED, or FILLED
            and the report disagrees with the recorded fill.
    """
    if report.filled_amount < 0 or report.average_price < 0:
        raise ValidationError("Fill report amounts must not be negative")
    if report.filled_amount > order.amount:
        raise ValidationError(
            f"Filled amount {report.filled_amount} exceeds order amount {order.amount}"
        )

    if order.status == OrderStatus.FILLED:
        if report.filled_amount == order.filled_amount:
            return False
        raise InvalidStateError("Order is already filled")
    if order.status not in _FILLABLE:
        raise InvalidStateError(
            f"Cannot apply fill to order with status: {order.status.value}"
        )

    if report.filled_amount == 0 or report.filled_amount < order.filled_amount:
        return False
    if (
        report.filled_amount == order.filled_amount
        and report.filled_amount < order.amount
    ):
        return False

    order.filled_amount = report.filled_amount
    order.average_price = report.average_price
    if report.fee_amount is not None:
        order.fee_amount = report.fee_amount
        order.fee_currency = report.fee_currency

    if report.filled_amount == order.amount:
        order.status = OrderStatus.FILLED
        order.total_cost = report.cost
        order.executed_at = time.time()
    else:
        order.status = OrderStatus.PARTIALLY_FILLED
    return True

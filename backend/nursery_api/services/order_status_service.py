"""
Order Status Service

Status transitions and refunds for materialized orders.

States: confirmed, preparing, in_transit, delivered, cancelled, refunded.
confirmed is only ever entered by the materializer. Operators may move an
order from any status to any other; every move appends one history row and
never rewrites earlier ones.
"""
import math
from datetime import datetime
from typing import Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ..db.models import OrderModel, OrderStatusEntryModel
from ..exceptions import InvalidRefundAmountError, NurseryError
from ..models.orders import Order, OrderStatus
from ..money import round_money
from .order_service import get_order_model, order_to_schema

logger = logging.getLogger(__name__)


# Customer-facing push message per status
STATUS_MESSAGES: Dict[str, str] = {
    "confirmed": "Your order has been confirmed! We're getting it ready.",
    "preparing": "Your order is being prepared at our farm.",
    "in_transit": "Your order is on its way!",
    "delivered": "Your order has been delivered. Enjoy your new plants!",
    "cancelled": "Your order has been cancelled.",
    "refunded": "Your order has been refunded.",
}


def status_message(status: str) -> str:
    """Human-readable message for a status change notification."""
    return STATUS_MESSAGES.get(status, f"Order status updated to {status}")


def default_note_for(status: str, bulk: bool = False) -> str:
    """History note used when the operator does not supply one."""
    if bulk:
        return f"Bulk status change to {status}"
    return f"Status changed to {status}"


def _append_status(db_order: OrderModel, status: OrderStatus, note: str) -> OrderStatusEntryModel:
    """Append a history row and move current_status to match it."""
    entry = OrderStatusEntryModel(status=status, timestamp=datetime.utcnow(), note=note)
    db_order.status_entries.append(entry)
    db_order.current_status = status
    return entry


# ============================================================================
# Status Transitions
# ============================================================================

async def set_order_status(
    db: AsyncSession,
    order_id: str,
    new_status: OrderStatus,
    note: Optional[str] = None
) -> Order:
    """
    Move one order to a new status.

    Args:
        db: Database session
        order_id: Order identifier
        new_status: Target status
        note: Operator note (defaults to "Status changed to <status>")

    Returns:
        Updated Order

    Raises:
        OrderNotFoundError
    """
    db_order = await get_order_model(db, order_id)
    previous = db_order.current_status

    _append_status(db_order, new_status, note or default_note_for(new_status))
    await db.commit()

    logger.info(f"Order {order_id} status {previous} -> {new_status}")

    return order_to_schema(db_order)


async def bulk_set_order_status(
    db: AsyncSession,
    order_ids: List[str],
    new_status: OrderStatus,
    note: Optional[str] = None
) -> List[Order]:
    """
    Move several orders to the same status.

    Each order commits on its own; a missing order or failed write is
    logged and skipped without affecting the rest.

    Returns:
        Orders that were actually updated
    """
    updated: List[Order] = []
    entry_note = note or default_note_for(new_status, bulk=True)

    for order_id in dict.fromkeys(order_ids):
        try:
            db_order = await get_order_model(db, order_id)
            _append_status(db_order, new_status, entry_note)
            await db.commit()
        except NurseryError as e:
            await db.rollback()
            logger.warning(f"Bulk status update skipped order {order_id}: {e.message}")
            continue
        except Exception as e:
            await db.rollback()
            logger.error(f"Bulk status update failed for order {order_id}: {e}", exc_info=True)
            continue

        updated.append(order_to_schema(db_order))

    logger.info(f"Bulk status update to {new_status}: {len(updated)}/{len(order_ids)} orders updated")

    return updated


# ============================================================================
# Refunds
# ============================================================================

async def refund_order(db: AsyncSession, order_id: str, amount: float) -> Order:
    """
    Record an operator refund and move the order to refunded.

    The amount is bounded by the original order total, not by what remains
    after earlier refunds; refund_amount holds the latest refund decision.
    The amount is rounded to cents before the check, so 0.001 is rejected.
    Money movement itself happens outside this service.

    Raises:
        OrderNotFoundError, InvalidRefundAmountError
    """
    db_order = await get_order_model(db, order_id)

    if not math.isfinite(amount) or not (0 < round_money(amount) <= db_order.total):
        logger.warning(f"Rejected refund of {amount} for order {order_id} (total {db_order.total})")
        raise InvalidRefundAmountError(order_id, amount, db_order.total)

    amount = round_money(amount)
    db_order.refund_amount = amount
    _append_status(db_order, "refunded", f"Refund of ${amount:.2f} issued")
    await db.commit()

    logger.info(f"Order {order_id} refunded ${amount:.2f}")

    return order_to_schema(db_order)

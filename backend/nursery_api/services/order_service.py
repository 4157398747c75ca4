"""
Order Service

Retrieves durable orders and converts ORM rows to the Order model.
"""
import json
from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ..db.models import OrderModel, PendingOrderModel
from ..exceptions import OrderNotFoundError
from ..models.orders import Order, OrderStatus, PendingOrder, StatusEntry

logger = logging.getLogger(__name__)


def order_to_schema(db_order: OrderModel) -> Order:
    """Convert an OrderModel (with status entries loaded) to the Order model."""
    return Order(
        id=db_order.id,
        user_id=db_order.user_id,
        user_email=db_order.user_email,
        items=json.loads(db_order.items),
        subtotal=db_order.subtotal,
        tax=db_order.tax,
        delivery_fee=db_order.delivery_fee,
        total=db_order.total,
        shipping_address=json.loads(db_order.shipping_address),
        delivery_date=db_order.delivery_date,
        current_status=db_order.current_status,
        status_history=[
            StatusEntry(status=entry.status, timestamp=entry.timestamp, note=entry.note)
            for entry in db_order.status_entries
        ],
        payment_reference_id=db_order.payment_reference_id,
        refund_id=db_order.refund_id,
        refund_amount=db_order.refund_amount,
        oversold_items=json.loads(db_order.oversold_items or "[]"),
        created_at=db_order.created_at,
    )


def pending_to_schema(pending: PendingOrderModel) -> PendingOrder:
    """Convert a PendingOrderModel row to the PendingOrder model."""
    return PendingOrder(
        id=pending.id,
        user_id=pending.user_id,
        user_email=pending.user_email,
        items=json.loads(pending.items),
        subtotal=pending.subtotal,
        tax=pending.tax,
        delivery_fee=pending.delivery_fee,
        total=pending.total,
        shipping_address=json.loads(pending.shipping_address),
        requested_delivery_date=pending.requested_delivery_date,
        created_at=pending.created_at,
    )


async def get_order_model(db: AsyncSession, order_id: str) -> OrderModel:
    """
    Load an order row or fail.

    Raises:
        OrderNotFoundError: no order with this id
    """
    db_order = await db.get(OrderModel, order_id)
    if db_order is None:
        raise OrderNotFoundError(order_id)
    return db_order


async def get_order(db: AsyncSession, order_id: str) -> Order:
    """Retrieve an order by id."""
    return order_to_schema(await get_order_model(db, order_id))


async def get_order_by_payment_reference(
    db: AsyncSession,
    payment_reference_id: str
) -> Optional[Order]:
    """Retrieve the order materialized from a payment intent, if any."""
    result = await db.execute(
        select(OrderModel).where(OrderModel.payment_reference_id == payment_reference_id)
    )
    db_order = result.scalar_one_or_none()
    return order_to_schema(db_order) if db_order else None


async def list_orders(
    db: AsyncSession,
    user_id: Optional[str] = None,
    status: Optional[OrderStatus] = None,
    limit: int = 20,
    offset: int = 0
) -> List[Order]:
    """
    Get orders, most recent first.

    Args:
        db: Database session
        user_id: Restrict to one customer's orders (None lists every order,
            for operators)
        status: Restrict to orders currently in this status
        limit: Max orders to return
        offset: Orders to skip

    Returns:
        List of orders (most recent first)
    """
    query = select(OrderModel)
    if user_id is not None:
        query = query.where(OrderModel.user_id == user_id)
    if status is not None:
        query = query.where(OrderModel.current_status == status)

    result = await db.execute(
        query
        .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
        .limit(limit)
        .offset(offset)
    )
    orders = [order_to_schema(o) for o in result.scalars().all()]

    logger.debug(f"Retrieved {len(orders)} orders (user={user_id or 'all'}, status={status or 'any'})")

    return orders

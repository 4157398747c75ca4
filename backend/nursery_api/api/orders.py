"""
Orders API Endpoints

Order retrieval for customers plus the operator status and refund actions.
Status changes and refunds notify the customer after the write commits.
"""
from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
import logging

from ..db.init_db import get_db
from ..models.checkout import (
    BulkStatusUpdateRequest,
    BulkStatusUpdateResponse,
    RefundRequest,
    StatusUpdateRequest,
)
from ..models.orders import Order, OrderStatus
from ..services.notification_service import (
    ExpoPushDispatcher,
    get_notification_dispatcher,
    send_order_status_notification,
)
from ..services.order_service import get_order, list_orders
from ..services.order_status_service import bulk_set_order_status, refund_order, set_order_status

logger = logging.getLogger(__name__)

router = APIRouter()


def _notify(background_tasks: BackgroundTasks, dispatcher: ExpoPushDispatcher, order: Order) -> None:
    background_tasks.add_task(
        send_order_status_notification,
        dispatcher,
        order.user_id,
        order.id,
        order.current_status,
    )


@router.get("", response_model=List[Order])
async def list_orders_endpoint(
    user_id: Optional[str] = Query(None, min_length=1, description="Customer whose orders to list; omit to list all orders"),
    status: Optional[OrderStatus] = Query(None, description="Only orders currently in this status"),
    limit: int = Query(20, ge=1, le=100, description="Max orders to return"),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db)
) -> List[Order]:
    """
    Get orders, most recent first.

    Customers pass their user_id; operators omit it to see every order,
    optionally filtered by status.

    Example:
        GET /api/orders?user_id=user_demo_001&limit=10
        GET /api/orders?status=preparing
    """
    return await list_orders(db, user_id=user_id, status=status, limit=limit, offset=offset)


# Declared before /{order_id} routes so "bulk-status" is never read as an id
@router.put("/bulk-status", response_model=BulkStatusUpdateResponse)
async def bulk_status_endpoint(
    request: BulkStatusUpdateRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    dispatcher: ExpoPushDispatcher = Depends(get_notification_dispatcher)
) -> BulkStatusUpdateResponse:
    """
    Move several orders to one status.

    Orders that are missing or fail to write are skipped; updated_count
    reports how many were actually changed.
    """
    updated = await bulk_set_order_status(db, request.order_ids, request.status, request.note)

    for order in updated:
        _notify(background_tasks, dispatcher, order)

    return BulkStatusUpdateResponse(updated_count=len(updated))


@router.get("/{order_id}", response_model=Order)
async def get_order_endpoint(
    order_id: str,
    db: AsyncSession = Depends(get_db)
) -> Order:
    """
    Get one order with its full status history.

    Errors:
        404 order:not_found
    """
    logger.debug(f"Retrieving order: {order_id}")
    return await get_order(db, order_id)


@router.put("/{order_id}/status", response_model=Order)
async def update_status_endpoint(
    order_id: str,
    request: StatusUpdateRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    dispatcher: ExpoPushDispatcher = Depends(get_notification_dispatcher)
) -> Order:
    """
    Move an order to a new status and append it to the history.

    Request Body:
        {"status": "in_transit", "note": "Left the farm"}
    """
    order = await set_order_status(db, order_id, request.status, request.note)
    _notify(background_tasks, dispatcher, order)
    return order


@router.post("/{order_id}/refund", response_model=Order)
async def refund_endpoint(
    order_id: str,
    request: RefundRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    dispatcher: ExpoPushDispatcher = Depends(get_notification_dispatcher)
) -> Order:
    """
    Record a refund and move the order to refunded.

    Errors:
        400 order:invalid_refund_amount (amount <= 0 or above the order total)
        404 order:not_found
    """
    order = await refund_order(db, order_id, request.amount)
    _notify(background_tasks, dispatcher, order)
    return order

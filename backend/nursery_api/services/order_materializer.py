"""
Order Materializer

Consumes verified payment webhooks.

- payment_intent.succeeded: turn the PendingOrder into an Order, decrement
  stock, clear the cart and delete the PendingOrder, all in one transaction
- payment_intent.payment_failed: drop the PendingOrder
- anything else: acknowledged and ignored

The PendingOrder is the dedup key: a delivery that finds no pending order
for its intent has already been handled (or was never valid) and does
nothing.
"""
import json
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ..db.models import (
    CartItemModel,
    OrderModel,
    OrderStatusEntryModel,
    PendingOrderModel,
    ProductSizeModel,
)
from ..models.orders import Order, OversoldItem, ValidatedLineItem
from .order_service import get_order_by_payment_reference, order_to_schema, pending_to_schema
from .payment_gateway import GatewayEvent, PAYMENT_FAILED, PAYMENT_SUCCEEDED

logger = logging.getLogger(__name__)

PAYMENT_RECEIVED_NOTE = "Payment received"


@dataclass
class WebhookOutcome:
    """Result of handling one gateway event."""
    event_type: str
    intent_id: Optional[str]
    action: str  # "materialized", "duplicate", "discarded", "ignored"
    order: Optional[Order] = None


# ============================================================================
# Event Routing
# ============================================================================

async def handle_gateway_event(db: AsyncSession, event: GatewayEvent) -> WebhookOutcome:
    """
    Route a verified gateway event.

    Args:
        db: Database session
        event: Event already verified by StripeGateway.construct_event

    Returns:
        WebhookOutcome; outcome.order is set only when a new order was created
    """
    if event.event_type == PAYMENT_SUCCEEDED:
        logger.info(f"PaymentIntent {event.intent_id} succeeded (event {event.event_id})")
        order = await materialize_pending_order(db, event.intent_id)
        return WebhookOutcome(
            event_type=event.event_type,
            intent_id=event.intent_id,
            action="materialized" if order else "duplicate",
            order=order,
        )

    if event.event_type == PAYMENT_FAILED:
        logger.info(f"PaymentIntent {event.intent_id} failed (event {event.event_id})")
        await discard_pending_order(db, event.intent_id)
        return WebhookOutcome(event_type=event.event_type, intent_id=event.intent_id, action="discarded")

    logger.info(f"Unhandled event type: {event.event_type}")
    return WebhookOutcome(event_type=event.event_type, intent_id=event.intent_id, action="ignored")


# ============================================================================
# Materialization
# ============================================================================

async def materialize_pending_order(db: AsyncSession, intent_id: str) -> Optional[Order]:
    """
    Create the Order for a succeeded payment intent.

    Returns:
        The new Order, or None if there was no pending order (duplicate or
        unknown intent)

    The insert, stock decrements, cart clear and pending delete commit
    together or not at all. Any failure rolls back and re-raises so the
    gateway retries the delivery.
    """
    pending = await db.get(PendingOrderModel, intent_id)
    if pending is None:
        logger.warning(f"No pending order found for {intent_id}; already processed or unknown intent")
        return None

    snapshot = pending_to_schema(pending)
    items = snapshot.items
    user_id = snapshot.user_id

    try:
        db_order = await _insert_order(db, pending)

        oversold: List[OversoldItem] = []
        for item in items:
            shortfall = await _decrement_stock(db, item)
            if shortfall is not None:
                oversold.append(shortfall)
        if oversold:
            db_order.oversold_items = json.dumps([o.model_dump() for o in oversold])

        await _clear_cart(db, user_id)
        await _consume_pending_order(db, pending)

        await db.commit()
    except IntegrityError:
        await db.rollback()
        existing = await get_order_by_payment_reference(db, intent_id)
        if existing is not None:
            logger.warning(f"Concurrent delivery already materialized {intent_id} as order {existing.id}")
            return None
        raise
    except Exception:
        await db.rollback()
        logger.error(f"Materialization of {intent_id} rolled back", exc_info=True)
        raise

    if oversold:
        logger.warning(
            f"Order {db_order.id} oversold: "
            + ", ".join(f"{o.product_id}/{o.size_id} wanted {o.requested} had {o.available}" for o in oversold)
        )

    logger.info(f"Order {db_order.id} created for user {user_id} from {intent_id}")

    return order_to_schema(db_order)


async def _insert_order(db: AsyncSession, pending: PendingOrderModel) -> OrderModel:
    """Insert the Order from the pending snapshot with its first history entry."""
    db_order = OrderModel(
        id=f"ord_{uuid.uuid4().hex[:16]}",
        user_id=pending.user_id,
        user_email=pending.user_email,
        items=pending.items,
        subtotal=pending.subtotal,
        tax=pending.tax,
        delivery_fee=pending.delivery_fee,
        total=pending.total,
        shipping_address=pending.shipping_address,
        delivery_date=pending.requested_delivery_date,
        current_status="confirmed",
        payment_reference_id=pending.id,
        oversold_items="[]",
        status_entries=[
            OrderStatusEntryModel(
                status="confirmed",
                timestamp=datetime.utcnow(),
                note=PAYMENT_RECEIVED_NOTE,
            )
        ],
    )
    db.add(db_order)
    await db.flush()
    return db_order


async def _decrement_stock(db: AsyncSession, item: ValidatedLineItem) -> Optional[OversoldItem]:
    """
    Conditionally decrement stock for one line.

    Returns:
        None on a normal decrement; an OversoldItem when stock ran out
        between checkout and payment (stock is floored at zero)
    """
    size_filter = (
        ProductSizeModel.product_id == item.product_id,
        ProductSizeModel.id == item.size_id,
    )
    result = await db.execute(
        update(ProductSizeModel)
        .where(*size_filter, ProductSizeModel.stock >= item.quantity)
        .values(stock=ProductSizeModel.stock - item.quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        return None

    available = await db.scalar(select(ProductSizeModel.stock).where(*size_filter))
    if available is None:
        logger.warning(f"Size {item.product_id}/{item.size_id} no longer in catalog; stock not decremented")
        return None

    await db.execute(
        update(ProductSizeModel)
        .where(*size_filter)
        .values(stock=0)
        .execution_options(synchronize_session=False)
    )
    return OversoldItem(
        product_id=item.product_id,
        size_id=item.size_id,
        requested=item.quantity,
        available=available,
    )


async def _clear_cart(db: AsyncSession, user_id: str) -> None:
    await db.execute(delete(CartItemModel).where(CartItemModel.user_id == user_id))


async def _consume_pending_order(db: AsyncSession, pending: PendingOrderModel) -> None:
    await db.delete(pending)
    await db.flush()


# ============================================================================
# Failure / Expiry
# ============================================================================

async def discard_pending_order(db: AsyncSession, intent_id: str) -> bool:
    """
    Delete the pending order for an intent if present.

    No order is created, no stock or cart is touched.

    Returns:
        True if a pending order was deleted
    """
    result = await db.execute(
        delete(PendingOrderModel).where(PendingOrderModel.id == intent_id)
    )
    await db.commit()

    if result.rowcount:
        logger.info(f"Discarded pending order {intent_id}")
        return True

    logger.debug(f"No pending order to discard for {intent_id}")
    return False

"""
Checkout Service

Turns a client cart into a gateway payment intent plus a pending order.

Order of operations:
1. Re-price and stock-check the cart (no side effects on failure)
2. Resolve or lazily create the gateway customer
3. Create the payment intent
4. Only then write the PendingOrder, keyed by the intent id
"""
import json
from dataclasses import dataclass
from datetime import date
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ..config import settings
from ..db.models import PendingOrderModel, UserModel
from ..exceptions import UserNotFoundError
from ..models.orders import CartLine, ShippingAddress, ValidatedLineItem
from .payment_gateway import StripeGateway
from .pricing_service import OrderTotals, check_stock, compute_totals, validate_cart_lines

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutResult:
    """What the app needs to confirm payment and show the charge."""
    payment_token: str
    payment_intent_id: str
    totals: OrderTotals


async def ensure_gateway_customer(
    db: AsyncSession,
    gateway: StripeGateway,
    user: UserModel
) -> str:
    """
    Return the user's gateway customer id, creating it on first use.

    The id is persisted on the user so later checkouts reuse it.
    """
    if user.stripe_customer_id:
        return user.stripe_customer_id

    customer_id = await gateway.create_customer(user.id, user.email)
    user.stripe_customer_id = customer_id
    await db.commit()

    logger.info(f"Linked user {user.id} to gateway customer {customer_id}")
    return customer_id


async def create_payment_intent(
    db: AsyncSession,
    gateway: StripeGateway,
    user_id: str,
    cart_lines: List[CartLine],
    shipping_address: ShippingAddress,
    delivery_date: Optional[date] = None
) -> CheckoutResult:
    """
    Validate the cart, open a payment intent and stage the pending order.

    Args:
        db: Database session
        gateway: Payment gateway adapter
        user_id: Authenticated caller
        cart_lines: Untrusted cart lines
        shipping_address: Delivery address (state drives tax)
        delivery_date: Requested delivery date, if any

    Returns:
        CheckoutResult with client secret and server-computed totals

    Raises:
        Validation errors from pricing_service, UserNotFoundError,
        PaymentGatewayError
    """
    priced_lines, subtotal = await validate_cart_lines(db, cart_lines)
    check_stock(priced_lines)
    totals = compute_totals(subtotal, shipping_address.state)
    items: List[ValidatedLineItem] = [line.item for line in priced_lines]

    user = await db.get(UserModel, user_id)
    if user is None:
        raise UserNotFoundError(user_id)

    customer_id = await ensure_gateway_customer(db, gateway, user)

    intent = await gateway.create_payment_intent(
        amount_cents=totals.amount_in_cents,
        customer_id=customer_id,
        currency=settings.currency,
        metadata={
            "user_id": user_id,
            "item_count": str(len(items)),
            "delivery_date": delivery_date.isoformat() if delivery_date else "",
        },
    )

    pending = PendingOrderModel(
        id=intent.intent_id,
        user_id=user_id,
        user_email=user.email or "",
        items=json.dumps([item.model_dump() for item in items]),
        subtotal=totals.subtotal,
        tax=totals.tax,
        delivery_fee=totals.delivery_fee,
        total=totals.total,
        shipping_address=shipping_address.model_dump_json(),
        requested_delivery_date=delivery_date.isoformat() if delivery_date else None,
    )
    db.add(pending)
    await db.commit()

    logger.info(
        f"Staged pending order {intent.intent_id} for user {user_id}: "
        f"{len(items)} items, total=${totals.total:.2f}"
    )

    return CheckoutResult(
        payment_token=intent.client_secret,
        payment_intent_id=intent.intent_id,
        totals=totals,
    )

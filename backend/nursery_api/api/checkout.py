"""
Checkout API Endpoints

POST /api/stripe/create-payment-intent - Re-price the cart and open a payment intent
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ..db.init_db import get_db
from ..models.checkout import CheckoutRequest, CheckoutResponse
from ..services.checkout_service import create_payment_intent
from ..services.payment_gateway import StripeGateway, get_payment_gateway

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/create-payment-intent", response_model=CheckoutResponse)
async def create_payment_intent_endpoint(
    request: CheckoutRequest,
    user_id: str = Query(..., min_length=1, description="Authenticated caller"),
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway)
) -> CheckoutResponse:
    """
    Create a payment intent for the caller's cart.

    Prices sent by the client are ignored; every line is re-priced from the
    catalog and stock-checked before the gateway is contacted.

    Request Body:
        {
            "items": [{"product_id": "palm-1", "size_id": "md", "quantity": 2}],
            "shipping_address": {"street": "...", "city": "...", "state": "NY", "zip": "..."},
            "delivery_date": "2026-05-01"
        }

    Returns:
        Client secret (payment_token), intent id and the charge breakdown

    Errors:
        400/404 checkout:* validation errors, 502 payment:gateway_error
    """
    logger.info(f"Checkout requested by user {user_id} ({len(request.items)} lines)")

    result = await create_payment_intent(
        db,
        gateway,
        user_id=user_id,
        cart_lines=request.items,
        shipping_address=request.shipping_address,
        delivery_date=request.delivery_date,
    )

    return CheckoutResponse(
        payment_token=result.payment_token,
        payment_intent_id=result.payment_intent_id,
        amount=result.totals.total,
        subtotal=result.totals.subtotal,
        tax=result.totals.tax,
        delivery_fee=result.totals.delivery_fee,
    )

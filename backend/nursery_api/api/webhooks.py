"""
Payment Webhook Endpoint

POST /api/stripe/webhook - Signed gateway events (at-least-once delivery)

Signature verification happens before anything is read or written. A
materialization failure answers 5xx so the gateway redelivers; duplicate
deliveries find no pending order and answer 200.
"""
from typing import Any, Dict, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ..db.init_db import get_db
from ..services.notification_service import (
    ExpoPushDispatcher,
    get_notification_dispatcher,
    send_order_status_notification,
)
from ..services.order_materializer import handle_gateway_event
from ..services.payment_gateway import StripeGateway, get_payment_gateway

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/webhook")
async def stripe_webhook_endpoint(
    request: Request,
    background_tasks: BackgroundTasks,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
    dispatcher: ExpoPushDispatcher = Depends(get_notification_dispatcher)
) -> Dict[str, Any]:
    """
    Receive a payment gateway event.

    Handled events:
        payment_intent.succeeded: materialize the pending order
        payment_intent.payment_failed: discard the pending order
        anything else: acknowledged and ignored

    Returns:
        {"received": true}

    Errors:
        400 payment:webhook_signature_invalid
    """
    payload = await request.body()
    event = gateway.construct_event(payload, stripe_signature)

    outcome = await handle_gateway_event(db, event)

    if outcome.order is not None:
        background_tasks.add_task(
            send_order_status_notification,
            dispatcher,
            outcome.order.user_id,
            outcome.order.id,
            outcome.order.current_status,
        )

    logger.debug(f"Webhook {event.event_id} handled: {outcome.action}")

    return {"received": True}

"""
Payment Gateway Adapter (Stripe)

Creates customers and payment intents, cancels abandoned intents, and
verifies webhook signatures.

The gateway never sees catalog data: it gets an amount in cents and opaque
metadata (user id, item count) for auditing.
"""
from dataclasses import dataclass
from typing import Dict, Any, Optional
import logging

import stripe
from starlette.concurrency import run_in_threadpool

from ..config import settings
from ..exceptions import PaymentGatewayError, WebhookSignatureError

logger = logging.getLogger(__name__)

# Webhook event types the pipeline acts on
PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"

# Intent states from which a cancel is pointless or impossible
_SETTLED_STATUSES = {"succeeded"}
_CANCELED_STATUSES = {"canceled"}

# Error code for an intent id the gateway does not know
_RESOURCE_MISSING = "resource_missing"


@dataclass(frozen=True)
class PaymentIntentResult:
    """Gateway-side intent: id is the pending-order key, client_secret goes to the app."""
    intent_id: str
    client_secret: str
    amount_cents: int


@dataclass(frozen=True)
class GatewayEvent:
    """Verified webhook event reduced to what the materializer needs."""
    event_id: str
    event_type: str
    intent_id: Optional[str]


class StripeGateway:
    """
    Thin async wrapper over the Stripe SDK.

    SDK calls are blocking, so they run in the threadpool.
    """

    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        api_version: Optional[str] = None
    ):
        self._api_key = api_key
        self._webhook_secret = webhook_secret
        self._api_version = api_version

    def _request_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {"api_key": self._api_key}
        if self._api_version:
            options["stripe_version"] = self._api_version
        return options

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    async def create_customer(self, user_id: str, email: str) -> str:
        """
        Create a gateway customer for a user.

        The idempotency key is derived from the user id so two concurrent
        first checkouts resolve to the same customer.
        """
        try:
            customer = await run_in_threadpool(
                stripe.Customer.create,
                email=email or None,
                metadata={"user_id": user_id},
                idempotency_key=f"customer-{user_id}",
                **self._request_options()
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe customer creation failed for user {user_id}: {e}")
            raise PaymentGatewayError("Could not create payment customer", {"user_id": user_id})

        logger.info(f"Created Stripe customer {customer['id']} for user {user_id}")
        return customer["id"]

    # ------------------------------------------------------------------
    # Payment intents
    # ------------------------------------------------------------------

    async def create_payment_intent(
        self,
        amount_cents: int,
        customer_id: str,
        metadata: Dict[str, str],
        currency: str = "usd"
    ) -> PaymentIntentResult:
        """
        Request a payment intent.

        Args:
            amount_cents: Charge amount in cents
            customer_id: Gateway customer id
            metadata: Opaque audit tags (user_id, item_count, delivery_date)
            currency: ISO currency code

        Returns:
            PaymentIntentResult with the intent id and client secret
        """
        try:
            intent = await run_in_threadpool(
                stripe.PaymentIntent.create,
                amount=amount_cents,
                currency=currency,
                customer=customer_id,
                metadata=metadata,
                automatic_payment_methods={"enabled": True},
                **self._request_options()
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe payment intent creation failed: {e}")
            raise PaymentGatewayError("Could not create payment intent", {"amount_cents": amount_cents})

        logger.info(f"Created payment intent {intent['id']} for {amount_cents}¢")

        return PaymentIntentResult(
            intent_id=intent["id"],
            client_secret=intent["client_secret"],
            amount_cents=amount_cents,
        )

    async def cancel_payment_intent(self, intent_id: str) -> bool:
        """
        Cancel an abandoned intent.

        Returns:
            True if the intent is now canceled (or already was, or no longer
            exists at the gateway), False if it already succeeded or the
            gateway could not be reached and it must be left for later
        """
        try:
            intent = await run_in_threadpool(
                stripe.PaymentIntent.retrieve, intent_id, **self._request_options()
            )
            if intent["status"] in _SETTLED_STATUSES:
                return False
            if intent["status"] in _CANCELED_STATUSES:
                return True

            await run_in_threadpool(
                stripe.PaymentIntent.cancel,
                intent_id,
                cancellation_reason="abandoned",
                **self._request_options()
            )
        except stripe.InvalidRequestError as e:
            if e.code == _RESOURCE_MISSING:
                logger.info(f"Payment intent {intent_id} does not exist at the gateway")
                return True
            logger.warning(f"Could not cancel payment intent {intent_id}: {e}")
            return False
        except stripe.StripeError as e:
            logger.warning(f"Could not cancel payment intent {intent_id}: {e}")
            return False

        logger.info(f"Canceled abandoned payment intent {intent_id}")
        return True

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def construct_event(self, payload: bytes, signature_header: Optional[str]) -> GatewayEvent:
        """
        Verify a webhook signature and parse the event.

        Must run before any state is read or written.

        Raises:
            WebhookSignatureError: header missing, signature mismatch, stale
                timestamp, or unparseable body
        """
        if not signature_header:
            logger.warning("Webhook rejected: missing signature header")
            raise WebhookSignatureError()

        try:
            event = stripe.Webhook.construct_event(payload, signature_header, self._webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Webhook signature verification failed: {e}")
            raise WebhookSignatureError()
        except ValueError as e:
            logger.warning(f"Webhook payload could not be parsed: {e}")
            raise WebhookSignatureError()

        data_object = event["data"]["object"]
        intent_id = data_object["id"] if event["type"].startswith("payment_intent.") else None

        return GatewayEvent(
            event_id=event["id"],
            event_type=event["type"],
            intent_id=intent_id,
        )


_gateway: Optional[StripeGateway] = None


def get_payment_gateway() -> StripeGateway:
    """FastAPI dependency returning the process-wide Stripe gateway."""
    global _gateway
    if _gateway is None:
        _gateway = StripeGateway(
            api_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            api_version=settings.stripe_api_version,
        )
    return _gateway

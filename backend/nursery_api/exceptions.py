"""
Nursery Exception Hierarchy

Error codes for the checkout, payment and order pipeline.
Every error renders as {"error_code", "message", "details"}.
"""
from typing import Optional, Dict, Any


class NurseryError(Exception):
    """
    Base exception for all pipeline errors.

    Subclasses fix the error code and the HTTP status the API answers with.
    """

    status_code: int = 400

    def __init__(
        self,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to API error response format."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }


# ============================================================================
# Checkout validation errors
# ============================================================================

class EmptyCartError(NurseryError):
    """Checkout requested with no line items."""

    def __init__(self, message: str = "Cart is empty", details: Optional[Dict[str, Any]] = None):
        super().__init__("checkout:cart_empty", message, details)


class ProductNotFoundError(NurseryError):
    """Cart line references a product id that does not exist."""

    status_code = 404

    def __init__(self, product_id: str):
        super().__init__(
            "checkout:product_not_found",
            f"Product {product_id} not found",
            {"product_id": product_id}
        )


class ProductInactiveError(NurseryError):
    """Product exists but has been disabled by an administrator."""

    def __init__(self, product_id: str, product_name: str):
        super().__init__(
            "checkout:product_inactive",
            f'Product "{product_name}" is no longer available',
            {"product_id": product_id, "product_name": product_name}
        )


class SizeNotFoundError(NurseryError):
    """Cart line references a size the product does not offer."""

    status_code = 404

    def __init__(self, product_id: str, product_name: str, size_id: str):
        super().__init__(
            "checkout:size_not_found",
            f"Size {size_id} not found for {product_name}",
            {"product_id": product_id, "size_id": size_id}
        )


class InsufficientStockError(NurseryError):
    """
    Requested quantity exceeds the stock on hand.

    Details carry enough to render a corrective message:
    product, size label and the quantity still available.
    """

    def __init__(
        self,
        product_id: str,
        product_name: str,
        size_id: str,
        size_label: str,
        available: int
    ):
        super().__init__(
            "checkout:insufficient_stock",
            f'Insufficient stock for "{product_name}" ({size_label}). Only {available} available.',
            {
                "product_id": product_id,
                "product_name": product_name,
                "size_id": size_id,
                "size_label": size_label,
                "available": available,
            }
        )


class UserNotFoundError(NurseryError):
    """Checkout for a user id with no user record."""

    status_code = 404

    def __init__(self, user_id: str):
        super().__init__(
            "checkout:user_not_found",
            f"No user found with ID: {user_id}",
            {"user_id": user_id}
        )


# ============================================================================
# Payment errors
# ============================================================================

class PaymentGatewayError(NurseryError):
    """The payment processor rejected or failed a request."""

    status_code = 502

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("payment:gateway_error", message, details)


class WebhookSignatureError(NurseryError):
    """
    Webhook signature missing or not verifiable.

    The response never echoes the expected signature or the payload.
    """

    def __init__(self):
        super().__init__("payment:webhook_signature_invalid", "Invalid webhook signature")


# ============================================================================
# Order errors
# ============================================================================

class OrderNotFoundError(NurseryError):
    """No order with the requested id."""

    status_code = 404

    def __init__(self, order_id: str):
        super().__init__(
            "order:not_found",
            f"No order found with ID: {order_id}",
            {"order_id": order_id}
        )


class InvalidRefundAmountError(NurseryError):
    """Refund amount is not positive or exceeds the order total."""

    def __init__(self, order_id: str, amount: float, total: float):
        super().__init__(
            "order:invalid_refund_amount",
            "Invalid refund amount",
            {"order_id": order_id, "amount": amount, "order_total": total}
        )

"""
Pydantic Order Models

Cart input, validated line-item snapshots, pending orders and durable orders.
"""
from datetime import datetime, date
from typing import Optional, Literal, List
from pydantic import BaseModel, Field, model_validator

from ..money import round_money

OrderStatus = Literal["confirmed", "preparing", "in_transit", "delivered", "cancelled", "refunded"]


# ==================== Cart input ====================

class CartLine(BaseModel):
    """
    One cart line as submitted by the client.

    Only ids and quantity cross the trust boundary; anything else the client
    sends (prices, names) is dropped.
    """
    product_id: str = Field(min_length=1)
    size_id: str = Field(min_length=1)
    quantity: int = Field(gt=0)

    model_config = {"extra": "ignore"}


class ShippingAddress(BaseModel):
    """Delivery address; state drives the tax rate."""
    street: str
    unit: Optional[str] = None
    city: str
    state: str
    zip: str


# ==================== Snapshots ====================

class ValidatedLineItem(BaseModel):
    """
    Server-priced line item frozen at validation time.

    Orders keep this snapshot so later catalog edits never change the
    price shown for a historical order.
    """
    product_id: str
    product_name: str
    product_image: str = ""
    size_id: str
    size_label: str
    unit_price: float = Field(ge=0)
    quantity: int = Field(gt=0)

    model_config = {"frozen": True}


class OversoldItem(BaseModel):
    """Line whose stock was exhausted before the paid order could decrement it."""
    product_id: str
    size_id: str
    requested: int
    available: int


class StatusEntry(BaseModel):
    """One immutable row of an order's status history."""
    status: OrderStatus
    timestamp: datetime
    note: str

    model_config = {"frozen": True}


# ==================== Pending and durable orders ====================

class PendingOrder(BaseModel):
    """Staging record keyed by the payment intent id."""
    id: str
    user_id: str
    user_email: str
    items: List[ValidatedLineItem]
    subtotal: float
    tax: float
    delivery_fee: float
    total: float
    shipping_address: ShippingAddress
    requested_delivery_date: Optional[date] = None
    created_at: datetime


class Order(BaseModel):
    """
    Durable order record.

    Invariants:
    - total equals round(subtotal + tax + delivery_fee, 2)
    - status_history is non-empty and ends at current_status
    - refund_amount, when set, is within (0, total]
    """
    id: str
    user_id: str
    user_email: str
    items: List[ValidatedLineItem]
    subtotal: float
    tax: float
    delivery_fee: float
    total: float
    shipping_address: ShippingAddress
    delivery_date: Optional[date] = None
    current_status: OrderStatus
    status_history: List[StatusEntry] = Field(min_length=1)
    payment_reference_id: str
    refund_id: Optional[str] = None
    refund_amount: Optional[float] = None
    oversold_items: List[OversoldItem] = Field(default_factory=list)
    created_at: datetime

    @model_validator(mode='after')
    def validate_invariants(self):
        """Check total arithmetic, history tail and refund bounds."""
        expected_total = round_money(self.subtotal + self.tax + self.delivery_fee)
        if self.total != expected_total:
            raise ValueError(f"Order total {self.total} != subtotal + tax + delivery fee ({expected_total})")
        if self.status_history[-1].status != self.current_status:
            raise ValueError(
                f"Last history status {self.status_history[-1].status} != current status {self.current_status}"
            )
        if self.refund_amount is not None and not (0 < self.refund_amount <= self.total):
            raise ValueError(f"Refund amount {self.refund_amount} outside (0, {self.total}]")
        return self

    model_config = {
        "json_schema_extra": {
            "example": {
                "id": "ord_3f9c1a2b4d5e6f70",
                "user_id": "user_demo_001",
                "user_email": "demo@gopalmtrees.com",
                "items": [{
                    "product_id": "palm-1",
                    "product_name": "Windmill Palm",
                    "product_image": "https://demo.gopalmtrees.com/images/windmill-palm.jpg",
                    "size_id": "md",
                    "size_label": "Medium",
                    "unit_price": 129.99,
                    "quantity": 2
                }],
                "subtotal": 259.98,
                "tax": 20.8,
                "delivery_fee": 0.0,
                "total": 280.78,
                "shipping_address": {
                    "street": "1 Palm Way", "city": "Hicksville", "state": "NY", "zip": "11801"
                },
                "current_status": "confirmed",
                "status_history": [{
                    "status": "confirmed",
                    "timestamp": "2026-05-02T14:35:00Z",
                    "note": "Payment received"
                }],
                "payment_reference_id": "pi_3Nabc123",
                "created_at": "2026-05-02T14:35:00Z"
            }
        }
    }

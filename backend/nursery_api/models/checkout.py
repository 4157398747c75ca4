"""
Pydantic request/response models for the checkout, webhook and order APIs.
"""
from datetime import date
from typing import Optional, List
from pydantic import BaseModel, Field

from .orders import CartLine, ShippingAddress, OrderStatus


class CheckoutRequest(BaseModel):
    """Request to create a payment intent for the caller's cart."""
    items: List[CartLine]
    shipping_address: ShippingAddress
    delivery_date: Optional[date] = None


class CheckoutResponse(BaseModel):
    """Client secret plus the server-computed charge breakdown."""
    payment_token: str
    payment_intent_id: str
    amount: float
    subtotal: float
    tax: float
    delivery_fee: float


class StatusUpdateRequest(BaseModel):
    """Operator request to move one order to a new status."""
    status: OrderStatus
    note: Optional[str] = None


class BulkStatusUpdateRequest(BaseModel):
    """Operator request to move several orders to the same status."""
    order_ids: List[str] = Field(min_length=1)
    status: OrderStatus
    note: Optional[str] = None


class BulkStatusUpdateResponse(BaseModel):
    """Bulk update result; updated_count counts only orders actually written."""
    success: bool = True
    updated_count: int


class RefundRequest(BaseModel):
    """Operator refund decision for an order."""
    amount: float = Field(allow_inf_nan=False)

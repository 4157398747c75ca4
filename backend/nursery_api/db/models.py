"""
SQLAlchemy ORM Models for the Nursery API

Catalog, user, cart and push-token tables are owned by other parts of the
system; the reconciliation pipeline only reads them (and decrements stock).
Pending orders, orders and status history are owned here.
"""
from datetime import datetime
from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, Float, ForeignKey, Text,
    CheckConstraint, ForeignKeyConstraint, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class UserModel(Base):
    """
    ORM model for users table.

    stripe_customer_id is filled lazily on the user's first checkout.
    """
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False)
    display_name = Column(String)
    stripe_customer_id = Column(String)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class ProductModel(Base):
    """ORM model for products table."""
    __tablename__ = "products"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False, unique=True)
    thumbnail_url = Column(String, nullable=False, default="")
    active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    sizes = relationship(
        "ProductSizeModel",
        back_populates="product",
        lazy="selectin",
        cascade="all, delete-orphan"
    )


class ProductSizeModel(Base):
    """
    ORM model for product_sizes table.

    Size ids are only unique within a product, so the key is (product_id, id).
    """
    __tablename__ = "product_sizes"

    product_id = Column(String, ForeignKey("products.id"), primary_key=True)
    id = Column(String, primary_key=True)
    label = Column(String, nullable=False)
    height = Column(String, nullable=False, default="")
    price = Column(Float, nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    sku = Column(String, nullable=False, default="")

    product = relationship("ProductModel", back_populates="sizes")

    __table_args__ = (
        CheckConstraint("price >= 0", name="size_price_check"),
    )


class CartItemModel(Base):
    """ORM model for cart_items table (server-side copy of a user's cart)."""
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    product_id = Column(String, nullable=False)
    size_id = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    added_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        ForeignKeyConstraint(
            ["product_id", "size_id"],
            ["product_sizes.product_id", "product_sizes.id"]
        ),
    )


class PushTokenModel(Base):
    """ORM model for push_tokens table (Expo push tokens per device)."""
    __tablename__ = "push_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    token = Column(String, nullable=False, unique=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class PendingOrderModel(Base):
    """
    ORM model for pending_orders table.

    Keyed by the gateway payment intent id: the primary key is what makes
    webhook materialization idempotent.
    """
    __tablename__ = "pending_orders"

    id = Column(String, primary_key=True)  # payment intent id
    user_id = Column(String, nullable=False, index=True)
    user_email = Column(String, nullable=False, default="")
    items = Column(Text, nullable=False)  # JSON blob of validated line items
    subtotal = Column(Float, nullable=False)
    tax = Column(Float, nullable=False)
    delivery_fee = Column(Float, nullable=False)
    total = Column(Float, nullable=False)
    shipping_address = Column(Text, nullable=False)  # JSON blob
    requested_delivery_date = Column(String)  # ISO date
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)


class OrderModel(Base):
    """
    ORM model for orders table.

    current_status always mirrors the newest row in order_status_entries.
    """
    __tablename__ = "orders"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    user_email = Column(String, nullable=False, default="")
    items = Column(Text, nullable=False)  # JSON blob
    subtotal = Column(Float, nullable=False)
    tax = Column(Float, nullable=False)
    delivery_fee = Column(Float, nullable=False)
    total = Column(Float, nullable=False)
    shipping_address = Column(Text, nullable=False)  # JSON blob
    delivery_date = Column(String)  # ISO date
    current_status = Column(String, nullable=False, index=True)
    payment_reference_id = Column(String, nullable=False)
    refund_id = Column(String)
    refund_amount = Column(Float)
    oversold_items = Column(Text, nullable=False, default="[]")  # JSON blob
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    status_entries = relationship(
        "OrderStatusEntryModel",
        back_populates="order",
        order_by="OrderStatusEntryModel.id",
        lazy="selectin",
        cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("payment_reference_id", name="uq_orders_payment_reference"),
        CheckConstraint(
            "current_status IN ('confirmed', 'preparing', 'in_transit', 'delivered', 'cancelled', 'refunded')",
            name="order_status_check"
        ),
        CheckConstraint(
            "refund_amount IS NULL OR (refund_amount > 0 AND refund_amount <= total)",
            name="refund_amount_check"
        ),
    )


class OrderStatusEntryModel(Base):
    """
    ORM model for order_status_entries table.

    Rows are only ever inserted; the autoincrement id gives history order.
    """
    __tablename__ = "order_status_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String, ForeignKey("orders.id"), nullable=False, index=True)
    status = Column(String, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow)
    note = Column(String, nullable=False, default="")

    order = relationship("OrderModel", back_populates="status_entries")

    __table_args__ = (
        CheckConstraint(
            "status IN ('confirmed', 'preparing', 'in_transit', 'delivered', 'cancelled', 'refunded')",
            name="status_entry_check"
        ),
    )

"""
Database package for the Nursery API.

Exports database initialization, models, and session management.
"""
from .init_db import initialize_database, get_db, get_async_session, create_engine
from .models import (
    Base,
    UserModel,
    ProductModel,
    ProductSizeModel,
    CartItemModel,
    PushTokenModel,
    PendingOrderModel,
    OrderModel,
    OrderStatusEntryModel,
)

__all__ = [
    "initialize_database",
    "get_db",
    "get_async_session",
    "create_engine",
    "Base",
    "UserModel",
    "ProductModel",
    "ProductSizeModel",
    "CartItemModel",
    "PushTokenModel",
    "PendingOrderModel",
    "OrderModel",
    "OrderStatusEntryModel",
]

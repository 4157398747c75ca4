"""Pytest fixtures for nursery API tests."""

import asyncio
import hashlib
import hmac
import json
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from nursery_api.config import settings
from nursery_api.db.init_db import create_engine, get_db, initialize_database
from nursery_api.db.models import (
    CartItemModel,
    OrderModel,
    PendingOrderModel,
    ProductSizeModel,
    PushTokenModel,
    UserModel,
)
from nursery_api.db.seed import DEMO_USER_ID, seed_demo_catalog
from nursery_api.exceptions import PaymentGatewayError
from nursery_api.main import app
from nursery_api.services.notification_service import get_notification_dispatcher
from nursery_api.services.payment_gateway import (
    PaymentIntentResult,
    StripeGateway,
    get_payment_gateway,
)

WEBHOOK_SECRET = "whsec_test_secret"

NY_ADDRESS = {"street": "1 Palm Way", "city": "Hicksville", "state": "NY", "zip": "11801"}
TWO_MEDIUM_PALMS = [{"product_id": "palm-1", "size_id": "md", "quantity": 2}]


# ============================================================================
# Fakes
# ============================================================================

class FakeGateway(StripeGateway):
    """Stripe gateway with the network calls replaced; webhook verification is real."""

    def __init__(self):
        super().__init__(api_key="sk_test_fake", webhook_secret=WEBHOOK_SECRET)
        self.customers: List[Dict[str, str]] = []
        self.intents: List[Dict[str, Any]] = []
        self.canceled: List[str] = []
        self.settled_intents = set()
        self.fail_intents = False

    async def create_customer(self, user_id: str, email: str) -> str:
        customer_id = f"cus_test_{len(self.customers) + 1}"
        self.customers.append({"id": customer_id, "user_id": user_id, "email": email})
        return customer_id

    async def create_payment_intent(self, amount_cents, customer_id, metadata, currency="usd"):
        if self.fail_intents:
            raise PaymentGatewayError("Could not create payment intent", {"amount_cents": amount_cents})
        intent_id = f"pi_test_{len(self.intents) + 1}"
        self.intents.append({
            "id": intent_id,
            "amount_cents": amount_cents,
            "customer": customer_id,
            "metadata": metadata,
            "currency": currency,
        })
        return PaymentIntentResult(
            intent_id=intent_id,
            client_secret=f"{intent_id}_secret_abc",
            amount_cents=amount_cents,
        )

    async def cancel_payment_intent(self, intent_id: str) -> bool:
        if intent_id in self.settled_intents:
            return False
        self.canceled.append(intent_id)
        return True


class RecordingDispatcher:
    """Push dispatcher that records instead of calling Expo."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.fail = False

    async def notify(self, user_id, title, body, metadata=None):
        if self.fail:
            raise RuntimeError("push service unavailable")
        self.sent.append({"user_id": user_id, "title": title, "body": body, "data": metadata or {}})
        return {"sent": 1, "failed": 0}


class DbProbe:
    """Synchronous helpers for arranging and inspecting database state."""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    def run(self, work):
        async def _go():
            async with self._session_factory() as db:
                return await work(db)
        return asyncio.run(_go())

    def count(self, model) -> int:
        return self.run(lambda db: db.scalar(select(func.count()).select_from(model)))

    def stock(self, product_id: str, size_id: str) -> int:
        return self.run(lambda db: db.scalar(
            select(ProductSizeModel.stock).where(
                ProductSizeModel.product_id == product_id,
                ProductSizeModel.id == size_id,
            )
        ))

    def set_stock(self, product_id: str, size_id: str, stock: int) -> None:
        async def work(db):
            await db.execute(
                update(ProductSizeModel)
                .where(ProductSizeModel.product_id == product_id, ProductSizeModel.id == size_id)
                .values(stock=stock)
            )
            await db.commit()
        self.run(work)

    def cart_size(self, user_id: str = DEMO_USER_ID) -> int:
        return self.run(lambda db: db.scalar(
            select(func.count()).select_from(CartItemModel).where(CartItemModel.user_id == user_id)
        ))

    def pending(self, intent_id: str) -> Optional[PendingOrderModel]:
        return self.run(lambda db: db.get(PendingOrderModel, intent_id))

    def orders_for_intent(self, intent_id: str) -> List[OrderModel]:
        async def work(db):
            result = await db.execute(
                select(OrderModel).where(OrderModel.payment_reference_id == intent_id)
            )
            return list(result.scalars().all())
        return self.run(work)

    def user(self, user_id: str = DEMO_USER_ID) -> Optional[UserModel]:
        return self.run(lambda db: db.get(UserModel, user_id))

    def stage_pending(self, intent_id: str, created_at: Optional[datetime] = None, user_id: str = DEMO_USER_ID) -> None:
        async def work(db):
            db.add(PendingOrderModel(
                id=intent_id,
                user_id=user_id,
                user_email="demo@gopalmtrees.com",
                items=json.dumps([{
                    "product_id": "palm-1",
                    "product_name": "Windmill Palm",
                    "product_image": "",
                    "size_id": "md",
                    "size_label": "Medium",
                    "unit_price": 129.99,
                    "quantity": 2,
                }]),
                subtotal=259.98,
                tax=20.8,
                delivery_fee=0.0,
                total=280.78,
                shipping_address=json.dumps(NY_ADDRESS),
                created_at=created_at or datetime.utcnow(),
            ))
            await db.commit()
        self.run(work)

    def add_push_tokens(self, user_id: str, tokens: List[str]) -> None:
        async def work(db):
            for token in tokens:
                db.add(PushTokenModel(user_id=user_id, token=token))
            await db.commit()
        self.run(work)


# ============================================================================
# Webhook helpers
# ============================================================================

def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header for a payload."""
    timestamp = timestamp or int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_type: str, object_id: str, event_id: str = "evt_test_1") -> str:
    """Serialize a minimal Stripe event body."""
    object_type = "payment_intent" if event_type.startswith("payment_intent.") else "charge"
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": {"id": object_id, "object": object_type}},
    })


# ============================================================================
# Fixtures
# ============================================================================

async def _seed(session_factory) -> None:
    async with session_factory() as db:
        await seed_demo_catalog(db)
        db.add_all([
            CartItemModel(user_id=DEMO_USER_ID, product_id="palm-1", size_id="md", quantity=2),
            CartItemModel(user_id=DEMO_USER_ID, product_id="banana-1", size_id="3gal", quantity=1),
            CartItemModel(user_id="user_other", product_id="palm-2", size_id="sm", quantity=1),
            UserModel(id="user_other", email="other@example.com"),
        ])
        await db.commit()


@pytest.fixture
def session_factory(tmp_path):
    """Session factory over a fresh seeded SQLite file."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'nursery_test.db'}", poolclass=NullPool)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    asyncio.run(initialize_database(engine))
    asyncio.run(_seed(factory))

    yield factory

    asyncio.run(engine.dispose())


@pytest.fixture
def probe(session_factory):
    return DbProbe(session_factory)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def client(session_factory, gateway, dispatcher, monkeypatch):
    """Test client with database, gateway and push dispatcher overridden."""
    monkeypatch.setattr(settings, "demo_mode", False)
    monkeypatch.setattr(settings, "scheduler_enabled", False)
    monkeypatch.setattr(settings, "delivery_fee", 0.0)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher

    yield TestClient(app, raise_server_exceptions=False)

    app.dependency_overrides.clear()


@pytest.fixture
def checkout(client):
    """Post a checkout for the demo user and return the response."""
    def _checkout(items=None, address=None, user_id: str = DEMO_USER_ID, **extra):
        body = {"items": items if items is not None else TWO_MEDIUM_PALMS, "shipping_address": address or NY_ADDRESS}
        body.update(extra)
        return client.post(f"/api/stripe/create-payment-intent?user_id={user_id}", json=body)
    return _checkout


@pytest.fixture
def post_webhook(client):
    """Deliver a signed webhook event."""
    def _post(event_type: str, object_id: str, event_id: str = "evt_test_1"):
        payload = make_event(event_type, object_id, event_id)
        return client.post(
            "/api/stripe/webhook",
            content=payload,
            headers={"Stripe-Signature": sign_payload(payload), "Content-Type": "application/json"},
        )
    return _post


@pytest.fixture
def confirmed_order(checkout, post_webhook, client) -> Dict[str, Any]:
    """An order materialized through checkout plus a success webhook."""
    intent_id = checkout().json()["payment_intent_id"]
    assert post_webhook("payment_intent.succeeded", intent_id).status_code == 200

    orders = client.get(f"/api/orders?user_id={DEMO_USER_ID}").json()
    assert len(orders) == 1
    return orders[0]

"""Tests for checkout: re-pricing, validation and pending-order staging."""

import json

from nursery_api.db.models import PendingOrderModel
from nursery_api.db.seed import DEMO_USER_ID

from conftest import NY_ADDRESS


class TestCreatePaymentIntent:
    def test_two_medium_palms_in_new_york(self, checkout, gateway):
        response = checkout()
        assert response.status_code == 200
        data = response.json()
        assert data["subtotal"] == 259.98
        assert data["tax"] == 20.80
        assert data["delivery_fee"] == 0.0
        assert data["amount"] == 280.78
        assert data["payment_intent_id"] == "pi_test_1"
        assert data["payment_token"] == "pi_test_1_secret_abc"

        assert gateway.intents[0]["amount_cents"] == 28078
        assert gateway.intents[0]["metadata"]["user_id"] == DEMO_USER_ID
        assert gateway.intents[0]["metadata"]["item_count"] == "1"

    def test_pending_order_keyed_by_intent_id(self, checkout, probe):
        data = checkout(delivery_date="2026-05-01").json()

        pending = probe.pending(data["payment_intent_id"])
        assert pending is not None
        assert pending.user_id == DEMO_USER_ID
        assert pending.total == 280.78
        assert pending.requested_delivery_date == "2026-05-01"
        assert json.loads(pending.shipping_address)["state"] == "NY"

        items = json.loads(pending.items)
        assert items == [{
            "product_id": "palm-1",
            "product_name": "Windmill Palm",
            "product_image": "https://demo.gopalmtrees.com/images/windmill-palm.jpg",
            "size_id": "md",
            "size_label": "Medium",
            "unit_price": 129.99,
            "quantity": 2,
        }]

    def test_client_prices_are_ignored(self, checkout, probe):
        items = [{"product_id": "palm-1", "size_id": "md", "quantity": 2, "price": 0.01, "unit_price": 0.01}]
        data = checkout(items=items).json()

        assert data["subtotal"] == 259.98
        assert data["amount"] == 280.78
        assert json.loads(probe.pending(data["payment_intent_id"]).items)[0]["unit_price"] == 129.99

    def test_multiple_lines(self, checkout):
        items = [
            {"product_id": "palm-1", "size_id": "sm", "quantity": 1},
            {"product_id": "banana-1", "size_id": "3gal", "quantity": 3},
        ]
        data = checkout(items=items).json()
        # 79.99 + 3 * 39.99 = 199.96; tax 16.00
        assert data["subtotal"] == 199.96
        assert data["tax"] == 16.00
        assert data["amount"] == 215.96

    def test_tax_follows_shipping_state(self, checkout):
        address = dict(NY_ADDRESS, state="NJ")
        data = checkout(address=address).json()
        assert data["tax"] == 17.22
        assert data["amount"] == 277.20

    def test_stock_is_not_touched(self, checkout, probe):
        checkout()
        assert probe.stock("palm-1", "md") == 5
        assert probe.cart_size() == 2


class TestGatewayCustomer:
    def test_customer_created_once_and_reused(self, checkout, gateway, probe):
        checkout()
        checkout()

        assert len(gateway.customers) == 1
        assert gateway.intents[0]["customer"] == gateway.intents[1]["customer"] == "cus_test_1"
        assert probe.user().stripe_customer_id == "cus_test_1"


class TestCheckoutValidation:
    def _assert_nothing_staged(self, probe, gateway):
        assert probe.count(PendingOrderModel) == 0
        assert gateway.intents == []

    def test_insufficient_stock(self, checkout, probe, gateway):
        probe.set_stock("palm-1", "md", 1)

        response = checkout()
        assert response.status_code == 400
        data = response.json()
        assert data["error_code"] == "checkout:insufficient_stock"
        assert data["details"]["product_id"] == "palm-1"
        assert data["details"]["size_id"] == "md"
        assert data["details"]["available"] == 1
        assert "Only 1 available" in data["message"]
        self._assert_nothing_staged(probe, gateway)

    def test_product_not_found(self, checkout, probe, gateway):
        response = checkout(items=[{"product_id": "palm-999", "size_id": "md", "quantity": 1}])
        assert response.status_code == 404
        assert response.json()["error_code"] == "checkout:product_not_found"
        self._assert_nothing_staged(probe, gateway)

    def test_product_inactive(self, checkout, probe, gateway):
        response = checkout(items=[{"product_id": "yucca-1", "size_id": "md", "quantity": 1}])
        assert response.status_code == 400
        data = response.json()
        assert data["error_code"] == "checkout:product_inactive"
        assert "Yucca Rostrata" in data["message"]
        self._assert_nothing_staged(probe, gateway)

    def test_size_not_found(self, checkout, probe, gateway):
        response = checkout(items=[{"product_id": "palm-1", "size_id": "xl", "quantity": 1}])
        assert response.status_code == 404
        assert response.json()["error_code"] == "checkout:size_not_found"
        self._assert_nothing_staged(probe, gateway)

    def test_one_bad_line_fails_the_whole_cart(self, checkout, probe, gateway):
        items = [
            {"product_id": "palm-1", "size_id": "md", "quantity": 1},
            {"product_id": "palm-1", "size_id": "xl", "quantity": 1},
        ]
        assert checkout(items=items).status_code == 404
        self._assert_nothing_staged(probe, gateway)

    def test_empty_cart(self, checkout, probe, gateway):
        response = checkout(items=[])
        assert response.status_code == 400
        assert response.json()["error_code"] == "checkout:cart_empty"
        self._assert_nothing_staged(probe, gateway)

    def test_non_positive_quantity_rejected(self, checkout, probe):
        response = checkout(items=[{"product_id": "palm-1", "size_id": "md", "quantity": 0}])
        assert response.status_code == 422
        assert probe.count(PendingOrderModel) == 0

    def test_unknown_user(self, checkout, probe, gateway):
        response = checkout(user_id="user_nobody")
        assert response.status_code == 404
        assert response.json()["error_code"] == "checkout:user_not_found"
        self._assert_nothing_staged(probe, gateway)


class TestGatewayFailure:
    def test_no_pending_order_when_intent_fails(self, checkout, probe, gateway):
        gateway.fail_intents = True

        response = checkout()
        assert response.status_code == 502
        assert response.json()["error_code"] == "payment:gateway_error"
        assert probe.count(PendingOrderModel) == 0


class TestSplitLines:
    def test_split_lines_for_one_size_share_its_stock(self, checkout, probe, gateway):
        items = [
            {"product_id": "palm-1", "size_id": "md", "quantity": 3},
            {"product_id": "palm-1", "size_id": "md", "quantity": 3},
        ]

        response = checkout(items=items)

        assert response.status_code == 400
        assert response.json()["details"]["available"] == 5
        assert probe.count(PendingOrderModel) == 0
        assert gateway.intents == []

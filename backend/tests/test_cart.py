"""
Cart tests: one row per (user, product), quantity updates, removal.
"""

from decimal import Decimal

import pytest

from storefront.models import CartItem
from storefront.services import cart_service


class TestCart:

    def test_empty_cart(self, client, customer_headers):
        resp = client.get("/api/cart", headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json == {"items": [], "total": "0.00", "item_count": 0}

    def test_adding_existing_product_increments_quantity(self, client, customer, customer_headers, product, db_session):
        client.post("/api/cart/add", json={"product_id": product.id, "quantity": 2}, headers=customer_headers)
        resp = client.post("/api/cart/add", json={"product_id": product.id}, headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json["item"]["quantity"] == 3

        assert db_session.query(CartItem).filter_by(user_id=customer.id).count() == 1

    def test_cart_totals(self, client, customer_headers, make_product):
        keyboard = make_product(name="Keyboard", price=Decimal("100.00"))
        mouse = make_product(name="Mouse", price=Decimal("25.50"))
        client.post("/api/cart/add", json={"product_id": keyboard.id, "quantity": 1}, headers=customer_headers)
        client.post("/api/cart/add", json={"product_id": mouse.id, "quantity": 2}, headers=customer_headers)

        cart = client.get("/api/cart", headers=customer_headers).json
        assert cart["total"] == "151.00"
        assert cart["item_count"] == 3
        subtotals = {i["product"]["name"]: i["subtotal"] for i in cart["items"]}
        assert subtotals == {"Keyboard": "100.00", "Mouse": "51.00"}

    def test_unknown_product_is_404(self, client, customer_headers):
        resp = client.post("/api/cart/add", json={"product_id": "nope"}, headers=customer_headers)
        assert resp.status_code == 404

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, "two", True])
    def test_bad_quantity_rejected(self, client, customer_headers, product, quantity):
        resp = client.post(
            "/api/cart/add", json={"product_id": product.id, "quantity": quantity}, headers=customer_headers
        )
        assert resp.status_code == 400

    def test_update_sets_quantity(self, client, customer_headers, product):
        client.post("/api/cart/add", json={"product_id": product.id, "quantity": 4}, headers=customer_headers)
        resp = client.put("/api/cart/update", json={"product_id": product.id, "quantity": 1}, headers=customer_headers)
        assert resp.json["item"]["quantity"] == 1

    def test_update_to_zero_removes_line(self, client, customer_headers, product):
        client.post("/api/cart/add", json={"product_id": product.id}, headers=customer_headers)
        resp = client.put("/api/cart/update", json={"product_id": product.id, "quantity": 0}, headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json["item"] is None
        assert client.get("/api/cart", headers=customer_headers).json["items"] == []

    def test_update_product_not_in_cart_is_404(self, client, customer_headers, product):
        resp = client.put("/api/cart/update", json={"product_id": product.id, "quantity": 2}, headers=customer_headers)
        assert resp.status_code == 404

    def test_remove_and_clear(self, client, customer_headers, make_product):
        a = make_product(name="A")
        b = make_product(name="B")
        client.post("/api/cart/add", json={"product_id": a.id}, headers=customer_headers)
        client.post("/api/cart/add", json={"product_id": b.id}, headers=customer_headers)

        assert client.delete(f"/api/cart/remove/{a.id}", headers=customer_headers).status_code == 200
        assert client.delete(f"/api/cart/remove/{a.id}", headers=customer_headers).status_code == 404

        resp = client.delete("/api/cart/clear", headers=customer_headers)
        assert resp.json["removed"] == 1
        assert client.get("/api/cart", headers=customer_headers).json["item_count"] == 0

    def test_carts_are_per_user(self, client, customer_headers, other_headers, product):
        client.post("/api/cart/add", json={"product_id": product.id}, headers=customer_headers)
        assert client.get("/api/cart", headers=other_headers).json["items"] == []


class TestCartService:

    def test_clear_cart_returns_count(self, customer, make_product):
        cart_service.add_to_cart(customer.id, make_product(name="A").id, 1)
        cart_service.add_to_cart(customer.id, make_product(name="B").id, 3)
        assert cart_service.clear_cart(customer.id) == 2
        assert cart_service.get_cart(customer.id)["items"] == []

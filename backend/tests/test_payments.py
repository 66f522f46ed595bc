"""
Payment workflow tests.

The gateway is replaced with monkeypatch on storefront.services.gateway_service
so no network calls are made.

Verifies:
- Preferences are owner-scoped, require a pending order, persist a pending payment
- Webhook reconciliation: payment/order status mapping and stock rules
- Redelivered notifications are not re-applied (no double decrement)
- Failures inside reconciliation roll back and answer 500
- Payment status lookups, payment methods and manual payments
"""

import hashlib
import hmac
import json
import time
from datetime import timedelta
from decimal import Decimal

import pytest

from storefront.errors import ExternalServiceError
from storefront.models import Order, Payment, Product
from storefront.services import gateway_service, order_service, payment_service
from storefront.services.gateway_service import GatewayPayment
from storefront.time_utils import utcnow

SESSION_ID = "cs_test_a1b2c3"


def place_order(user, product, quantity=1):
    return order_service.create_order(
        user.id,
        shipping_address="Av. Corrientes 1234",
        items=[{"product_id": product.id, "quantity": quantity}],
    )


def add_gateway_payment(db_session, order, external_id=SESSION_ID, status="pending"):
    payment = Payment(
        order_id=order.id,
        payment_method="stripe",
        amount=order.total,
        currency="ARS",
        status=status,
        external_id=external_id,
    )
    db_session.add(payment)
    db_session.commit()
    return payment


def fake_gateway_status(monkeypatch, status, payment_id="pi_test_123", amount_minor=None):
    """
    Make fetch_payment_status resolve references to `status`.

    `status` is either one status for every reference or a reference -> status
    dict. Returns the list of looked-up references.
    """
    calls = []

    def _fetch(reference):
        calls.append(reference)
        resolved = status[reference] if isinstance(status, dict) else status
        return GatewayPayment(
            reference=reference,
            status=resolved,
            payment_id=payment_id,
            amount_minor=amount_minor,
            currency="ars",
            raw={"id": reference, "resolved_status": resolved},
        )

    monkeypatch.setattr(gateway_service, "fetch_payment_status", _fetch)
    return calls


def webhook_event(reference=SESSION_ID, event_type="checkout.session.completed"):
    return {"id": "evt_test", "type": event_type, "data": {"object": {"id": reference, "object": "checkout.session"}}}


# =============================================================================
# PREFERENCE
# =============================================================================


class TestCreatePreference:

    @pytest.fixture
    def fake_checkout(self, monkeypatch):
        def _create(order, user):
            return {
                "preference_id": SESSION_ID,
                "init_point": f"https://checkout.stripe.com/c/pay/{SESSION_ID}",
                "back_urls": gateway_service.back_urls(order.id),
                "expires_at": utcnow() + timedelta(hours=24),
            }
        monkeypatch.setattr(gateway_service, "create_checkout_preference", _create)

    def test_creates_pending_payment(self, client, customer, customer_headers, product, db_session, fake_checkout):
        order = place_order(customer, product, quantity=2)

        resp = client.post("/api/payments/preference", json={"order_id": order.id}, headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json["preference_id"] == SESSION_ID
        assert resp.json["init_point"].startswith("https://checkout.stripe.com/")

        payment = db_session.query(Payment).filter_by(order_id=order.id).one()
        assert payment.status == "pending"
        assert payment.external_id == SESSION_ID
        assert payment.amount == Decimal("200.00")
        assert payment.currency == "ARS"
        assert payment.gateway_response["type"] == "checkout"

    def test_other_users_order_is_404(self, client, customer, other_headers, product, fake_checkout):
        order = place_order(customer, product)
        resp = client.post("/api/payments/preference", json={"order_id": order.id}, headers=other_headers)
        assert resp.status_code == 404

    def test_non_pending_order_is_rejected(self, client, customer, customer_headers, product, db_session, fake_checkout):
        order = place_order(customer, product)
        order.status = "paid"
        db_session.commit()

        resp = client.post("/api/payments/preference", json={"order_id": order.id}, headers=customer_headers)
        assert resp.status_code == 400
        assert db_session.query(Payment).count() == 0

    def test_gateway_failure_is_generic_502(self, client, customer, customer_headers, product, db_session, monkeypatch):
        def _boom(order, user):
            raise ExternalServiceError()
        monkeypatch.setattr(gateway_service, "create_checkout_preference", _boom)
        order = place_order(customer, product)

        resp = client.post("/api/payments/preference", json={"order_id": order.id}, headers=customer_headers)
        assert resp.status_code == 502
        assert resp.json == {"error": "Payment processing error"}
        assert db_session.query(Payment).count() == 0

    def test_order_id_required(self, client, customer_headers):
        assert client.post("/api/payments/preference", json={}, headers=customer_headers).status_code == 400


# =============================================================================
# WEBHOOK RECONCILIATION
# =============================================================================


class TestWebhook:

    def test_approved_payment_marks_order_paid_and_decrements_stock(
        self, client, customer, make_product, db_session, monkeypatch
    ):
        product = make_product(stock=5)
        order = place_order(customer, product, quantity=3)
        payment = add_gateway_payment(db_session, order)
        calls = fake_gateway_status(monkeypatch, "approved")

        resp = client.post("/api/payments/webhook", json=webhook_event())
        assert resp.status_code == 200
        assert resp.json == {"received": True}
        assert calls == [SESSION_ID]

        db_session.expire_all()
        payment = db_session.get(Payment, payment.id)
        order = db_session.get(Order, order.id)
        product = db_session.get(Product, product.id)
        assert payment.status == "approved"
        assert payment.gateway_response == {"id": SESSION_ID, "resolved_status": "approved"}
        assert order.status == "paid"
        assert order.payment_id == "pi_test_123"
        assert (product.stock, product.status) == (2, "available")

    @pytest.mark.parametrize(
        "quantity,expected_stock,expected_status",
        [
            (3, 2, "available"),
            (5, 0, "out_of_stock"),
            (7, 0, "out_of_stock"),
        ],
    )
    def test_stock_floors_at_zero(
        self, client, customer, make_product, db_session, monkeypatch, quantity, expected_stock, expected_status
    ):
        product = make_product(stock=5)
        order = place_order(customer, product, quantity=quantity)
        add_gateway_payment(db_session, order)
        fake_gateway_status(monkeypatch, "approved")

        client.post("/api/payments/webhook", json=webhook_event())

        db_session.expire_all()
        product = db_session.get(Product, product.id)
        assert (product.stock, product.status) == (expected_stock, expected_status)

    @pytest.mark.parametrize("stock,quantity", [(1, 1), (3, 1), (1, 4)])
    def test_unique_product_leaves_sale_after_one_payment(
        self, client, customer, make_product, db_session, monkeypatch, stock, quantity
    ):
        product = make_product(product_type="unique", stock=stock)
        order = place_order(customer, product, quantity=quantity)
        add_gateway_payment(db_session, order)
        fake_gateway_status(monkeypatch, "approved")

        client.post("/api/payments/webhook", json=webhook_event())

        db_session.expire_all()
        product = db_session.get(Product, product.id)
        assert (product.stock, product.status) == (0, "out_of_stock")

    def test_redelivered_approval_is_not_reapplied(self, client, customer, make_product, db_session, monkeypatch):
        product = make_product(stock=5)
        order = place_order(customer, product, quantity=2)
        add_gateway_payment(db_session, order)
        fake_gateway_status(monkeypatch, "approved")

        first = client.post("/api/payments/webhook", json=webhook_event())
        second = client.post("/api/payments/webhook", json=webhook_event(event_type="checkout.session.async_payment_succeeded"))
        assert first.status_code == second.status_code == 200

        db_session.expire_all()
        assert db_session.get(Product, product.id).stock == 3
        assert db_session.get(Order, order.id).status == "paid"

    @pytest.mark.parametrize("status", ["rejected", "cancelled"])
    def test_failed_payment_cancels_order_without_touching_stock(
        self, client, customer, make_product, db_session, monkeypatch, status
    ):
        product = make_product(stock=5)
        order = place_order(customer, product, quantity=2)
        payment = add_gateway_payment(db_session, order)
        fake_gateway_status(monkeypatch, status)

        resp = client.post("/api/payments/webhook", json=webhook_event(event_type="checkout.session.expired"))
        assert resp.status_code == 200

        db_session.expire_all()
        assert db_session.get(Payment, payment.id).status == status
        assert db_session.get(Order, order.id).status == "cancelled"
        product = db_session.get(Product, product.id)
        assert (product.stock, product.status) == (5, "available")

    def test_pending_result_leaves_order_pending(self, client, customer, product, db_session, monkeypatch):
        order = place_order(customer, product)
        payment = add_gateway_payment(db_session, order)
        fake_gateway_status(monkeypatch, "pending", payment_id=None)

        assert client.post("/api/payments/webhook", json=webhook_event()).status_code == 200

        db_session.expire_all()
        payment = db_session.get(Payment, payment.id)
        assert payment.status == "pending"
        assert payment.gateway_response["resolved_status"] == "pending"
        assert db_session.get(Order, order.id).status == "pending"

    def test_approval_after_cancelled_attempt_pays_order(self, client, customer, make_product, db_session, monkeypatch):
        product = make_product(stock=5)
        order = place_order(customer, product, quantity=2)
        first = add_gateway_payment(db_session, order, external_id="cs_first")
        second = add_gateway_payment(db_session, order, external_id="cs_second")
        fake_gateway_status(monkeypatch, {"cs_first": "cancelled", "cs_second": "approved"})

        client.post("/api/payments/webhook", json=webhook_event(reference="cs_first", event_type="checkout.session.expired"))
        db_session.expire_all()
        assert db_session.get(Order, order.id).status == "cancelled"

        resp = client.post("/api/payments/webhook", json=webhook_event(reference="cs_second"))
        assert resp.status_code == 200

        db_session.expire_all()
        assert db_session.get(Payment, first.id).status == "cancelled"
        assert db_session.get(Payment, second.id).status == "approved"
        assert db_session.get(Order, order.id).status == "paid"
        product = db_session.get(Product, product.id)
        assert (product.stock, product.status) == (3, "available")

    def test_second_approval_does_not_decrement_again(self, client, customer, make_product, db_session, monkeypatch):
        product = make_product(stock=5)
        order = place_order(customer, product, quantity=2)
        add_gateway_payment(db_session, order, external_id="cs_first")
        add_gateway_payment(db_session, order, external_id="cs_second")
        fake_gateway_status(monkeypatch, "approved")

        client.post("/api/payments/webhook", json=webhook_event(reference="cs_first"))
        client.post("/api/payments/webhook", json=webhook_event(reference="cs_second"))

        db_session.expire_all()
        assert db_session.get(Order, order.id).status == "paid"
        assert db_session.get(Product, product.id).stock == 3

    def test_approval_after_rejection_of_paid_order_keeps_single_decrement(
        self, client, customer, make_product, db_session, monkeypatch
    ):
        product = make_product(stock=5)
        order = place_order(customer, product, quantity=2)
        for ref in ("cs_a", "cs_b", "cs_c"):
            add_gateway_payment(db_session, order, external_id=ref)
        fake_gateway_status(monkeypatch, {"cs_a": "approved", "cs_b": "rejected", "cs_c": "approved"})

        for ref in ("cs_a", "cs_b", "cs_c"):
            assert client.post("/api/payments/webhook", json=webhook_event(reference=ref)).status_code == 200

        db_session.expire_all()
        assert db_session.get(Order, order.id).status == "paid"
        assert db_session.get(Product, product.id).stock == 3

    def test_rejected_payment_cancels_shipped_order(self, client, customer, make_product, db_session, monkeypatch):
        product = make_product(stock=5)
        order = place_order(customer, product, quantity=2)
        add_gateway_payment(db_session, order)
        order.status = "shipped"
        db_session.commit()
        fake_gateway_status(monkeypatch, "rejected")

        client.post("/api/payments/webhook", json=webhook_event())

        db_session.expire_all()
        assert db_session.get(Order, order.id).status == "cancelled"
        assert db_session.get(Product, product.id).stock == 5

    def test_approval_for_shipped_order_keeps_fulfilment_status(
        self, client, customer, make_product, db_session, monkeypatch
    ):
        product = make_product(stock=5)
        order = place_order(customer, product, quantity=2)
        add_gateway_payment(db_session, order)
        order.status = "shipped"
        db_session.commit()
        fake_gateway_status(monkeypatch, "approved")

        client.post("/api/payments/webhook", json=webhook_event())

        db_session.expire_all()
        assert db_session.get(Order, order.id).status == "shipped"
        assert db_session.get(Product, product.id).stock == 5

    def test_amount_mismatch_is_logged(self, client, customer, product, db_session, monkeypatch, caplog):
        order = place_order(customer, product, quantity=1)
        payment = add_gateway_payment(db_session, order)
        fake_gateway_status(monkeypatch, "approved", amount_minor=5000)

        client.post("/api/payments/webhook", json=webhook_event())

        assert f"Payment {payment.id}: gateway charged 5000 ars, expected 100.00" in caplog.text
        db_session.expire_all()
        assert db_session.get(Order, order.id).status == "paid"

    def test_matching_amount_is_not_logged(self, client, customer, product, db_session, monkeypatch, caplog):
        order = place_order(customer, product, quantity=1)
        add_gateway_payment(db_session, order)
        fake_gateway_status(monkeypatch, "approved", amount_minor=10000)

        client.post("/api/payments/webhook", json=webhook_event())

        assert "gateway charged" not in caplog.text

    def test_non_payment_event_is_acknowledged_without_lookup(self, client, db_session, monkeypatch):
        calls = fake_gateway_status(monkeypatch, "approved")
        resp = client.post("/api/payments/webhook", json=webhook_event(event_type="customer.created"))
        assert resp.status_code == 200
        assert calls == []

    def test_unknown_reference_is_acknowledged(self, client, db_session, monkeypatch):
        calls = fake_gateway_status(monkeypatch, "approved")
        resp = client.post("/api/payments/webhook", json=webhook_event(reference="cs_unknown"))
        assert resp.status_code == 200
        assert calls == []

    def test_gateway_lookup_failure_is_retryable_500(self, client, customer, product, db_session, monkeypatch):
        order = place_order(customer, product)
        payment = add_gateway_payment(db_session, order)

        def _down(reference):
            raise ExternalServiceError()
        monkeypatch.setattr(gateway_service, "fetch_payment_status", _down)

        resp = client.post("/api/payments/webhook", json=webhook_event())
        assert resp.status_code == 500
        db_session.expire_all()
        assert db_session.get(Payment, payment.id).status == "pending"

    def test_failure_mid_reconciliation_rolls_back(self, client, customer, make_product, db_session, monkeypatch):
        product = make_product(stock=5)
        order = place_order(customer, product, quantity=2)
        payment = add_gateway_payment(db_session, order)
        fake_gateway_status(monkeypatch, "approved")

        def _explode(order):
            raise RuntimeError("disk full")
        monkeypatch.setattr(payment_service, "_decrement_stock_for_order", _explode)

        resp = client.post("/api/payments/webhook", json=webhook_event())
        assert resp.status_code == 500
        assert resp.json == {"error": "Webhook processing failed"}

        db_session.expire_all()
        assert db_session.get(Payment, payment.id).status == "pending"
        assert db_session.get(Order, order.id).status == "pending"
        assert db_session.get(Product, product.id).stock == 5

    def test_malformed_body_is_400(self, client, db_session):
        resp = client.post("/api/payments/webhook", data="not json", content_type="application/json")
        assert resp.status_code == 400


class TestWebhookSignature:

    @staticmethod
    def _sign(payload: bytes, secret: str, timestamp: int | None = None) -> str:
        timestamp = timestamp or int(time.time())
        signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
        digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={digest}"

    def test_bad_signature_rejected(self, client, app, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "STRIPE_WEBHOOK_SECRET", "whsec_test")
        resp = client.post(
            "/api/payments/webhook",
            data=json.dumps(webhook_event()),
            content_type="application/json",
            headers={"Stripe-Signature": "t=1,v1=deadbeef"},
        )
        assert resp.status_code == 400

    def test_missing_signature_rejected(self, client, app, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "STRIPE_WEBHOOK_SECRET", "whsec_test")
        resp = client.post("/api/payments/webhook", json=webhook_event())
        assert resp.status_code == 400

    def test_valid_signature_accepted(self, client, app, customer, product, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "STRIPE_WEBHOOK_SECRET", "whsec_test")
        order = place_order(customer, product)
        add_gateway_payment(db_session, order)
        fake_gateway_status(monkeypatch, "approved")

        payload = json.dumps(webhook_event()).encode("utf-8")
        resp = client.post(
            "/api/payments/webhook",
            data=payload,
            content_type="application/json",
            headers={"Stripe-Signature": self._sign(payload, "whsec_test")},
        )
        assert resp.status_code == 200
        db_session.expire_all()
        assert db_session.get(Order, order.id).status == "paid"


# =============================================================================
# STATUS / METHODS / MANUAL
# =============================================================================


class TestPaymentStatus:

    def test_returns_latest_payment(self, client, customer, customer_headers, product, db_session):
        order = place_order(customer, product)
        old = add_gateway_payment(db_session, order, external_id="cs_old", status="cancelled")
        old.created_at = utcnow() - timedelta(hours=1)
        db_session.commit()
        latest = add_gateway_payment(db_session, order, external_id="cs_new")

        resp = client.get(f"/api/payments/status/{order.id}", headers=customer_headers)
        assert resp.status_code == 200
        body = resp.json
        assert body["payment_id"] == latest.id
        assert body["status"] == "pending"
        assert body["amount"] == "100.00"
        assert body["currency"] == "ARS"
        assert body["order_status"] == "pending"

    def test_other_users_order_is_404(self, client, customer, other_headers, product, db_session):
        order = place_order(customer, product)
        add_gateway_payment(db_session, order)
        assert client.get(f"/api/payments/status/{order.id}", headers=other_headers).status_code == 404

    def test_order_without_payments_is_404(self, client, customer, customer_headers, product):
        order = place_order(customer, product)
        assert client.get(f"/api/payments/status/{order.id}", headers=customer_headers).status_code == 404


class TestPaymentMethods:

    def test_lists_enabled_methods(self, client, db_session):
        methods = client.get("/api/payments/methods").json["methods"]
        assert [m["id"] for m in methods] == ["stripe", "transfer", "cash"]
        transfer = methods[1]
        assert transfer["bank_info"]["bank"] == "Banco Test"
        assert transfer["bank_info"]["alias"] == "STORE.TEST"

    def test_gateway_hidden_when_not_configured(self, client, app, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "STRIPE_SECRET_KEY", "")
        methods = client.get("/api/payments/methods").json["methods"]
        assert [m["id"] for m in methods] == ["transfer", "cash"]


class TestManualPayment:

    def test_transfer_creates_pending_payment(self, client, customer, customer_headers, product, db_session):
        order = place_order(customer, product)

        resp = client.post("/api/payments/manual", json={
            "order_id": order.id, "payment_method": "transfer", "payment_proof": "TRX-998877",
        }, headers=customer_headers)
        assert resp.status_code == 201
        assert resp.json["payment"]["status"] == "pending"

        payment = db_session.query(Payment).filter_by(order_id=order.id).one()
        assert payment.payment_method == "transfer"
        assert payment.gateway_response["type"] == "manual"
        assert payment.gateway_response["proof"] == "TRX-998877"
        assert payment.gateway_response["submitted_at"].endswith("Z")
        assert db_session.get(Order, order.id).status == "pending"

    def test_invalid_method_rejected(self, client, customer, customer_headers, product):
        order = place_order(customer, product)
        resp = client.post("/api/payments/manual", json={
            "order_id": order.id, "payment_method": "crypto",
        }, headers=customer_headers)
        assert resp.status_code == 400

    def test_non_pending_or_foreign_order_is_404(self, client, customer, customer_headers, other_headers, product, db_session):
        order = place_order(customer, product)
        foreign = client.post("/api/payments/manual", json={
            "order_id": order.id, "payment_method": "cash",
        }, headers=other_headers)
        assert foreign.status_code == 404

        order.status = "paid"
        db_session.commit()
        paid = client.post("/api/payments/manual", json={
            "order_id": order.id, "payment_method": "cash",
        }, headers=customer_headers)
        assert paid.status_code == 404


# =============================================================================
# END TO END
# =============================================================================


def test_checkout_to_paid_flow(client, customer_headers, make_product, db_session, monkeypatch):
    product = make_product(name="Console", price=Decimal("500.00"), stock=2)
    monkeypatch.setattr(gateway_service, "create_checkout_preference", lambda order, user: {
        "preference_id": SESSION_ID,
        "init_point": "https://checkout.stripe.com/c/pay/x",
        "back_urls": {},
        "expires_at": utcnow() + timedelta(hours=24),
    })
    fake_gateway_status(monkeypatch, "approved")

    client.post("/api/cart/add", json={"product_id": product.id, "quantity": 1}, headers=customer_headers)
    order_id = client.post("/api/orders", json={"shipping_address": "Home 1"}, headers=customer_headers).json["order"]["id"]
    client.post("/api/payments/preference", json={"order_id": order_id}, headers=customer_headers)
    client.post("/api/payments/webhook", json=webhook_event())

    status = client.get(f"/api/payments/status/{order_id}", headers=customer_headers).json
    assert status["status"] == "approved"
    assert status["order_status"] == "paid"
    db_session.expire_all()
    assert db_session.get(Product, product.id).stock == 1

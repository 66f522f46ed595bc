# Overview: Service-layer operations for payment; checkout preferences, webhook reconciliation and manual payments.

"""
Payment Workflow Service

WHY: Orders are paid outside the storefront (hosted checkout, bank
transfer, cash). This module records each attempt as a Payment row and
reconciles order status and stock when the gateway reports an outcome.

DESIGN PRINCIPLES:
- Webhook payloads are hints; the gateway is re-queried for the truth
- Payment status: pending -> approved | rejected | cancelled (terminal)
- Order status follows each resolved payment: approved -> paid, rejected/cancelled -> cancelled
- Stock is decremented once per order, when it first becomes paid
- Payment, order and stock writes of one notification commit together
"""

from __future__ import annotations

from flask import current_app

from ..errors import NotFoundError, StateError, ValidationError
from ..extensions import db
from ..models import Order, Payment, Product, User
from ..models.catalog import PRODUCT_AVAILABLE, PRODUCT_OUT_OF_STOCK, TYPE_UNIQUE
from ..models.orders import (
    ORDER_CANCELLED,
    ORDER_DELIVERED,
    ORDER_PAID,
    ORDER_PENDING,
    ORDER_SHIPPED,
    PAYMENT_APPROVED,
    PAYMENT_CANCELLED,
    PAYMENT_PENDING,
    PAYMENT_REJECTED,
    PAYMENT_TERMINAL_STATUSES,
)
from ..money import money_str, to_minor_units
from storefront.time_utils import to_utc_z, utcnow
from . import gateway_service
from .gateway_service import Notification
from .persistence import atomic, lock_for_update, run_with_retry
from .session_service import Principal


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_GATEWAY = "stripe"
METHOD_TRANSFER = "transfer"
METHOD_CASH = "cash"

MANUAL_METHODS = (METHOD_TRANSFER, METHOD_CASH)

# Gateway payment status -> order status (None = leave pending)
ORDER_STATUS_FOR_PAYMENT = {
    PAYMENT_APPROVED: ORDER_PAID,
    PAYMENT_REJECTED: ORDER_CANCELLED,
    PAYMENT_CANCELLED: ORDER_CANCELLED,
    PAYMENT_PENDING: None,
}

# Orders whose stock has already been taken; an approval leaves them as they are
ORDER_SETTLED_STATUSES = (ORDER_PAID, ORDER_SHIPPED, ORDER_DELIVERED)


def _owned_order(principal: Principal, order_id: str, *, lock: bool = False) -> Order:
    q = db.session.query(Order).filter_by(id=order_id, user_id=principal.id)
    if lock:
        q = lock_for_update(q)
    order = q.first()
    if not order:
        raise NotFoundError("Order not found")
    return order


# =============================================================================
# CHECKOUT PREFERENCE
# =============================================================================

def create_payment_preference(principal: Principal, order_id: str) -> dict:
    """
    Start a hosted-checkout payment for one of the caller's pending orders.

    Persists a pending Payment whose external_id is the gateway reference.

    Returns:
        {"preference_id", "init_point", "payment_id", "expires_at"}

    Raises:
        NotFoundError: order missing or owned by someone else
        StateError: order is not pending
        ExternalServiceError: gateway failure (generic message)
    """
    order = _owned_order(principal, order_id)
    if order.status != ORDER_PENDING:
        raise StateError("Order is not pending payment")

    user = db.session.get(User, principal.id)
    preference = gateway_service.create_checkout_preference(order, user)

    payment = Payment(
        order_id=order.id,
        payment_method=METHOD_GATEWAY,
        amount=order.total,
        currency=current_app.config["PAYMENT_CURRENCY"],
        status=PAYMENT_PENDING,
        external_id=preference["preference_id"],
        gateway_response={
            "type": "checkout",
            "preference_id": preference["preference_id"],
            "init_point": preference["init_point"],
            "expires_at": to_utc_z(preference["expires_at"]),
        },
    )
    db.session.add(payment)
    if not order.payment_method:
        order.payment_method = METHOD_GATEWAY
    db.session.commit()

    return {
        "preference_id": preference["preference_id"],
        "init_point": preference["init_point"],
        "payment_id": payment.id,
        "expires_at": to_utc_z(preference["expires_at"]),
    }


# =============================================================================
# WEBHOOK RECONCILIATION
# =============================================================================

def _apply_sale_to_stock(product: Product, quantity: int) -> None:
    """
    Stock effect of a paid order line.

    A unique item is gone after one sale whatever the quantity; counted
    items floor at zero.
    """
    if product.product_type == TYPE_UNIQUE:
        product.stock = 0
        product.status = PRODUCT_OUT_OF_STOCK
        return
    product.stock = max(0, (product.stock or 0) - quantity)
    product.status = PRODUCT_OUT_OF_STOCK if product.stock == 0 else PRODUCT_AVAILABLE


def _decrement_stock_for_order(order: Order) -> None:
    quantities: dict[str, int] = {}
    for item in order.items:
        quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity
    if not quantities:
        return

    products = lock_for_update(
        db.session.query(Product).filter(Product.id.in_(list(quantities))).order_by(Product.id)
    ).all()
    for product in products:
        _apply_sale_to_stock(product, quantities[product.id])


def _stock_already_taken(order: Order, payment: Payment) -> bool:
    """An order is sold once: it is past pending-payment or another attempt already succeeded."""
    if order.status in ORDER_SETTLED_STATUSES:
        return True
    return db.session.query(Payment.id).filter(
        Payment.order_id == order.id,
        Payment.id != payment.id,
        Payment.status == PAYMENT_APPROVED,
    ).first() is not None


def handle_webhook(notification: Notification) -> dict:
    """
    Reconcile one gateway notification.

    Steps:
        a. re-read the authoritative status from the gateway
        b. update the matching Payment (status + normalized payload)
        c. derive the order status from the payment status
        d. when the order first becomes paid, apply the sale to each product's stock
        e. write order status and gateway payment id

    b-e commit as one transaction. Unknown event types and references that
    match no Payment are acknowledged without changes. Any other failure
    propagates (after rollback) so the gateway retries.

    Returns a small summary dict for logging/tests.
    """
    if not notification.is_payment_event:
        current_app.logger.info("Ignoring webhook event type %s", notification.event_type)
        return {"processed": False, "reason": "ignored_event"}

    reference = notification.reference
    if not db.session.query(Payment.id).filter_by(external_id=reference).first():
        current_app.logger.warning("Webhook reference %s matches no payment", reference)
        return {"processed": False, "reason": "unknown_reference"}

    gateway_payment = gateway_service.fetch_payment_status(reference)

    def _op():
        with atomic():
            payment = lock_for_update(
                db.session.query(Payment).filter_by(external_id=reference)
            ).first()
            if not payment:
                return {"processed": False, "reason": "unknown_reference"}

            if payment.status in PAYMENT_TERMINAL_STATUSES:
                return {"processed": False, "reason": "already_final", "payment_status": payment.status}

            payment.status = gateway_payment.status
            payment.gateway_response = gateway_payment.raw
            charged = gateway_payment.amount_minor
            if charged is not None and charged != to_minor_units(payment.amount):
                current_app.logger.warning(
                    "Payment %s: gateway charged %s %s, expected %s",
                    payment.id, charged, gateway_payment.currency, money_str(payment.amount),
                )

            order = lock_for_update(db.session.query(Order).filter_by(id=payment.order_id)).first()
            target = ORDER_STATUS_FOR_PAYMENT.get(gateway_payment.status)

            if target == ORDER_PAID:
                if not _stock_already_taken(order, payment):
                    _decrement_stock_for_order(order)
                if order.status not in ORDER_SETTLED_STATUSES:
                    order.status = ORDER_PAID
            elif target:
                order.status = target

            if gateway_payment.payment_id:
                order.payment_id = gateway_payment.payment_id

            return {
                "processed": True,
                "payment_status": payment.status,
                "order_status": order.status,
                "order_id": order.id,
            }

    result = run_with_retry(_op)
    current_app.logger.info("Webhook %s for %s: %s", notification.event_type, reference, result)
    return result


# =============================================================================
# STATUS / METHODS / MANUAL PAYMENTS
# =============================================================================

def check_payment_status(principal: Principal, order_id: str) -> dict:
    """Latest payment attempt of one of the caller's orders."""
    order = _owned_order(principal, order_id)
    payment = (
        db.session.query(Payment)
        .filter_by(order_id=order.id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .first()
    )
    if not payment:
        raise NotFoundError("No payment found for this order")

    return {
        "payment_id": payment.id,
        "order_id": order.id,
        "status": payment.status,
        "payment_method": payment.payment_method,
        "amount": money_str(payment.amount),
        "currency": payment.currency,
        "external_id": payment.external_id,
        "order_status": order.status,
        "created_at": to_utc_z(payment.created_at),
        "updated_at": to_utc_z(payment.updated_at),
    }


def list_payment_methods() -> list[dict]:
    """Enabled payment methods; the gateway only when it is configured."""
    cfg = current_app.config
    methods = []
    if cfg.get("STRIPE_SECRET_KEY"):
        methods.append({
            "id": METHOD_GATEWAY,
            "name": "Credit / debit card",
            "description": "Pay on the secure hosted checkout page",
            "type": "gateway",
        })
    methods.append({
        "id": METHOD_TRANSFER,
        "name": "Bank transfer",
        "description": "Transfer the order total and submit the receipt",
        "type": "manual",
        "bank_info": {
            "bank": cfg.get("BANK_NAME") or None,
            "account": cfg.get("BANK_ACCOUNT") or None,
            "cbu": cfg.get("BANK_CBU") or None,
            "alias": cfg.get("BANK_ALIAS") or None,
        },
    })
    methods.append({
        "id": METHOD_CASH,
        "name": "Cash",
        "description": "Pay in cash on pickup or delivery",
        "type": "manual",
    })
    return methods


def submit_manual_payment(principal: Principal, order_id: str, method: str, proof=None) -> Payment:
    """
    Record a transfer/cash payment claim for a pending order.

    The payment stays pending until an administrator confirms it.
    """
    if method not in MANUAL_METHODS:
        raise ValidationError(f"payment_method must be one of {', '.join(MANUAL_METHODS)}")
    if proof is not None and not isinstance(proof, str):
        raise ValidationError("payment_proof must be a string")

    with atomic():
        order = _owned_order(principal, order_id, lock=True)
        if order.status != ORDER_PENDING:
            raise NotFoundError("Order not found or not pending")

        payment = Payment(
            order_id=order.id,
            payment_method=method,
            amount=order.total,
            currency=current_app.config["PAYMENT_CURRENCY"],
            status=PAYMENT_PENDING,
            gateway_response={
                "type": "manual",
                "proof": proof,
                "submitted_at": to_utc_z(utcnow()),
            },
        )
        db.session.add(payment)
        order.payment_method = method

    return payment

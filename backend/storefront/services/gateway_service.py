# Overview: Payment gateway adapter (Stripe Checkout); the only module that talks to the gateway.

"""
Payment Gateway Adapter

A "preference" is a Stripe Checkout Session: a gateway-hosted payment page
describing the order's items. Its id is the reference stored in
payments.external_id; its url is what the buyer is redirected to.

Webhook payloads are hints only. fetch_payment_status() re-reads the
session (with its PaymentIntent expanded) from Stripe and maps it onto the
storefront payment statuses: pending, approved, rejected, cancelled.

Gateway errors are logged in full and surfaced as a generic
ExternalServiceError.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import timedelta, timezone

import stripe
from flask import current_app

from ..errors import ExternalServiceError, ValidationError
from ..models import Order, User
from ..models.orders import PAYMENT_APPROVED, PAYMENT_CANCELLED, PAYMENT_PENDING, PAYMENT_REJECTED
from ..money import to_minor_units
from storefront.time_utils import utcnow

PAYMENT_EVENT_TYPES = frozenset({
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
    "checkout.session.async_payment_failed",
    "checkout.session.expired",
})

# PaymentIntent.status -> storefront payment status
INTENT_STATUS_MAP = {
    "succeeded": PAYMENT_APPROVED,
    "canceled": PAYMENT_CANCELLED,
    "processing": PAYMENT_PENDING,
    "requires_action": PAYMENT_PENDING,
    "requires_confirmation": PAYMENT_PENDING,
    "requires_capture": PAYMENT_PENDING,
}


@dataclass
class GatewayPayment:
    """Authoritative payment state as read back from the gateway."""
    reference: str
    status: str
    payment_id: str | None = None
    order_reference: str | None = None
    amount_minor: int | None = None
    currency: str | None = None
    raw: dict = field(default_factory=dict)


@dataclass
class Notification:
    """Webhook hint: event type plus the gateway reference it points at."""
    event_type: str | None
    reference: str | None

    @property
    def is_payment_event(self) -> bool:
        return self.event_type in PAYMENT_EVENT_TYPES and bool(self.reference)


def _api_key() -> str:
    key = current_app.config.get("STRIPE_SECRET_KEY")
    if not key:
        current_app.logger.error("STRIPE_SECRET_KEY is not configured")
        raise ExternalServiceError()
    return key


def _field(obj, name: str):
    """Read a field from a Stripe object or a plain dict."""
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def back_urls(order_id: str) -> dict:
    base = current_app.config["FRONTEND_URL"].rstrip("/")
    return {
        "success": f"{base}/payment/success?order_id={order_id}",
        "failure": f"{base}/payment/failure?order_id={order_id}",
        "pending": f"{base}/payment/pending?order_id={order_id}",
    }


def _absolute_image_url(image_url: str | None) -> list[str]:
    if not image_url:
        return []
    if image_url.startswith("http://") or image_url.startswith("https://"):
        return [image_url]
    return [f"{current_app.config['BACKEND_URL'].rstrip('/')}{image_url}"]


def _payment_intent_data(order: Order) -> dict:
    data = {"metadata": {"order_id": order.id}}
    descriptor = (current_app.config.get("STATEMENT_DESCRIPTOR") or "").strip()
    if descriptor:
        data["statement_descriptor_suffix"] = descriptor[:22]
    return data


def create_checkout_preference(order: Order, user: User) -> dict:
    """
    Create a hosted checkout for `order` and return its reference and URL.

    The session expires PREFERENCE_EXPIRY_HOURS after creation.

    Returns:
        {"preference_id", "init_point", "back_urls", "expires_at"}

    Raises:
        ExternalServiceError: gateway unreachable, misconfigured or rejected the request
    """
    currency = current_app.config["PAYMENT_CURRENCY"].lower()
    expires_at = utcnow() + timedelta(hours=current_app.config["PREFERENCE_EXPIRY_HOURS"])
    urls = back_urls(order.id)

    line_items = []
    for item in order.items:
        product_data = {"name": item.product.name if item.product else f"Product {item.product_id}"}
        images = _absolute_image_url(item.product.image_url if item.product else None)
        if images:
            product_data["images"] = images
        line_items.append({
            "price_data": {
                "currency": currency,
                "product_data": product_data,
                "unit_amount": to_minor_units(item.unit_price),
            },
            "quantity": item.quantity,
        })

    try:
        session = stripe.checkout.Session.create(
            api_key=_api_key(),
            mode="payment",
            line_items=line_items,
            customer_email=user.email,
            client_reference_id=order.id,
            metadata={
                "order_id": order.id,
                "user_id": user.id,
                "shipping_address": order.shipping_address[:500],
                "pending_url": urls["pending"],
            },
            payment_intent_data=_payment_intent_data(order),
            success_url=urls["success"],
            cancel_url=urls["failure"],
            expires_at=int(expires_at.replace(tzinfo=timezone.utc).timestamp()),
        )
    except stripe.StripeError as e:
        current_app.logger.error("Stripe checkout creation failed for order %s: %s", order.id, e)
        raise ExternalServiceError()

    return {
        "preference_id": _field(session, "id"),
        "init_point": _field(session, "url"),
        "back_urls": urls,
        "expires_at": expires_at,
    }


def _map_status(session) -> str:
    if _field(session, "status") == "expired":
        return PAYMENT_CANCELLED

    intent = _field(session, "payment_intent")
    intent_status = _field(intent, "status") if not isinstance(intent, str) else None
    if intent_status:
        if intent_status == "requires_payment_method":
            # The attempt failed; on a completed session no retry is possible
            return PAYMENT_REJECTED if _field(session, "status") == "complete" else PAYMENT_PENDING
        return INTENT_STATUS_MAP.get(intent_status, PAYMENT_PENDING)

    if _field(session, "payment_status") in ("paid", "no_payment_required"):
        return PAYMENT_APPROVED
    return PAYMENT_PENDING


def fetch_payment_status(reference: str) -> GatewayPayment:
    """
    Read the authoritative state of a checkout from the gateway.

    Raises ExternalServiceError if the gateway cannot be reached. Callers in
    the webhook path let it propagate so the gateway redelivers.
    """
    try:
        session = stripe.checkout.Session.retrieve(
            reference, api_key=_api_key(), expand=["payment_intent"]
        )
    except stripe.StripeError as e:
        current_app.logger.error("Stripe checkout lookup failed for %s: %s", reference, e)
        raise ExternalServiceError()

    intent = _field(session, "payment_intent")
    payment_id = intent if isinstance(intent, str) else _field(intent, "id")
    status = _map_status(session)

    raw = {
        "id": _field(session, "id"),
        "status": _field(session, "status"),
        "payment_status": _field(session, "payment_status"),
        "payment_intent": payment_id,
        "payment_intent_status": None if isinstance(intent, str) else _field(intent, "status"),
        "client_reference_id": _field(session, "client_reference_id"),
        "amount_total": _field(session, "amount_total"),
        "currency": _field(session, "currency"),
        "resolved_status": status,
        "fetched_at": utcnow().isoformat() + "Z",
    }

    return GatewayPayment(
        reference=reference,
        status=status,
        payment_id=payment_id,
        order_reference=_field(session, "client_reference_id"),
        amount_minor=_field(session, "amount_total"),
        currency=_field(session, "currency"),
        raw=raw,
    )


def parse_notification(payload: bytes, signature: str | None) -> Notification:
    """
    Turn a raw webhook body into a Notification.

    When STRIPE_WEBHOOK_SECRET is configured the Stripe-Signature header is
    verified first.

    Raises ValidationError for malformed payloads or bad signatures.
    """
    secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    if secret:
        if not signature:
            raise ValidationError("Missing Stripe-Signature header")
        try:
            stripe.Webhook.construct_event(payload=payload, sig_header=signature, secret=secret)
        except (stripe.SignatureVerificationError, ValueError) as e:
            current_app.logger.warning("Webhook signature verification failed: %s", e)
            raise ValidationError("Webhook signature verification failed")

    try:
        event = json.loads(payload or b"{}")
    except ValueError:
        raise ValidationError("Invalid JSON payload")
    if not isinstance(event, dict):
        raise ValidationError("Invalid JSON payload")

    data = event.get("data") or {}
    obj = data.get("object") if isinstance(data, dict) else None
    reference = obj.get("id") if isinstance(obj, dict) else None
    return Notification(event_type=event.get("type"), reference=reference)

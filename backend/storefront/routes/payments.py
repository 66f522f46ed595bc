# Overview: Flask API routes for payments operations; parses input and returns JSON responses.

# backend/storefront/routes/payments.py
"""
Payment API Routes

DESIGN:
- Hosted checkout: POST /preference returns the gateway page URL
- Gateway callbacks: POST /webhook (unauthenticated, signature-checked when
  STRIPE_WEBHOOK_SECRET is set)
- Manual payments (transfer/cash) are recorded as pending claims

WEBHOOK CONTRACT:
- 200 {"received": true} once the notification is handled (including no-ops)
- 400 for payloads that can never be processed (bad signature, bad JSON)
- 500 on any other failure so the gateway redelivers
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ExternalServiceError, InternalError, NotFoundError, StateError, ValidationError
from ..services import gateway_service
from ..services import payment_service
from ..decorators import require_auth


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/preference")
@require_auth
def create_preference_route():
    """
    Start a hosted checkout for a pending order of the caller.

    Request body:
    {
        "order_id": "..."
    }

    Returns:
        200: {"preference_id", "init_point", "payment_id", "expires_at"}
        400: order not pending / missing order_id
        404: order not found
        502: gateway failure
    """
    data = request.get_json(silent=True) or {}
    order_id = data.get("order_id")
    if not order_id:
        return jsonify({"error": "order_id required"}), 400

    try:
        result = payment_service.create_payment_preference(g.principal, order_id)
    except (NotFoundError, StateError, ExternalServiceError) as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create payment preference")
        return jsonify(InternalError().to_dict()), InternalError.status_code

    return jsonify(result), 200


@payments_bp.post("/webhook")
def webhook_route():
    """Gateway notification endpoint."""
    try:
        notification = gateway_service.parse_notification(
            request.get_data(), request.headers.get("Stripe-Signature")
        )
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    try:
        payment_service.handle_webhook(notification)
    except Exception:
        current_app.logger.exception("Failed to process payment webhook %s", notification.reference)
        return jsonify(InternalError("Webhook processing failed").to_dict()), InternalError.status_code

    return jsonify({"received": True}), 200


@payments_bp.get("/status/<order_id>")
@require_auth
def payment_status_route(order_id: str):
    try:
        status = payment_service.check_payment_status(g.principal, order_id)
    except NotFoundError as e:
        return jsonify(e.to_dict()), 404
    return jsonify(status), 200


@payments_bp.get("/methods")
def payment_methods_route():
    return jsonify({"methods": payment_service.list_payment_methods()}), 200


@payments_bp.post("/manual")
@require_auth
def manual_payment_route():
    """
    Record a bank transfer or cash payment claim.

    Request body:
    {
        "order_id": "...",
        "payment_method": "transfer" | "cash",
        "payment_proof": "receipt reference"  (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    order_id = data.get("order_id")
    if not order_id:
        return jsonify({"error": "order_id required"}), 400

    try:
        payment = payment_service.submit_manual_payment(
            g.principal,
            order_id,
            data.get("payment_method"),
            data.get("payment_proof"),
        )
    except (ValidationError, NotFoundError) as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record manual payment")
        return jsonify(InternalError().to_dict()), InternalError.status_code

    return jsonify({
        "message": "Payment submitted; it will be confirmed by our team",
        "payment": payment.to_dict(),
    }), 201

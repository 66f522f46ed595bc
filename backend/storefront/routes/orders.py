# Overview: Flask API routes for orders operations; parses input and returns JSON responses.

# backend/storefront/routes/orders.py
"""
Order routes.

Customers create and read their own orders. Status updates (fulfilment:
shipped, delivered, tracking numbers) are admin-only.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import InternalError, NotFoundError, ValidationError
from ..services import order_service
from ..decorators import require_auth, require_admin

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Create a pending order.

    Body:
    - shipping_address: required
    - items: optional list of {product_id, quantity}; the cart is used (and
      emptied) when omitted
    - payment_method: optional
    """
    data = request.get_json(silent=True) or {}

    try:
        order = order_service.create_order(
            g.principal.id,
            shipping_address=data.get("shipping_address"),
            items=data.get("items"),
            payment_method=data.get("payment_method"),
        )
    except (ValidationError, NotFoundError) as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify(InternalError().to_dict()), InternalError.status_code

    return jsonify({"message": "Order created successfully", "order": order.to_dict()}), 201


@orders_bp.get("")
@require_auth
def list_orders_route():
    orders = order_service.list_orders(g.principal)
    return jsonify({"orders": [o.to_dict() for o in orders]}), 200


@orders_bp.get("/<order_id>")
@require_auth
def get_order_route(order_id: str):
    try:
        order = order_service.get_order(g.principal, order_id)
    except NotFoundError as e:
        return jsonify(e.to_dict()), 404
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.put("/<order_id>/status")
@require_auth
@require_admin
def update_order_status_route(order_id: str):
    data = request.get_json(silent=True) or {}
    if not data.get("status"):
        return jsonify({"error": "status required"}), 400

    try:
        order = order_service.update_order_status(
            order_id,
            data["status"],
            tracking_number=data.get("tracking_number"),
            notes=data.get("notes"),
        )
    except (ValidationError, NotFoundError) as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"message": "Order status updated", "order": order.to_dict()}), 200

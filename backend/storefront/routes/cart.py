# Overview: Flask API routes for cart operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..errors import NotFoundError, ValidationError
from ..services import cart_service
from ..decorators import require_auth

cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


@cart_bp.get("")
@require_auth
def get_cart_route():
    return jsonify(cart_service.get_cart(g.principal.id)), 200


@cart_bp.post("/add")
@require_auth
def add_to_cart_route():
    """Add a product; an existing line for the same product is incremented."""
    data = request.get_json(silent=True) or {}
    product_id = data.get("product_id")
    if not product_id:
        return jsonify({"error": "product_id required"}), 400

    try:
        item = cart_service.add_to_cart(g.principal.id, product_id, data.get("quantity", 1))
    except (ValidationError, NotFoundError) as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"message": "Product added to cart", "item": item.to_dict()}), 200


@cart_bp.put("/update")
@require_auth
def update_cart_route():
    """Set a line's quantity; quantity <= 0 removes the line."""
    data = request.get_json(silent=True) or {}
    product_id = data.get("product_id")
    if not product_id or "quantity" not in data:
        return jsonify({"error": "product_id and quantity required"}), 400

    try:
        item = cart_service.update_cart_item(g.principal.id, product_id, data["quantity"])
    except (ValidationError, NotFoundError) as e:
        return jsonify(e.to_dict()), e.status_code

    if item is None:
        return jsonify({"message": "Product removed from cart", "item": None}), 200
    return jsonify({"message": "Cart updated", "item": item.to_dict()}), 200


@cart_bp.delete("/remove/<product_id>")
@require_auth
def remove_from_cart_route(product_id: str):
    try:
        cart_service.remove_from_cart(g.principal.id, product_id)
    except NotFoundError as e:
        return jsonify(e.to_dict()), 404
    return jsonify({"message": "Product removed from cart"}), 200


@cart_bp.delete("/clear")
@require_auth
def clear_cart_route():
    removed = cart_service.clear_cart(g.principal.id)
    return jsonify({"message": "Cart cleared", "removed": removed}), 200

# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/storefront/routes/products.py
"""
Catalog routes.

Reads are public; discontinued products are only visible to administrators.
Writes (create, update, delete, image upload) require an
authenticated administrator.
"""
from flask import Blueprint, request, jsonify, current_app, g

from ..services import products_service
from ..errors import InternalError, NotFoundError
from ..models import Product
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
    ConflictError,
)
from ..decorators import optional_auth, require_auth, require_admin

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=products_service.PRODUCT_MUTABLE_FIELDS,
    required_on_create=frozenset({"name", "price"}),
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _caller_is_admin() -> bool:
    return g.principal is not None and g.principal.is_admin


def _parse_bool(value: str | None) -> bool | None:
    if value is None or value == "":
        return None
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes"):
        return True
    if lowered in ("0", "false", "no"):
        return False
    raise ValidationError("featured must be true or false")


@products_bp.get("")
@optional_auth
def list_products_route():
    """
    List products.

    Query params:
    - category: category slug
    - type: product_type
    - status: product status, or "all" (default available; discontinued
      products are excluded unless the caller is an admin)
    - featured: true/false
    - search: substring of name or description
    - sort_by / sort_order: whitelisted column, asc/desc
    - page / limit: pagination (default 1 / 12, max limit 100)
    """
    args = request.args
    try:
        result = products_service.list_products(
            category=args.get("category"),
            product_type=args.get("type"),
            status=args.get("status", "available"),
            featured=_parse_bool(args.get("featured")),
            search=args.get("search"),
            sort_by=args.get("sort_by"),
            sort_order=args.get("sort_order"),
            page=args.get("page"),
            limit=args.get("limit"),
            include_discontinued=_caller_is_admin(),
        )
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    return jsonify(result), 200


@products_bp.get("/categories")
def list_categories_route():
    return jsonify({"categories": products_service.list_categories()}), 200


@products_bp.get("/<product_id>")
@optional_auth
def get_product_route(product_id: str):
    try:
        product = products_service.get_product(product_id, include_discontinued=_caller_is_admin())
    except NotFoundError as e:
        return jsonify(e.to_dict()), 404
    return jsonify({"product": product.to_dict()}), 200


@products_bp.post("")
@require_auth
@require_admin
def create_product_route():
    """Create a product. name and price are required."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    try:
        created = products_service.create_product(patch=patch)
    except (ConflictError, ValidationError) as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"message": "Product created successfully", "product": created}), 201


@products_bp.put("/<product_id>")
@require_auth
@require_admin
def update_product_route(product_id: str):
    """Sparse update; unknown fields and empty patches are rejected."""
    payload = request.get_json(silent=True)

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    try:
        updated = products_service.update_product(product_id=product_id, patch=patch)
    except (ConflictError, ValidationError, NotFoundError) as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"message": "Product updated successfully", "product": updated}), 200


@products_bp.delete("/<product_id>")
@require_auth
@require_admin
def delete_product_route(product_id: str):
    try:
        products_service.delete_product(product_id=product_id)
    except (ConflictError, NotFoundError) as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"message": "Product deleted successfully"}), 200


@products_bp.post("/upload-image")
@require_auth
@require_admin
def upload_image_route():
    """Multipart upload (field `image`). Returns the public image_url."""
    try:
        image_url = products_service.save_product_image(request.files.get("image"))
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except OSError:
        current_app.logger.exception("Failed to store product image")
        return jsonify(InternalError().to_dict()), InternalError.status_code

    return jsonify({"message": "Image uploaded successfully", "image_url": image_url}), 201

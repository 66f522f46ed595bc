# backend/storefront/services/products_service.py
"""
Catalog Service

Products and categories. Reads are public; writes are admin-only (enforced
by the routes). Patches arriving here have already been validated against
PRODUCT_POLICY, so only enumerated mutable columns can be written.
"""
from __future__ import annotations

import os
import uuid

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from werkzeug.utils import secure_filename

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import CartItem, Category, OrderItem, Product
from ..models.catalog import (
    PRODUCT_AVAILABLE,
    PRODUCT_DISCONTINUED,
    PRODUCT_OUT_OF_STOCK,
    PRODUCT_STATUSES,
    PRODUCT_TYPES,
    TYPE_UNIQUE,
)

PRODUCT_MUTABLE_FIELDS = frozenset({
    "name", "description", "price", "category_id", "image_url", "status",
    "product_type", "stock", "sku", "weight", "dimensions", "is_featured",
})

SORTABLE_COLUMNS = {
    "created_at": Product.created_at,
    "updated_at": Product.updated_at,
    "name": Product.name,
    "price": Product.price,
    "stock": Product.stock,
}

DEFAULT_PAGE_SIZE = 12
MAX_PAGE_SIZE = 100
IMAGE_URL_PREFIX = "/uploads/products/"


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def sync_stock_status(p: Product, *, status_explicit: bool = False) -> None:
    """
    Keep status consistent with stock for counted (non-unique) products.

    Discontinued products and explicitly requested statuses are left alone.
    """
    if status_explicit or p.product_type == TYPE_UNIQUE or p.status not in (PRODUCT_AVAILABLE, PRODUCT_OUT_OF_STOCK):
        return
    p.status = PRODUCT_OUT_OF_STOCK if (p.stock or 0) == 0 else PRODUCT_AVAILABLE


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _positive_int(value, default: int, field: str) -> int:
    if value in (None, ""):
        return default
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")
    if n < 1:
        raise ValidationError(f"{field} must be >= 1")
    return n


def list_products(
    *,
    category: str | None = None,
    product_type: str | None = None,
    status: str | None = PRODUCT_AVAILABLE,
    featured: bool | None = None,
    search: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    page=None,
    limit=None,
    include_discontinued: bool = True,
) -> dict:
    """
    Filtered, sorted, paginated product listing.

    Args:
        category: category slug
        product_type: one of PRODUCT_TYPES
        status: one of PRODUCT_STATUSES, or "all" to disable the filter
        featured: filter on is_featured when not None
        search: case-insensitive substring over name and description
        sort_by: whitelisted column name (default created_at)
        sort_order: "asc" or "desc" (default desc)
        page: 1-indexed page number (default 1)
        limit: page size (default 12, max 100)
        include_discontinued: False hides discontinued products whatever the
            status filter (anonymous and customer callers)

    Returns:
        Dict with 'items' and 'pagination' metadata.
    """
    page = _positive_int(page, 1, "page")
    limit = min(_positive_int(limit, DEFAULT_PAGE_SIZE, "limit"), MAX_PAGE_SIZE)

    sort_key = sort_by or "created_at"
    if sort_key not in SORTABLE_COLUMNS:
        raise ValidationError(f"sort_by must be one of {', '.join(sorted(SORTABLE_COLUMNS))}")
    direction = (sort_order or "desc").lower()
    if direction not in ("asc", "desc"):
        raise ValidationError("sort_order must be asc or desc")

    q = db.session.query(Product).outerjoin(Category, Product.category_id == Category.id)

    if status and status != "all":
        if status not in PRODUCT_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(PRODUCT_STATUSES)} or all")
        q = q.filter(Product.status == status)
    if not include_discontinued:
        q = q.filter(Product.status != PRODUCT_DISCONTINUED)

    if category:
        q = q.filter(Category.slug == category)

    if product_type:
        if product_type not in PRODUCT_TYPES:
            raise ValidationError(f"type must be one of {', '.join(PRODUCT_TYPES)}")
        q = q.filter(Product.product_type == product_type)

    if featured is not None:
        q = q.filter(Product.is_featured.is_(featured))

    if search:
        pattern = f"%{_escape_like(search.strip())}%"
        q = q.filter(or_(
            Product.name.ilike(pattern, escape="\\"),
            Product.description.ilike(pattern, escape="\\"),
        ))

    total = q.count()
    total_pages = (total + limit - 1) // limit if total > 0 else 1

    column = SORTABLE_COLUMNS[sort_key]
    ordering = column.asc() if direction == "asc" else column.desc()
    products = q.order_by(ordering, Product.id.asc()).offset((page - 1) * limit).limit(limit).all()

    return {
        "items": [p.to_dict() for p in products],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": total_pages,
            "has_next": page * limit < total,
            "has_prev": page > 1,
        },
    }


def get_product(product_id: str, *, include_discontinued: bool = True) -> Product:
    product = db.session.get(Product, product_id)
    if not product or (not include_discontinued and product.status == PRODUCT_DISCONTINUED):
        raise NotFoundError("Product not found")
    return product


def _check_category(patch: dict) -> None:
    category_id = patch.get("category_id")
    if category_id and not db.session.get(Category, category_id):
        raise ValidationError("Category not found")


def _check_sku(sku: str | None, exclude_id: str | None = None) -> None:
    if not sku:
        return
    q = db.session.query(Product).filter(Product.sku == sku)
    if exclude_id:
        q = q.filter(Product.id != exclude_id)
    if q.first():
        raise ConflictError("SKU already exists")


def create_product(*, patch: dict) -> dict:
    """
    Create product using a validated patch dict.

    Raises:
        ValidationError: unknown category
        ConflictError: SKU already used by another product
    """
    _check_category(patch)
    _check_sku(patch.get("sku"))

    p = Product()
    apply_product_patch(p, patch)
    if p.stock is None:
        p.stock = 0
    if p.product_type is None:
        p.product_type = "normal"
    if p.status is None:
        p.status = PRODUCT_AVAILABLE
    sync_stock_status(p, status_explicit="status" in patch)

    db.session.add(p)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("SKU already exists")
    return p.to_dict()


def update_product(*, product_id: str, patch: dict) -> dict:
    """Apply a sparse validated patch; only the provided columns are written."""
    p = get_product(product_id)
    _check_category(patch)
    if "sku" in patch:
        _check_sku(patch["sku"], exclude_id=p.id)

    apply_product_patch(p, patch)
    if "stock" in patch or "product_type" in patch:
        sync_stock_status(p, status_explicit="status" in patch)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("SKU already exists")
    return p.to_dict()


def delete_product(*, product_id: str) -> None:
    """
    Delete a product and best-effort remove its uploaded image.

    Products referenced by orders cannot be deleted (their line snapshots
    must survive); mark them discontinued instead.
    """
    p = get_product(product_id)

    if db.session.query(OrderItem.id).filter_by(product_id=p.id).first():
        raise ConflictError("Product has orders; set status to discontinued instead")

    image_url = p.image_url
    db.session.query(CartItem).filter_by(product_id=p.id).delete(synchronize_session=False)
    db.session.delete(p)
    db.session.commit()

    if image_url:
        remove_image_file(image_url)


# =============================================================================
# IMAGES
# =============================================================================

def upload_folder() -> str:
    folder = current_app.config["UPLOAD_FOLDER"]
    if not os.path.isabs(folder):
        folder = os.path.join(current_app.instance_path, folder)
    return folder


def save_product_image(file_storage) -> str:
    """
    Store an uploaded image and return its public URL.

    Accepts only image/* uploads up to MAX_IMAGE_BYTES.
    """
    if file_storage is None or not file_storage.filename:
        raise ValidationError("image file required")
    if not (file_storage.mimetype or "").startswith("image/"):
        raise ValidationError("Only image files are allowed")

    data = file_storage.read()
    if len(data) > current_app.config["MAX_IMAGE_BYTES"]:
        raise ValidationError("Image exceeds maximum size")

    _, ext = os.path.splitext(secure_filename(file_storage.filename))
    filename = f"product-{uuid.uuid4().hex}{ext.lower()}"

    folder = upload_folder()
    os.makedirs(folder, exist_ok=True)
    with open(os.path.join(folder, filename), "wb") as fh:
        fh.write(data)

    return f"{IMAGE_URL_PREFIX}{filename}"


def remove_image_file(image_url: str) -> bool:
    """
    Remove a stored product image. Failures are logged, never raised.

    Only files inside the upload folder are touched.
    """
    if not image_url.startswith(IMAGE_URL_PREFIX):
        return False
    path = os.path.join(upload_folder(), os.path.basename(image_url))
    try:
        os.remove(path)
        return True
    except OSError:
        current_app.logger.warning("Failed to remove product image %s", path, exc_info=True)
        return False


# =============================================================================
# CATEGORIES
# =============================================================================

def list_categories() -> list[dict]:
    categories = db.session.query(Category).order_by(Category.name.asc()).all()
    return [c.to_dict() for c in categories]


def ensure_category(name: str, slug: str, description: str | None = None) -> Category:
    """Create a category if its slug is not taken yet (idempotent)."""
    category = db.session.query(Category).filter_by(slug=slug).first()
    if category:
        return category
    category = Category(name=name, slug=slug, description=description)
    db.session.add(category)
    db.session.commit()
    return category

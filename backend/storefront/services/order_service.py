# Overview: Service-layer operations for orders; creation from cart or explicit lines, reads, admin status updates.

"""
Order Service

WHY: An order is a document snapshot. Lines copy the product's price at
creation time so later catalog edits never change what the customer owes.

Stock is neither checked nor reserved here. It moves only when a payment
for the order is approved (see payment_service.handle_webhook).
"""

from __future__ import annotations

from decimal import Decimal

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import CartItem, Order, OrderItem, Product
from ..models.orders import ORDER_PENDING, ORDER_STATUSES
from ..validation import require_positive_int
from .persistence import atomic
from .session_service import Principal


def _normalize_lines(items) -> list[tuple[str, int]]:
    if not isinstance(items, list) or not items:
        raise ValidationError("Order must contain at least one item")

    merged: dict[str, int] = {}
    for raw in items:
        if not isinstance(raw, dict):
            raise ValidationError("Each item must be an object with product_id and quantity")
        product_id = raw.get("product_id")
        if not product_id or not isinstance(product_id, str):
            raise ValidationError("product_id required for each item")
        quantity = require_positive_int(raw.get("quantity"), "quantity")
        merged[product_id] = merged.get(product_id, 0) + quantity
    return list(merged.items())


def _cart_lines(user_id: str) -> list[tuple[str, int]]:
    rows = (
        db.session.query(CartItem)
        .filter_by(user_id=user_id)
        .order_by(CartItem.created_at.asc(), CartItem.id.asc())
        .all()
    )
    if not rows:
        raise ValidationError("Order must contain at least one item")
    return [(row.product_id, row.quantity) for row in rows]


def create_order(
    user_id: str,
    *,
    shipping_address,
    items=None,
    payment_method: str | None = None,
) -> Order:
    """
    Create a pending order with its lines in one transaction.

    Args:
        user_id: owner
        shipping_address: required, non-blank
        items: list of {"product_id", "quantity"}; when None the user's cart
            is used and cleared in the same transaction
        payment_method: optional free-form hint ("stripe", "transfer", ...)

    Raises:
        ValidationError: no items, bad quantity, missing address
        NotFoundError: a referenced product does not exist
    """
    if not isinstance(shipping_address, str) or not shipping_address.strip():
        raise ValidationError("Shipping address is required")
    if payment_method is not None and not isinstance(payment_method, str):
        raise ValidationError("payment_method must be a string")

    from_cart = items is None
    lines = _cart_lines(user_id) if from_cart else _normalize_lines(items)

    with atomic():
        order = Order(
            user_id=user_id,
            status=ORDER_PENDING,
            total=Decimal("0.00"),
            shipping_address=shipping_address.strip(),
            payment_method=(payment_method or None),
        )
        db.session.add(order)

        total = Decimal("0.00")
        for product_id, quantity in lines:
            product = db.session.get(Product, product_id)
            if not product:
                raise NotFoundError(f"Product {product_id} not found")

            line_total = product.price * quantity
            total += line_total
            order.items.append(OrderItem(
                product_id=product.id,
                quantity=quantity,
                unit_price=product.price,
                total_price=line_total,
            ))

        order.total = total

        if from_cart:
            db.session.query(CartItem).filter_by(user_id=user_id).delete(synchronize_session=False)

    return order


def list_orders(principal: Principal) -> list[Order]:
    """Caller's own orders, newest first."""
    return (
        db.session.query(Order)
        .filter_by(user_id=principal.id)
        .order_by(Order.created_at.desc(), Order.id.asc())
        .all()
    )


def get_order(principal: Principal, order_id: str) -> Order:
    """Owner-scoped read; admins can see any order. Invisible orders are 404."""
    order = db.session.get(Order, order_id)
    if not order or (order.user_id != principal.id and not principal.is_admin):
        raise NotFoundError("Order not found")
    return order


def update_order_status(
    order_id: str,
    status: str,
    tracking_number: str | None = None,
    notes: str | None = None,
) -> Order:
    """Admin write of fulfilment fields. Any valid status is accepted."""
    if status not in ORDER_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(ORDER_STATUSES)}")
    for field, value in (("tracking_number", tracking_number), ("notes", notes)):
        if value is not None and not isinstance(value, str):
            raise ValidationError(f"{field} must be a string")

    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found")

    order.status = status
    if tracking_number is not None:
        order.tracking_number = tracking_number.strip() or None
    if notes is not None:
        order.notes = notes
    db.session.commit()
    return order

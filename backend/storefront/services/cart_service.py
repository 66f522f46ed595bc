# Overview: Service-layer operations for the shopping cart.

"""
Cart Service

One row per (user, product). Adding a product that is already in the cart
increments the existing row instead of inserting a duplicate; the unique
constraint on cart_items backs this up at the storage layer.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import CartItem, Product
from ..money import money_str
from ..validation import require_positive_int
from .persistence import lock_for_update


def get_cart_items(user_id: str) -> list[CartItem]:
    return (
        db.session.query(CartItem)
        .filter_by(user_id=user_id)
        .order_by(CartItem.created_at.asc(), CartItem.id.asc())
        .all()
    )


def get_cart(user_id: str) -> dict:
    """Cart contents with per-line subtotal, cart total and item count."""
    items = get_cart_items(user_id)
    total = sum((i.product.price * i.quantity for i in items if i.product), Decimal("0"))
    return {
        "items": [i.to_dict() for i in items],
        "total": money_str(total),
        "item_count": sum(i.quantity for i in items),
    }


def add_to_cart(user_id: str, product_id: str, quantity=1) -> CartItem:
    """
    Add `quantity` units of a product, merging with an existing row.

    Raises NotFoundError if the product does not exist.
    """
    quantity = require_positive_int(quantity, "quantity")
    if not db.session.get(Product, product_id):
        raise NotFoundError("Product not found")

    item = lock_for_update(
        db.session.query(CartItem).filter_by(user_id=user_id, product_id=product_id)
    ).first()
    if item:
        item.quantity += quantity
    else:
        item = CartItem(user_id=user_id, product_id=product_id, quantity=quantity)
        db.session.add(item)

    try:
        db.session.commit()
    except IntegrityError:
        # A concurrent add inserted the row first; fold into it
        db.session.rollback()
        item = db.session.query(CartItem).filter_by(user_id=user_id, product_id=product_id).one()
        item.quantity += quantity
        db.session.commit()
    return item


def update_cart_item(user_id: str, product_id: str, quantity) -> CartItem | None:
    """
    Set the quantity of a cart line. Quantity <= 0 removes the line.

    Returns the updated item, or None when it was removed.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")

    item = db.session.query(CartItem).filter_by(user_id=user_id, product_id=product_id).first()
    if not item:
        raise NotFoundError("Product not in cart")

    if quantity <= 0:
        db.session.delete(item)
        db.session.commit()
        return None

    item.quantity = quantity
    db.session.commit()
    return item


def remove_from_cart(user_id: str, product_id: str) -> None:
    deleted = db.session.query(CartItem).filter_by(user_id=user_id, product_id=product_id).delete(
        synchronize_session=False
    )
    if not deleted:
        db.session.rollback()
        raise NotFoundError("Product not in cart")
    db.session.commit()


def clear_cart(user_id: str, *, commit: bool = True) -> int:
    """Delete all cart rows of the user. Returns count deleted."""
    deleted = db.session.query(CartItem).filter_by(user_id=user_id).delete(synchronize_session=False)
    if commit:
        db.session.commit()
    return deleted

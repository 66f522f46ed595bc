from __future__ import annotations

from ..extensions import db
from storefront.money import money_str
from storefront.time_utils import to_utc_z, utcnow
from .users import new_id, check_in

ORDER_PENDING = "pending"
ORDER_PAID = "paid"
ORDER_SHIPPED = "shipped"
ORDER_DELIVERED = "delivered"
ORDER_CANCELLED = "cancelled"
ORDER_STATUSES = (ORDER_PENDING, ORDER_PAID, ORDER_SHIPPED, ORDER_DELIVERED, ORDER_CANCELLED)

PAYMENT_PENDING = "pending"
PAYMENT_APPROVED = "approved"
PAYMENT_REJECTED = "rejected"
PAYMENT_CANCELLED = "cancelled"
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_APPROVED, PAYMENT_REJECTED, PAYMENT_CANCELLED)
PAYMENT_TERMINAL_STATUSES = (PAYMENT_APPROVED, PAYMENT_REJECTED, PAYMENT_CANCELLED)


class Order(db.Model):
    """
    Customer order document.

    Lines and total are a snapshot taken at creation time. After that only
    status, payment_id, tracking_number and notes change.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.CheckConstraint("total >= 0", name="ck_orders_total_nonneg"),
        db.CheckConstraint(check_in("status", ORDER_STATUSES), name="ck_orders_status"),
        db.Index("ix_orders_user", "user_id"),
        db.Index("ix_orders_status", "status"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=ORDER_PENDING)
    total = db.Column(db.Numeric(12, 2), nullable=False)
    shipping_address = db.Column(db.Text, nullable=False)
    payment_method = db.Column(db.String(50), nullable=True)

    # Gateway-side payment identifier, written by the webhook
    payment_id = db.Column(db.String(100), nullable=True)
    tracking_number = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    user = db.relationship("User", backref=db.backref("orders", lazy=True, passive_deletes=True))
    items = db.relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.created_at"
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "status": self.status,
            "total": money_str(self.total),
            "shipping_address": self.shipping_address,
            "payment_method": self.payment_method,
            "payment_id": self.payment_id,
            "tracking_number": self.tracking_number,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """Individual line on an order; prices are frozen at order time."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_qty_pos"),
        db.CheckConstraint("unit_price >= 0", name="ck_order_items_unit_nonneg"),
        db.CheckConstraint("total_price >= 0", name="ck_order_items_total_nonneg"),
        db.Index("ix_order_items_order", "order_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    total_price = db.Column(db.Numeric(12, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    order = db.relationship("Order", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "total_price": money_str(self.total_price),
            "created_at": to_utc_z(self.created_at),
        }


class Payment(db.Model):
    """
    One payment attempt against an order.

    Gateway attempts start pending with external_id = checkout session id and
    are moved to a terminal status by the webhook. Manual (transfer/cash)
    submissions stay pending until reconciled by an administrator.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount >= 0", name="ck_payments_amount_nonneg"),
        db.CheckConstraint(check_in("status", PAYMENT_STATUSES), name="ck_payments_status"),
        db.Index("ix_payments_order", "order_id"),
        db.Index("ix_payments_external_id", "external_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    payment_method = db.Column(db.String(50), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="ARS")
    status = db.Column(db.String(20), nullable=False, default=PAYMENT_PENDING)
    external_id = db.Column(db.String(255), nullable=True)

    # Raw (normalized) gateway payload, kept for audit
    gateway_response = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    order = db.relationship("Order", backref=db.backref("payments", lazy=True, passive_deletes=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "payment_method": self.payment_method,
            "amount": money_str(self.amount),
            "currency": self.currency,
            "status": self.status,
            "external_id": self.external_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CartItem(db.Model):
    """One product in a user's cart; at most one row per (user, product)."""
    __tablename__ = "cart_items"
    __table_args__ = (
        db.UniqueConstraint("user_id", "product_id", name="uq_cart_items_user_product"),
        db.CheckConstraint("quantity > 0", name="ck_cart_items_qty_pos"),
        db.Index("ix_cart_user", "user_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product", backref=db.backref("cart_items", lazy=True, passive_deletes=True))

    def to_dict(self) -> dict:
        product = self.product
        subtotal = product.price * self.quantity if product else None
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "product": product.to_dict() if product else None,
            "subtotal": money_str(subtotal),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

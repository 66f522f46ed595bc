from __future__ import annotations

from ..extensions import db
from storefront.money import money_str
from storefront.time_utils import to_utc_z, utcnow
from .users import new_id, check_in

PRODUCT_AVAILABLE = "available"
PRODUCT_OUT_OF_STOCK = "out_of_stock"
PRODUCT_DISCONTINUED = "discontinued"
PRODUCT_STATUSES = (PRODUCT_AVAILABLE, PRODUCT_OUT_OF_STOCK, PRODUCT_DISCONTINUED)

TYPE_NORMAL = "normal"
TYPE_OFFER = "offer"
TYPE_NEW = "new"
TYPE_USED = "used"
TYPE_UNIQUE = "unique"
PRODUCT_TYPES = (TYPE_NORMAL, TYPE_OFFER, TYPE_NEW, TYPE_USED, TYPE_UNIQUE)


class Category(db.Model):
    __tablename__ = "categories"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(50), nullable=False, unique=True)
    slug = db.Column(db.String(50), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Sellable catalog item.

    STOCK RULES:
    - stock never goes below zero (CHECK constraint)
    - stock == 0 means out_of_stock, except for discontinued items
    - product_type 'unique' is a single physical unit: selling it once
      removes it from sale regardless of the ordered quantity

    SKU is optional but unique when present (NULLs do not collide).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("price >= 0", name="ck_products_price_nonneg"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_nonneg"),
        db.CheckConstraint(check_in("status", PRODUCT_STATUSES), name="ck_products_status"),
        db.CheckConstraint(check_in("product_type", PRODUCT_TYPES), name="ck_products_type"),
        db.Index("ix_products_category", "category_id"),
        db.Index("ix_products_status", "status"),
        db.Index("ix_products_featured", "is_featured"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price = db.Column(db.Numeric(12, 2), nullable=False)

    category_id = db.Column(
        db.String(36), db.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )
    image_url = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(20), nullable=False, default=PRODUCT_AVAILABLE)
    product_type = db.Column(db.String(20), nullable=False, default=TYPE_NORMAL)
    stock = db.Column(db.Integer, nullable=False, default=0)
    sku = db.Column(db.String(50), nullable=True, unique=True)

    weight = db.Column(db.Numeric(8, 2), nullable=True)
    dimensions = db.Column(db.JSON, nullable=True)
    is_featured = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    category = db.relationship("Category", backref=db.backref("products", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": money_str(self.price),
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "category_slug": self.category.slug if self.category else None,
            "image_url": self.image_url,
            "status": self.status,
            "product_type": self.product_type,
            "stock": self.stock,
            "sku": self.sku,
            "weight": money_str(self.weight),
            "dimensions": self.dimensions,
            "is_featured": self.is_featured,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..numeric import ScaledDecimal, PRICE_PLACES, QUANTITY_PLACES, RATE_PLACES, decimal_str
from ..time_utils import utcnow, to_utc_z


class Product(db.Model):
    """
    Product master data.

    CODE DESIGN DECISION:
    Product.code is the immutable business identifier (two uppercase letters
    followed by six digits). It is generated server-side and never edited.

    UNITS:
    - base_unit is the unit every stock quantity is stored in.
    - purchase_price / retail_price are per base unit.
    - Alternate package units live in PackageUnit.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_products_code"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    code = db.Column(db.String(8), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    specification = db.Column(db.String(255), nullable=True)
    base_unit = db.Column(db.String(32), nullable=False)

    purchase_price = db.Column(ScaledDecimal(PRICE_PLACES), nullable=False, default=Decimal("0"))
    retail_price = db.Column(ScaledDecimal(PRICE_PLACES), nullable=False, default=Decimal("0"))

    supplier = db.Column(db.String(255), nullable=True)
    min_stock_threshold = db.Column(ScaledDecimal(QUANTITY_PLACES), nullable=False, default=Decimal("0"))

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    package_units = db.relationship(
        "PackageUnit",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="PackageUnit.id",
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.code!r} name={self.name!r}>"

    def to_dict(self, include_units: bool = False) -> dict:
        data = {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "specification": self.specification,
            "base_unit": self.base_unit,
            "purchase_price": decimal_str(self.purchase_price),
            "retail_price": decimal_str(self.retail_price),
            "supplier": self.supplier,
            "min_stock_threshold": decimal_str(self.min_stock_threshold),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_units:
            data["package_units"] = [u.to_dict() for u in self.package_units]
        return data


class PackageUnit(db.Model):
    """
    Alternate unit for a product: 1 unit of this package == conversion_rate base units.

    Price resolution:
    1. Use the package-specific price when set.
    2. Otherwise fall back to product price (per base unit) x conversion_rate.
    """
    __tablename__ = "package_units"
    __table_args__ = (
        db.UniqueConstraint("product_id", "name", name="uq_package_units_product_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = db.Column(db.String(32), nullable=False)
    conversion_rate = db.Column(ScaledDecimal(RATE_PLACES), nullable=False)

    purchase_price = db.Column(ScaledDecimal(PRICE_PLACES), nullable=True)
    retail_price = db.Column(ScaledDecimal(PRICE_PLACES), nullable=True)

    product = db.relationship("Product", back_populates="package_units")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "conversion_rate": decimal_str(self.conversion_rate),
            "purchase_price": decimal_str(self.purchase_price),
            "retail_price": decimal_str(self.retail_price),
        }


class StorageLocation(db.Model):
    __tablename__ = "storage_locations"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_storage_locations_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class ProductStorageLocation(db.Model):
    """
    Where a product is kept. Placement only: quantities live in InventoryRecord.
    """
    __tablename__ = "product_storage_locations"
    __table_args__ = (
        db.UniqueConstraint("product_id", "location_id", name="uq_product_storage_location"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    location_id = db.Column(
        db.Integer, db.ForeignKey("storage_locations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    note = db.Column(db.String(255), nullable=True)
    is_primary = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship(
        "Product", backref=db.backref("storage_links", lazy=True, cascade="all, delete-orphan")
    )
    location = db.relationship("StorageLocation", backref=db.backref("product_links", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "location_name": self.location.name if self.location else None,
            "note": self.note,
            "is_primary": self.is_primary,
            "created_at": to_utc_z(self.created_at),
        }

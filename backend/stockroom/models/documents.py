from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..numeric import (
    ScaledDecimal,
    AMOUNT_PLACES,
    BASE_QUANTITY_PLACES,
    PRICE_PLACES,
    QUANTITY_PLACES,
    decimal_str,
    quantity_str,
)
from ..time_utils import utcnow, to_utc_z

# Order lifecycle: PENDING -> CONFIRMED (terminal)
ORDER_STATUS_PENDING = "PENDING"
ORDER_STATUS_CONFIRMED = "CONFIRMED"

# Which kind of document a return reverses
RETURN_TYPE_PURCHASE = "PURCHASE"
RETURN_TYPE_SALES = "SALES"
RETURN_TYPES = (RETURN_TYPE_PURCHASE, RETURN_TYPE_SALES)

# Stock-taking lifecycle: IN_PROGRESS -> COMPLETED (terminal)
TAKING_STATUS_IN_PROGRESS = "IN_PROGRESS"
TAKING_STATUS_COMPLETED = "COMPLETED"


def _line_dict(line) -> dict:
    return {
        "id": line.id,
        "product_id": line.product_id,
        "product_name": line.product_name,
        "quantity": decimal_str(line.quantity),
        "unit": line.unit,
        "unit_price": decimal_str(line.unit_price),
        "subtotal": decimal_str(line.subtotal),
    }


class PurchaseOrder(db.Model):
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_purchase_orders_number"),
        db.Index("ix_purchase_orders_status_date", "status", "order_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False)
    supplier = db.Column(db.String(255), nullable=False)
    order_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    total_amount = db.Column(ScaledDecimal(AMOUNT_PLACES), nullable=False, default=Decimal("0"))

    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    items = db.relationship(
        "PurchaseOrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderItem.id",
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "supplier": self.supplier,
            "order_date": to_utc_z(self.order_date),
            "total_amount": decimal_str(self.total_amount),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "confirmed_at": to_utc_z(self.confirmed_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PurchaseOrderItem(db.Model):
    __tablename__ = "purchase_order_items"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(
        db.Integer, db.ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    # Snapshot so history survives product renames
    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(ScaledDecimal(QUANTITY_PLACES), nullable=False)
    unit = db.Column(db.String(32), nullable=False)
    unit_price = db.Column(ScaledDecimal(PRICE_PLACES), nullable=False)
    subtotal = db.Column(ScaledDecimal(AMOUNT_PLACES), nullable=False)

    order = db.relationship("PurchaseOrder", back_populates="items")

    def to_dict(self) -> dict:
        return _line_dict(self)


class SalesOrder(db.Model):
    """
    Sales document.

    Amounts: total_amount = max(0, subtotal - discount_amount - rounding_amount)
    """
    __tablename__ = "sales_orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_sales_orders_number"),
        db.Index("ix_sales_orders_status_date", "status", "order_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False)
    customer_name = db.Column(db.String(255), nullable=True)
    order_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    subtotal = db.Column(ScaledDecimal(AMOUNT_PLACES), nullable=False, default=Decimal("0"))
    discount_amount = db.Column(ScaledDecimal(AMOUNT_PLACES), nullable=False, default=Decimal("0"))
    rounding_amount = db.Column(ScaledDecimal(AMOUNT_PLACES), nullable=False, default=Decimal("0"))
    total_amount = db.Column(ScaledDecimal(AMOUNT_PLACES), nullable=False, default=Decimal("0"))

    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    items = db.relationship(
        "SalesOrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="SalesOrderItem.id",
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "customer_name": self.customer_name,
            "order_date": to_utc_z(self.order_date),
            "subtotal": decimal_str(self.subtotal),
            "discount_amount": decimal_str(self.discount_amount),
            "rounding_amount": decimal_str(self.rounding_amount),
            "total_amount": decimal_str(self.total_amount),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "confirmed_at": to_utc_z(self.confirmed_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SalesOrderItem(db.Model):
    __tablename__ = "sales_order_items"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    sales_order_id = db.Column(
        db.Integer, db.ForeignKey("sales_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(ScaledDecimal(QUANTITY_PLACES), nullable=False)
    unit = db.Column(db.String(32), nullable=False)
    unit_price = db.Column(ScaledDecimal(PRICE_PLACES), nullable=False)
    # Price before any manual adjustment
    original_price = db.Column(ScaledDecimal(PRICE_PLACES), nullable=False)
    subtotal = db.Column(ScaledDecimal(AMOUNT_PLACES), nullable=False)

    order = db.relationship("SalesOrder", back_populates="items")

    def to_dict(self) -> dict:
        data = _line_dict(self)
        data["original_price"] = decimal_str(self.original_price)
        return data


class ReturnOrder(db.Model):
    """
    Return against exactly one confirmed purchase or sales order.

    original_order_id points into purchase_orders or sales_orders depending
    on order_type, so it carries no foreign key.
    """
    __tablename__ = "return_orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_return_orders_number"),
        db.Index("ix_return_orders_original", "order_type", "original_order_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False)
    original_order_id = db.Column(db.Integer, nullable=False)
    order_type = db.Column(db.String(16), nullable=False)
    return_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    total_amount = db.Column(ScaledDecimal(AMOUNT_PLACES), nullable=False, default=Decimal("0"))

    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    items = db.relationship(
        "ReturnOrderItem",
        back_populates="return_order",
        cascade="all, delete-orphan",
        order_by="ReturnOrderItem.id",
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "original_order_id": self.original_order_id,
            "order_type": self.order_type,
            "return_date": to_utc_z(self.return_date),
            "total_amount": decimal_str(self.total_amount),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "confirmed_at": to_utc_z(self.confirmed_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class ReturnOrderItem(db.Model):
    __tablename__ = "return_order_items"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    return_order_id = db.Column(
        db.Integer, db.ForeignKey("return_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(ScaledDecimal(QUANTITY_PLACES), nullable=False)
    unit = db.Column(db.String(32), nullable=False)
    unit_price = db.Column(ScaledDecimal(PRICE_PLACES), nullable=False)
    subtotal = db.Column(ScaledDecimal(AMOUNT_PLACES), nullable=False)

    return_order = db.relationship("ReturnOrder", back_populates="items")

    def to_dict(self) -> dict:
        return _line_dict(self)


class StockTaking(db.Model):
    __tablename__ = "stock_takings"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    taking_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    status = db.Column(db.String(16), nullable=False, default=TAKING_STATUS_IN_PROGRESS, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    items = db.relationship(
        "StockTakingItem",
        back_populates="stock_taking",
        cascade="all, delete-orphan",
        order_by="StockTakingItem.id",
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "taking_date": to_utc_z(self.taking_date),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class StockTakingItem(db.Model):
    """
    One counted product. system_quantity is frozen at creation;
    difference = actual_quantity - system_quantity, recomputed on every edit.
    """
    __tablename__ = "stock_taking_items"
    __table_args__ = (
        db.UniqueConstraint("stock_taking_id", "product_id", name="uq_stock_taking_items_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    stock_taking_id = db.Column(
        db.Integer, db.ForeignKey("stock_takings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    system_quantity = db.Column(ScaledDecimal(BASE_QUANTITY_PLACES), nullable=False)
    actual_quantity = db.Column(ScaledDecimal(BASE_QUANTITY_PLACES), nullable=False)
    difference = db.Column(ScaledDecimal(BASE_QUANTITY_PLACES), nullable=False, default=Decimal("0"))
    unit = db.Column(db.String(32), nullable=False)

    stock_taking = db.relationship("StockTaking", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "system_quantity": quantity_str(self.system_quantity),
            "actual_quantity": quantity_str(self.actual_quantity),
            "difference": quantity_str(self.difference),
            "unit": self.unit,
        }


class DocumentSequence(db.Model):
    """
    Per-day counter backing order numbers (e.g. PO20261019-0001).

    WHY: random suffixes can collide; a locked counter row cannot.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", "sequence_date", name="uq_document_sequence_type_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False)
    sequence_date = db.Column(db.String(8), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)

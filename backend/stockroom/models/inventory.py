from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..numeric import ScaledDecimal, BASE_QUANTITY_PLACES, quantity_str
from ..time_utils import utcnow, to_utc_z

TRANSACTION_PURCHASE = "PURCHASE"
TRANSACTION_SALE = "SALE"
TRANSACTION_ADJUSTMENT = "ADJUSTMENT"
TRANSACTION_RETURN = "RETURN"

TRANSACTION_TYPES = (
    TRANSACTION_PURCHASE,
    TRANSACTION_SALE,
    TRANSACTION_ADJUSTMENT,
    TRANSACTION_RETURN,
)


class InventoryRecord(db.Model):
    """
    Current-balance cache: exactly one row per product.

    INVARIANT: quantity == SUM(InventoryTransaction.quantity_change) for the
    product, and quantity >= 0. Only the inventory service writes this row,
    always together with the matching transaction in one DB transaction.

    version_id is an optimistic lock: a concurrent writer that read an older
    version fails its UPDATE with StaleDataError and is retried.
    """
    __tablename__ = "inventory_records"
    __table_args__ = (
        db.UniqueConstraint("product_id", name="uq_inventory_records_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    quantity = db.Column(ScaledDecimal(BASE_QUANTITY_PLACES), nullable=False, default=Decimal("0"))
    last_updated = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship(
        "Product",
        backref=db.backref("inventory_record", uselist=False, cascade="all, delete-orphan"),
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": quantity_str(self.quantity),
            "last_updated": to_utc_z(self.last_updated),
        }


class InventoryTransaction(db.Model):
    """
    Append-only stock movement. Never updated, never deleted.

    quantity_change is signed and always in the product's base unit; `unit`
    records the unit the operator used so history can be shown as entered.
    """
    __tablename__ = "inventory_transactions"

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(16), nullable=False, index=True)

    quantity_change = db.Column(ScaledDecimal(BASE_QUANTITY_PLACES), nullable=False)

    unit = db.Column(db.String(32), nullable=False)

    # Originating order / return / stock-taking id; null for manual adjustments
    reference_id = db.Column(db.Integer, nullable=True, index=True)

    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    note = db.Column(db.String(255), nullable=True)

    __table_args__ = (
        db.Index("ix_invtx_product_timestamp", "product_id", "timestamp"),
        db.Index("ix_invtx_product_type_timestamp", "product_id", "transaction_type", "timestamp"),
        {"sqlite_autoincrement": True},
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "transaction_type": self.transaction_type,
            "quantity_change": quantity_str(self.quantity_change),
            "unit": self.unit,
            "reference_id": self.reference_id,
            "timestamp": to_utc_z(self.timestamp),
            "note": self.note,
        }

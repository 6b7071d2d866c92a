# backend/stockroom/services/products_service.py
"""
Product catalog service.

- Product codes are generated here and never accepted from clients.
- Creating a product also creates its zero InventoryRecord, in the same commit.
- Deletes are refused once anything references the product or unit, so the
  ledger and document history never dangle.
"""
from __future__ import annotations

import logging
import secrets
import string

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import (
    InventoryRecord,
    InventoryTransaction,
    PackageUnit,
    Product,
    PurchaseOrderItem,
    ReturnOrderItem,
    SalesOrderItem,
    StockTakingItem,
)
from ..numeric import ZERO
from ..time_utils import utcnow
from ..validation import (
    PACKAGE_UNIT_POLICY,
    PRODUCT_POLICY,
    enforce_rules_package_unit,
    enforce_rules_product,
    validate_payload,
)
from .concurrency import run_with_retry
from .unit_service import require_product

logger = logging.getLogger(__name__)

PRODUCT_CODE_LETTERS = 2
PRODUCT_CODE_DIGITS = 6

ORDER_ITEM_MODELS = (PurchaseOrderItem, SalesOrderItem, ReturnOrderItem)


def generate_product_code() -> str:
    letters = "".join(secrets.choice(string.ascii_uppercase) for _ in range(PRODUCT_CODE_LETTERS))
    digits = "".join(secrets.choice(string.digits) for _ in range(PRODUCT_CODE_DIGITS))
    return letters + digits


def _unique_product_code() -> str:
    attempts = current_app.config.get("PRODUCT_CODE_ATTEMPTS", 20)
    for _ in range(attempts):
        code = generate_product_code()
        if not db.session.query(Product.id).filter_by(code=code).first():
            return code
    raise ConflictError("Could not generate a unique product code")


def create_product(payload: dict) -> Product:
    """
    Create a product from a client payload.

    Raises:
        ValidationError: bad or missing fields (including any attempt to set `code`)
        ConflictError: no free product code could be found
    """
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    def _op():
        product = Product(code=_unique_product_code(), **patch)
        db.session.add(product)
        db.session.flush()

        db.session.add(InventoryRecord(product_id=product.id, quantity=ZERO, last_updated=utcnow()))
        db.session.commit()
        return product

    product = run_with_retry(_op)
    logger.info("Created product %s (%s)", product.code, product.name)
    return product


def update_product(product_id: int, payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    def _op():
        product = require_product(product_id)
        if "base_unit" in patch and any(u.name == patch["base_unit"] for u in product.package_units):
            raise ValidationError("base_unit collides with an existing package unit")
        if patch.get("base_unit", product.base_unit) != product.base_unit and _is_referenced(product.id):
            raise ConflictError("base_unit cannot change once the product has stock history")
        for k, v in patch.items():
            setattr(product, k, v)
        product.updated_at = utcnow()
        db.session.commit()
        return product

    return run_with_retry(_op)


def get_product(product_id: int) -> dict:
    product = require_product(product_id)
    data = product.to_dict(include_units=True)
    data["storage_locations"] = [link.to_dict() for link in product.storage_links]
    return data


def get_product_by_code(code: str) -> Product:
    product = db.session.query(Product).filter_by(code=(code or "").strip().upper()).first()
    if product is None:
        raise NotFoundError(f"Product with code {code!r} not found")
    return product


def search_products(keyword: str | None = None) -> list[Product]:
    q = db.session.query(Product)
    if keyword and keyword.strip():
        like = f"%{keyword.strip()}%"
        q = q.filter(or_(
            Product.name.ilike(like),
            Product.code.ilike(like),
            Product.specification.ilike(like),
            Product.supplier.ilike(like),
        ))
    return q.order_by(Product.name.asc(), Product.id.asc()).all()


def _is_referenced(product_id: int) -> bool:
    if db.session.query(InventoryTransaction.id).filter_by(product_id=product_id).first():
        return True
    for model in ORDER_ITEM_MODELS + (StockTakingItem,):
        if db.session.query(model.id).filter_by(product_id=product_id).first():
            return True
    return False


def delete_product(product_id: int) -> None:
    """Delete a product that has never moved stock nor appeared on a document."""
    def _op():
        product = require_product(product_id)
        if _is_referenced(product.id):
            raise ConflictError("Product has inventory history or document lines and cannot be deleted")
        db.session.delete(product)
        db.session.commit()

    run_with_retry(_op)
    logger.info("Deleted product %s", product_id)


# =============================================================================
# Package units
# =============================================================================

def list_package_units(product_id: int) -> list[PackageUnit]:
    return list(require_product(product_id).package_units)


def _require_package_unit(product_id: int, unit_id: int) -> PackageUnit:
    unit = db.session.query(PackageUnit).filter_by(id=unit_id, product_id=product_id).first()
    if unit is None:
        raise NotFoundError(f"Package unit {unit_id} not found for product {product_id}")
    return unit


def add_package_unit(product_id: int, payload: dict) -> PackageUnit:
    patch = validate_payload(model=PackageUnit, payload=payload, policy=PACKAGE_UNIT_POLICY, partial=False)

    def _op():
        product = require_product(product_id)
        enforce_rules_package_unit(patch, base_unit=product.base_unit)
        if any(u.name == patch["name"] for u in product.package_units):
            raise ConflictError(f"Unit {patch['name']!r} already exists for this product")
        unit = PackageUnit(product_id=product.id, **patch)
        db.session.add(unit)
        db.session.commit()
        return unit

    return run_with_retry(_op)


def update_package_unit(product_id: int, unit_id: int, payload: dict) -> PackageUnit:
    """
    Update a package unit. Renaming or re-rating a unit already used on an
    order would change the meaning of that order's quantities, so it is refused.
    """
    patch = validate_payload(model=PackageUnit, payload=payload, policy=PACKAGE_UNIT_POLICY, partial=True)

    def _op():
        product = require_product(product_id)
        unit = _require_package_unit(product.id, unit_id)
        enforce_rules_package_unit(patch, base_unit=product.base_unit)

        if ("name" in patch and patch["name"] != unit.name) or (
            "conversion_rate" in patch and patch["conversion_rate"] != unit.conversion_rate
        ):
            if _unit_in_use(product.id, unit.name):
                raise ConflictError(f"Unit {unit.name!r} is used by existing orders")
        if "name" in patch and patch["name"] != unit.name:
            if any(u.name == patch["name"] for u in product.package_units):
                raise ConflictError(f"Unit {patch['name']!r} already exists for this product")

        for k, v in patch.items():
            setattr(unit, k, v)
        db.session.commit()
        return unit

    return run_with_retry(_op)


def _unit_in_use(product_id: int, unit_name: str) -> bool:
    for model in ORDER_ITEM_MODELS:
        if db.session.query(model.id).filter_by(product_id=product_id, unit=unit_name).first():
            return True
    return False


def remove_package_unit(product_id: int, unit_id: int) -> None:
    def _op():
        unit = _require_package_unit(product_id, unit_id)
        if _unit_in_use(product_id, unit.name):
            raise ConflictError(f"Unit {unit.name!r} is used by existing orders")
        db.session.delete(unit)
        db.session.commit()

    run_with_retry(_op)

# Overview: Resolves (product, unit name) pairs to conversion rates and effective prices.

"""
Unit & pricing rules (authoritative):

- The product's base_unit has conversion rate 1.
- A PackageUnit named U means: 1 U == conversion_rate base units.
- base quantity = quantity x rate, kept at 7 dp so the product is exact.
- quantity = base quantity / rate, quantized to 3 dp with ROUND_HALF_UP.
- Effective price for unit U = the package's own price when set,
  otherwise the product's base price x rate, quantized to 4 dp.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ..extensions import db
from ..errors import ProductNotFoundError, UnitNotFoundError, ValidationError
from ..models import Product, PackageUnit
from ..numeric import (
    ZERO,
    decimal_str,
    quantize,
    quantize_base,
    quantize_price,
    quantize_quantity,
    require_storable,
    to_decimal,
    BASE_QUANTITY_PLACES,
    QUANTITY_PLACES,
)
from .concurrency import lock_for_update

ONE = Decimal("1")


@dataclass(frozen=True)
class UnitResolution:
    unit: str
    conversion_rate: Decimal
    purchase_price: Decimal
    retail_price: Decimal
    is_base_unit: bool

    def to_dict(self) -> dict:
        return {
            "unit": self.unit,
            "conversion_rate": decimal_str(self.conversion_rate),
            "purchase_price": decimal_str(self.purchase_price),
            "retail_price": decimal_str(self.retail_price),
            "is_base_unit": self.is_base_unit,
        }


def require_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise ProductNotFoundError(product_id)
    return product


def resolve_for_product(product: Product, unit: str) -> UnitResolution:
    if not isinstance(unit, str) or not unit.strip():
        raise ValidationError("unit is required")
    unit = unit.strip()

    if unit == product.base_unit:
        return UnitResolution(
            unit=unit,
            conversion_rate=ONE,
            purchase_price=quantize_price(product.purchase_price or ZERO),
            retail_price=quantize_price(product.retail_price or ZERO),
            is_base_unit=True,
        )

    package = next((p for p in product.package_units if p.name == unit), None)
    if package is None:
        raise UnitNotFoundError(product.id, unit)

    rate = package.conversion_rate
    purchase = package.purchase_price
    if purchase is None:
        purchase = (product.purchase_price or ZERO) * rate
    retail = package.retail_price
    if retail is None:
        retail = (product.retail_price or ZERO) * rate

    return UnitResolution(
        unit=unit,
        conversion_rate=rate,
        purchase_price=quantize_price(purchase),
        retail_price=quantize_price(retail),
        is_base_unit=False,
    )


def resolve_unit(product_id: int, unit: str) -> UnitResolution:
    """
    Resolve a unit name for a product.

    Raises:
        ProductNotFoundError: unknown product id
        UnitNotFoundError: unit is neither the base unit nor a package unit
    """
    return resolve_for_product(require_product(product_id), unit)


def to_base_quantity(quantity, conversion_rate) -> Decimal:
    base = quantize_base(to_decimal(quantity, "quantity") * to_decimal(conversion_rate, "conversion_rate"))
    return require_storable(base, BASE_QUANTITY_PLACES, "quantity")


def from_base_quantity(base_quantity, conversion_rate) -> Decimal:
    rate = to_decimal(conversion_rate, "conversion_rate")
    if rate <= 0:
        raise ValidationError("conversion_rate must be greater than 0")
    return quantize(to_decimal(base_quantity, "quantity") / rate, QUANTITY_PLACES)


def convert_to_base(product_id: int, quantity, unit: str) -> Decimal:
    resolution = resolve_unit(product_id, unit)
    return to_base_quantity(quantize_quantity(quantity), resolution.conversion_rate)


def convert_from_base(product_id: int, base_quantity, unit: str) -> Decimal:
    resolution = resolve_unit(product_id, unit)
    return from_base_quantity(base_quantity, resolution.conversion_rate)


def available_units(product_id: int) -> list[str]:
    """Base unit first, then package units in creation order."""
    product = require_product(product_id)
    return [product.base_unit] + [p.name for p in product.package_units]

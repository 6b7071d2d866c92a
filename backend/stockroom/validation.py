from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .numeric import ScaledDecimal, quantize, quantize_price, quantize_quantity, to_decimal
from .time_utils import parse_iso_datetime

# Upper bound for any single price or quantity entered by a client.
MAX_INPUT_VALUE = Decimal("999999999")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "specification", "base_unit", "purchase_price",
        "retail_price", "supplier", "min_stock_threshold",
    },
    required_on_create={"name", "base_unit"},
)

PACKAGE_UNIT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "conversion_rate", "purchase_price", "retail_price"},
    required_on_create={"name", "conversion_rate"},
)

STORAGE_LOCATION_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description"},
    required_on_create={"name"},
)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Fixed-point decimals (quantities, prices, rates)
    if isinstance(coltype, ScaledDecimal):
        number = to_decimal(value, col.key)
        if abs(number) > MAX_INPUT_VALUE:
            raise ValidationError(f"{col.key} cannot exceed {MAX_INPUT_VALUE}")
        return quantize(number, coltype.places)

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or 'e' in stripped.lower() or '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        raise ValidationError(f"{col.key} must be an integer")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be true or false")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    for field in ("purchase_price", "retail_price", "min_stock_threshold"):
        if field in patch and patch[field] is not None and patch[field] < 0:
            raise ValidationError(f"{field} must be >= 0")


def enforce_rules_package_unit(patch: dict, *, base_unit: str) -> None:
    if "conversion_rate" in patch and patch["conversion_rate"] <= 0:
        raise ValidationError("conversion_rate must be greater than 0")
    if patch.get("name") == base_unit:
        raise ValidationError("Package unit name must differ from the base unit")
    for field in ("purchase_price", "retail_price"):
        if field in patch and patch[field] is not None and patch[field] < 0:
            raise ValidationError(f"{field} must be >= 0")


def bounded_decimal(value, field: str) -> Decimal:
    """Number within the client input bound, not yet quantized."""
    number = to_decimal(value, field)
    if abs(number) > MAX_INPUT_VALUE:
        raise ValidationError(f"{field} cannot exceed {MAX_INPUT_VALUE}")
    return number


def require_id(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return value


def require_text(value, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


def optional_text(value, field: str, max_length: int = 255) -> str | None:
    """Stripped text, or None when missing or blank."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return value or None


@dataclass(frozen=True)
class LineItemInput:
    """One requested document line, already type-checked."""
    product_id: int
    quantity: Decimal
    unit: str
    unit_price: Decimal | None = None


def parse_line_items(items, *, price_required: bool) -> list[LineItemInput]:
    """
    Validate the `items` array of a document payload.

    Each entry needs product_id, quantity > 0 and a unit; unit_price must be
    >= 0 when given and is mandatory when price_required is set.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required")

    parsed = []
    for idx, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")

        product_id = require_id(raw.get("product_id"), f"items[{idx}].product_id")
        quantity = quantize_quantity(bounded_decimal(raw.get("quantity"), f"items[{idx}].quantity"))
        if quantity <= 0:
            raise ValidationError(f"items[{idx}].quantity must be greater than 0")
        unit = require_text(raw.get("unit"), f"items[{idx}].unit")

        unit_price = None
        if raw.get("unit_price") is not None:
            unit_price = quantize_price(bounded_decimal(raw["unit_price"], f"items[{idx}].unit_price"))
            if unit_price < 0:
                raise ValidationError(f"items[{idx}].unit_price must be >= 0")
        elif price_required:
            raise ValidationError(f"items[{idx}].unit_price is required")

        parsed.append(LineItemInput(product_id=product_id, quantity=quantity, unit=unit, unit_price=unit_price))
    return parsed

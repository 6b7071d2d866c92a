# Overview: Exact decimal helpers and the scaled-integer column type for quantities and money.

"""
Precision rules (authoritative):

- Quantities: 3 decimal places (e.g. 1.255 metres of cable).
- Base-unit quantities (balances, ledger movements, counts): 7 decimal places,
  so an entered quantity times a conversion rate is always exact.
- Unit prices and conversion rates: 4 decimal places (e.g. 0.0050 per washer).
- Money totals: 2 decimal places.
- Rounding is always ROUND_HALF_UP.

Binary floats never reach the database. Columns declared as ScaledDecimal(n)
store value * 10**n in an integer column and read back as Decimal, so SUM()
over a column is exact as well.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from sqlalchemy.types import BigInteger, TypeDecorator

from .errors import ValidationError

QUANTITY_PLACES = 3
PRICE_PLACES = 4
RATE_PLACES = 4
AMOUNT_PLACES = 2
BASE_QUANTITY_PLACES = QUANTITY_PLACES + RATE_PLACES

# Largest scaled value a BigInteger column holds
MAX_SCALED_INTEGER = 2 ** 63 - 1

ZERO = Decimal("0")


def to_decimal(value, field: str = "value") -> Decimal:
    """
    Coerce user or database input to Decimal.

    Floats are converted through their shortest repr so 0.1 stays 0.1.
    Booleans, NaN and infinities are rejected.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(repr(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be a number")
        try:
            result = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
    else:
        raise ValidationError(f"{field} must be a number")

    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return result


def quantize(value: Decimal, places: int) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def quantize_quantity(value) -> Decimal:
    return quantize(to_decimal(value, "quantity"), QUANTITY_PLACES)


def quantize_price(value) -> Decimal:
    return quantize(to_decimal(value, "price"), PRICE_PLACES)


def quantize_amount(value) -> Decimal:
    return quantize(to_decimal(value, "amount"), AMOUNT_PLACES)


def quantize_base(value) -> Decimal:
    return quantize(to_decimal(value, "quantity"), BASE_QUANTITY_PLACES)


def require_storable(value: Decimal, places: int, field: str) -> Decimal:
    """Reject a value whose scaled integer would overflow its column."""
    if abs(value).scaleb(places) > MAX_SCALED_INTEGER:
        raise ValidationError(f"{field} is too large")
    return value


def line_subtotal(quantity: Decimal, unit_price: Decimal) -> Decimal:
    require_storable(unit_price, PRICE_PLACES, "unit_price")
    return require_storable(quantize_amount(quantity * unit_price), AMOUNT_PLACES, "subtotal")


def order_total(value: Decimal) -> Decimal:
    return require_storable(quantize_amount(value), AMOUNT_PLACES, "total_amount")


def decimal_str(value: Decimal | None) -> str | None:
    """JSON-safe rendering; decimals never cross the API as floats."""
    if value is None:
        return None
    return str(value)


def quantity_str(value: Decimal | None) -> str | None:
    """
    Base quantity rendered with 3 decimals, or with as many as it needs
    when a package-unit conversion left finer digits (0.9985 kg).
    """
    if value is None:
        return None
    short = quantize(value, QUANTITY_PLACES)
    if short == value:
        return str(short)
    return format(value.normalize(), "f")


class ScaledDecimal(TypeDecorator):
    """Fixed-point decimal stored as a scaled integer."""

    impl = BigInteger
    cache_ok = True

    def __init__(self, places: int):
        super().__init__()
        self.places = places

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        scaled = quantize(to_decimal(value), self.places).scaleb(self.places)
        return int(scaled)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(int(value)).scaleb(-self.places)

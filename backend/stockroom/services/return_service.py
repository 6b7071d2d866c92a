# backend/stockroom/services/return_service.py
"""
Returns against confirmed purchase and sales orders.

WHY: A return reverses part of a confirmed document. It must never reverse
more than the document moved, no matter how many returns are filed.

CAP RULE (measured in base units, per product):
    requested <= original quantity - already returned
where "already returned" sums the items of CONFIRMED returns against the same
original order. The rule is checked when a return is created and again,
after the affected balance rows are locked, when it is confirmed.

STOCK EFFECT ON CONFIRMATION:
- PURCHASE return: goods go back to the supplier, stock decreases
- SALES return: goods come back from the customer, stock increases
"""
from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal

from ..extensions import db
from ..models import (
    Product,
    PurchaseOrder,
    ReturnOrder,
    ReturnOrderItem,
    SalesOrder,
)
from ..models.documents import (
    ORDER_STATUS_CONFIRMED,
    ORDER_STATUS_PENDING,
    RETURN_TYPE_PURCHASE,
    RETURN_TYPE_SALES,
    RETURN_TYPES,
)
from ..models.inventory import TRANSACTION_RETURN
from ..errors import CapExceededError, InvalidStateError, ValidationError
from ..numeric import ZERO, line_subtotal, order_total, quantize_price
from ..time_utils import utcnow
from ..validation import parse_line_items, require_id
from .concurrency import run_with_retry
from .document_service import (
    DOCUMENT_PURCHASE_RETURN,
    DOCUMENT_SALES_RETURN,
    next_document_number,
    require_document,
    require_status,
)
from .inventory_service import _adjust_inventory_inner, lock_records
from .unit_service import require_product, resolve_for_product, to_base_quantity

logger = logging.getLogger(__name__)

ORIGINAL_MODELS = {
    RETURN_TYPE_PURCHASE: (PurchaseOrder, "Purchase order"),
    RETURN_TYPE_SALES: (SalesOrder, "Sales order"),
}

RETURN_DOCUMENT_TYPES = {
    RETURN_TYPE_PURCHASE: DOCUMENT_PURCHASE_RETURN,
    RETURN_TYPE_SALES: DOCUMENT_SALES_RETURN,
}


def _require_return_type(order_type: str) -> str:
    if order_type not in RETURN_TYPES:
        raise ValidationError(f"order_type must be one of: {', '.join(RETURN_TYPES)}")
    return order_type


def _base_quantity(product: Product, quantity, unit: str) -> Decimal:
    return to_base_quantity(quantity, resolve_for_product(product, unit).conversion_rate)


def _load_original(order_type: str, original_order_id: int, *, lock: bool):
    model, label = ORIGINAL_MODELS[order_type]
    original = require_document(model, original_order_id, label, lock=lock)
    if original.status != ORDER_STATUS_CONFIRMED:
        raise InvalidStateError(f"{label} {original.order_number} is not confirmed and cannot be returned")
    return original


def _original_quantities(original) -> dict[int, Decimal]:
    totals: dict[int, Decimal] = defaultdict(lambda: ZERO)
    for item in original.items:
        product = require_product(item.product_id)
        totals[item.product_id] += _base_quantity(product, item.quantity, item.unit)
    return totals


def already_returned(original_order_id: int, order_type: str) -> dict[int, Decimal]:
    """Base quantity per product over CONFIRMED returns against an order."""
    items = (
        db.session.query(ReturnOrderItem)
        .join(ReturnOrder, ReturnOrder.id == ReturnOrderItem.return_order_id)
        .filter(
            ReturnOrder.original_order_id == original_order_id,
            ReturnOrder.order_type == order_type,
            ReturnOrder.status == ORDER_STATUS_CONFIRMED,
        )
        .all()
    )
    totals: dict[int, Decimal] = defaultdict(lambda: ZERO)
    for item in items:
        product = require_product(item.product_id)
        totals[item.product_id] += _base_quantity(product, item.quantity, item.unit)
    return totals


def _enforce_cap(original, order_type: str, requested: dict[int, Decimal]) -> None:
    original_qty = _original_quantities(original)
    returned = already_returned(original.id, order_type)
    for product_id in sorted(requested):
        remaining = original_qty.get(product_id, ZERO) - returned.get(product_id, ZERO)
        if requested[product_id] > remaining:
            product = require_product(product_id)
            logger.warning(
                "Return against %s exceeds cap for product %s: remaining %s, requested %s",
                original.order_number, product_id, remaining, requested[product_id],
            )
            raise CapExceededError(product.id, product.name, remaining, requested[product_id])


def _default_return_price(original_item, product: Product, unit: str) -> Decimal:
    """Original line price per base unit, re-expressed in the return unit."""
    original_rate = resolve_for_product(product, original_item.unit).conversion_rate
    return_rate = resolve_for_product(product, unit).conversion_rate
    return quantize_price(original_item.unit_price / original_rate * return_rate)


def create_return_order(*, original_order_id: int, order_type: str, items) -> ReturnOrder:
    """
    Create a PENDING return against a CONFIRMED order.

    Raises:
        ValidationError: bad payload, or a product that is not on the original order
        NotFoundError: unknown original order / product / unit
        InvalidStateError: the original order is not CONFIRMED
        CapExceededError: more than remains returnable
    """
    original_order_id = require_id(original_order_id, "original_order_id")
    order_type = _require_return_type(order_type)
    lines = parse_line_items(items, price_required=False)

    def _op():
        original = _load_original(order_type, original_order_id, lock=True)
        original_lines = {}
        for item in original.items:
            original_lines.setdefault(item.product_id, item)

        requested: dict[int, Decimal] = defaultdict(lambda: ZERO)
        return_items = []
        for line in lines:
            source = original_lines.get(line.product_id)
            if source is None:
                raise ValidationError(
                    f"Product {line.product_id} is not on order {original.order_number}"
                )
            product = require_product(line.product_id)
            resolution = resolve_for_product(product, line.unit)
            requested[product.id] += to_base_quantity(line.quantity, resolution.conversion_rate)

            price = line.unit_price
            if price is None:
                price = _default_return_price(source, product, resolution.unit)
            return_items.append(ReturnOrderItem(
                product_id=product.id,
                product_name=source.product_name,
                quantity=line.quantity,
                unit=resolution.unit,
                unit_price=price,
                subtotal=line_subtotal(line.quantity, price),
            ))

        _enforce_cap(original, order_type, requested)

        ret = ReturnOrder(
            order_number=next_document_number(document_type=RETURN_DOCUMENT_TYPES[order_type]),
            original_order_id=original.id,
            order_type=order_type,
            return_date=utcnow(),
            status=ORDER_STATUS_PENDING,
            created_at=utcnow(),
            items=return_items,
        )
        ret.total_amount = order_total(sum((i.subtotal for i in return_items), ZERO))
        db.session.add(ret)
        db.session.commit()
        return ret

    ret = run_with_retry(_op)
    logger.info("Created %s return %s against order %s", order_type, ret.order_number, original_order_id)
    return ret


def confirm_return_order(return_id: int) -> ReturnOrder:
    """
    Apply the return's stock movement and mark it CONFIRMED.

    The balance rows are locked before the confirmed-return sums are read, so
    two returns racing for the same remaining quantity cannot both pass.
    """
    def _op():
        ret = require_document(ReturnOrder, return_id, "Return order", lock=True)
        require_status(ret, ORDER_STATUS_PENDING, "confirm")
        original = _load_original(ret.order_type, ret.original_order_id, lock=True)

        lock_records(item.product_id for item in ret.items)

        requested: dict[int, Decimal] = defaultdict(lambda: ZERO)
        for item in ret.items:
            product = require_product(item.product_id)
            requested[item.product_id] += _base_quantity(product, item.quantity, item.unit)
        _enforce_cap(original, ret.order_type, requested)

        sign = -1 if ret.order_type == RETURN_TYPE_PURCHASE else 1
        for item in ret.items:
            _adjust_inventory_inner(
                product_id=item.product_id,
                quantity_change=sign * item.quantity,
                transaction_type=TRANSACTION_RETURN,
                unit=item.unit,
                reference_id=ret.id,
                note=f"Return {ret.order_number} against {original.order_number}",
            )

        ret.status = ORDER_STATUS_CONFIRMED
        ret.confirmed_at = utcnow()
        db.session.commit()
        return ret

    ret = run_with_retry(_op)
    logger.info("Confirmed return %s", ret.order_number)
    return ret


def get_return_order(return_id: int) -> ReturnOrder:
    return require_document(ReturnOrder, return_id, "Return order")


def list_returns_for_order(original_order_id: int, order_type: str) -> list[ReturnOrder]:
    order_type = _require_return_type(order_type)
    return (
        db.session.query(ReturnOrder)
        .filter_by(original_order_id=original_order_id, order_type=order_type)
        .order_by(ReturnOrder.created_at.asc(), ReturnOrder.id.asc())
        .all()
    )


def list_return_orders(*, order_type: str | None = None, status: str | None = None) -> list[ReturnOrder]:
    q = db.session.query(ReturnOrder)
    if order_type:
        q = q.filter(ReturnOrder.order_type == _require_return_type(order_type))
    if status:
        q = q.filter(ReturnOrder.status == status)
    return q.order_by(ReturnOrder.created_at.desc(), ReturnOrder.id.desc()).all()


def delete_return_order(return_id: int) -> None:
    def _op():
        ret = require_document(ReturnOrder, return_id, "Return order", lock=True)
        require_status(ret, ORDER_STATUS_PENDING, "delete")
        db.session.delete(ret)
        db.session.commit()

    run_with_retry(_op)
    logger.info("Deleted return order %s", return_id)


ORDER_KINDS = ("PURCHASE", "SALES", "RETURN")


def get_order(kind: str, order_id: int) -> dict:
    """
    Header plus items for any document; purchase and sales orders also carry
    the returns filed against them.
    """
    if kind not in ORDER_KINDS:
        raise ValidationError(f"kind must be one of: {', '.join(ORDER_KINDS)}")
    if kind == "RETURN":
        return get_return_order(order_id).to_dict()

    model, label = ORIGINAL_MODELS[kind]
    order = require_document(model, order_id, label)
    data = order.to_dict()
    data["returns"] = [r.to_dict() for r in list_returns_for_order(order.id, kind)]
    return data

# backend/stockroom/services/purchase_service.py
"""
Purchase order lifecycle.

LIFECYCLE:
1. PENDING: created with its lines; editable only by deletion
2. CONFIRMED: every line has been received into stock (terminal)

Confirmation is one unit: all PURCHASE movements plus the status flip
commit together, or nothing does.
"""
from __future__ import annotations

import logging

from ..extensions import db
from ..models import PurchaseOrder, PurchaseOrderItem
from ..models.documents import ORDER_STATUS_CONFIRMED, ORDER_STATUS_PENDING
from ..models.inventory import TRANSACTION_PURCHASE
from ..errors import NotFoundError, ValidationError
from ..numeric import ZERO, line_subtotal, order_total
from ..time_utils import normalize_datetime, utcnow
from ..validation import parse_line_items, require_text
from .concurrency import run_with_retry
from .document_service import (
    DOCUMENT_PURCHASE_ORDER,
    filter_by_period,
    next_document_number,
    require_document,
    require_status,
)
from .inventory_service import _adjust_inventory_inner, lock_records
from .unit_service import require_product, resolve_for_product, to_base_quantity

logger = logging.getLogger(__name__)

ORDER_STATUSES = (ORDER_STATUS_PENDING, ORDER_STATUS_CONFIRMED)


def _parse_order_date(value):
    try:
        return normalize_datetime(value) or utcnow()
    except ValueError:
        raise ValidationError("order_date must be an ISO-8601 datetime")


def create_purchase_order(*, supplier: str, items, order_date=None) -> PurchaseOrder:
    """
    Create a PENDING purchase order.

    Each item: {product_id, quantity, unit, unit_price?}. A missing unit_price
    defaults to the resolved purchase price of the chosen unit.

    Raises:
        ValidationError: blank supplier, no items, quantity <= 0, price < 0
        ProductNotFoundError / UnitNotFoundError: unresolvable line
    """
    supplier = require_text(supplier, "supplier")
    lines = parse_line_items(items, price_required=False)
    order_dt = _parse_order_date(order_date)

    def _op():
        order = PurchaseOrder(
            order_number=next_document_number(document_type=DOCUMENT_PURCHASE_ORDER),
            supplier=supplier,
            order_date=order_dt,
            status=ORDER_STATUS_PENDING,
            created_at=utcnow(),
        )
        total = ZERO
        for line in lines:
            product = require_product(line.product_id)
            resolution = resolve_for_product(product, line.unit)
            # rejects a line the ledger could not hold on receipt
            to_base_quantity(line.quantity, resolution.conversion_rate)
            price = line.unit_price if line.unit_price is not None else resolution.purchase_price
            subtotal = line_subtotal(line.quantity, price)
            total += subtotal
            order.items.append(PurchaseOrderItem(
                product_id=product.id,
                product_name=product.name,
                quantity=line.quantity,
                unit=resolution.unit,
                unit_price=price,
                subtotal=subtotal,
            ))
        order.total_amount = order_total(total)

        db.session.add(order)
        db.session.commit()
        return order

    order = run_with_retry(_op)
    logger.info("Created purchase order %s with %d item(s)", order.order_number, len(order.items))
    return order


def confirm_purchase_order(order_id: int) -> PurchaseOrder:
    """
    Receive every line into stock and mark the order CONFIRMED.

    Raises:
        NotFoundError: unknown order
        InvalidStateError: order is not PENDING
    """
    def _op():
        order = require_document(PurchaseOrder, order_id, "Purchase order", lock=True)
        require_status(order, ORDER_STATUS_PENDING, "confirm")

        lock_records(item.product_id for item in order.items)
        for item in order.items:
            _adjust_inventory_inner(
                product_id=item.product_id,
                quantity_change=item.quantity,
                transaction_type=TRANSACTION_PURCHASE,
                unit=item.unit,
                reference_id=order.id,
                note=f"Purchase order {order.order_number}",
            )

        order.status = ORDER_STATUS_CONFIRMED
        order.confirmed_at = utcnow()
        db.session.commit()
        return order

    order = run_with_retry(_op)
    logger.info("Confirmed purchase order %s", order.order_number)
    return order


def get_purchase_order(order_id: int) -> PurchaseOrder:
    return require_document(PurchaseOrder, order_id, "Purchase order")


def get_purchase_order_by_number(order_number: str) -> PurchaseOrder:
    order = db.session.query(PurchaseOrder).filter_by(order_number=(order_number or "").strip()).first()
    if order is None:
        raise NotFoundError(f"Purchase order {order_number!r} not found")
    return order


def search_purchase_orders(
    *,
    supplier: str | None = None,
    start_date=None,
    end_date=None,
    status: str | None = None,
) -> list[PurchaseOrder]:
    """Newest first. Date bounds apply to order_date and are inclusive."""
    q = db.session.query(PurchaseOrder)
    if supplier and supplier.strip():
        q = q.filter(PurchaseOrder.supplier.ilike(f"%{supplier.strip()}%"))
    if status:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Invalid status: {status}")
        q = q.filter(PurchaseOrder.status == status)
    q = filter_by_period(q, PurchaseOrder.order_date, start_date, end_date)
    return q.order_by(PurchaseOrder.order_date.desc(), PurchaseOrder.id.desc()).all()


def delete_purchase_order(order_id: int) -> None:
    def _op():
        order = require_document(PurchaseOrder, order_id, "Purchase order", lock=True)
        require_status(order, ORDER_STATUS_PENDING, "delete")
        db.session.delete(order)
        db.session.commit()

    run_with_retry(_op)
    logger.info("Deleted purchase order %s", order_id)

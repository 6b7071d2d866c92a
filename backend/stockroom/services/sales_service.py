# backend/stockroom/services/sales_service.py
"""
Sales order lifecycle.

Amount rules (authoritative):
- line subtotal = quantity x unit_price, 2 dp
- order subtotal = sum of line subtotals
- total = max(0, subtotal - discount_amount - rounding_amount)

Stock rules:
- Creation and add_item_to_order reject lines that are short on stock. This
  is advisory; stock can still move before confirmation.
- Confirmation is authoritative: every product's required base quantity is
  checked against its locked balance first, and only if all pass are the
  SALE movements applied. A short order appends no transactions at all.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal

from ..extensions import db
from ..models import Product, SalesOrder, SalesOrderItem
from ..models.documents import ORDER_STATUS_CONFIRMED, ORDER_STATUS_PENDING
from ..models.inventory import TRANSACTION_SALE
from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..numeric import ZERO, line_subtotal, order_total, quantize_amount, quantize_price
from ..time_utils import utcnow
from ..validation import bounded_decimal, optional_text, parse_line_items
from .concurrency import run_with_retry
from .document_service import (
    DOCUMENT_SALES_ORDER,
    filter_by_period,
    next_document_number,
    require_document,
    require_status,
)
from .inventory_service import _adjust_inventory_inner, get_balance, lock_records
from .purchase_service import ORDER_STATUSES, _parse_order_date
from .unit_service import require_product, resolve_for_product, to_base_quantity

logger = logging.getLogger(__name__)

DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_FIXED = "fixed"


def _recalculate_totals(order: SalesOrder) -> None:
    subtotal = order_total(sum((item.subtotal for item in order.items), ZERO))
    order.subtotal = subtotal
    total = subtotal - (order.discount_amount or ZERO) - (order.rounding_amount or ZERO)
    order.total_amount = quantize_amount(max(total, ZERO))


def _required_base_quantities(items) -> dict[int, Decimal]:
    """Sum each product's requested base quantity across lines."""
    required: dict[int, Decimal] = defaultdict(lambda: ZERO)
    for item in items:
        product = require_product(item.product_id)
        resolution = resolve_for_product(product, item.unit)
        required[product.id] += to_base_quantity(item.quantity, resolution.conversion_rate)
    return required


def _check_stock_advisory(required: dict[int, Decimal]) -> None:
    for product_id in sorted(required):
        available = get_balance(product_id)
        if available < required[product_id]:
            product = require_product(product_id)
            raise InsufficientStockError(product.id, product.name, required[product_id], available)


def _build_item(line) -> SalesOrderItem:
    product = require_product(line.product_id)
    resolution = resolve_for_product(product, line.unit)
    price = line.unit_price if line.unit_price is not None else resolution.retail_price
    return SalesOrderItem(
        product_id=product.id,
        product_name=product.name,
        quantity=line.quantity,
        unit=resolution.unit,
        unit_price=price,
        original_price=price,
        subtotal=line_subtotal(line.quantity, price),
    )


def create_sales_order(*, items, customer_name: str | None = None, order_date=None) -> SalesOrder:
    """
    Create a PENDING sales order.

    Each item: {product_id, quantity, unit, unit_price?}; unit_price defaults
    to the resolved retail price of the chosen unit.

    Raises:
        ValidationError: no items, quantity <= 0, price < 0
        ProductNotFoundError / UnitNotFoundError: unresolvable line
        InsufficientStockError: a product is short right now
    """
    lines = parse_line_items(items, price_required=False)
    order_dt = _parse_order_date(order_date)
    customer_name = optional_text(customer_name, "customer_name")

    def _op():
        _check_stock_advisory(_required_base_quantities(lines))

        order = SalesOrder(
            order_number=next_document_number(document_type=DOCUMENT_SALES_ORDER),
            customer_name=customer_name,
            order_date=order_dt,
            status=ORDER_STATUS_PENDING,
            discount_amount=ZERO,
            rounding_amount=ZERO,
            created_at=utcnow(),
        )
        for line in lines:
            order.items.append(_build_item(line))
        _recalculate_totals(order)

        db.session.add(order)
        db.session.commit()
        return order

    order = run_with_retry(_op)
    logger.info("Created sales order %s with %d item(s)", order.order_number, len(order.items))
    return order


def add_item_to_order(order_id: int, item: dict) -> SalesOrder:
    """Append one line to a PENDING order and recompute totals."""
    line = parse_line_items([item], price_required=False)[0]

    def _op():
        order = require_document(SalesOrder, order_id, "Sales order", lock=True)
        require_status(order, ORDER_STATUS_PENDING, "modify")

        required = _required_base_quantities(
            [i for i in order.items if i.product_id == line.product_id] + [line]
        )
        _check_stock_advisory(required)

        order.items.append(_build_item(line))
        _recalculate_totals(order)
        db.session.commit()
        return order

    return run_with_retry(_op)


def apply_discount(order_id: int, discount_type: str, value) -> SalesOrder:
    """
    Set the order discount.

    percentage: 0..100 percent of the subtotal. fixed: an amount between 0 and
    the subtotal. Replaces any previous discount.
    """
    if discount_type not in (DISCOUNT_PERCENTAGE, DISCOUNT_FIXED):
        raise ValidationError("discount_type must be 'percentage' or 'fixed'")
    amount = bounded_decimal(value, "value")
    if amount < 0:
        raise ValidationError("Discount cannot be negative")
    if discount_type == DISCOUNT_PERCENTAGE and amount > 100:
        raise ValidationError("Percentage discount cannot exceed 100")

    def _op():
        order = require_document(SalesOrder, order_id, "Sales order", lock=True)
        require_status(order, ORDER_STATUS_PENDING, "modify")
        _recalculate_totals(order)

        if discount_type == DISCOUNT_PERCENTAGE:
            discount = quantize_amount(order.subtotal * amount / 100)
        else:
            discount = quantize_amount(amount)
            if discount > order.subtotal:
                raise ValidationError("Discount cannot exceed the order subtotal")

        order.discount_amount = discount
        _recalculate_totals(order)
        db.session.commit()
        return order

    return run_with_retry(_op)


def apply_rounding(order_id: int, amount) -> SalesOrder:
    """Knock a small amount off the total (e.g. dropping loose change)."""
    rounding = quantize_amount(bounded_decimal(amount, "amount"))
    if rounding < 0:
        raise ValidationError("Rounding amount cannot be negative")

    def _op():
        order = require_document(SalesOrder, order_id, "Sales order", lock=True)
        require_status(order, ORDER_STATUS_PENDING, "modify")
        _recalculate_totals(order)
        if rounding > order.subtotal - order.discount_amount:
            raise ValidationError("Rounding amount cannot exceed the discounted subtotal")

        order.rounding_amount = rounding
        _recalculate_totals(order)
        db.session.commit()
        return order

    return run_with_retry(_op)


def adjust_item_price(order_id: int, item_index: int, new_price) -> SalesOrder:
    """
    Override one line's unit price. `item_index` is the 0-based position of
    the line; original_price keeps the price the line was created with.
    """
    if isinstance(item_index, bool) or not isinstance(item_index, int):
        raise ValidationError("item_index must be an integer")
    price = quantize_price(bounded_decimal(new_price, "price"))
    if price < 0:
        raise ValidationError("price must be >= 0")

    def _op():
        order = require_document(SalesOrder, order_id, "Sales order", lock=True)
        require_status(order, ORDER_STATUS_PENDING, "modify")
        if item_index < 0 or item_index >= len(order.items):
            raise NotFoundError(f"Order has no item at index {item_index}")

        item = order.items[item_index]
        item.unit_price = price
        item.subtotal = line_subtotal(item.quantity, price)
        _recalculate_totals(order)
        db.session.commit()
        return order

    return run_with_retry(_op)


def confirm_sales_order(order_id: int) -> SalesOrder:
    """
    Ship every line out of stock and mark the order CONFIRMED.

    Raises:
        NotFoundError: unknown order
        InvalidStateError: order is not PENDING
        InsufficientStockError: any product is short; nothing is applied
    """
    def _op():
        order = require_document(SalesOrder, order_id, "Sales order", lock=True)
        require_status(order, ORDER_STATUS_PENDING, "confirm")

        required = _required_base_quantities(order.items)
        records = lock_records(required.keys())
        for product_id in sorted(required):
            available = records[product_id].quantity
            if available < required[product_id]:
                product = db.session.get(Product, product_id)
                logger.warning(
                    "Sales order %s short on product %s: required %s, available %s",
                    order.order_number, product_id, required[product_id], available,
                )
                raise InsufficientStockError(product.id, product.name, required[product_id], available)

        for item in order.items:
            _adjust_inventory_inner(
                product_id=item.product_id,
                quantity_change=-item.quantity,
                transaction_type=TRANSACTION_SALE,
                unit=item.unit,
                reference_id=order.id,
                note=f"Sales order {order.order_number}",
            )

        order.status = ORDER_STATUS_CONFIRMED
        order.confirmed_at = utcnow()
        db.session.commit()
        return order

    order = run_with_retry(_op)
    logger.info("Confirmed sales order %s", order.order_number)
    return order


def get_sales_order(order_id: int) -> SalesOrder:
    return require_document(SalesOrder, order_id, "Sales order")


def get_sales_order_by_number(order_number: str) -> SalesOrder:
    order = db.session.query(SalesOrder).filter_by(order_number=(order_number or "").strip()).first()
    if order is None:
        raise NotFoundError(f"Sales order {order_number!r} not found")
    return order


def search_sales_orders(
    *,
    customer_name: str | None = None,
    start_date=None,
    end_date=None,
    status: str | None = None,
) -> list[SalesOrder]:
    q = db.session.query(SalesOrder)
    if customer_name and customer_name.strip():
        q = q.filter(SalesOrder.customer_name.ilike(f"%{customer_name.strip()}%"))
    if status:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Invalid status: {status}")
        q = q.filter(SalesOrder.status == status)
    q = filter_by_period(q, SalesOrder.order_date, start_date, end_date)
    return q.order_by(SalesOrder.order_date.desc(), SalesOrder.id.desc()).all()


def delete_sales_order(order_id: int) -> None:
    def _op():
        order = require_document(SalesOrder, order_id, "Sales order", lock=True)
        require_status(order, ORDER_STATUS_PENDING, "delete")
        db.session.delete(order)
        db.session.commit()

    run_with_retry(_op)
    logger.info("Deleted sales order %s", order_id)

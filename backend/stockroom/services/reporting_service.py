# Overview: Sales statistics over confirmed sales orders.

"""
All figures cover CONFIRMED sales orders whose order_date falls inside the
requested range (inclusive). Quantities are reported in base units; money
uses the order totals, i.e. after discounts and rounding.

Gross profit:
- cost = sum(base quantity sold x product.purchase_price)
- profit = sales - cost
- margin % = profit / sales x 100, 2 dp (0 when there are no sales)
"""
from __future__ import annotations

from collections import defaultdict
from decimal import Decimal

from ..extensions import db
from ..errors import ValidationError
from ..models import SalesOrder, SalesOrderItem
from ..models.documents import ORDER_STATUS_CONFIRMED
from ..numeric import ZERO, decimal_str, quantity_str, quantize_amount
from ..time_utils import to_utc_z
from ..validation import require_id
from .document_service import filter_by_period
from .unit_service import require_product, resolve_for_product, to_base_quantity

MAX_TOP_LIMIT = 100
OVERVIEW_TOP_LIMIT = 5


def _confirmed_orders(start_date=None, end_date=None) -> list[SalesOrder]:
    q = db.session.query(SalesOrder).filter(SalesOrder.status == ORDER_STATUS_CONFIRMED)
    q = filter_by_period(q, SalesOrder.order_date, start_date, end_date)
    return q.order_by(SalesOrder.order_date.asc(), SalesOrder.id.asc()).all()


def _base_quantity(item) -> Decimal:
    product = require_product(item.product_id)
    return to_base_quantity(item.quantity, resolve_for_product(product, item.unit).conversion_rate)


def get_sales_summary(*, start_date=None, end_date=None) -> dict:
    orders = _confirmed_orders(start_date, end_date)
    total_sales = sum((o.total_amount for o in orders), ZERO)
    total_quantity = sum((_base_quantity(i) for o in orders for i in o.items), ZERO)
    return {
        "total_sales": decimal_str(quantize_amount(total_sales)),
        "total_orders": len(orders),
        "total_quantity": quantity_str(total_quantity),
    }


def get_daily_sales(*, start_date=None, end_date=None) -> list[dict]:
    """One row per day that had sales, oldest first."""
    days: dict[str, dict] = {}
    for order in _confirmed_orders(start_date, end_date):
        key = order.order_date.strftime("%Y-%m-%d")
        row = days.setdefault(key, {"sales": ZERO, "orders": 0})
        row["sales"] += order.total_amount
        row["orders"] += 1

    return [
        {"date": day, "sales": decimal_str(quantize_amount(row["sales"])), "orders": row["orders"]}
        for day, row in sorted(days.items())
    ]


def get_top_selling_products(*, start_date=None, end_date=None, limit: int = 10) -> list[dict]:
    """Products ranked by base quantity sold; sales are line subtotals."""
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ValidationError("limit must be a positive integer")
    limit = min(limit, MAX_TOP_LIMIT)

    totals: dict[int, dict] = defaultdict(lambda: {"quantity": ZERO, "sales": ZERO})
    for order in _confirmed_orders(start_date, end_date):
        for item in order.items:
            row = totals[item.product_id]
            row["quantity"] += _base_quantity(item)
            row["sales"] += item.subtotal

    ranked = sorted(totals.items(), key=lambda kv: (-kv[1]["quantity"], kv[0]))[:limit]
    return [
        {
            "product": require_product(product_id).to_dict(),
            "quantity": quantity_str(row["quantity"]),
            "sales": decimal_str(quantize_amount(row["sales"])),
        }
        for product_id, row in ranked
    ]


def calculate_gross_profit(*, start_date=None, end_date=None) -> dict:
    orders = _confirmed_orders(start_date, end_date)
    total_sales = sum((o.total_amount for o in orders), ZERO)
    total_cost = ZERO
    for order in orders:
        for item in order.items:
            product = require_product(item.product_id)
            total_cost += _base_quantity(item) * product.purchase_price

    total_sales = quantize_amount(total_sales)
    total_cost = quantize_amount(total_cost)
    profit = total_sales - total_cost
    margin = quantize_amount(profit / total_sales * 100) if total_sales > 0 else ZERO
    return {
        "total_sales": decimal_str(total_sales),
        "total_cost": decimal_str(total_cost),
        "gross_profit": decimal_str(profit),
        "profit_margin": decimal_str(quantize_amount(margin)),
    }


def search_sales_history(*, start_date=None, end_date=None, product_id=None) -> list[SalesOrder]:
    """
    Confirmed sales orders in the range, newest first. With product_id, only
    orders that have at least one line for that product.
    """
    q = db.session.query(SalesOrder).filter(SalesOrder.status == ORDER_STATUS_CONFIRMED)
    q = filter_by_period(q, SalesOrder.order_date, start_date, end_date)
    if product_id is not None:
        product_id = require_id(product_id, "product_id")
        q = q.filter(SalesOrder.items.any(SalesOrderItem.product_id == product_id))
    return q.order_by(SalesOrder.order_date.desc(), SalesOrder.id.desc()).all()


def get_product_sales_detail(product_id: int, *, start_date=None, end_date=None) -> dict:
    """
    One product's confirmed sales in the range: base quantity, line
    subtotals, number of orders and every line, oldest first.
    """
    product = require_product(require_id(product_id, "product_id"))

    total_quantity = ZERO
    total_sales = ZERO
    order_ids = set()
    details = []
    for order in _confirmed_orders(start_date, end_date):
        for item in order.items:
            if item.product_id != product.id:
                continue
            order_ids.add(order.id)
            total_quantity += _base_quantity(item)
            total_sales += item.subtotal
            details.append({
                "order_id": order.id,
                "order_number": order.order_number,
                "order_date": to_utc_z(order.order_date),
                "quantity": decimal_str(item.quantity),
                "unit": item.unit,
                "unit_price": decimal_str(item.unit_price),
                "subtotal": decimal_str(item.subtotal),
            })

    return {
        "product": product.to_dict(),
        "total_quantity": quantity_str(total_quantity),
        "total_sales": decimal_str(quantize_amount(total_sales)),
        "order_count": len(order_ids),
        "details": details,
    }


def get_statistics_overview(*, start_date=None, end_date=None) -> dict:
    return {
        "summary": get_sales_summary(start_date=start_date, end_date=end_date),
        "profit": calculate_gross_profit(start_date=start_date, end_date=end_date),
        "top_products": get_top_selling_products(
            start_date=start_date, end_date=end_date, limit=OVERVIEW_TOP_LIMIT
        ),
    }

# Overview: Flask API routes for sales statistics.

from flask import Blueprint, request

from ..decorators import query_int, service_action
from ..services import reporting_service

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _period() -> dict:
    return {"start_date": request.args.get("start_date"), "end_date": request.args.get("end_date")}


@reports_bp.get("/sales-summary")
@service_action()
def sales_summary():
    return reporting_service.get_sales_summary(**_period())


@reports_bp.get("/daily-sales")
@service_action()
def daily_sales():
    return reporting_service.get_daily_sales(**_period())


@reports_bp.get("/top-products")
@service_action()
def top_products():
    return reporting_service.get_top_selling_products(limit=query_int("limit", 10), **_period())


@reports_bp.get("/gross-profit")
@service_action()
def gross_profit():
    return reporting_service.calculate_gross_profit(**_period())


@reports_bp.get("/overview")
@service_action()
def overview():
    return reporting_service.get_statistics_overview(**_period())


@reports_bp.get("/sales-history")
@service_action()
def sales_history():
    """
    Confirmed sales orders, newest first.

    Query params:
    - start_date, end_date: ISO-8601, inclusive
    - product_id: int (optional) - only orders containing this product
    """
    orders = reporting_service.search_sales_history(product_id=query_int("product_id"), **_period())
    return [o.to_dict() for o in orders]


@reports_bp.get("/products/<int:product_id>/sales")
@service_action()
def product_sales(product_id: int):
    return reporting_service.get_product_sales_detail(product_id, **_period())

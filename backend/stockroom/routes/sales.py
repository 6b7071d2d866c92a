# Overview: Flask API routes for sales orders, including price and discount edits.

from flask import Blueprint, request

from ..decorators import json_body, service_action
from ..services import return_service, sales_service

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales-orders")


@sales_bp.get("")
@service_action()
def search_sales_orders():
    orders = sales_service.search_sales_orders(
        customer_name=request.args.get("customer_name"),
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
        status=request.args.get("status"),
    )
    return [o.to_dict(include_items=False) for o in orders]


@sales_bp.post("")
@service_action(status=201)
def create_sales_order():
    """
    Request body:
    {
        "customer_name": str (optional),
        "order_date": ISO-8601 (optional),
        "items": [{"product_id": int, "quantity": decimal, "unit": str, "unit_price": decimal (optional)}]
    }

    Returns:
        201: Order created
        409: INSUFFICIENT_STOCK for a line that is short right now
    """
    data = json_body()
    order = sales_service.create_sales_order(
        items=data.get("items"),
        customer_name=data.get("customer_name"),
        order_date=data.get("order_date"),
    )
    return order.to_dict()


@sales_bp.get("/by-number/<order_number>")
@service_action()
def get_sales_order_by_number(order_number: str):
    return sales_service.get_sales_order_by_number(order_number).to_dict()


@sales_bp.get("/<int:order_id>")
@service_action()
def get_sales_order(order_id: int):
    return return_service.get_order("SALES", order_id)


@sales_bp.post("/<int:order_id>/items")
@service_action(status=201)
def add_item(order_id: int):
    return sales_service.add_item_to_order(order_id, json_body()).to_dict()


@sales_bp.post("/<int:order_id>/discount")
@service_action()
def apply_discount(order_id: int):
    """
    Request body:
    {
        "discount_type": "percentage" | "fixed",
        "value": decimal
    }
    """
    data = json_body()
    return sales_service.apply_discount(order_id, data.get("discount_type"), data.get("value")).to_dict()


@sales_bp.post("/<int:order_id>/rounding")
@service_action()
def apply_rounding(order_id: int):
    return sales_service.apply_rounding(order_id, json_body().get("amount")).to_dict()


@sales_bp.post("/<int:order_id>/items/<int:item_index>/price")
@service_action()
def adjust_item_price(order_id: int, item_index: int):
    return sales_service.adjust_item_price(order_id, item_index, json_body().get("price")).to_dict()


@sales_bp.post("/<int:order_id>/confirm")
@service_action()
def confirm_sales_order(order_id: int):
    """
    Returns:
        200: Order confirmed, stock decremented
        409: INSUFFICIENT_STOCK (nothing applied) or INVALID_STATE
    """
    return sales_service.confirm_sales_order(order_id).to_dict()


@sales_bp.delete("/<int:order_id>")
@service_action()
def delete_sales_order(order_id: int):
    sales_service.delete_sales_order(order_id)
    return {"deleted": True}

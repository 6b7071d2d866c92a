# Overview: Flask API routes for purchase orders.

from flask import Blueprint, request

from ..decorators import json_body, service_action
from ..services import purchase_service, return_service

purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchase-orders")


@purchases_bp.get("")
@service_action()
def search_purchase_orders():
    """
    Query params:
    - supplier: str (optional, substring match)
    - status: PENDING | CONFIRMED (optional)
    - start_date / end_date: ISO-8601 (optional, inclusive)
    """
    orders = purchase_service.search_purchase_orders(
        supplier=request.args.get("supplier"),
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
        status=request.args.get("status"),
    )
    return [o.to_dict(include_items=False) for o in orders]


@purchases_bp.post("")
@service_action(status=201)
def create_purchase_order():
    """
    Request body:
    {
        "supplier": str,
        "order_date": ISO-8601 (optional),
        "items": [{"product_id": int, "quantity": decimal, "unit": str, "unit_price": decimal (optional)}]
    }
    """
    data = json_body()
    order = purchase_service.create_purchase_order(
        supplier=data.get("supplier"),
        items=data.get("items"),
        order_date=data.get("order_date"),
    )
    return order.to_dict()


@purchases_bp.get("/by-number/<order_number>")
@service_action()
def get_purchase_order_by_number(order_number: str):
    return purchase_service.get_purchase_order_by_number(order_number).to_dict()


@purchases_bp.get("/<int:order_id>")
@service_action()
def get_purchase_order(order_id: int):
    """Order with items and the returns filed against it."""
    return return_service.get_order("PURCHASE", order_id)


@purchases_bp.post("/<int:order_id>/confirm")
@service_action()
def confirm_purchase_order(order_id: int):
    return purchase_service.confirm_purchase_order(order_id).to_dict()


@purchases_bp.delete("/<int:order_id>")
@service_action()
def delete_purchase_order(order_id: int):
    purchase_service.delete_purchase_order(order_id)
    return {"deleted": True}

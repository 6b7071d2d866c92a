# Overview: Flask API routes for purchase and sales returns.

from flask import Blueprint, request

from ..decorators import json_body, query_int, service_action
from ..services import return_service

returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.get("")
@service_action()
def list_returns():
    """
    Query params:
    - original_order_id + order_type: returns filed against one order
    - otherwise optional order_type / status filters
    """
    original_order_id = query_int("original_order_id")
    if original_order_id is not None:
        returns = return_service.list_returns_for_order(original_order_id, request.args.get("order_type"))
    else:
        returns = return_service.list_return_orders(
            order_type=request.args.get("order_type"),
            status=request.args.get("status"),
        )
    return [r.to_dict() for r in returns]


@returns_bp.post("")
@service_action(status=201)
def create_return():
    """
    Request body:
    {
        "original_order_id": int,
        "order_type": "PURCHASE" | "SALES",
        "items": [{"product_id": int, "quantity": decimal, "unit": str, "unit_price": decimal (optional)}]
    }

    Returns:
        201: Return created (PENDING)
        409: CAP_EXCEEDED when more than the remaining returnable quantity is requested
    """
    data = json_body()
    ret = return_service.create_return_order(
        original_order_id=data.get("original_order_id"),
        order_type=data.get("order_type"),
        items=data.get("items"),
    )
    return ret.to_dict()


@returns_bp.get("/<int:return_id>")
@service_action()
def get_return(return_id: int):
    return return_service.get_order("RETURN", return_id)


@returns_bp.post("/<int:return_id>/confirm")
@service_action()
def confirm_return(return_id: int):
    return return_service.confirm_return_order(return_id).to_dict()


@returns_bp.delete("/<int:return_id>")
@service_action()
def delete_return(return_id: int):
    return_service.delete_return_order(return_id)
    return {"deleted": True}

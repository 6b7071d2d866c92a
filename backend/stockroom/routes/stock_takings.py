# Overview: Flask API routes for stock-taking (physical count) documents.

from flask import Blueprint, request

from ..decorators import json_body, service_action
from ..services import stock_taking_service

stock_takings_bp = Blueprint("stock_takings", __name__, url_prefix="/api/stock-takings")


@stock_takings_bp.get("")
@service_action()
def list_stock_takings():
    takings = stock_taking_service.list_stock_takings(request.args.get("status"))
    return [t.to_dict(include_items=False) for t in takings]


@stock_takings_bp.post("")
@service_action(status=201)
def create_stock_taking():
    """Snapshot every product's balance. Body: {"taking_date": ISO-8601 (optional)}"""
    taking = stock_taking_service.create_stock_taking(taking_date=json_body().get("taking_date"))
    return taking.to_dict()


@stock_takings_bp.get("/<int:taking_id>")
@service_action()
def get_stock_taking(taking_id: int):
    data = stock_taking_service.get_stock_taking(taking_id).to_dict()
    data["summary"] = stock_taking_service.get_difference_summary(taking_id)
    return data


@stock_takings_bp.put("/<int:taking_id>/items/<int:product_id>")
@service_action()
def record_actual_quantity(taking_id: int, product_id: int):
    """
    Request body:
    {
        "actual_quantity": decimal >= 0 (base unit)
    }
    """
    item = stock_taking_service.record_actual_quantity(
        taking_id, product_id, json_body().get("actual_quantity")
    )
    return item.to_dict()


@stock_takings_bp.put("/<int:taking_id>/items")
@service_action()
def record_actual_quantities(taking_id: int):
    """Body: {"entries": [{"product_id": int, "actual_quantity": decimal}, ...]}"""
    taking = stock_taking_service.record_actual_quantities(taking_id, json_body().get("entries"))
    return taking.to_dict()


@stock_takings_bp.get("/<int:taking_id>/summary")
@service_action()
def get_difference_summary(taking_id: int):
    return stock_taking_service.get_difference_summary(taking_id)


@stock_takings_bp.post("/<int:taking_id>/complete")
@service_action()
def complete_stock_taking(taking_id: int):
    return stock_taking_service.complete_stock_taking(taking_id).to_dict()


@stock_takings_bp.delete("/<int:taking_id>")
@service_action()
def delete_stock_taking(taking_id: int):
    stock_taking_service.delete_stock_taking(taking_id)
    return {"deleted": True}

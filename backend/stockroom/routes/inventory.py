# Overview: Flask API routes for inventory balances, movements and ledger checks.

# backend/stockroom/routes/inventory.py
"""
Inventory ledger routes.

All quantities in request bodies may be JSON numbers or decimal strings;
responses always carry decimals as strings.
"""
from flask import Blueprint, request

from ..decorators import json_body, query_int, service_action
from ..numeric import decimal_str, quantity_str
from ..services import inventory_service
from ..validation import require_id, require_text

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@service_action()
def list_inventory():
    return inventory_service.list_inventory(request.args.get("keyword"))


@inventory_bp.get("/low-stock")
@service_action()
def list_low_stock():
    return inventory_service.list_low_stock()


@inventory_bp.get("/<int:product_id>")
@service_action()
def get_inventory(product_id: int):
    return inventory_service.get_inventory_with_product(product_id)


@inventory_bp.get("/<int:product_id>/balance")
@service_action()
def get_balance(product_id: int):
    """
    Query params:
    - unit: str (optional) - express the balance in this unit instead of the base unit
    """
    unit = request.args.get("unit")
    data = {"product_id": product_id, "quantity": quantity_str(inventory_service.get_balance(product_id))}
    if unit:
        data["unit"] = unit
        data["available_quantity"] = decimal_str(inventory_service.get_available_quantity(product_id, unit))
    return data


@inventory_bp.post("/adjust")
@service_action(status=201)
def adjust():
    """
    Request body:
    {
        "product_id": int,
        "quantity_change": decimal (signed, in `unit`),
        "transaction_type": "PURCHASE" | "SALE" | "ADJUSTMENT" | "RETURN",
        "unit": str,
        "reference_id": int (optional),
        "note": str (optional)
    }
    """
    data = json_body()
    tx = inventory_service.adjust_inventory(
        product_id=require_id(data.get("product_id"), "product_id"),
        quantity_change=data.get("quantity_change"),
        transaction_type=data.get("transaction_type", "ADJUSTMENT"),
        unit=require_text(data.get("unit"), "unit"),
        reference_id=(
            require_id(data["reference_id"], "reference_id")
            if data.get("reference_id") is not None else None
        ),
        note=data.get("note"),
    )
    return tx.to_dict()


@inventory_bp.post("/set")
@service_action()
def set_quantity():
    """
    Request body:
    {
        "product_id": int,
        "quantity": decimal >= 0 (base unit),
        "note": str (optional)
    }
    """
    data = json_body()
    tx = inventory_service.set_quantity(
        product_id=require_id(data.get("product_id"), "product_id"),
        quantity=data.get("quantity"),
        note=data.get("note"),
    )
    return {"transaction": tx.to_dict() if tx else None}


@inventory_bp.post("/check")
@service_action()
def check_availability():
    data = json_body()
    available = inventory_service.check_availability(
        require_id(data.get("product_id"), "product_id"),
        data.get("quantity"),
        require_text(data.get("unit"), "unit"),
    )
    return {"available": available}


@inventory_bp.post("/batch-check")
@service_action()
def batch_check_availability():
    """
    Request body:
    {
        "items": [{"product_id": int, "quantity": decimal, "unit": str}, ...]
    }
    """
    return inventory_service.batch_check_availability(json_body().get("items"))


@inventory_bp.get("/transactions")
@service_action()
def list_transactions():
    """
    Query params:
    - product_id: int (optional)
    - transaction_type: str (optional)
    - start_date / end_date: ISO-8601 (optional, inclusive)
    - limit: int (optional)
    """
    txs = inventory_service.list_transactions(
        product_id=query_int("product_id"),
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
        transaction_type=request.args.get("transaction_type"),
        limit=query_int("limit"),
    )
    return [tx.to_dict() for tx in txs]


@inventory_bp.get("/verify")
@service_action()
def verify_ledger():
    return inventory_service.verify_ledger(query_int("product_id"))

# Overview: Flask API routes for the product catalog and package units.

# backend/stockroom/routes/products.py
from flask import Blueprint, request

from ..decorators import json_body, query_int, service_action
from ..services import products_service, unit_service
from ..validation import require_id

products_bp = Blueprint("products", __name__, url_prefix="/api/products")
units_bp = Blueprint("units", __name__, url_prefix="/api/units")


@products_bp.get("")
@service_action()
def list_products():
    """
    Query params:
    - keyword: str (optional) - matches name, code, specification or supplier
    """
    products = products_service.search_products(request.args.get("keyword"))
    return [p.to_dict() for p in products]


@products_bp.post("")
@service_action(status=201)
def create_product():
    """
    Create a product. The code is generated server-side.

    Request body:
    {
        "name": str,
        "base_unit": str,
        "specification": str (optional),
        "purchase_price": decimal (optional),
        "retail_price": decimal (optional),
        "supplier": str (optional),
        "min_stock_threshold": decimal (optional)
    }
    """
    product = products_service.create_product(json_body())
    return product.to_dict(include_units=True)


@products_bp.get("/by-code/<code>")
@service_action()
def get_product_by_code(code: str):
    return products_service.get_product_by_code(code).to_dict(include_units=True)


@products_bp.get("/<int:product_id>")
@service_action()
def get_product(product_id: int):
    return products_service.get_product(product_id)


@products_bp.patch("/<int:product_id>")
@service_action()
def update_product(product_id: int):
    product = products_service.update_product(product_id, json_body())
    return product.to_dict(include_units=True)


@products_bp.delete("/<int:product_id>")
@service_action()
def delete_product(product_id: int):
    products_service.delete_product(product_id)
    return {"deleted": True}


@products_bp.get("/<int:product_id>/units")
@service_action()
def list_units(product_id: int):
    return {
        "available_units": unit_service.available_units(product_id),
        "package_units": [u.to_dict() for u in products_service.list_package_units(product_id)],
    }


@products_bp.post("/<int:product_id>/units")
@service_action(status=201)
def add_unit(product_id: int):
    """
    Request body:
    {
        "name": str,
        "conversion_rate": decimal > 0,
        "purchase_price": decimal (optional),
        "retail_price": decimal (optional)
    }
    """
    return products_service.add_package_unit(product_id, json_body()).to_dict()


@products_bp.patch("/<int:product_id>/units/<int:unit_id>")
@service_action()
def update_unit(product_id: int, unit_id: int):
    return products_service.update_package_unit(product_id, unit_id, json_body()).to_dict()


@products_bp.delete("/<int:product_id>/units/<int:unit_id>")
@service_action()
def remove_unit(product_id: int, unit_id: int):
    products_service.remove_package_unit(product_id, unit_id)
    return {"deleted": True}


@units_bp.get("/resolve")
@service_action()
def resolve_unit():
    """
    Query params:
    - product_id: int
    - unit: str
    """
    product_id = require_id(query_int("product_id"), "product_id")
    return unit_service.resolve_unit(product_id, request.args.get("unit")).to_dict()

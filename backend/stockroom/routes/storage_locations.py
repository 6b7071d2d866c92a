# Overview: Flask API routes for storage locations and product placement.

from flask import Blueprint

from ..decorators import json_body, service_action
from ..services import storage_location_service
from ..validation import require_id

storage_locations_bp = Blueprint("storage_locations", __name__, url_prefix="/api/storage-locations")


@storage_locations_bp.get("")
@service_action()
def list_storage_locations():
    return [loc.to_dict() for loc in storage_location_service.list_storage_locations()]


@storage_locations_bp.post("")
@service_action(status=201)
def create_storage_location():
    return storage_location_service.create_storage_location(json_body()).to_dict()


@storage_locations_bp.patch("/<int:location_id>")
@service_action()
def update_storage_location(location_id: int):
    return storage_location_service.update_storage_location(location_id, json_body()).to_dict()


@storage_locations_bp.delete("/<int:location_id>")
@service_action()
def delete_storage_location(location_id: int):
    storage_location_service.delete_storage_location(location_id)
    return {"deleted": True}


@storage_locations_bp.post("/<int:location_id>/products")
@service_action(status=201)
def link_product(location_id: int):
    """Body: {"product_id": int, "note": str (optional), "is_primary": bool (optional)}"""
    data = json_body()
    link = storage_location_service.link_product(
        product_id=require_id(data.get("product_id"), "product_id"),
        location_id=location_id,
        note=data.get("note"),
        is_primary=data.get("is_primary", False),
    )
    return link.to_dict()


@storage_locations_bp.delete("/<int:location_id>/products/<int:product_id>")
@service_action()
def unlink_product(location_id: int, product_id: int):
    storage_location_service.unlink_product(product_id=product_id, location_id=location_id)
    return {"deleted": True}


@storage_locations_bp.get("/products/<int:product_id>")
@service_action()
def get_product_locations(product_id: int):
    return [link.to_dict() for link in storage_location_service.get_product_locations(product_id)]

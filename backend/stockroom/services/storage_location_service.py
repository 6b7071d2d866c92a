# Overview: Storage locations and product placement; never touches quantities.

from __future__ import annotations

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import ProductStorageLocation, StorageLocation
from ..validation import STORAGE_LOCATION_POLICY, optional_text, validate_payload
from .concurrency import run_with_retry
from .unit_service import require_product


def _require_location(location_id: int) -> StorageLocation:
    location = db.session.query(StorageLocation).filter_by(id=location_id).first()
    if location is None:
        raise NotFoundError(f"Storage location {location_id} not found")
    return location


def _ensure_name_free(name: str, *, exclude_id: int | None = None) -> None:
    q = db.session.query(StorageLocation.id).filter(StorageLocation.name == name)
    if exclude_id is not None:
        q = q.filter(StorageLocation.id != exclude_id)
    if q.first():
        raise ConflictError(f"Storage location {name!r} already exists")


def list_storage_locations() -> list[StorageLocation]:
    return db.session.query(StorageLocation).order_by(StorageLocation.name.asc()).all()


def create_storage_location(payload: dict) -> StorageLocation:
    patch = validate_payload(
        model=StorageLocation, payload=payload, policy=STORAGE_LOCATION_POLICY, partial=False
    )

    def _op():
        _ensure_name_free(patch["name"])
        location = StorageLocation(**patch)
        db.session.add(location)
        db.session.commit()
        return location

    return run_with_retry(_op)


def update_storage_location(location_id: int, payload: dict) -> StorageLocation:
    patch = validate_payload(
        model=StorageLocation, payload=payload, policy=STORAGE_LOCATION_POLICY, partial=True
    )

    def _op():
        location = _require_location(location_id)
        if "name" in patch:
            _ensure_name_free(patch["name"], exclude_id=location.id)
        for k, v in patch.items():
            setattr(location, k, v)
        db.session.commit()
        return location

    return run_with_retry(_op)


def delete_storage_location(location_id: int) -> None:
    def _op():
        location = _require_location(location_id)
        if location.product_links:
            raise ConflictError("Storage location still has products linked to it")
        db.session.delete(location)
        db.session.commit()

    run_with_retry(_op)


def link_product(
    *,
    product_id: int,
    location_id: int,
    note: str | None = None,
    is_primary: bool = False,
) -> ProductStorageLocation:
    """
    Place a product at a location. Marking a link primary clears the
    product's previous primary location.
    """
    if not isinstance(is_primary, bool):
        raise ValidationError("is_primary must be true or false")
    note = optional_text(note, "note")

    def _op():
        product = require_product(product_id)
        location = _require_location(location_id)

        existing = (
            db.session.query(ProductStorageLocation)
            .filter_by(product_id=product.id, location_id=location.id)
            .first()
        )
        if existing:
            raise ConflictError("Product is already linked to this location")

        if is_primary:
            for link in product.storage_links:
                link.is_primary = False

        link = ProductStorageLocation(
            product_id=product.id,
            location_id=location.id,
            note=note,
            is_primary=is_primary,
        )
        db.session.add(link)
        db.session.commit()
        return link

    return run_with_retry(_op)


def unlink_product(*, product_id: int, location_id: int) -> None:
    def _op():
        link = (
            db.session.query(ProductStorageLocation)
            .filter_by(product_id=product_id, location_id=location_id)
            .first()
        )
        if link is None:
            raise NotFoundError("Product is not linked to this location")
        db.session.delete(link)
        db.session.commit()

    run_with_retry(_op)


def get_product_locations(product_id: int) -> list[ProductStorageLocation]:
    require_product(product_id)
    return (
        db.session.query(ProductStorageLocation)
        .filter_by(product_id=product_id)
        .order_by(ProductStorageLocation.is_primary.desc(), ProductStorageLocation.id.asc())
        .all()
    )

# Overview: Inventory ledger: per-product balances and the append-only movement history.

# backend/stockroom/services/inventory_service.py

"""
Stockroom Inventory Invariants (authoritative)

Balance model:
- InventoryRecord.quantity is the current-balance cache, one row per product.
- InventoryTransaction rows are the history; they are never updated or deleted.
- quantity == SUM(quantity_change) for every product, at every commit.

Business invariants:
- Every stock change goes through _adjust_inventory_inner(): the record
  update and the transaction append are flushed together in the caller's unit.
- A movement that would leave the balance below 0 fails with
  InsufficientStockError and changes nothing.
- set_quantity() is a wrapper that computes a delta and adjusts with
  ADJUSTMENT; it never writes the record directly.

Locking:
- The record is read with SELECT ... FOR UPDATE and is version-counted, so two
  concurrent decrements of the same product cannot both pass the check.
- Callers touching several products lock them in ascending product id order.
"""
from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func, or_

from ..extensions import db
from ..errors import InsufficientStockError, InvalidQuantityError, StockroomError, ValidationError
from ..models import InventoryRecord, InventoryTransaction, Product
from ..models.inventory import TRANSACTION_ADJUSTMENT, TRANSACTION_TYPES
from ..numeric import (
    ZERO,
    quantity_str,
    quantize,
    quantize_base,
    require_storable,
    BASE_QUANTITY_PLACES,
    QUANTITY_PLACES,
)
from ..time_utils import to_utc_z, utcnow
from ..validation import bounded_decimal, optional_text
from .concurrency import lock_for_update, run_with_retry
from .document_service import filter_by_period
from .unit_service import from_base_quantity, require_product, resolve_for_product, to_base_quantity

logger = logging.getLogger(__name__)


def _get_or_create_record(product_id: int) -> InventoryRecord:
    """Locked balance row for a product; created at zero on first use."""
    record = lock_for_update(
        db.session.query(InventoryRecord).filter_by(product_id=product_id)
    ).first()
    if record is None:
        record = InventoryRecord(product_id=product_id, quantity=ZERO, last_updated=utcnow())
        db.session.add(record)
        db.session.flush()
    return record


def lock_records(product_ids) -> dict[int, InventoryRecord]:
    """Lock the balance rows of several products in ascending id order."""
    return {pid: _get_or_create_record(pid) for pid in sorted(set(product_ids))}


def _adjust_inventory_inner(
    *,
    product_id: int,
    quantity_change,
    transaction_type: str,
    unit: str,
    reference_id: int | None = None,
    note: str | None = None,
) -> InventoryTransaction:
    """Core adjust logic without retry or commit.

    Called by the public adjust_inventory() and by every document
    confirmation, which commit once for the whole document.
    """
    if transaction_type not in TRANSACTION_TYPES:
        raise ValidationError(f"Invalid transaction type: {transaction_type}")

    change = quantize(bounded_decimal(quantity_change, "quantity_change"), QUANTITY_PLACES)
    if change == 0:
        raise InvalidQuantityError("quantity_change must not be zero")

    product = require_product(product_id)
    resolution = resolve_for_product(product, unit)
    return _post_movement(
        product=product,
        base_change=to_base_quantity(change, resolution.conversion_rate),
        transaction_type=transaction_type,
        unit=resolution.unit,
        reference_id=reference_id,
        note=note,
    )


def _post_movement(
    *,
    product: Product,
    base_change: Decimal,
    transaction_type: str,
    unit: str,
    reference_id: int | None,
    note: str | None,
) -> InventoryTransaction:
    """Apply an exact base-unit change to the locked record and append it."""
    record = _get_or_create_record(product.id)
    new_quantity = record.quantity + base_change
    if new_quantity < 0:
        logger.warning(
            "Rejected %s of %s %s for product %s: balance %s",
            transaction_type, base_change, product.base_unit, product.id, record.quantity,
        )
        raise InsufficientStockError(product.id, product.name, -base_change, record.quantity)
    require_storable(new_quantity, BASE_QUANTITY_PLACES, "resulting balance")

    record.quantity = new_quantity
    record.last_updated = utcnow()

    tx = InventoryTransaction(
        product_id=product.id,
        transaction_type=transaction_type,
        quantity_change=base_change,
        unit=unit,
        reference_id=reference_id,
        note=note,
        timestamp=utcnow(),
    )
    db.session.add(tx)
    db.session.flush()
    return tx


def adjust_inventory(
    *,
    product_id: int,
    quantity_change,
    transaction_type: str,
    unit: str,
    reference_id: int | None = None,
    note: str | None = None,
) -> InventoryTransaction:
    """
    Apply a signed stock movement expressed in `unit`.

    The balance update and the transaction append commit together or not at all.
    """
    note = optional_text(note, "note")

    def _op():
        tx = _adjust_inventory_inner(
            product_id=product_id,
            quantity_change=quantity_change,
            transaction_type=transaction_type,
            unit=unit,
            reference_id=reference_id,
            note=note,
        )
        db.session.commit()
        return tx

    tx = run_with_retry(_op)
    logger.info("Inventory %s for product %s: %s", tx.transaction_type, tx.product_id, tx.quantity_change)
    return tx


def parse_count_quantity(value) -> Decimal:
    """Non-negative base quantity; bad input is an InvalidQuantityError."""
    try:
        quantity = bounded_decimal(value, "quantity")
    except ValidationError as exc:
        raise InvalidQuantityError(exc.message)
    if quantity < 0:
        raise InvalidQuantityError("quantity cannot be negative")
    return quantize_base(quantity)


def _set_quantity_inner(
    *,
    product_id: int,
    quantity,
    note: str | None = None,
    reference_id: int | None = None,
) -> InventoryTransaction | None:
    target = parse_count_quantity(quantity)

    product = require_product(product_id)
    record = _get_or_create_record(product.id)
    delta = target - record.quantity
    if delta == 0:
        return None

    return _post_movement(
        product=product,
        base_change=delta,
        transaction_type=TRANSACTION_ADJUSTMENT,
        unit=product.base_unit,
        reference_id=reference_id,
        note=note,
    )


def set_quantity(
    *,
    product_id: int,
    quantity,
    note: str | None = None,
    reference_id: int | None = None,
) -> InventoryTransaction | None:
    """
    Bring a product's balance to `quantity` base units via one ADJUSTMENT.

    Returns None (and appends nothing) when the balance already matches.
    """
    note = optional_text(note, "note")

    def _op():
        tx = _set_quantity_inner(
            product_id=product_id, quantity=quantity, note=note, reference_id=reference_id
        )
        db.session.commit()
        return tx

    return run_with_retry(_op)


def get_balance(product_id: int) -> Decimal:
    require_product(product_id)
    record = db.session.query(InventoryRecord).filter_by(product_id=product_id).first()
    return record.quantity if record else ZERO


def check_availability(product_id: int, quantity, unit: str) -> bool:
    """Read-only: is `quantity` of `unit` currently in stock?"""
    requested = quantize(bounded_decimal(quantity, "quantity"), QUANTITY_PLACES)
    if requested < 0:
        raise InvalidQuantityError("quantity cannot be negative")
    product = require_product(product_id)
    resolution = resolve_for_product(product, unit)
    required = to_base_quantity(requested, resolution.conversion_rate)
    return get_balance(product.id) >= required


def batch_check_availability(items) -> list[dict]:
    """
    Check many (product_id, quantity, unit) requests at once.

    An item that cannot be resolved is reported unavailable with an error
    message rather than failing the whole batch.
    """
    if not isinstance(items, list):
        raise ValidationError("items must be a list")

    results = []
    for raw in items:
        raw = raw if isinstance(raw, dict) else {}
        product_id = raw.get("product_id")
        row = {"product_id": product_id, "unit": raw.get("unit")}
        try:
            requested = quantize(bounded_decimal(raw.get("quantity"), "quantity"), QUANTITY_PLACES)
            if requested < 0:
                raise InvalidQuantityError("quantity cannot be negative")
            product = require_product(product_id)
            resolution = resolve_for_product(product, raw.get("unit"))
            required = to_base_quantity(requested, resolution.conversion_rate)
            in_stock = get_balance(product.id)
        except StockroomError as exc:
            row.update({"available": False, "error": exc.message})
            results.append(row)
            continue

        row.update({
            "available": in_stock >= required,
            "required": quantity_str(required),
            "in_stock": quantity_str(in_stock),
        })
        if in_stock < required:
            row["shortage"] = quantity_str(required - in_stock)
        results.append(row)
    return results


def get_available_quantity(product_id: int, unit: str) -> Decimal:
    """Current balance expressed in `unit` (3 dp)."""
    product = require_product(product_id)
    resolution = resolve_for_product(product, unit)
    return from_base_quantity(get_balance(product.id), resolution.conversion_rate)


def is_low_stock(quantity: Decimal, threshold: Decimal) -> bool:
    """
    quantity <= threshold when a threshold is set; a threshold of 0 alerts
    only when the product is completely out of stock.
    """
    if threshold > 0:
        return quantity <= threshold
    return quantity == 0


def _inventory_row(product: Product, record: InventoryRecord | None) -> dict:
    quantity = record.quantity if record else ZERO
    data = product.to_dict()
    data.update({
        "product_id": product.id,
        "quantity": quantity_str(quantity),
        "last_updated": to_utc_z(record.last_updated) if record else None,
        "is_low_stock": is_low_stock(quantity, product.min_stock_threshold),
    })
    return data


def get_inventory_with_product(product_id: int) -> dict:
    product = require_product(product_id)
    return _inventory_row(product, product.inventory_record)


def list_inventory(keyword: str | None = None) -> list[dict]:
    q = db.session.query(Product, InventoryRecord).outerjoin(
        InventoryRecord, InventoryRecord.product_id == Product.id
    )
    if keyword:
        like = f"%{keyword.strip()}%"
        q = q.filter(or_(Product.name.ilike(like), Product.code.ilike(like)))
    return [_inventory_row(p, r) for p, r in q.order_by(Product.name.asc(), Product.id.asc()).all()]


def list_low_stock() -> list[dict]:
    """Products at or under their threshold, largest deficit first."""
    rows = []
    for product, record in db.session.query(Product, InventoryRecord).outerjoin(
        InventoryRecord, InventoryRecord.product_id == Product.id
    ).all():
        quantity = record.quantity if record else ZERO
        threshold = product.min_stock_threshold
        if not is_low_stock(quantity, threshold):
            continue
        row = _inventory_row(product, record)
        deficit = threshold - quantity
        row["deficit"] = quantity_str(deficit)
        rows.append((deficit, product.name, row))

    rows.sort(key=lambda r: (-r[0], r[1]))
    return [r[2] for r in rows]


def list_transactions(
    *,
    product_id: int | None = None,
    start_date=None,
    end_date=None,
    transaction_type: str | None = None,
    limit: int | None = None,
) -> list[InventoryTransaction]:
    """Newest first. Date bounds are inclusive."""
    q = db.session.query(InventoryTransaction)
    if product_id is not None:
        require_product(product_id)
        q = q.filter(InventoryTransaction.product_id == product_id)
    if transaction_type:
        if transaction_type not in TRANSACTION_TYPES:
            raise ValidationError(f"Invalid transaction type: {transaction_type}")
        q = q.filter(InventoryTransaction.transaction_type == transaction_type)

    q = filter_by_period(q, InventoryTransaction.timestamp, start_date, end_date)

    q = q.order_by(InventoryTransaction.timestamp.desc(), InventoryTransaction.id.desc())
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def verify_ledger(product_id: int | None = None) -> dict:
    """
    Compare every balance row with the sum of its transactions.

    Products without a record must have an empty (or zero-sum) history.
    """
    sums_q = db.session.query(
        InventoryTransaction.product_id, func.sum(InventoryTransaction.quantity_change)
    ).group_by(InventoryTransaction.product_id)
    products_q = db.session.query(Product, InventoryRecord).outerjoin(
        InventoryRecord, InventoryRecord.product_id == Product.id
    )
    if product_id is not None:
        require_product(product_id)
        sums_q = sums_q.filter(InventoryTransaction.product_id == product_id)
        products_q = products_q.filter(Product.id == product_id)

    sums = {pid: (total or ZERO) for pid, total in sums_q.all()}

    mismatches = []
    checked = 0
    for product, record in products_q.order_by(Product.id.asc()).all():
        checked += 1
        record_qty = record.quantity if record else ZERO
        ledger_qty = sums.get(product.id, ZERO)
        if record_qty != ledger_qty:
            mismatches.append({
                "product_id": product.id,
                "product_name": product.name,
                "record_quantity": quantity_str(record_qty),
                "ledger_quantity": quantity_str(ledger_qty),
            })

    if mismatches:
        logger.warning("Ledger verification found %d mismatched product(s)", len(mismatches))
    return {"checked": checked, "consistent": not mismatches, "mismatches": mismatches}

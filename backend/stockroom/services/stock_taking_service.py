# backend/stockroom/services/stock_taking_service.py
"""
Physical stock-taking.

WHY: Regular physical counts keep the ledger honest. A stock-take freezes the
system balance of every product, accepts counted quantities, and on
completion feeds each nonzero difference back through set_quantity() as an
ADJUSTMENT transaction.

LIFECYCLE:
1. IN_PROGRESS: snapshot taken, counts being entered
2. COMPLETED: differences posted to the ledger (terminal)
"""
from __future__ import annotations

import logging

from ..extensions import db
from ..models import InventoryRecord, Product, StockTaking, StockTakingItem
from ..models.documents import TAKING_STATUS_COMPLETED, TAKING_STATUS_IN_PROGRESS
from ..errors import NotFoundError, ValidationError
from ..numeric import ZERO, quantity_str
from ..time_utils import normalize_datetime, utcnow
from .concurrency import run_with_retry
from .document_service import require_document, require_status
from .inventory_service import _set_quantity_inner, lock_records, parse_count_quantity

logger = logging.getLogger(__name__)

TAKING_STATUSES = (TAKING_STATUS_IN_PROGRESS, TAKING_STATUS_COMPLETED)


def create_stock_taking(*, taking_date=None) -> StockTaking:
    """
    Snapshot every product's current balance.

    Each item starts with actual_quantity == system_quantity and difference 0.
    """
    try:
        taking_dt = normalize_datetime(taking_date) or utcnow()
    except ValueError:
        raise ValidationError("taking_date must be an ISO-8601 datetime")

    def _op():
        taking = StockTaking(
            taking_date=taking_dt,
            status=TAKING_STATUS_IN_PROGRESS,
            created_at=utcnow(),
        )
        rows = (
            db.session.query(Product, InventoryRecord)
            .outerjoin(InventoryRecord, InventoryRecord.product_id == Product.id)
            .order_by(Product.id.asc())
            .all()
        )
        for product, record in rows:
            quantity = record.quantity if record else ZERO
            taking.items.append(StockTakingItem(
                product_id=product.id,
                product_name=product.name,
                system_quantity=quantity,
                actual_quantity=quantity,
                difference=ZERO,
                unit=product.base_unit,
            ))

        db.session.add(taking)
        db.session.commit()
        return taking

    taking = run_with_retry(_op)
    logger.info("Created stock-taking %s covering %d product(s)", taking.id, len(taking.items))
    return taking


def _require_item(taking: StockTaking, product_id: int) -> StockTakingItem:
    item = next((i for i in taking.items if i.product_id == product_id), None)
    if item is None:
        raise NotFoundError(f"Product {product_id} is not part of stock-taking {taking.id}")
    return item


def _record(item: StockTakingItem, actual_quantity) -> None:
    actual = parse_count_quantity(actual_quantity)
    item.actual_quantity = actual
    item.difference = actual - item.system_quantity


def record_actual_quantity(taking_id: int, product_id: int, actual_quantity) -> StockTakingItem:
    """
    Enter the counted quantity (base units) for one product.

    Raises:
        NotFoundError: unknown stock-taking or product not in it
        InvalidStateError: stock-taking already COMPLETED
        InvalidQuantityError: negative or non-numeric quantity
    """
    def _op():
        taking = require_document(StockTaking, taking_id, "Stock-taking", lock=True)
        require_status(taking, TAKING_STATUS_IN_PROGRESS, "edit")
        item = _require_item(taking, product_id)
        _record(item, actual_quantity)
        db.session.commit()
        return item

    return run_with_retry(_op)


def record_actual_quantities(taking_id: int, entries) -> StockTaking:
    """Apply several counts at once; one bad entry rejects the whole batch."""
    if not isinstance(entries, list) or not entries:
        raise ValidationError("entries must be a non-empty list")

    def _op():
        taking = require_document(StockTaking, taking_id, "Stock-taking", lock=True)
        require_status(taking, TAKING_STATUS_IN_PROGRESS, "edit")
        for idx, entry in enumerate(entries):
            if not isinstance(entry, dict) or "product_id" not in entry:
                raise ValidationError(f"entries[{idx}] must include product_id")
            item = _require_item(taking, entry["product_id"])
            _record(item, entry.get("actual_quantity"))
        db.session.commit()
        return taking

    return run_with_retry(_op)


def get_difference_summary(taking_id: int) -> dict:
    taking = require_document(StockTaking, taking_id, "Stock-taking")
    surplus = ZERO
    shortage = ZERO
    with_difference = 0
    for item in taking.items:
        if item.difference == 0:
            continue
        with_difference += 1
        if item.difference > 0:
            surplus += item.difference
        else:
            shortage += -item.difference

    return {
        "total_items": len(taking.items),
        "items_with_difference": with_difference,
        "total_surplus": quantity_str(surplus),
        "total_shortage": quantity_str(shortage),
    }


def complete_stock_taking(taking_id: int) -> StockTaking:
    """
    Post every nonzero difference and mark the stock-taking COMPLETED.

    The ledger is set to the counted quantity, so movements that happened
    after the snapshot are overridden by the count.
    """
    def _op():
        taking = require_document(StockTaking, taking_id, "Stock-taking", lock=True)
        require_status(taking, TAKING_STATUS_IN_PROGRESS, "complete")

        changed = [item for item in taking.items if item.difference != 0]
        lock_records(item.product_id for item in changed)
        for item in changed:
            _set_quantity_inner(
                product_id=item.product_id,
                quantity=item.actual_quantity,
                note=f"Stock-taking {taking.id}",
                reference_id=taking.id,
            )

        taking.status = TAKING_STATUS_COMPLETED
        taking.completed_at = utcnow()
        db.session.commit()
        return taking

    taking = run_with_retry(_op)
    logger.info("Completed stock-taking %s", taking.id)
    return taking


def delete_stock_taking(taking_id: int) -> None:
    def _op():
        taking = require_document(StockTaking, taking_id, "Stock-taking", lock=True)
        require_status(taking, TAKING_STATUS_IN_PROGRESS, "delete")
        db.session.delete(taking)
        db.session.commit()

    run_with_retry(_op)


def get_stock_taking(taking_id: int) -> StockTaking:
    return require_document(StockTaking, taking_id, "Stock-taking")


def list_stock_takings(status: str | None = None) -> list[StockTaking]:
    q = db.session.query(StockTaking)
    if status:
        if status not in TAKING_STATUSES:
            raise ValidationError(f"Invalid status: {status}")
        q = q.filter(StockTaking.status == status)
    return q.order_by(StockTaking.created_at.desc(), StockTaking.id.desc()).all()

# Overview: Order-number allocation backed by a per-day sequence table.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..models import DocumentSequence
from ..time_utils import normalize_datetime, utcnow
from .concurrency import lock_for_update

DOCUMENT_PURCHASE_ORDER = "PURCHASE_ORDER"
DOCUMENT_SALES_ORDER = "SALES_ORDER"
DOCUMENT_PURCHASE_RETURN = "PURCHASE_RETURN"
DOCUMENT_SALES_RETURN = "SALES_RETURN"

DOCUMENT_PREFIXES = {
    DOCUMENT_PURCHASE_ORDER: "PO",
    DOCUMENT_SALES_ORDER: "SO",
    DOCUMENT_PURCHASE_RETURN: "PR",
    DOCUMENT_SALES_RETURN: "SR",
}


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _claim_existing(document_type: str, day: str) -> int | None:
    """Bump an existing day row; returns the claimed number or None if absent."""
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.sequence_date == day,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type, sequence_date=day)
        .scalar()
    )
    return current - 1


def next_document_number(*, document_type: str, on_date: datetime | None = None, pad: int = 4) -> str:
    """
    Allocate the next order number for a document type, e.g. PO20261019-0003.

    Runs inside the caller's unit and does not commit: the number is only
    consumed if the document that uses it is committed too. The first number
    of a day is inserted under a savepoint; if a concurrent transaction
    inserted the same day row first, the unique key fails only the savepoint
    and the number is claimed from that row instead.
    """
    prefix = DOCUMENT_PREFIXES.get(document_type)
    if prefix is None:
        raise DocumentSequenceError(f"Unknown document type: {document_type}")

    day = (on_date or utcnow()).strftime("%Y%m%d")

    next_num = _claim_existing(document_type, day)
    if next_num is None:
        try:
            with db.session.begin_nested():
                db.session.add(
                    DocumentSequence(document_type=document_type, sequence_date=day, next_number=2)
                )
            next_num = 1
        except IntegrityError:
            next_num = _claim_existing(document_type, day)
            if next_num is None:
                raise

    return f"{prefix}{day}-{next_num:0{pad}d}"


def require_document(model, doc_id: int, label: str, *, lock: bool = False):
    """Fetch a document header by id or raise NotFoundError."""
    query = db.session.query(model).filter_by(id=doc_id)
    if lock:
        query = lock_for_update(query)
    doc = query.first()
    if doc is None:
        raise NotFoundError(f"{label} {doc_id} not found")
    return doc


def require_status(doc, expected: str, action: str) -> None:
    if doc.status != expected:
        raise InvalidStateError(f"Cannot {action} a document in {doc.status} status")


def parse_date_filter(value, field: str) -> datetime | None:
    """Optional ISO-8601 bound for list filters; bounds are inclusive."""
    try:
        return normalize_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def filter_by_period(query, column, start_date=None, end_date=None):
    start_dt = parse_date_filter(start_date, "start_date")
    end_dt = parse_date_filter(end_date, "end_date")
    if start_dt is not None:
        query = query.filter(column >= start_dt)
    if end_dt is not None:
        query = query.filter(column <= end_dt)
    return query

# Overview: Atomic allocation of human-readable document numbers (INV-000001, PO-000001).

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


INVOICE_SEQUENCE = "INVOICE"
PURCHASE_ORDER_SEQUENCE = "PURCHASE_ORDER"


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _current_next(document_type: str) -> int:
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )


def next_document_number(document_type: str, prefix: str, pad: int = 6) -> str:
    """
    Allocate the next number for document_type inside the caller's transaction.

    The counter row is bumped with a single UPDATE ... SET next_number =
    next_number + 1, so two writers can never read the same value. The first
    call for a type inserts the row; losing that insert race falls back to
    the UPDATE path.

    Does not commit: the number is only consumed if the document using it
    is committed too. Call it before staging anything else in the
    transaction; losing the first-insert race rolls the session back.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")
    if not prefix:
        raise DocumentSequenceError("prefix is required")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        db.session.flush()
        next_num = _current_next(document_type) - 1
    else:
        db.session.add(DocumentSequence(document_type=document_type, next_number=2))
        try:
            db.session.flush()
            next_num = 1
        except IntegrityError:
            db.session.rollback()
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise DocumentSequenceError(f"Could not allocate number for {document_type}")
            db.session.flush()
            next_num = _current_next(document_type) - 1

    return f"{prefix}-{next_num:0{pad}d}"

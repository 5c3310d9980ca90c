# Overview: Service-layer allocation of human-readable document numbers.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence

DOC_DEPOSIT_ORDER = "DEPOSIT_ORDER"
DOC_SALE = "SALE"


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _allocated_number(document_type: str) -> int:
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )
    return current - 1


def next_document_number(*, document_type: str, prefix: str, pad: int = 4) -> str:
    """
    Allocate the next document number for a type inside the caller's transaction.

    The UPDATE takes the row lock on the sequence, so two transactions can
    never receive the same number; a missing sequence row is created under a
    savepoint so a lost insert race does not abort the caller's work.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        db.session.flush()
        next_num = _allocated_number(document_type)
    else:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, next_number=2))
            next_num = 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise DocumentSequenceError(f"Could not allocate {document_type} number")
            db.session.flush()
            next_num = _allocated_number(document_type)

    return f"{prefix}-{next_num:0{pad}d}"

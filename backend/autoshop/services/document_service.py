# Overview: Atomic per-branch document number allocation.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


JOB_ORDER_DOCUMENT_TYPE = "JOB_ORDER"
JOB_ORDER_PREFIX = "JO"


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _allocate(branch_id: int, document_type: str) -> int:
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.branch_id == branch_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        # First number for this branch/type. A savepoint keeps the caller's
        # pending work intact if a concurrent request inserted the row first.
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(branch_id=branch_id, document_type=document_type, next_number=2))
            return 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise DocumentSequenceError(f"Could not allocate {document_type} number for branch {branch_id}")

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(branch_id=branch_id, document_type=document_type)
        .scalar()
    )
    return current - 1


def next_document_number(
    *,
    branch_id: int,
    document_type: str = JOB_ORDER_DOCUMENT_TYPE,
    prefix: str = JOB_ORDER_PREFIX,
    pad: int = 4,
) -> str:
    """
    Allocate the next document number for a branch/type, e.g. "JO-001-0042".

    Runs inside the caller's transaction: the number is only consumed if the
    caller commits.
    """
    if not branch_id:
        raise DocumentSequenceError("branch_id is required")
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    next_num = _allocate(branch_id, document_type)
    return f"{prefix}-{branch_id:03d}-{next_num:0{pad}d}"

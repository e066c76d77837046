# Overview: Human-readable document numbers allocated from locked per-scope counters.

from __future__ import annotations

from ..models import DocumentSequence
from ..time_utils import utcnow
from .unit_of_work import UnitOfWork


def _allocate(uow: UnitOfWork, scope: str) -> int:
    """
    Reserve the next number for a scope inside the caller's unit of work.

    The counter row is locked for update, so two concurrent allocations in
    the same scope serialize; the number is lost if the unit rolls back.
    """
    seq = uow.locked(uow.query(DocumentSequence).filter_by(scope=scope)).first()
    if seq is None:
        seq = DocumentSequence(scope=scope, next_number=1)
        uow.add(seq)
    number = seq.next_number
    seq.next_number = number + 1
    uow.flush()
    return number


def next_document_number(uow: UnitOfWork, *, store_id: int, document_type: str, prefix: str, pad: int = 6) -> str:
    """Store-scoped number, e.g. "V-003-000042" for the 42nd sale of store 3."""
    number = _allocate(uow, f"{document_type}:{store_id}")
    return f"{prefix}-{store_id:03d}-{number:0{pad}d}"


def next_purchase_order_number(uow: UnitOfWork) -> str:
    """Yearly global sequence: PO-2026-000001."""
    year = utcnow().year
    number = _allocate(uow, f"PURCHASE_ORDER:{year}")
    return f"PO-{year}-{number:06d}"

# Overview: Store-to-store transfers: pending -> in_transit -> received, with compensating cancel.

# backend/retail_api/services/transfer_service.py
"""
Inter-store transfer service.

LIFECYCLE:
1. pending: document created, availability at the source verified, no stock moved
2. in_transit: send leg decrements the source store for every line
3. received: receive leg increments the destination store (row created if absent)
4. cancelled: from pending (status only) or in_transit (source restocked)

received and cancelled are terminal. Each leg is one unit of work: either
every line moves or none does.
"""
from __future__ import annotations

import logging

from sqlalchemy import func, or_

from ..actors import Actor, ensure_admin, ensure_store_access
from ..errors import ForbiddenError, InvalidTransferState, NotFoundError, ValidationError
from ..extensions import db
from ..models import Store, Transfer, TransferLine
from ..models.documents import (
    TRANSFER_STATUS_CANCELLED,
    TRANSFER_STATUS_IN_TRANSIT,
    TRANSFER_STATUS_PENDING,
    TRANSFER_STATUS_RECEIVED,
    TRANSFER_STATUSES,
)
from ..pagination import PageParams, paginate
from ..time_utils import utcnow
from . import inventory_service
from .document_service import next_document_number
from .inventory_service import LineQuantity, Reference, as_lines
from .sales_service import priced_products
from .unit_of_work import UnitOfWork, run_in_unit_of_work

logger = logging.getLogger(__name__)

DEFAULT_CANCEL_REASON = "no reason given"


def _store_or_404(uow: UnitOfWork, store_id: int, label: str) -> Store:
    store = uow.session.get(Store, store_id)
    if store is None or not store.is_active:
        raise NotFoundError(f"{label} store {store_id} not found")
    return store


def _locked_transfer(uow: UnitOfWork, transfer_id: int) -> Transfer:
    transfer = uow.locked(uow.query(Transfer).filter_by(id=transfer_id)).first()
    if transfer is None:
        raise NotFoundError("Transfer not found")
    return transfer


def _require_status(transfer: Transfer, expected: str, target: str) -> None:
    if transfer.status != expected:
        raise InvalidTransferState(transfer.status, target)


def create_transfer(actor: Actor, req) -> Transfer:
    """
    Create a pending transfer after checking the source can cover every line.

    Raises:
        ForbiddenError: Caller has no access to the source store
        ProductNotInInventory / InsufficientStock: Source cannot cover a line
    """
    ensure_store_access(actor, req.from_store_id)

    def _op(uow: UnitOfWork) -> Transfer:
        _store_or_404(uow, req.from_store_id, "Origin")
        _store_or_404(uow, req.to_store_id, "Destination")
        priced_products(uow, req.items)

        inventory_service.check_availability(uow, req.from_store_id, as_lines(req.items))

        transfer = Transfer(
            transfer_number=next_document_number(
                uow, store_id=req.from_store_id, document_type="TRANSFER", prefix="T",
            ),
            from_store_id=req.from_store_id,
            to_store_id=req.to_store_id,
            status=TRANSFER_STATUS_PENDING,
            notes=req.notes,
            created_by_user_id=actor.user_id,
            created_at=utcnow(),
        )
        for item in req.items:
            transfer.lines.append(TransferLine(
                product_id=item.product_id,
                quantity=item.quantity,
                notes=item.notes,
            ))
        uow.add(transfer)
        uow.flush()
        return transfer

    transfer = run_in_unit_of_work(_op)
    logger.info("Transfer %s created: store %s -> %s", transfer.transfer_number,
                transfer.from_store_id, transfer.to_store_id)
    return transfer


def send_transfer(actor: Actor, transfer_id: int) -> Transfer:
    """pending -> in_transit; decrements the source store for every line."""
    def _op(uow: UnitOfWork) -> Transfer:
        transfer = _locked_transfer(uow, transfer_id)
        ensure_store_access(actor, transfer.from_store_id)
        _require_status(transfer, TRANSFER_STATUS_PENDING, TRANSFER_STATUS_IN_TRANSIT)

        inventory_service.apply_decrements(
            uow, transfer.from_store_id, as_lines(transfer.lines), inventory_service.REASON_TRANSFER_OUT,
            actor_user_id=actor.user_id, reference=Reference("transfer", transfer.id),
        )
        transfer.status = TRANSFER_STATUS_IN_TRANSIT
        transfer.sent_by_user_id = actor.user_id
        transfer.sent_at = utcnow()
        return transfer

    transfer = run_in_unit_of_work(_op)
    logger.info("Transfer %s sent by user %s", transfer.transfer_number, actor.user_id)
    return transfer


def receive_transfer(actor: Actor, transfer_id: int, req) -> Transfer:
    """
    in_transit -> received; increments the destination store.

    Lines not listed in req.received_items arrive in full. A received
    quantity below the requested one is an under-delivery: the difference
    left the source and is not added anywhere.
    """
    def _op(uow: UnitOfWork) -> Transfer:
        transfer = _locked_transfer(uow, transfer_id)
        ensure_store_access(actor, transfer.to_store_id)
        _require_status(transfer, TRANSFER_STATUS_IN_TRANSIT, TRANSFER_STATUS_RECEIVED)

        by_product = {line.product_id: line for line in transfer.lines}
        overrides = {item.product_id: item for item in req.received_items}
        errors = []
        for index, item in enumerate(req.received_items):
            line = by_product.get(item.product_id)
            if line is None:
                errors.append({"field": f"received_items[{index}].product_id",
                               "message": "product is not part of this transfer"})
            elif item.received_quantity > line.quantity:
                errors.append({"field": f"received_items[{index}].received_quantity",
                               "message": f"cannot exceed requested quantity {line.quantity}"})
        if errors:
            raise ValidationError("Validation failed", errors=errors)

        arrivals = []
        for line in transfer.lines:
            override = overrides.get(line.product_id)
            line.received_quantity = override.received_quantity if override else line.quantity
            if override and override.notes:
                line.notes = override.notes
            arrivals.append(LineQuantity(line.product_id, line.received_quantity))

        inventory_service.apply_increments(
            uow, transfer.to_store_id, arrivals, inventory_service.REASON_TRANSFER_IN,
            actor_user_id=actor.user_id, reference=Reference("transfer", transfer.id),
        )
        transfer.status = TRANSFER_STATUS_RECEIVED
        transfer.received_by_user_id = actor.user_id
        transfer.received_at = utcnow()
        return transfer

    transfer = run_in_unit_of_work(_op)
    short = sum(line.quantity - (line.received_quantity or 0) for line in transfer.lines)
    if short:
        logger.warning("Transfer %s received with %d units short", transfer.transfer_number, short)
    else:
        logger.info("Transfer %s received in full", transfer.transfer_number)
    return transfer


def cancel_transfer(actor: Actor, transfer_id: int, reason: str | None = None) -> Transfer:
    """
    Cancel a pending or in-transit transfer (admin only).

    From in_transit the source store gets every line back; from pending
    nothing has moved, so only the status changes.
    """
    ensure_admin(actor)

    def _op(uow: UnitOfWork) -> Transfer:
        transfer = _locked_transfer(uow, transfer_id)
        if transfer.status not in (TRANSFER_STATUS_PENDING, TRANSFER_STATUS_IN_TRANSIT):
            raise InvalidTransferState(transfer.status, TRANSFER_STATUS_CANCELLED)

        if transfer.status == TRANSFER_STATUS_IN_TRANSIT:
            inventory_service.apply_increments(
                uow, transfer.from_store_id, as_lines(transfer.lines), inventory_service.REASON_TRANSFER_CANCEL,
                actor_user_id=actor.user_id, reference=Reference("transfer", transfer.id),
            )
        transfer.status = TRANSFER_STATUS_CANCELLED
        transfer.cancelled_by_user_id = actor.user_id
        transfer.cancelled_at = utcnow()
        transfer.cancellation_reason = reason or DEFAULT_CANCEL_REASON
        return transfer

    transfer = run_in_unit_of_work(_op)
    logger.info("Transfer %s cancelled: %s", transfer.transfer_number, transfer.cancellation_reason)
    return transfer


# =============================================================================
# Reads
# =============================================================================

def get_transfer(actor: Actor, transfer_id: int) -> Transfer:
    transfer = db.session.get(Transfer, transfer_id)
    if transfer is None:
        raise NotFoundError("Transfer not found")
    if not (actor.can_access_store(transfer.from_store_id) or actor.can_access_store(transfer.to_store_id)):
        raise ForbiddenError("You do not have access to this transfer")
    return transfer


def _visible(actor: Actor, store_id: int | None = None):
    query = Transfer.query
    if not actor.is_admin:
        query = query.filter(or_(Transfer.from_store_id == actor.store_id, Transfer.to_store_id == actor.store_id))
    elif store_id is not None:
        query = query.filter(or_(Transfer.from_store_id == store_id, Transfer.to_store_id == store_id))
    return query


def list_transfers(actor: Actor, params: PageParams, *, status: str | None = None, store_id: int | None = None,
                   direction: str | None = None):
    query = _visible(actor, store_id)
    if status:
        query = query.filter(Transfer.status == status)
    scope = store_id if actor.is_admin else actor.store_id
    if scope is not None and direction == "outgoing":
        query = query.filter(Transfer.from_store_id == scope)
    elif scope is not None and direction == "incoming":
        query = query.filter(Transfer.to_store_id == scope)
    return paginate(query.order_by(Transfer.created_at.desc(), Transfer.id.desc()), params)


def transfer_summary(actor: Actor, store_id: int | None = None) -> dict:
    counts = dict(
        _visible(actor, store_id).with_entities(Transfer.status, func.count(Transfer.id))
        .group_by(Transfer.status).all()
    )
    by_status = {status: int(counts.get(status, 0)) for status in TRANSFER_STATUSES}
    return {"total": sum(by_status.values()), "by_status": by_status}

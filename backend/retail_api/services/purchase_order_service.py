# Overview: Purchase orders against suppliers; receipt increments store stock line by line.

"""
Purchase Order Service

LIFECYCLE:
1. pending: created, editable
2. partial: some units received, still editable for header fields
3. received: every line received in full (terminal)
4. cancelled: cancelled before full receipt (terminal)

Status is derived from the lines by pricing.purchase_order_status(); it is
never set by hand except for cancellation.

Receiving is cumulative: each receipt adds to quantity_received and to the
store's ledger in one unit of work. Receiving more than is still
outstanding on a line is rejected.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func

from ..actors import Actor, ensure_admin, ensure_store_access, scoped_store_id
from ..errors import InvalidState, NotFoundError, ValidationError
from ..extensions import db
from ..models import PurchaseOrder, PurchaseOrderLine, Supplier
from ..models.documents import (
    PO_STATUS_CANCELLED,
    PO_STATUS_PENDING,
    PO_STATUS_RECEIVED,
    PO_STATUSES,
)
from ..pagination import PageParams, paginate
from ..pricing import line_subtotal, purchase_order_status, purchase_order_totals
from ..schemas import UNSET
from ..time_utils import utcnow
from . import inventory_service
from .document_service import next_purchase_order_number
from .inventory_service import LineQuantity, Reference
from .sales_service import active_store, priced_products
from .unit_of_work import UnitOfWork, run_in_unit_of_work

logger = logging.getLogger(__name__)


def _active_supplier(uow: UnitOfWork, supplier_id: int) -> Supplier:
    supplier = uow.session.get(Supplier, supplier_id)
    if supplier is None or not supplier.is_active:
        raise NotFoundError(f"Supplier {supplier_id} not found")
    return supplier


def _locked_order(uow: UnitOfWork, order_id: int) -> PurchaseOrder:
    order = uow.locked(uow.query(PurchaseOrder).filter_by(id=order_id)).first()
    if order is None:
        raise NotFoundError("Purchase order not found")
    return order


def _replace_lines(order: PurchaseOrder, items, uow: UnitOfWork | None = None) -> None:
    if order.lines:
        order.lines.clear()
        # Old rows must be gone before new ones hit uq (order, product)
        uow.flush()
    for item in items:
        order.lines.append(PurchaseOrderLine(
            product_id=item.product_id,
            quantity_ordered=item.quantity_ordered,
            quantity_received=0,
            unit_cost_cents=item.unit_cost_cents,
            subtotal_cents=line_subtotal(item.quantity_ordered, item.unit_cost_cents),
        ))


def _recompute_totals(order: PurchaseOrder) -> None:
    order.total_cost_cents, order.final_total_cents = purchase_order_totals(
        [(line.quantity_ordered, line.unit_cost_cents) for line in order.lines],
        order.tax_cents,
        order.shipping_cost_cents,
    )


def create_purchase_order(actor: Actor, req) -> PurchaseOrder:
    """
    Create a pending purchase order (admin only).

    Args:
        actor: Caller (must be admin)
        req: CreatePurchaseOrderRequest

    Returns:
        PurchaseOrder: The committed order, numbered PO-{year}-{n}
    """
    ensure_admin(actor)

    def _op(uow: UnitOfWork) -> PurchaseOrder:
        _active_supplier(uow, req.supplier_id)
        active_store(uow, req.store_id)
        priced_products(uow, req.items)

        order = PurchaseOrder(
            order_number=next_purchase_order_number(uow),
            supplier_id=req.supplier_id,
            store_id=req.store_id,
            status=PO_STATUS_PENDING,
            payment_status="pending",
            tax_cents=req.tax_cents,
            shipping_cost_cents=req.shipping_cost_cents,
            order_date=utcnow(),
            expected_delivery_date=req.expected_delivery_date,
            invoice_number=req.invoice_number,
            notes=req.notes,
            created_by_user_id=actor.user_id,
        )
        _replace_lines(order, req.items)
        _recompute_totals(order)
        uow.add(order)
        uow.flush()
        return order

    order = run_in_unit_of_work(_op)
    logger.info("Purchase order %s created for supplier %s: %s cents", order.order_number,
                order.supplier_id, order.final_total_cents)
    return order


def update_purchase_order(actor: Actor, order_id: int, req) -> PurchaseOrder:
    """
    Edit an open purchase order (admin only).

    Lines can only be replaced while nothing has been received.
    """
    ensure_admin(actor)

    def _op(uow: UnitOfWork) -> PurchaseOrder:
        order = _locked_order(uow, order_id)
        if order.status in (PO_STATUS_RECEIVED, PO_STATUS_CANCELLED):
            raise InvalidState("purchase_order", order.status, "updated",
                               f"Cannot modify a {order.status} purchase order")

        if req.supplier_id is not UNSET and req.supplier_id is not None:
            _active_supplier(uow, req.supplier_id)
            order.supplier_id = req.supplier_id
        if req.items is not UNSET:
            if any(line.quantity_received for line in order.lines):
                raise InvalidState("purchase_order", order.status, "updated",
                                   "Cannot replace lines after receiving has started")
            priced_products(uow, req.items)
            _replace_lines(order, req.items, uow)
        if req.tax_cents is not UNSET:
            order.tax_cents = req.tax_cents
        if req.shipping_cost_cents is not UNSET:
            order.shipping_cost_cents = req.shipping_cost_cents
        if req.expected_delivery_date is not UNSET:
            order.expected_delivery_date = req.expected_delivery_date
        if req.invoice_number is not UNSET:
            order.invoice_number = req.invoice_number
        if req.payment_status is not UNSET:
            order.payment_status = req.payment_status
        if req.notes is not UNSET:
            order.notes = req.notes

        _recompute_totals(order)
        return order

    return run_in_unit_of_work(_op)


def receive_purchase_order(actor: Actor, order_id: int, req) -> PurchaseOrder:
    """
    Receive goods against a purchase order.

    Raises:
        InvalidState: Order already received or cancelled
        ForbiddenError: Caller cannot access the order's store
        ValidationError: Unknown product or more than the outstanding quantity
    """
    def _op(uow: UnitOfWork) -> PurchaseOrder:
        order = _locked_order(uow, order_id)
        ensure_store_access(actor, order.store_id)
        if order.status in (PO_STATUS_RECEIVED, PO_STATUS_CANCELLED):
            raise InvalidState("purchase_order", order.status, PO_STATUS_RECEIVED,
                               f"Cannot receive a {order.status} purchase order")

        by_product = {line.product_id: line for line in order.lines}
        errors = []
        for index, item in enumerate(req.items):
            line = by_product.get(item.product_id)
            if line is None:
                errors.append({"field": f"items[{index}].product_id",
                               "message": "product is not part of this purchase order"})
                continue
            outstanding = line.quantity_ordered - line.quantity_received
            if item.quantity_received > outstanding:
                errors.append({"field": f"items[{index}].quantity_received",
                               "message": f"only {outstanding} units outstanding"})
        if errors:
            raise ValidationError("Validation failed", errors=errors)

        for item in req.items:
            by_product[item.product_id].quantity_received += item.quantity_received

        inventory_service.apply_increments(
            uow, order.store_id,
            [LineQuantity(item.product_id, item.quantity_received) for item in req.items],
            inventory_service.REASON_PURCHASE_RECEIPT,
            actor_user_id=actor.user_id, reference=Reference("purchase_order", order.id),
        )

        order.status = purchase_order_status(
            (line.quantity_ordered, line.quantity_received) for line in order.lines
        )
        order.received_by_user_id = actor.user_id
        order.received_date = utcnow()
        if req.notes:
            order.notes = f"{order.notes}\n{req.notes}" if order.notes else req.notes
        return order

    order = run_in_unit_of_work(_op)
    logger.info("Purchase order %s received (status=%s)", order.order_number, order.status)
    return order


def cancel_purchase_order(actor: Actor, order_id: int, reason: str | None = None) -> PurchaseOrder:
    """Cancel an order that has not been fully received (admin only)."""
    ensure_admin(actor)

    def _op(uow: UnitOfWork) -> PurchaseOrder:
        order = _locked_order(uow, order_id)
        if order.status in (PO_STATUS_RECEIVED, PO_STATUS_CANCELLED):
            raise InvalidState("purchase_order", order.status, PO_STATUS_CANCELLED,
                               f"Cannot cancel a {order.status} purchase order")
        order.status = PO_STATUS_CANCELLED
        order.cancelled_by_user_id = actor.user_id
        order.cancelled_at = utcnow()
        if reason:
            marker = f"[CANCELADO] {reason}"
            order.notes = f"{order.notes}\n{marker}" if order.notes else marker
        return order

    order = run_in_unit_of_work(_op)
    logger.info("Purchase order %s cancelled", order.order_number)
    return order


# =============================================================================
# Reads
# =============================================================================

def get_purchase_order(actor: Actor, order_id: int) -> PurchaseOrder:
    order = db.session.get(PurchaseOrder, order_id)
    if order is None:
        raise NotFoundError("Purchase order not found")
    ensure_store_access(actor, order.store_id)
    return order


def _filtered(actor: Actor, *, store_id: int | None = None, supplier_id: int | None = None,
              status: str | None = None, payment_status: str | None = None,
              start: datetime | None = None, end: datetime | None = None):
    store_id = scoped_store_id(actor, store_id)
    query = PurchaseOrder.query
    if store_id is not None:
        query = query.filter(PurchaseOrder.store_id == store_id)
    if supplier_id is not None:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    if status:
        query = query.filter(PurchaseOrder.status == status)
    if payment_status:
        query = query.filter(PurchaseOrder.payment_status == payment_status)
    if start is not None:
        query = query.filter(PurchaseOrder.order_date >= start)
    if end is not None:
        query = query.filter(PurchaseOrder.order_date <= end)
    return query


def list_purchase_orders(actor: Actor, params: PageParams, **filters):
    query = _filtered(actor, **filters)
    return paginate(query.order_by(PurchaseOrder.order_date.desc(), PurchaseOrder.id.desc()), params)


def purchase_order_stats(actor: Actor, **filters) -> dict:
    query = _filtered(actor, **filters)
    rows = (
        query.with_entities(
            PurchaseOrder.status,
            func.count(PurchaseOrder.id),
            func.coalesce(func.sum(PurchaseOrder.final_total_cents), 0),
        )
        .group_by(PurchaseOrder.status)
        .all()
    )
    by_status = {status: {"count": 0, "total_cents": 0} for status in PO_STATUSES}
    for status, count, total in rows:
        by_status[status] = {"count": int(count), "total_cents": int(total)}
    active = [v for k, v in by_status.items() if k != PO_STATUS_CANCELLED]
    return {
        "total_orders": sum(v["count"] for v in by_status.values()),
        "total_amount_cents": sum(v["total_cents"] for v in active),
        "by_status": by_status,
    }

# Overview: Returns and exchanges against completed sales: pending -> approved -> completed, or rejected.

# backend/retail_api/services/return_service.py
"""
Return service.

LIFECYCLE:
1. pending: created against a completed sale; nothing moves
2. approved: reviewer signed off
3. completed: returned items restocked onto the sale's store and, for an
   exchange, the replacement items decremented, all in one unit of work;
   refused once the sale has been cancelled
4. rejected: only from pending

Returnable quantity per product = sold quantity - quantity already claimed
by non-rejected returns of the same sale. When completed returns cover
every sold unit, the sale becomes `refunded`.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime

from sqlalchemy import func

from ..actors import Actor, ensure_store_access, scoped_store_id
from ..errors import InvalidState, NotFoundError, SaleNotCompleted, ValidationError
from ..extensions import db
from ..models import Product, Return, ReturnExchangeLine, ReturnLine, Sale
from ..models.documents import (
    RETURN_STATUS_APPROVED,
    RETURN_STATUS_COMPLETED,
    RETURN_STATUS_PENDING,
    RETURN_STATUS_REJECTED,
    RETURN_STATUSES,
    RETURN_TYPE_EXCHANGE,
    RETURN_TYPES,
)
from ..models.sales import SALE_STATUS_COMPLETED, SALE_STATUS_REFUNDED
from ..pagination import PageParams, paginate
from ..pricing import return_totals
from ..time_utils import utcnow
from . import inventory_service
from .document_service import next_document_number
from .inventory_service import Reference, as_lines
from .sales_service import priced_products
from .unit_of_work import UnitOfWork, run_in_unit_of_work

logger = logging.getLogger(__name__)


def returned_quantities(sale_id: int, *, statuses=None, exclude_return_id: int | None = None) -> dict[int, int]:
    """product_id -> units claimed by returns of the sale in the given statuses."""
    statuses = statuses or (RETURN_STATUS_PENDING, RETURN_STATUS_APPROVED, RETURN_STATUS_COMPLETED)
    query = (
        db.session.query(ReturnLine.product_id, func.coalesce(func.sum(ReturnLine.quantity), 0))
        .join(Return, ReturnLine.return_id == Return.id)
        .filter(Return.sale_id == sale_id, Return.status.in_(statuses))
    )
    if exclude_return_id is not None:
        query = query.filter(Return.id != exclude_return_id)
    return {product_id: int(qty) for product_id, qty in query.group_by(ReturnLine.product_id).all()}


def _sold_quantities(sale: Sale) -> dict[int, int]:
    sold: dict[int, int] = defaultdict(int)
    for line in sale.lines:
        sold[line.product_id] += line.quantity
    return sold


def create_return(actor: Actor, req) -> Return:
    """
    Open a return against a completed sale.

    Raises:
        SaleNotCompleted: The sale was cancelled or already fully refunded
        ValidationError: Item not on the sale or more than is still returnable
        InsufficientStock / ProductNotInInventory: Exchange items not on hand
    """
    def _op(uow: UnitOfWork) -> Return:
        sale = uow.locked(uow.query(Sale).filter_by(id=req.sale_id)).first()
        if sale is None:
            raise NotFoundError("Sale not found")
        ensure_store_access(actor, sale.store_id)
        if sale.status != SALE_STATUS_COMPLETED:
            raise SaleNotCompleted(sale.id, sale.status)

        sold = _sold_quantities(sale)
        unit_prices = {line.product_id: line.unit_price_cents for line in sale.lines}
        already = returned_quantities(sale.id)
        errors = []
        for index, item in enumerate(req.items):
            if item.product_id not in sold:
                errors.append({"field": f"items[{index}].product_id", "message": "product is not part of this sale"})
                continue
            returnable = sold[item.product_id] - already.get(item.product_id, 0)
            if item.quantity > returnable:
                errors.append({"field": f"items[{index}].quantity",
                               "message": f"only {returnable} units can still be returned"})
        if errors:
            raise ValidationError("Validation failed", errors=errors)

        exchange_products: dict[int, Product] = {}
        if req.exchange_items:
            exchange_products = priced_products(uow, req.exchange_items)
            # Advisory: stock is checked again when the exchange completes
            inventory_service.check_availability(uow, sale.store_id, as_lines(req.exchange_items))

        refund, exchange_total, difference = return_totals(
            [(item.quantity, unit_prices[item.product_id]) for item in req.items],
            [(item.quantity, exchange_products[item.product_id].price_cents) for item in req.exchange_items],
        )

        doc = Return(
            return_number=next_document_number(
                uow, store_id=sale.store_id, document_type="RETURN", prefix="DEV",
            ),
            sale_id=sale.id,
            store_id=sale.store_id,
            return_type=req.return_type,
            status=RETURN_STATUS_PENDING,
            total_refund_cents=refund,
            exchange_total_cents=exchange_total,
            price_difference_cents=difference,
            reason=req.reason,
            notes=req.notes,
            customer_name=req.customer_name,
            customer_phone=req.customer_phone,
            processed_by_user_id=actor.user_id,
            created_at=utcnow(),
        )
        for item in req.items:
            doc.lines.append(ReturnLine(
                product_id=item.product_id,
                quantity=item.quantity,
                price_cents=unit_prices[item.product_id],
                reason=item.reason,
            ))
        for item in req.exchange_items:
            doc.exchange_lines.append(ReturnExchangeLine(
                product_id=item.product_id,
                quantity=item.quantity,
                price_cents=exchange_products[item.product_id].price_cents,
            ))
        uow.add(doc)
        uow.flush()
        return doc

    doc = run_in_unit_of_work(_op)
    logger.info("Return %s created for sale %s (%s)", doc.return_number, doc.sale_id, doc.return_type)
    return doc


def _locked_return(uow: UnitOfWork, actor: Actor, return_id: int) -> Return:
    doc = uow.locked(uow.query(Return).filter_by(id=return_id)).first()
    if doc is None:
        raise NotFoundError("Return not found")
    ensure_store_access(actor, doc.store_id)
    return doc


def approve_return(actor: Actor, return_id: int) -> Return:
    def _op(uow: UnitOfWork) -> Return:
        doc = _locked_return(uow, actor, return_id)
        if doc.status != RETURN_STATUS_PENDING:
            raise InvalidState("return", doc.status, RETURN_STATUS_APPROVED)
        doc.status = RETURN_STATUS_APPROVED
        doc.approved_by_user_id = actor.user_id
        doc.approved_at = utcnow()
        return doc

    return run_in_unit_of_work(_op)


def complete_return(actor: Actor, return_id: int) -> Return:
    """
    Complete an approved return.

    Returned items go back onto the sale's store; exchange items leave it.
    A shortfall on any exchange item aborts the whole completion, restock
    included.

    Raises:
        SaleNotCompleted: The sale was cancelled after the return was opened
    """
    def _op(uow: UnitOfWork) -> Return:
        sale_id = uow.query(Return.sale_id).filter(Return.id == return_id).scalar()
        if sale_id is None:
            raise NotFoundError("Return not found")
        # Same lock order as cancel_sale: sale first, then the return
        sale = uow.locked(uow.query(Sale).filter_by(id=sale_id)).first()
        doc = _locked_return(uow, actor, return_id)
        if doc.status != RETURN_STATUS_APPROVED:
            raise InvalidState("return", doc.status, RETURN_STATUS_COMPLETED)
        if sale.status != SALE_STATUS_COMPLETED:
            raise SaleNotCompleted(sale.id, sale.status)

        reference = Reference("return", doc.id)
        inventory_service.apply_increments(
            uow, doc.store_id, as_lines(doc.lines), inventory_service.REASON_RETURN,
            actor_user_id=actor.user_id, reference=reference,
        )
        if doc.return_type == RETURN_TYPE_EXCHANGE and doc.exchange_lines:
            inventory_service.apply_decrements(
                uow, doc.store_id, as_lines(doc.exchange_lines), inventory_service.REASON_EXCHANGE,
                actor_user_id=actor.user_id, reference=reference,
            )

        doc.status = RETURN_STATUS_COMPLETED
        doc.completed_by_user_id = actor.user_id
        doc.completed_at = utcnow()
        uow.flush()

        sold = _sold_quantities(sale)
        returned = returned_quantities(sale.id, statuses=(RETURN_STATUS_COMPLETED,))
        if all(returned.get(pid, 0) >= qty for pid, qty in sold.items()):
            sale.status = SALE_STATUS_REFUNDED
            logger.info("Sale %s fully refunded", sale.document_number)
        return doc

    doc = run_in_unit_of_work(_op)
    logger.info("Return %s completed", doc.return_number)
    return doc


def reject_return(actor: Actor, return_id: int, reason: str | None = None) -> Return:
    def _op(uow: UnitOfWork) -> Return:
        doc = _locked_return(uow, actor, return_id)
        if doc.status != RETURN_STATUS_PENDING:
            raise InvalidState("return", doc.status, RETURN_STATUS_REJECTED)
        doc.status = RETURN_STATUS_REJECTED
        doc.rejected_by_user_id = actor.user_id
        doc.rejected_at = utcnow()
        if reason:
            marker = f"[RECHAZADO] {reason}"
            doc.notes = f"{doc.notes}\n{marker}" if doc.notes else marker
        return doc

    return run_in_unit_of_work(_op)


# =============================================================================
# Reads
# =============================================================================

def get_return(actor: Actor, return_id: int) -> Return:
    doc = db.session.get(Return, return_id)
    if doc is None:
        raise NotFoundError("Return not found")
    ensure_store_access(actor, doc.store_id)
    return doc


def _filtered(actor: Actor, *, store_id: int | None = None, status: str | None = None,
              return_type: str | None = None, start: datetime | None = None, end: datetime | None = None):
    store_id = scoped_store_id(actor, store_id)
    query = Return.query
    if store_id is not None:
        query = query.filter(Return.store_id == store_id)
    if status:
        query = query.filter(Return.status == status)
    if return_type:
        query = query.filter(Return.return_type == return_type)
    if start is not None:
        query = query.filter(Return.created_at >= start)
    if end is not None:
        query = query.filter(Return.created_at <= end)
    return query


def list_returns(actor: Actor, params: PageParams, **filters):
    query = _filtered(actor, **filters)
    return paginate(query.order_by(Return.created_at.desc(), Return.id.desc()), params)


def return_summary(actor: Actor, **filters) -> dict:
    query = _filtered(actor, **filters)
    by_status = {status: {"count": 0, "total_refund_cents": 0} for status in RETURN_STATUSES}
    for status, count, refund in (
        query.with_entities(Return.status, func.count(Return.id), func.coalesce(func.sum(Return.total_refund_cents), 0))
        .group_by(Return.status).all()
    ):
        by_status[status] = {"count": int(count), "total_refund_cents": int(refund)}
    by_type = {return_type: {"count": 0, "total_refund_cents": 0} for return_type in RETURN_TYPES}
    for return_type, count, refund in (
        query.with_entities(Return.return_type, func.count(Return.id),
                            func.coalesce(func.sum(Return.total_refund_cents), 0))
        .group_by(Return.return_type).all()
    ):
        by_type[return_type] = {"count": int(count), "total_refund_cents": int(refund)}
    return {
        "total": sum(v["count"] for v in by_status.values()),
        "by_status": by_status,
        "by_type": by_type,
    }


def search_sale(actor: Actor, document_number: str) -> dict:
    """Find a sale by number and report how much of each line is still returnable."""
    query = Sale.query.filter(Sale.document_number == document_number.strip())
    if not actor.is_admin:
        query = query.filter(Sale.store_id == actor.store_id)
    sale = query.first()
    if sale is None:
        raise NotFoundError("Sale not found")
    ensure_store_access(actor, sale.store_id)

    already = returned_quantities(sale.id)
    data = sale.to_dict()
    for item in data["items"]:
        claimed = already.get(item["product_id"], 0)
        item["returned_quantity"] = claimed
        item["returnable_quantity"] = max(item["quantity"] - claimed, 0)
    data["can_return"] = sale.status == SALE_STATUS_COMPLETED and any(
        item["returnable_quantity"] > 0 for item in data["items"]
    )
    return data

# Overview: Sale documents: atomic create with stock decrement, cancel with restock, reads and stats.

# backend/retail_api/services/sales_service.py
"""
Sales.

A sale is created `completed` in the same unit of work that decrements the
ledger for every line. If any line is short, nothing is written: not the
sale, not its number, not a single ledger row.

Cancellation is the exact inverse of creation: every unit still out of the
store is restocked and the sale moves to `cancelled`. Units already put back
by completed returns are not restocked again. There is no partial
cancellation.
"""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func

from ..actors import Actor, ensure_admin, ensure_store_access, scoped_store_id
from ..errors import NotFoundError, SaleNotCompleted, ValidationError
from ..extensions import db
from ..models import Product, Sale, SaleLine, Store
from ..models.documents import RETURN_STATUS_COMPLETED
from ..models.sales import PAYMENT_METHODS, SALE_STATUS_CANCELLED, SALE_STATUS_COMPLETED
from ..pagination import PageParams, paginate
from ..pricing import final_total, sale_totals
from ..schemas import UNSET
from ..time_utils import start_of_day, utcnow
from . import inventory_service
from .document_service import next_document_number
from .inventory_service import LineQuantity, Reference, as_lines
from .unit_of_work import UnitOfWork, run_in_unit_of_work

logger = logging.getLogger(__name__)


def active_store(uow: UnitOfWork, store_id: int) -> Store:
    store = uow.session.get(Store, store_id)
    if store is None or not store.is_active:
        raise NotFoundError(f"Store {store_id} not found")
    return store


def priced_products(uow: UnitOfWork, lines) -> dict[int, Product]:
    """Load every product a request mentions; inactive or unknown ids are a 404."""
    ids = [line.product_id for line in lines]
    products = {p.id: p for p in uow.query(Product).filter(Product.id.in_(ids)).all()}
    missing = [pid for pid in ids if pid not in products or not products[pid].is_active]
    if missing:
        raise NotFoundError(
            "Product not found",
            errors=[{"product_id": pid, "message": "product not found or inactive"} for pid in missing],
        )
    return products


def ensure_payable(total_cents: int, tax_cents: int, discount_cents: int) -> int:
    """Final total of a sale; a discount larger than total + tax is a 400."""
    final = final_total(total_cents, tax_cents, discount_cents)
    if final < 0:
        raise ValidationError("Validation failed", errors=[{
            "field": "discount_cents",
            "message": f"cannot exceed total plus tax ({total_cents + tax_cents} cents)",
        }])
    return final


def create_sale(actor: Actor, req) -> Sale:
    """
    Create a completed sale and decrement stock for every line.

    Args:
        actor: Caller; must have access to req.store_id
        req: CreateSaleRequest

    Returns:
        Sale: The committed sale

    Raises:
        NotFoundError: Store or a product does not exist
        ForbiddenError: Caller cannot sell for this store
        ProductNotInInventory / InsufficientStock: Stock check failed
    """
    ensure_store_access(actor, req.store_id)
    lines = as_lines(req.items)

    def _op(uow: UnitOfWork) -> Sale:
        active_store(uow, req.store_id)
        products = priced_products(uow, req.items)

        # Every line is checked before anything is written
        inventory_service.check_availability(uow, req.store_id, lines)

        prices = [
            item.unit_price_cents if item.unit_price_cents is not None else products[item.product_id].price_cents
            for item in req.items
        ]
        totals = sale_totals(
            [(item.quantity, price) for item, price in zip(req.items, prices)],
            tax_cents=req.tax_cents,
            discount_cents=req.discount_cents,
        )
        ensure_payable(totals.total, totals.tax, totals.discount)

        sale = Sale(
            store_id=req.store_id,
            document_number=next_document_number(
                uow, store_id=req.store_id, document_type="SALE", prefix="V",
            ),
            status=SALE_STATUS_COMPLETED,
            payment_method=req.payment_method,
            total_cents=totals.total,
            tax_cents=totals.tax,
            discount_cents=totals.discount,
            final_total_cents=totals.final_total,
            notes=req.notes,
            sold_by_user_id=actor.user_id,
            created_at=utcnow(),
        )
        for item, price, subtotal in zip(req.items, prices, totals.subtotals):
            sale.lines.append(SaleLine(
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price_cents=price,
                subtotal_cents=subtotal,
            ))
        uow.add(sale)
        uow.flush()

        inventory_service.apply_decrements(
            uow, req.store_id, lines, inventory_service.REASON_SALE,
            actor_user_id=actor.user_id, reference=Reference("sale", sale.id),
        )
        return sale

    sale = run_in_unit_of_work(_op)
    logger.info("Sale %s created at store %s: %s cents", sale.document_number, sale.store_id,
                sale.final_total_cents)
    return sale


def cancel_sale(actor: Actor, sale_id: int, reason: str) -> Sale:
    """
    Cancel a completed sale and restock what it still holds (admin only).

    Raises:
        SaleNotCompleted: The sale is already cancelled or refunded
    """
    from .return_service import returned_quantities

    ensure_admin(actor)

    def _op(uow: UnitOfWork) -> Sale:
        sale = uow.locked(uow.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise NotFoundError("Sale not found")
        if sale.status != SALE_STATUS_COMPLETED:
            raise SaleNotCompleted(sale.id, sale.status)

        # Completed returns already restocked their units
        restocked = returned_quantities(sale.id, statuses=(RETURN_STATUS_COMPLETED,))
        outstanding = []
        for line in as_lines(sale.lines):
            already = min(restocked.get(line.product_id, 0), line.quantity)
            restocked[line.product_id] = restocked.get(line.product_id, 0) - already
            outstanding.append(LineQuantity(line.product_id, line.quantity - already))

        inventory_service.apply_increments(
            uow, sale.store_id, outstanding, inventory_service.REASON_SALE_CANCEL,
            actor_user_id=actor.user_id, reference=Reference("sale", sale.id),
        )
        sale.status = SALE_STATUS_CANCELLED
        sale.cancelled_by_user_id = actor.user_id
        sale.cancelled_at = utcnow()
        sale.cancellation_reason = reason
        return sale

    sale = run_in_unit_of_work(_op)
    logger.info("Sale %s cancelled by user %s: %s", sale.document_number, actor.user_id, reason)
    return sale


def update_sale(actor: Actor, sale_id: int, req) -> Sale:
    """Edit notes, payment method or discount of a completed sale (admin only)."""
    ensure_admin(actor)

    def _op(uow: UnitOfWork) -> Sale:
        sale = uow.locked(uow.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise NotFoundError("Sale not found")
        if sale.status != SALE_STATUS_COMPLETED:
            raise SaleNotCompleted(sale.id, sale.status)

        if req.notes is not UNSET:
            sale.notes = req.notes
        if req.payment_method is not UNSET:
            sale.payment_method = req.payment_method
        if req.discount_cents is not UNSET:
            sale.final_total_cents = ensure_payable(sale.total_cents, sale.tax_cents, req.discount_cents)
            sale.discount_cents = req.discount_cents
        inventory_service.invalidate_reports(uow)
        return sale

    return run_in_unit_of_work(_op)


# =============================================================================
# Reads
# =============================================================================

def get_sale(actor: Actor, sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found")
    ensure_store_access(actor, sale.store_id)
    return sale


def _date_filtered(query, column, start: datetime | None, end: datetime | None):
    if start is not None:
        query = query.filter(column >= start)
    if end is not None:
        query = query.filter(column <= end)
    return query


def list_sales(actor: Actor, params: PageParams, *, store_id: int | None = None, status: str | None = None,
               payment_method: str | None = None, start: datetime | None = None, end: datetime | None = None):
    store_id = scoped_store_id(actor, store_id)
    query = Sale.query
    if store_id is not None:
        query = query.filter(Sale.store_id == store_id)
    if status:
        query = query.filter(Sale.status == status)
    if payment_method:
        query = query.filter(Sale.payment_method == payment_method)
    query = _date_filtered(query, Sale.created_at, start, end)
    return paginate(query.order_by(Sale.created_at.desc(), Sale.id.desc()), params)


def _aggregate(query) -> dict:
    row = query.with_entities(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.final_total_cents), 0),
        func.coalesce(func.sum(Sale.tax_cents), 0),
        func.coalesce(func.sum(Sale.discount_cents), 0),
    ).one()
    count, revenue, tax, discount = (int(v or 0) for v in row)
    return {
        "total_sales": count,
        "total_revenue_cents": revenue,
        "total_tax_cents": tax,
        "total_discount_cents": discount,
        "average_ticket_cents": revenue // count if count else 0,
    }


def _by_payment_method(query) -> dict:
    rows = (
        query.with_entities(Sale.payment_method, func.count(Sale.id), func.coalesce(func.sum(Sale.final_total_cents), 0))
        .group_by(Sale.payment_method)
        .all()
    )
    result = {method: {"count": 0, "total_cents": 0} for method in PAYMENT_METHODS}
    for method, count, total in rows:
        result[method] = {"count": int(count), "total_cents": int(total)}
    return result


def store_stats(actor: Actor, store_id: int, *, start: datetime | None = None, end: datetime | None = None) -> dict:
    """Completed-sale aggregates for one store."""
    ensure_store_access(actor, store_id)
    if db.session.get(Store, store_id) is None:
        raise NotFoundError("Store not found")
    completed = _date_filtered(
        Sale.query.filter(Sale.store_id == store_id, Sale.status == SALE_STATUS_COMPLETED),
        Sale.created_at, start, end,
    )
    stats = _aggregate(completed)
    stats["by_payment_method"] = _by_payment_method(completed)
    stats["cancelled_sales"] = _date_filtered(
        Sale.query.filter(Sale.store_id == store_id, Sale.status == SALE_STATUS_CANCELLED),
        Sale.created_at, start, end,
    ).count()
    return stats


def daily_cut(actor: Actor, store_id: int | None = None) -> dict:
    """Today's completed sales, split by payment method."""
    store_id = scoped_store_id(actor, store_id)
    today = start_of_day()
    query = Sale.query.filter(Sale.status == SALE_STATUS_COMPLETED, Sale.created_at >= today)
    if store_id is not None:
        query = query.filter(Sale.store_id == store_id)
    cut = _aggregate(query)
    cut["by_payment_method"] = _by_payment_method(query)
    cut["date"] = today.date().isoformat()
    cut["store_id"] = store_id
    return cut


def cash_sales_since(store_id: int, since: datetime) -> int:
    """Cash revenue of completed sales at a store since `since` (cents)."""
    total = (
        db.session.query(func.coalesce(func.sum(Sale.final_total_cents), 0))
        .filter(
            Sale.store_id == store_id,
            Sale.status == SALE_STATUS_COMPLETED,
            Sale.payment_method == "cash",
            Sale.created_at >= since,
        )
        .scalar()
    )
    return int(total or 0)

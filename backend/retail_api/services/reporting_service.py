# Overview: Read-only sales and inventory reports, served through the response cache.

"""
Reporting Service

Reports are aggregates over completed sales and the inventory ledger. They
are computed on demand and cached per (namespace, arguments):

- dashboard     admin-wide overview            CACHE_DASHBOARD_TTL
- store_stats   one store's sales and stock    CACHE_STORE_STATS_TTL
- reports       trend, top products, category,
                payment method, store breakdown CACHE_DEFAULT_TTL

Every stock or money write invalidates all three namespaces after commit
(inventory_service.invalidate_reports), so a cached report never survives a
write that changes it.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import case, func

from ..actors import Actor, ensure_admin, ensure_store_access, scoped_store_id
from ..cache import get_cache
from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryLedger, Product, Sale, SaleLine, Store, User
from ..models.sales import PAYMENT_METHODS, SALE_STATUS_COMPLETED
from ..time_utils import days_ago, start_of_day, to_utc_z, utcnow

TREND_GROUPINGS = {
    "day": "%Y-%m-%d",
    "week": "%Y-W%W",
    "month": "%Y-%m",
}


def _cache_key(*parts) -> str:
    return ":".join(
        to_utc_z(part) if isinstance(part, datetime) else ("" if part is None else str(part))
        for part in parts
    )


def _completed_sales(store_id: int | None, start: datetime | None, end: datetime | None):
    query = db.session.query(Sale).filter(Sale.status == SALE_STATUS_COMPLETED)
    if store_id is not None:
        query = query.filter(Sale.store_id == store_id)
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end)
    return query


def _totals(query) -> dict:
    count, revenue, tax, discount = query.with_entities(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.final_total_cents), 0),
        func.coalesce(func.sum(Sale.tax_cents), 0),
        func.coalesce(func.sum(Sale.discount_cents), 0),
    ).one()
    count, revenue = int(count or 0), int(revenue or 0)
    return {
        "total_sales": count,
        "total_revenue_cents": revenue,
        "total_tax_cents": int(tax or 0),
        "total_discount_cents": int(discount or 0),
        "average_ticket_cents": revenue // count if count else 0,
    }


def _today(store_id: int | None) -> dict:
    count, revenue = _completed_sales(store_id, start_of_day(), None).with_entities(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.final_total_cents), 0),
    ).one()
    return {"count": int(count or 0), "revenue_cents": int(revenue or 0)}


def _per_store(start: datetime | None, end: datetime | None) -> list[dict]:
    rows = (
        _completed_sales(None, start, end)
        .join(Store, Store.id == Sale.store_id)
        .with_entities(
            Store.id,
            Store.name,
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.final_total_cents), 0),
            func.coalesce(func.sum(Sale.tax_cents), 0),
            func.coalesce(func.sum(Sale.discount_cents), 0),
        )
        .group_by(Store.id, Store.name)
        .order_by(func.sum(Sale.final_total_cents).desc())
        .all()
    )
    return [
        {
            "store_id": store_id,
            "store_name": name,
            "total_sales": int(count),
            "total_revenue_cents": int(revenue),
            "total_tax_cents": int(tax),
            "total_discount_cents": int(discount),
            "average_ticket_cents": int(revenue) // int(count) if count else 0,
        }
        for store_id, name, count, revenue, tax, discount in rows
    ]


def _top_products(store_id: int | None, start: datetime | None, end: datetime | None, limit: int) -> list[dict]:
    rows = (
        _completed_sales(store_id, start, end)
        .join(SaleLine, SaleLine.sale_id == Sale.id)
        .join(Product, Product.id == SaleLine.product_id)
        .with_entities(
            Product.id,
            Product.sku,
            Product.name,
            Product.category,
            func.sum(SaleLine.quantity).label("units"),
            func.sum(SaleLine.subtotal_cents).label("revenue"),
        )
        .group_by(Product.id, Product.sku, Product.name, Product.category)
        .order_by(func.sum(SaleLine.quantity).desc(), Product.id.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "product_id": product_id,
            "sku": sku,
            "name": name,
            "category": category,
            "total_quantity": int(units or 0),
            "total_revenue_cents": int(revenue or 0),
        }
        for product_id, sku, name, category, units, revenue in rows
    ]


def _inventory_stats(store_id: int | None) -> dict:
    query = db.session.query(InventoryLedger)
    if store_id is not None:
        query = query.filter(InventoryLedger.store_id == store_id)
    products, units, low = query.with_entities(
        func.count(InventoryLedger.id),
        func.coalesce(func.sum(InventoryLedger.quantity), 0),
        func.coalesce(func.sum(case((InventoryLedger.quantity <= InventoryLedger.min_stock, 1), else_=0)), 0),
    ).one()
    value = (
        query.join(Product, Product.id == InventoryLedger.product_id)
        .with_entities(func.coalesce(func.sum(InventoryLedger.quantity * Product.cost_cents), 0))
        .scalar()
    )
    return {
        "total_products": int(products or 0),
        "total_quantity": int(units or 0),
        "low_stock_count": int(low or 0),
        "inventory_value_cents": int(value or 0),
    }


# =============================================================================
# Dashboard and store stats
# =============================================================================

def dashboard(actor: Actor, *, start: datetime | None = None, end: datetime | None = None) -> dict:
    """Global overview across every store (admin only)."""
    ensure_admin(actor)

    def _compute() -> dict:
        overview = {
            "total_stores": db.session.query(Store).filter(Store.is_active.is_(True)).count(),
            "total_users": db.session.query(User).filter(User.is_active.is_(True)).count(),
            "low_stock_count": db.session.query(InventoryLedger)
            .filter(InventoryLedger.quantity <= InventoryLedger.min_stock)
            .count(),
        }
        overview.update(_totals(_completed_sales(None, start, end)))
        return {
            "overview": overview,
            "today": _today(None),
            "sales_by_store": _per_store(start, end),
            "generated_at": to_utc_z(utcnow()),
        }

    return get_cache().get_or_compute(
        "dashboard", _cache_key(start, end), _compute,
        ttl=current_app.config.get("CACHE_DASHBOARD_TTL"),
    )


def store_stats(actor: Actor, store_id: int, *, start: datetime | None = None,
                end: datetime | None = None) -> dict:
    """
    One store's sales, daily series for the last 30 days, top products and stock.

    Raises:
        ForbiddenError: Store user asking for another store
        NotFoundError: Unknown store
    """
    ensure_store_access(actor, store_id)
    store = db.session.get(Store, store_id)
    if store is None:
        raise NotFoundError("Store not found")

    def _compute() -> dict:
        day = func.strftime(TREND_GROUPINGS["day"], Sale.created_at)
        by_day = (
            _completed_sales(store_id, days_ago(30), None)
            .with_entities(day.label("day"), func.count(Sale.id), func.sum(Sale.final_total_cents))
            .group_by("day")
            .order_by("day")
            .all()
        )
        return {
            "store": store.to_dict(),
            "sales": _totals(_completed_sales(store_id, start, end)),
            "today": _today(store_id),
            "sales_by_day": [
                {"date": date, "count": int(count), "revenue_cents": int(revenue or 0)}
                for date, count, revenue in by_day
            ],
            "top_products": _top_products(store_id, start, end, 10),
            "inventory": _inventory_stats(store_id),
            "generated_at": to_utc_z(utcnow()),
        }

    return get_cache().get_or_compute(
        "store_stats", _cache_key(store_id, start, end), _compute,
        ttl=current_app.config.get("CACHE_STORE_STATS_TTL"),
    )


# =============================================================================
# Breakdown reports
# =============================================================================

def _cached_report(name: str, key: str, compute):
    return get_cache().get_or_compute("reports", f"{name}:{key}", compute,
                                      ttl=current_app.config.get("CACHE_DEFAULT_TTL"))


def sales_trend(actor: Actor, *, store_id: int | None = None, days: int = 30, group_by: str = "day") -> dict:
    if group_by not in TREND_GROUPINGS:
        raise ValidationError("Validation failed", errors=[
            {"field": "group_by", "message": f"must be one of: {', '.join(TREND_GROUPINGS)}"},
        ])
    store_id = scoped_store_id(actor, store_id)
    since = start_of_day(days_ago(days))

    def _compute() -> dict:
        period = func.strftime(TREND_GROUPINGS[group_by], Sale.created_at)
        rows = (
            _completed_sales(store_id, since, None)
            .with_entities(period.label("period"), func.count(Sale.id), func.sum(Sale.final_total_cents))
            .group_by("period")
            .order_by("period")
            .all()
        )
        return {
            "store_id": store_id,
            "group_by": group_by,
            "since": to_utc_z(since),
            "rows": [
                {"period": label, "count": int(count), "revenue_cents": int(revenue or 0)}
                for label, count, revenue in rows
            ],
        }

    return _cached_report("trend", _cache_key(store_id, days, group_by), _compute)


def top_products(actor: Actor, *, store_id: int | None = None, start: datetime | None = None,
                 end: datetime | None = None, limit: int = 10) -> list[dict]:
    store_id = scoped_store_id(actor, store_id)
    limit = min(max(1, limit), 100)
    return _cached_report(
        "top_products", _cache_key(store_id, start, end, limit),
        lambda: _top_products(store_id, start, end, limit),
    )


def sales_by_category(actor: Actor, *, store_id: int | None = None, start: datetime | None = None,
                      end: datetime | None = None) -> list[dict]:
    store_id = scoped_store_id(actor, store_id)

    def _compute() -> list[dict]:
        rows = (
            _completed_sales(store_id, start, end)
            .join(SaleLine, SaleLine.sale_id == Sale.id)
            .join(Product, Product.id == SaleLine.product_id)
            .with_entities(
                Product.category,
                func.count(func.distinct(Sale.id)),
                func.sum(SaleLine.quantity),
                func.sum(SaleLine.subtotal_cents),
            )
            .group_by(Product.category)
            .order_by(func.sum(SaleLine.subtotal_cents).desc())
            .all()
        )
        return [
            {
                "category": category,
                "sales_count": int(count),
                "total_quantity": int(units or 0),
                "total_revenue_cents": int(revenue or 0),
            }
            for category, count, units, revenue in rows
        ]

    return _cached_report("by_category", _cache_key(store_id, start, end), _compute)


def sales_by_payment_method(actor: Actor, *, store_id: int | None = None, start: datetime | None = None,
                            end: datetime | None = None) -> list[dict]:
    store_id = scoped_store_id(actor, store_id)

    def _compute() -> list[dict]:
        rows = dict(
            (method, (int(count), int(total or 0)))
            for method, count, total in _completed_sales(store_id, start, end)
            .with_entities(Sale.payment_method, func.count(Sale.id), func.sum(Sale.final_total_cents))
            .group_by(Sale.payment_method)
            .all()
        )
        return [
            {"payment_method": method, "count": rows.get(method, (0, 0))[0],
             "total_cents": rows.get(method, (0, 0))[1]}
            for method in PAYMENT_METHODS
        ]

    return _cached_report("by_payment_method", _cache_key(store_id, start, end), _compute)


def sales_by_store(actor: Actor, *, start: datetime | None = None, end: datetime | None = None) -> list[dict]:
    ensure_admin(actor)
    return _cached_report("by_store", _cache_key(start, end), lambda: _per_store(start, end))

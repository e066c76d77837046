# Overview: Flask API routes for dashboards and sales reports; responses come from the report cache.

from flask import Blueprint, g, request

from ..decorators import require_admin, require_auth, require_permission
from ..responses import ok
from ..services import reporting_service
from ..validation import query_datetime

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _range() -> dict:
    return {
        "start": query_datetime(request.args, "start"),
        "end": query_datetime(request.args, "end"),
    }


@reports_bp.get("/dashboard")
@require_auth
@require_admin
def dashboard():
    return ok(reporting_service.dashboard(g.actor, **_range()))


@reports_bp.get("/stores/<int:store_id>")
@require_auth
def store_stats(store_id: int):
    return ok(reporting_service.store_stats(g.actor, store_id, **_range()))


@reports_bp.get("/comparison")
@reports_bp.get("/by-store")
@require_auth
@require_admin
def sales_by_store():
    return ok(reporting_service.sales_by_store(g.actor, **_range()))


@reports_bp.get("/sales-trend")
@require_auth
@require_permission("can_view_reports")
def sales_trend():
    report = reporting_service.sales_trend(
        g.actor,
        store_id=request.args.get("store_id", type=int),
        days=min(max(1, request.args.get("days", 30, type=int)), 366),
        group_by=request.args.get("group_by", "day"),
    )
    return ok(report)


@reports_bp.get("/top-products")
@require_auth
@require_permission("can_view_reports")
def top_products():
    report = reporting_service.top_products(
        g.actor,
        store_id=request.args.get("store_id", type=int),
        limit=request.args.get("limit", 10, type=int),
        **_range(),
    )
    return ok(report)


@reports_bp.get("/by-category")
@require_auth
@require_permission("can_view_reports")
def sales_by_category():
    return ok(reporting_service.sales_by_category(
        g.actor, store_id=request.args.get("store_id", type=int), **_range(),
    ))


@reports_bp.get("/by-payment-method")
@require_auth
@require_permission("can_view_reports")
def sales_by_payment_method():
    return ok(reporting_service.sales_by_payment_method(
        g.actor, store_id=request.args.get("store_id", type=int), **_range(),
    ))

# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/retail_api/routes/sales.py
from flask import Blueprint, g, request

from ..decorators import require_admin, require_auth, require_permission
from ..pagination import page_params
from ..responses import created, ok, paginated
from ..schemas import CancelSaleRequest, CreateSaleRequest, UpdateSaleRequest
from ..services import sales_service
from ..validation import query_datetime

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _list(store_id):
    page = sales_service.list_sales(
        g.actor,
        page_params(request.args),
        store_id=store_id,
        status=request.args.get("status"),
        payment_method=request.args.get("payment_method"),
        start=query_datetime(request.args, "start"),
        end=query_datetime(request.args, "end"),
    )
    return paginated(page, lambda sale: sale.to_dict(include_lines=False))


@sales_bp.get("")
@require_auth
@require_permission("can_view_sales")
def list_sales():
    return _list(request.args.get("store_id", type=int))


@sales_bp.post("")
@require_auth
@require_permission("can_add_sale")
def create_sale():
    """
    Create a completed sale and decrement stock for every line.

    Nothing is written if any line is short (400 with the full shortage list).
    """
    req = CreateSaleRequest.from_json(request.get_json(silent=True))
    sale = sales_service.create_sale(g.actor, req)
    return created(sale.to_dict(), message="Sale created")


@sales_bp.get("/daily-cut")
@require_auth
def daily_cut():
    return ok(sales_service.daily_cut(g.actor, request.args.get("store_id", type=int)))


@sales_bp.get("/detail/<int:sale_id>")
@require_auth
def get_sale(sale_id: int):
    return ok(sales_service.get_sale(g.actor, sale_id).to_dict())


@sales_bp.get("/store/<int:store_id>")
@require_auth
@require_permission("can_view_sales")
def store_sales(store_id: int):
    return _list(store_id)


@sales_bp.get("/store/<int:store_id>/stats")
@require_auth
@require_permission("can_view_reports")
def store_sales_stats(store_id: int):
    stats = sales_service.store_stats(
        g.actor,
        store_id,
        start=query_datetime(request.args, "start"),
        end=query_datetime(request.args, "end"),
    )
    return ok(stats)


@sales_bp.put("/<int:sale_id>")
@require_auth
@require_admin
def update_sale(sale_id: int):
    req = UpdateSaleRequest.from_json(request.get_json(silent=True))
    sale = sales_service.update_sale(g.actor, sale_id, req)
    return ok(sale.to_dict(), message="Sale updated")


@sales_bp.put("/<int:sale_id>/cancel")
@require_auth
@require_admin
def cancel_sale(sale_id: int):
    req = CancelSaleRequest.from_json(request.get_json(silent=True))
    sale = sales_service.cancel_sale(g.actor, sale_id, req.reason)
    return ok(sale.to_dict(), message="Sale cancelled; stock restored")

# Overview: Flask API routes for purchase orders; parses input and returns JSON responses.

from flask import Blueprint, g, request

from ..decorators import require_admin, require_auth
from ..pagination import page_params
from ..responses import created, ok, paginated
from ..schemas import (
    CreatePurchaseOrderRequest,
    ReasonRequest,
    ReceivePurchaseOrderRequest,
    UpdatePurchaseOrderRequest,
)
from ..services import purchase_order_service
from ..validation import query_datetime

purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


def _filters() -> dict:
    return {
        "store_id": request.args.get("store_id", type=int),
        "supplier_id": request.args.get("supplier_id", type=int),
        "status": request.args.get("status"),
        "payment_status": request.args.get("payment_status"),
        "start": query_datetime(request.args, "start"),
        "end": query_datetime(request.args, "end"),
    }


@purchase_orders_bp.get("/stats/summary")
@require_auth
@require_admin
def purchase_order_stats():
    return ok(purchase_order_service.purchase_order_stats(g.actor, **_filters()))


@purchase_orders_bp.get("")
@require_auth
def list_purchase_orders():
    page = purchase_order_service.list_purchase_orders(g.actor, page_params(request.args), **_filters())
    return paginated(page, lambda order: order.to_dict(include_lines=False))


@purchase_orders_bp.get("/<int:order_id>")
@require_auth
def get_purchase_order(order_id: int):
    return ok(purchase_order_service.get_purchase_order(g.actor, order_id).to_dict())


@purchase_orders_bp.post("")
@require_auth
@require_admin
def create_purchase_order():
    req = CreatePurchaseOrderRequest.from_json(request.get_json(silent=True))
    order = purchase_order_service.create_purchase_order(g.actor, req)
    return created(order.to_dict(), message="Purchase order created")


@purchase_orders_bp.put("/<int:order_id>")
@require_auth
@require_admin
def update_purchase_order(order_id: int):
    req = UpdatePurchaseOrderRequest.from_json(request.get_json(silent=True))
    order = purchase_order_service.update_purchase_order(g.actor, order_id, req)
    return ok(order.to_dict(), message="Purchase order updated")


@purchase_orders_bp.post("/<int:order_id>/receive")
@require_auth
def receive_purchase_order(order_id: int):
    """Receive some or all outstanding units; receipts accumulate per line."""
    req = ReceivePurchaseOrderRequest.from_json(request.get_json(silent=True))
    order = purchase_order_service.receive_purchase_order(g.actor, order_id, req)
    return ok(order.to_dict(), message=f"Purchase order {order.status}")


@purchase_orders_bp.post("/<int:order_id>/cancel")
@require_auth
@require_admin
def cancel_purchase_order(order_id: int):
    req = ReasonRequest.from_json(request.get_json(silent=True))
    order = purchase_order_service.cancel_purchase_order(g.actor, order_id, req.reason)
    return ok(order.to_dict(), message="Purchase order cancelled")

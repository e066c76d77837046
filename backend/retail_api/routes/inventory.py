# Overview: Flask API routes for inventory ledger operations; parses input and returns JSON responses.

from flask import Blueprint, g, request

from ..decorators import require_admin, require_auth, require_permission
from ..pagination import page_params
from ..responses import created, ok, paginated
from ..schemas import AssignInventoryRequest, UpdateInventoryRequest
from ..services import inventory_service
from ..validation import query_bool

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@require_auth
@require_permission("can_view_inventory")
def list_inventory():
    page = inventory_service.list_inventory(
        g.actor,
        page_params(request.args),
        store_id=request.args.get("store_id", type=int),
        low_stock=query_bool(request.args, "low_stock", False),
        search=request.args.get("search"),
    )
    return paginated(page)


@inventory_bp.get("/alerts/low-stock")
@require_auth
def low_stock_alerts():
    rows = inventory_service.low_stock_alerts(g.actor, request.args.get("store_id", type=int))
    return ok([row.to_dict() for row in rows], count=len(rows))


@inventory_bp.get("/movements")
@require_auth
@require_permission("can_view_inventory")
def list_movements():
    page = inventory_service.list_movements(
        g.actor,
        page_params(request.args),
        store_id=request.args.get("store_id", type=int),
        product_id=request.args.get("product_id", type=int),
        reason=request.args.get("reason"),
    )
    return paginated(page)


@inventory_bp.get("/store/<int:store_id>")
@require_auth
@require_permission("can_view_inventory")
def store_inventory(store_id: int):
    page = inventory_service.store_inventory(
        g.actor,
        store_id,
        page_params(request.args),
        low_stock=query_bool(request.args, "low_stock", False),
        search=request.args.get("search"),
    )
    return paginated(page)


@inventory_bp.get("/<int:inventory_id>")
@require_auth
def get_inventory_row(inventory_id: int):
    return ok(inventory_service.get_inventory_row(g.actor, inventory_id).to_dict())


@inventory_bp.post("")
@require_auth
@require_admin
def assign_product():
    req = AssignInventoryRequest.from_json(request.get_json(silent=True))
    row = inventory_service.assign_product(g.actor, req)
    return created(row.to_dict(), message="Product added to store inventory")


@inventory_bp.put("/<int:inventory_id>")
@require_auth
def update_inventory_row(inventory_id: int):
    """
    Change a ledger row.

    operation=add needs can_add_inventory, subtract needs can_remove_inventory,
    set and threshold changes are admin-only.
    """
    req = UpdateInventoryRequest.from_json(request.get_json(silent=True))
    row = inventory_service.update_row(g.actor, inventory_id, req)
    return ok(row.to_dict(), message="Inventory updated")


@inventory_bp.delete("/<int:inventory_id>")
@require_auth
@require_admin
def delete_inventory_row(inventory_id: int):
    inventory_service.delete_row(g.actor, inventory_id)
    return ok(message="Inventory record deleted")

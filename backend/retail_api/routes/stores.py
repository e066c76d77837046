# Overview: Flask API routes for stores operations; parses input and returns JSON responses.

from flask import Blueprint, g, request

from ..decorators import require_admin, require_auth
from ..pagination import page_params
from ..responses import created, ok, paginated
from ..schemas import StoreRequest
from ..services import inventory_service, store_service
from ..validation import query_bool

stores_bp = Blueprint("stores", __name__, url_prefix="/api/stores")


@stores_bp.get("")
@require_auth
@require_admin
def list_stores():
    stores = store_service.list_stores(
        g.actor, include_inactive=query_bool(request.args, "include_inactive", False),
    )
    return ok([store.to_dict() for store in stores], count=len(stores))


@stores_bp.post("")
@require_auth
@require_admin
def create_store():
    req = StoreRequest.from_json(request.get_json(silent=True))
    store = store_service.create_store(g.actor, req)
    return created(store.to_dict(), message="Store created")


@stores_bp.get("/<int:store_id>")
@require_auth
def get_store(store_id: int):
    return ok(store_service.get_store(g.actor, store_id).to_dict())


@stores_bp.put("/<int:store_id>")
@require_auth
@require_admin
def update_store(store_id: int):
    req = StoreRequest.from_json(request.get_json(silent=True), partial=True)
    store = store_service.update_store(g.actor, store_id, req)
    return ok(store.to_dict(), message="Store updated")


@stores_bp.patch("/<int:store_id>/toggle")
@require_auth
@require_admin
def toggle_store(store_id: int):
    store = store_service.toggle_store(g.actor, store_id)
    return ok(store.to_dict(), message="Store activated" if store.is_active else "Store deactivated")


@stores_bp.delete("/<int:store_id>")
@require_auth
@require_admin
def delete_store(store_id: int):
    store = store_service.delete_store(g.actor, store_id)
    return ok(store.to_dict(), message="Store deactivated")


@stores_bp.get("/<int:store_id>/inventory")
@require_auth
def store_inventory(store_id: int):
    page = inventory_service.store_inventory(
        g.actor,
        store_id,
        page_params(request.args),
        low_stock=query_bool(request.args, "low_stock", False),
        search=request.args.get("search"),
    )
    return paginated(page)

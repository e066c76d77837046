# Overview: Flask API routes for suppliers operations; parses input and returns JSON responses.

from flask import Blueprint, g, request

from ..decorators import require_admin, require_auth
from ..pagination import page_params
from ..responses import created, ok, paginated
from ..schemas import SupplierRequest
from ..services import supplier_service
from ..validation import query_bool

suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("")
@require_auth
def list_suppliers():
    page = supplier_service.list_suppliers(
        page_params(request.args),
        search=request.args.get("search"),
        is_active=query_bool(request.args, "is_active"),
        category=request.args.get("category"),
    )
    return paginated(page)


@suppliers_bp.get("/categories/list")
@require_auth
def list_categories():
    return ok(supplier_service.list_categories())


@suppliers_bp.get("/<int:supplier_id>")
@require_auth
def get_supplier(supplier_id: int):
    return ok(supplier_service.get_supplier(supplier_id).to_dict())


@suppliers_bp.get("/<int:supplier_id>/purchase-orders")
@require_auth
def supplier_purchase_orders(supplier_id: int):
    page = supplier_service.supplier_purchase_orders(
        supplier_id, page_params(request.args), status=request.args.get("status"),
    )
    return paginated(page, lambda order: order.to_dict(include_lines=False))


@suppliers_bp.post("")
@require_auth
@require_admin
def create_supplier():
    req = SupplierRequest.from_json(request.get_json(silent=True))
    supplier = supplier_service.create_supplier(g.actor, req)
    return created(supplier.to_dict(), message="Supplier created")


@suppliers_bp.put("/<int:supplier_id>")
@require_auth
@require_admin
def update_supplier(supplier_id: int):
    req = SupplierRequest.from_json(request.get_json(silent=True), partial=True)
    supplier = supplier_service.update_supplier(g.actor, supplier_id, req)
    return ok(supplier.to_dict(), message="Supplier updated")


@suppliers_bp.put("/<int:supplier_id>/toggle-status")
@require_auth
@require_admin
def toggle_supplier(supplier_id: int):
    supplier = supplier_service.toggle_supplier(g.actor, supplier_id)
    return ok(supplier.to_dict(), message="Supplier activated" if supplier.is_active else "Supplier deactivated")


@suppliers_bp.delete("/<int:supplier_id>")
@require_auth
@require_admin
def delete_supplier(supplier_id: int):
    removed = supplier_service.delete_supplier(g.actor, supplier_id)
    message = "Supplier deleted" if removed else "Supplier has purchase orders; deactivated instead"
    return ok({"deleted": removed}, message=message)

# Overview: Flask API routes for products operations; parses input and returns JSON responses.

from flask import Blueprint, g, request

from ..decorators import require_admin, require_auth
from ..pagination import page_params
from ..responses import created, ok, paginated
from ..schemas import InitialStock, ProductRequest
from ..services import products_service
from ..validation import query_bool

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products():
    page = products_service.list_products(
        page_params(request.args),
        search=request.args.get("search"),
        category=request.args.get("category"),
        is_active=query_bool(request.args, "is_active", True),
    )
    return paginated(page)


@products_bp.get("/categories/list")
@require_auth
def list_categories():
    return ok(products_service.list_categories())


@products_bp.post("")
@require_auth
@require_admin
def create_product():
    req = ProductRequest.from_json(request.get_json(silent=True))
    product = products_service.create_product(g.actor, req)
    return created(product.to_dict(), message="Product created")


@products_bp.post("/with-inventory")
@require_auth
def create_product_with_inventory():
    """
    Create a product and stock it at one store.

    Body: product fields plus an `inventory` object
    {store_id, quantity, min_stock?, max_stock?}.
    """
    payload = request.get_json(silent=True) or {}
    req = ProductRequest.from_json(payload)
    stock = InitialStock.from_json(payload.get("inventory") if isinstance(payload, dict) else None)
    product, row = products_service.create_product_with_inventory(g.actor, req, stock)
    return created({"product": product.to_dict(), "inventory": row.to_dict()},
                   message="Product created with inventory")


@products_bp.get("/<int:product_id>")
@require_auth
def get_product(product_id: int):
    return ok(products_service.get_product(product_id).to_dict())


@products_bp.put("/<int:product_id>")
@require_auth
@require_admin
def update_product(product_id: int):
    req = ProductRequest.from_json(request.get_json(silent=True), partial=True)
    product = products_service.update_product(g.actor, product_id, req)
    return ok(product.to_dict(), message="Product updated")


@products_bp.delete("/<int:product_id>")
@require_auth
@require_admin
def delete_product(product_id: int):
    product = products_service.delete_product(g.actor, product_id)
    return ok(product.to_dict(), message="Product deactivated")


@products_bp.get("/<int:product_id>/price-history")
@require_auth
def price_history(product_id: int):
    entries = products_service.price_history(product_id)
    return ok([entry.to_dict() for entry in entries], count=len(entries))

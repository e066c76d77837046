# backend/retail_api/services/products_service.py
"""
Products Service

The Product row holds only current values. Every update that changes the
price or the cost appends a PriceHistory row in the same unit of work.
Deletes are soft (is_active = False) so sales and ledger history keep
pointing at a real product.
"""
from __future__ import annotations

import logging

from sqlalchemy import or_

from ..actors import Actor, ensure_admin, ensure_store_access
from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryLedger, PriceHistory, Product
from ..models.inventory import DEFAULT_MAX_STOCK, DEFAULT_MIN_STOCK
from ..pagination import PageParams, paginate
from ..pricing import price_change
from ..schemas import UNSET
from . import inventory_service
from .sales_service import active_store
from .unit_of_work import UnitOfWork, run_in_unit_of_work

logger = logging.getLogger(__name__)

PRODUCT_MUTABLE_FIELDS = ("sku", "barcode", "name", "description", "category", "price_cents", "cost_cents", "is_active")


def _check_unique(uow: UnitOfWork, *, sku=None, barcode=None, exclude_id: int | None = None) -> None:
    if sku:
        query = uow.query(Product).filter(Product.sku == sku)
        if exclude_id is not None:
            query = query.filter(Product.id != exclude_id)
        if query.first() is not None:
            raise ConflictError(f"SKU '{sku}' already exists")
    if barcode:
        query = uow.query(Product).filter(Product.barcode == barcode)
        if exclude_id is not None:
            query = query.filter(Product.id != exclude_id)
        if query.first() is not None:
            raise ConflictError(f"Barcode '{barcode}' already exists")


def list_products(params: PageParams, *, search: str | None = None, category: str | None = None,
                  is_active: bool | None = True):
    query = Product.query
    if is_active is not None:
        query = query.filter(Product.is_active.is_(is_active))
    if category:
        query = query.filter(Product.category == category)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Product.name.ilike(pattern),
            Product.sku.ilike(pattern),
            Product.barcode.ilike(pattern),
            Product.description.ilike(pattern),
        ))
    return paginate(query.order_by(Product.name.asc(), Product.id.asc()), params)


def list_categories() -> list[str]:
    rows = (
        db.session.query(Product.category)
        .filter(Product.is_active.is_(True))
        .distinct()
        .order_by(Product.category)
        .all()
    )
    return [category for (category,) in rows if category]


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return product


def _new_product(uow: UnitOfWork, req) -> Product:
    _check_unique(uow, sku=req.sku, barcode=req.barcode or None)
    product = Product(
        sku=req.sku,
        barcode=req.barcode or None,
        name=req.name,
        description=req.description or None,
        category=req.category,
        price_cents=req.price_cents,
        cost_cents=req.cost_cents or 0,
        is_active=True if req.is_active is UNSET else req.is_active,
    )
    uow.add(product)
    uow.flush()
    return product


def create_product(actor: Actor, req) -> Product:
    """
    Create a catalog product (admin only).

    Raises:
        ConflictError: Duplicate SKU or barcode
    """
    ensure_admin(actor)
    product = run_in_unit_of_work(lambda uow: _new_product(uow, req))
    logger.info("Product %s created: %s", product.sku, product.name)
    return product


def create_product_with_inventory(actor: Actor, req, stock) -> tuple[Product, InventoryLedger]:
    """
    Create a product and stock it at one store in a single unit of work.

    Admins may stock any store; store users need can_add_inventory and can
    only stock their own store.
    """
    ensure_store_access(actor, stock.store_id)
    if not actor.has_permission("can_add_inventory"):
        raise ForbiddenError("You do not have permission to add inventory")
    min_stock = DEFAULT_MIN_STOCK if stock.min_stock is None else stock.min_stock
    max_stock = DEFAULT_MAX_STOCK if stock.max_stock is None else stock.max_stock
    if max_stock <= min_stock:
        raise ValidationError("Validation failed", errors=[
            {"field": "inventory.max_stock", "message": "must be greater than min_stock"},
        ])

    def _op(uow: UnitOfWork):
        active_store(uow, stock.store_id)
        product = _new_product(uow, req)
        row = InventoryLedger(
            store_id=stock.store_id,
            product_id=product.id,
            quantity=0,
            min_stock=min_stock,
            max_stock=max_stock,
        )
        uow.add(row)
        uow.flush()
        if stock.quantity:
            inventory_service.adjust(
                uow, stock.store_id, product.id, stock.quantity, inventory_service.REASON_ADJUSTMENT,
                actor_user_id=actor.user_id, note="initial stock",
            )
        inventory_service.invalidate_reports(uow)
        return product, row

    product, row = run_in_unit_of_work(_op)
    logger.info("Product %s created with %s units at store %s", product.sku, stock.quantity, stock.store_id)
    return product, row


def update_product(actor: Actor, product_id: int, req) -> Product:
    """Patch a product (admin only); price or cost changes are recorded in PriceHistory."""
    ensure_admin(actor)

    def _op(uow: UnitOfWork) -> Product:
        product = uow.locked(uow.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise NotFoundError("Product not found")
        _check_unique(
            uow,
            sku=req.sku if req.sku is not UNSET else None,
            barcode=req.barcode if req.barcode is not UNSET else None,
            exclude_id=product.id,
        )

        old_price, old_cost = product.price_cents, product.cost_cents
        for field in PRODUCT_MUTABLE_FIELDS:
            value = getattr(req, field)
            if value is UNSET or (value is None and field in ("sku", "name", "category", "price_cents")):
                continue
            setattr(product, field, value)

        if product.price_cents != old_price or product.cost_cents != old_cost:
            change_type, pct = price_change(old_price, product.price_cents)
            uow.add(PriceHistory(
                product_id=product.id,
                old_price_cents=old_price,
                new_price_cents=product.price_cents,
                old_cost_cents=old_cost,
                new_cost_cents=product.cost_cents,
                change_type=change_type,
                percentage_change=pct,
                changed_by_user_id=actor.user_id,
                reason=req.price_change_reason,
            ))
            logger.info("Price of %s changed %s -> %s (%s%%)", product.sku, old_price, product.price_cents, pct)
        return product

    return run_in_unit_of_work(_op)


def delete_product(actor: Actor, product_id: int) -> Product:
    ensure_admin(actor)

    def _op(uow: UnitOfWork) -> Product:
        product = uow.locked(uow.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise NotFoundError("Product not found")
        product.is_active = False
        return product

    return run_in_unit_of_work(_op)


def price_history(product_id: int) -> list[PriceHistory]:
    get_product(product_id)
    return (
        PriceHistory.query.filter_by(product_id=product_id)
        .order_by(PriceHistory.created_at.desc(), PriceHistory.id.desc())
        .all()
    )

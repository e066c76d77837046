# Overview: Inventory ledger: locked per-(store, product) rows, bulk checks and the movement log.

# backend/retail_api/services/inventory_service.py
"""
Inventory ledger invariants (authoritative)

- One InventoryLedger row per (store, product); its quantity is the on-hand
  stock and never goes below zero.
- Every change goes through adjust() (or the bulk helpers built on it) and
  appends exactly one InventoryMovement in the same unit of work.
- The ledger never commits. Callers pass their UnitOfWork in and the whole
  business action commits or rolls back together.
- Decrements are checked before anything is written: a bulk caller gets one
  error listing every shortfall, and no row has been touched.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence

from sqlalchemy import or_

from ..actors import Actor, ensure_admin, ensure_store_access, scoped_store_id
from ..cache import REPORT_NAMESPACES, get_cache
from ..errors import (
    BusinessRuleError,
    ConflictError,
    ForbiddenError,
    InsufficientStock,
    NotFoundError,
    ProductNotInInventory,
    StockShortage,
    ValidationError,
)
from ..extensions import db
from ..models import InventoryLedger, InventoryMovement, Product, Store
from ..models.inventory import AUTO_MAX_STOCK, AUTO_MIN_STOCK, DEFAULT_MAX_STOCK, DEFAULT_MIN_STOCK
from ..pagination import PageParams, paginate
from ..time_utils import utcnow
from .unit_of_work import UnitOfWork, run_in_unit_of_work

logger = logging.getLogger(__name__)


# Movement reasons
REASON_SALE = "SALE"
REASON_SALE_CANCEL = "SALE_CANCEL"
REASON_CREDIT = "CREDIT"
REASON_CREDIT_CANCEL = "CREDIT_CANCEL"
REASON_TRANSFER_OUT = "TRANSFER_OUT"
REASON_TRANSFER_IN = "TRANSFER_IN"
REASON_TRANSFER_CANCEL = "TRANSFER_CANCEL"
REASON_PURCHASE_RECEIPT = "PURCHASE_RECEIPT"
REASON_RETURN = "RETURN"
REASON_EXCHANGE = "EXCHANGE"
REASON_ADJUSTMENT = "ADJUSTMENT"


@dataclass(frozen=True)
class Reference:
    """The document an adjustment belongs to."""
    type: str
    id: int | None


@dataclass(frozen=True)
class LineQuantity:
    product_id: int
    quantity: int


def as_lines(lines: Iterable) -> list[LineQuantity]:
    """Normalize request/document lines into (product_id, quantity) pairs."""
    return [LineQuantity(line.product_id, line.quantity) for line in lines]


def invalidate_reports(uow: UnitOfWork) -> None:
    uow.on_commit(lambda: get_cache().invalidate(*REPORT_NAMESPACES))


# =============================================================================
# Single-row primitives
# =============================================================================

def get_row(uow: UnitOfWork, store_id: int, product_id: int, *, lock: bool = True) -> InventoryLedger | None:
    query = uow.query(InventoryLedger).filter_by(store_id=store_id, product_id=product_id)
    if lock:
        query = uow.locked(query)
    return query.first()


def get_quantity(store_id: int, product_id: int) -> int:
    """On-hand quantity; 0 when the product is not stocked at the store."""
    row = InventoryLedger.query.filter_by(store_id=store_id, product_id=product_id).first()
    return row.quantity if row else 0


def ensure_row(uow: UnitOfWork, store_id: int, product_id: int) -> InventoryLedger:
    """Locked row for (store, product), created with the auto thresholds when absent."""
    row = get_row(uow, store_id, product_id)
    if row is None:
        row = InventoryLedger(
            store_id=store_id,
            product_id=product_id,
            quantity=0,
            min_stock=AUTO_MIN_STOCK,
            max_stock=AUTO_MAX_STOCK,
        )
        uow.add(row)
        uow.flush()
        logger.info("Created inventory row store=%s product=%s", store_id, product_id)
    return row


def _log_movement(
    uow: UnitOfWork,
    row: InventoryLedger,
    delta: int,
    reason: str,
    *,
    actor_user_id: int | None,
    reference: Reference | None,
    note: str | None,
) -> None:
    uow.add(InventoryMovement(
        store_id=row.store_id,
        product_id=row.product_id,
        delta=delta,
        quantity_after=row.quantity,
        reason=reason,
        reference_type=reference.type if reference else None,
        reference_id=reference.id if reference else None,
        actor_user_id=actor_user_id,
        note=note,
        occurred_at=utcnow(),
    ))


def adjust(
    uow: UnitOfWork,
    store_id: int,
    product_id: int,
    delta: int,
    reason: str,
    *,
    actor_user_id: int | None = None,
    reference: Reference | None = None,
    create_missing: bool = False,
    note: str | None = None,
) -> int:
    """
    Apply `delta` to one ledger row and log the movement.

    Args:
        uow: Caller's unit of work; nothing is committed here
        delta: Signed quantity change
        create_missing: Upsert the row for a positive delta

    Returns:
        int: The new on-hand quantity

    Raises:
        ProductNotInInventory: Row missing and the delta cannot create it
        InsufficientStock: The decrement would take the row below zero
    """
    row = get_row(uow, store_id, product_id)
    if row is None:
        if delta >= 0 and create_missing:
            row = ensure_row(uow, store_id, product_id)
        else:
            raise ProductNotInInventory([StockShortage(
                store_id=store_id,
                product_id=product_id,
                requested=abs(delta),
                available=0,
                missing_row=True,
            )])

    if row.quantity + delta < 0:
        raise InsufficientStock([StockShortage(
            store_id=store_id,
            product_id=product_id,
            requested=-delta,
            available=row.quantity,
            product_name=row.product.name if row.product else None,
            sku=row.product.sku if row.product else None,
        )])

    row.quantity = row.quantity + delta
    if delta > 0 and reason in (REASON_PURCHASE_RECEIPT, REASON_TRANSFER_IN):
        row.last_restock_date = utcnow()
    _log_movement(uow, row, delta, reason, actor_user_id=actor_user_id, reference=reference, note=note)
    return row.quantity


# =============================================================================
# Bulk helpers
# =============================================================================

def check_availability(uow: UnitOfWork, store_id: int, lines: Sequence[LineQuantity]) -> dict[int, InventoryLedger]:
    """
    Lock and verify every row a bulk decrement needs.

    Collects all shortfalls before raising so the caller sees the full list.
    A missing row anywhere makes the whole check fail with
    ProductNotInInventory; otherwise short rows give InsufficientStock.

    Returns:
        dict: product_id -> locked ledger row
    """
    rows: dict[int, InventoryLedger] = {}
    missing: list[StockShortage] = []
    short: list[StockShortage] = []

    for line in lines:
        row = get_row(uow, store_id, line.product_id)
        if row is None:
            product = uow.session.get(Product, line.product_id)
            missing.append(StockShortage(
                store_id=store_id,
                product_id=line.product_id,
                requested=line.quantity,
                available=0,
                product_name=product.name if product else None,
                sku=product.sku if product else None,
                missing_row=True,
            ))
            continue
        rows[line.product_id] = row
        if row.quantity < line.quantity:
            short.append(StockShortage(
                store_id=store_id,
                product_id=line.product_id,
                requested=line.quantity,
                available=row.quantity,
                product_name=row.product.name,
                sku=row.product.sku,
            ))

    if missing:
        raise ProductNotInInventory(missing + short)
    if short:
        raise InsufficientStock(short)
    return rows


def apply_decrements(
    uow: UnitOfWork,
    store_id: int,
    lines: Sequence[LineQuantity],
    reason: str,
    *,
    actor_user_id: int | None = None,
    reference: Reference | None = None,
) -> None:
    """Check every line first, then decrement all of them."""
    check_availability(uow, store_id, lines)
    for line in lines:
        adjust(uow, store_id, line.product_id, -line.quantity, reason,
               actor_user_id=actor_user_id, reference=reference)
    invalidate_reports(uow)


def apply_increments(
    uow: UnitOfWork,
    store_id: int,
    lines: Sequence[LineQuantity],
    reason: str,
    *,
    actor_user_id: int | None = None,
    reference: Reference | None = None,
) -> None:
    """Increment every line, creating missing rows."""
    for line in lines:
        if line.quantity <= 0:
            continue
        adjust(uow, store_id, line.product_id, line.quantity, reason,
               actor_user_id=actor_user_id, reference=reference, create_missing=True)
    invalidate_reports(uow)


# =============================================================================
# Read endpoints
# =============================================================================

def _filtered_query(store_id: int | None, *, low_stock: bool = False, search: str | None = None):
    query = InventoryLedger.query.join(Product, InventoryLedger.product_id == Product.id)
    if store_id is not None:
        query = query.filter(InventoryLedger.store_id == store_id)
    if low_stock:
        query = query.filter(InventoryLedger.quantity <= InventoryLedger.min_stock)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Product.name.ilike(pattern),
            Product.sku.ilike(pattern),
            Product.barcode.ilike(pattern),
        ))
    return query


def list_inventory(actor: Actor, params: PageParams, *, store_id: int | None = None,
                   low_stock: bool = False, search: str | None = None):
    store_id = scoped_store_id(actor, store_id)
    query = _filtered_query(store_id, low_stock=low_stock, search=search)
    return paginate(query.order_by(InventoryLedger.store_id, Product.name), params)


def store_inventory(actor: Actor, store_id: int, params: PageParams, *, low_stock: bool = False,
                    search: str | None = None):
    ensure_store_access(actor, store_id)
    if db.session.get(Store, store_id) is None:
        raise NotFoundError("Store not found")
    query = _filtered_query(store_id, low_stock=low_stock, search=search)
    return paginate(query.order_by(Product.name), params)


def low_stock_alerts(actor: Actor, store_id: int | None = None) -> list[InventoryLedger]:
    store_id = scoped_store_id(actor, store_id)
    query = _filtered_query(store_id, low_stock=True)
    return query.order_by(InventoryLedger.quantity.asc(), Product.name).all()


def list_movements(actor: Actor, params: PageParams, *, store_id: int | None = None,
                   product_id: int | None = None, reason: str | None = None):
    store_id = scoped_store_id(actor, store_id)
    query = InventoryMovement.query
    if store_id is not None:
        query = query.filter(InventoryMovement.store_id == store_id)
    if product_id is not None:
        query = query.filter(InventoryMovement.product_id == product_id)
    if reason:
        query = query.filter(InventoryMovement.reason == reason.upper())
    query = query.order_by(InventoryMovement.occurred_at.desc(), InventoryMovement.id.desc())
    return paginate(query, params)


def get_inventory_row(actor: Actor, inventory_id: int) -> InventoryLedger:
    row = db.session.get(InventoryLedger, inventory_id)
    if row is None:
        raise NotFoundError("Inventory record not found")
    ensure_store_access(actor, row.store_id)
    return row


# =============================================================================
# Write endpoints
# =============================================================================

def _validate_thresholds(min_stock: int, max_stock: int) -> None:
    if max_stock <= min_stock:
        raise ValidationError("Validation failed", errors=[
            {"field": "max_stock", "message": "must be greater than min_stock"},
        ])


def assign_product(actor: Actor, req) -> InventoryLedger:
    """
    Put a product on a store's shelf (admin only).

    Raises:
        ConflictError: The product already has a row at the store
    """
    ensure_admin(actor)
    min_stock = DEFAULT_MIN_STOCK if req.min_stock is None else req.min_stock
    max_stock = DEFAULT_MAX_STOCK if req.max_stock is None else req.max_stock
    _validate_thresholds(min_stock, max_stock)

    def _op(uow: UnitOfWork) -> InventoryLedger:
        store = uow.session.get(Store, req.store_id)
        if store is None or not store.is_active:
            raise NotFoundError("Store not found")
        product = uow.session.get(Product, req.product_id)
        if product is None or not product.is_active:
            raise NotFoundError("Product not found")
        if get_row(uow, req.store_id, req.product_id) is not None:
            raise ConflictError("Product is already assigned to this store")

        row = InventoryLedger(
            store_id=req.store_id,
            product_id=req.product_id,
            quantity=0,
            min_stock=min_stock,
            max_stock=max_stock,
        )
        uow.add(row)
        uow.flush()
        if req.quantity:
            row.last_restock_date = utcnow()
            adjust(uow, req.store_id, req.product_id, req.quantity, REASON_ADJUSTMENT,
                   actor_user_id=actor.user_id, note="initial stock")
        invalidate_reports(uow)
        return row

    row = run_in_unit_of_work(_op)
    logger.info("Assigned product %s to store %s (qty=%s)", req.product_id, req.store_id, req.quantity)
    return row


def update_row(actor: Actor, inventory_id: int, req) -> InventoryLedger:
    """
    Change stock on one row.

    add needs can_add_inventory, subtract needs can_remove_inventory and set
    is admin-only; thresholds can be changed alongside any of them. Every
    quantity change is logged as an ADJUSTMENT movement with its delta.
    """
    def _op(uow: UnitOfWork) -> InventoryLedger:
        row = uow.locked(uow.query(InventoryLedger).filter_by(id=inventory_id)).first()
        if row is None:
            raise NotFoundError("Inventory record not found")
        ensure_store_access(actor, row.store_id)

        if req.quantity is not None:
            if req.operation == "add":
                if not actor.has_permission("can_add_inventory"):
                    raise ForbiddenError("You do not have permission to add inventory")
                delta = req.quantity
            elif req.operation == "subtract":
                if not actor.has_permission("can_remove_inventory"):
                    raise ForbiddenError("You do not have permission to remove inventory")
                delta = -req.quantity
            else:
                ensure_admin(actor)
                delta = req.quantity - row.quantity
            if delta:
                adjust(uow, row.store_id, row.product_id, delta, REASON_ADJUSTMENT,
                       actor_user_id=actor.user_id, note=req.operation)
                if delta > 0:
                    row.last_restock_date = utcnow()

        if req.min_stock is not None or req.max_stock is not None:
            ensure_admin(actor)
            min_stock = row.min_stock if req.min_stock is None else req.min_stock
            max_stock = row.max_stock if req.max_stock is None else req.max_stock
            _validate_thresholds(min_stock, max_stock)
            row.min_stock = min_stock
            row.max_stock = max_stock

        invalidate_reports(uow)
        return row

    return run_in_unit_of_work(_op)


def delete_row(actor: Actor, inventory_id: int) -> None:
    """Remove a product from a store (admin only, empty rows only)."""
    ensure_admin(actor)

    def _op(uow: UnitOfWork) -> None:
        row = uow.locked(uow.query(InventoryLedger).filter_by(id=inventory_id)).first()
        if row is None:
            raise NotFoundError("Inventory record not found")
        if row.quantity != 0:
            raise BusinessRuleError(
                f"Cannot delete inventory with stock on hand ({row.quantity} units)"
            )
        uow.session.delete(row)
        invalidate_reports(uow)

    run_in_unit_of_work(_op)

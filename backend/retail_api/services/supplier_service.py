# Overview: Supplier directory: CRUD, activation toggle, categories and linked purchase orders.

"""
Supplier Service

Suppliers referenced by purchase orders are never physically deleted;
delete deactivates them instead.
"""

from __future__ import annotations

import logging

from sqlalchemy import or_

from ..actors import Actor, ensure_admin
from ..errors import ConflictError, NotFoundError
from ..extensions import db
from ..models import PurchaseOrder, Supplier
from ..pagination import PageParams, paginate
from .unit_of_work import UnitOfWork, run_in_unit_of_work

logger = logging.getLogger(__name__)


def _check_tax_id(uow: UnitOfWork, tax_id: str | None, exclude_id: int | None = None) -> None:
    if not tax_id:
        return
    query = uow.query(Supplier).filter(Supplier.tax_id == tax_id)
    if exclude_id is not None:
        query = query.filter(Supplier.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(f"A supplier with tax id '{tax_id}' already exists")


def _locked_supplier(uow: UnitOfWork, supplier_id: int) -> Supplier:
    supplier = uow.locked(uow.query(Supplier).filter_by(id=supplier_id)).first()
    if supplier is None:
        raise NotFoundError("Supplier not found")
    return supplier


def list_suppliers(params: PageParams, *, search: str | None = None, is_active: bool | None = None,
                   category: str | None = None):
    query = Supplier.query
    if is_active is not None:
        query = query.filter(Supplier.is_active.is_(is_active))
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Supplier.name.ilike(pattern),
            Supplier.contact_name.ilike(pattern),
            Supplier.email.ilike(pattern),
            Supplier.tax_id.ilike(pattern),
        ))
    suppliers = query.order_by(Supplier.name.asc(), Supplier.id.asc())
    if category:
        # categories is a JSON list; matched in Python
        matching = [s.id for s in suppliers.all() if category in (s.categories or [])]
        suppliers = Supplier.query.filter(Supplier.id.in_(matching)).order_by(Supplier.name.asc(), Supplier.id.asc())
    return paginate(suppliers, params)


def list_categories() -> list[str]:
    categories: set[str] = set()
    for (values,) in db.session.query(Supplier.categories).filter(Supplier.is_active.is_(True)).all():
        categories.update(values or [])
    return sorted(categories)


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if supplier is None:
        raise NotFoundError("Supplier not found")
    return supplier


def supplier_purchase_orders(supplier_id: int, params: PageParams, status: str | None = None):
    get_supplier(supplier_id)
    query = PurchaseOrder.query.filter(PurchaseOrder.supplier_id == supplier_id)
    if status:
        query = query.filter(PurchaseOrder.status == status)
    return paginate(query.order_by(PurchaseOrder.order_date.desc(), PurchaseOrder.id.desc()), params)


def create_supplier(actor: Actor, req) -> Supplier:
    ensure_admin(actor)

    def _op(uow: UnitOfWork) -> Supplier:
        _check_tax_id(uow, req.values.get("tax_id"))
        supplier = Supplier(**{k: v for k, v in req.values.items() if v is not None})
        uow.add(supplier)
        uow.flush()
        return supplier

    supplier = run_in_unit_of_work(_op)
    logger.info("Supplier %s created: %s", supplier.id, supplier.name)
    return supplier


def update_supplier(actor: Actor, supplier_id: int, req) -> Supplier:
    ensure_admin(actor)

    def _op(uow: UnitOfWork) -> Supplier:
        supplier = _locked_supplier(uow, supplier_id)
        _check_tax_id(uow, req.values.get("tax_id"), exclude_id=supplier.id)
        for key, value in req.values.items():
            if key in ("country", "payment_terms", "categories", "is_active") and value is None:
                continue
            setattr(supplier, key, value)
        return supplier

    return run_in_unit_of_work(_op)


def toggle_supplier(actor: Actor, supplier_id: int) -> Supplier:
    ensure_admin(actor)

    def _op(uow: UnitOfWork) -> Supplier:
        supplier = _locked_supplier(uow, supplier_id)
        supplier.is_active = not supplier.is_active
        return supplier

    return run_in_unit_of_work(_op)


def delete_supplier(actor: Actor, supplier_id: int) -> bool:
    """
    Delete a supplier (admin only).

    Returns:
        bool: True when the row was removed, False when it was deactivated
              because purchase orders still reference it
    """
    ensure_admin(actor)

    def _op(uow: UnitOfWork) -> bool:
        supplier = _locked_supplier(uow, supplier_id)
        has_orders = uow.query(PurchaseOrder).filter_by(supplier_id=supplier.id).first() is not None
        if has_orders:
            supplier.is_active = False
            return False
        uow.session.delete(supplier)
        return True

    removed = run_in_unit_of_work(_op)
    logger.info("Supplier %s %s", supplier_id, "deleted" if removed else "deactivated")
    return removed

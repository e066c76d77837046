from __future__ import annotations

import logging

from ..actors import Actor, ensure_admin, ensure_store_access
from ..errors import ConflictError, NotFoundError
from ..extensions import db
from ..models import Store
from ..schemas import UNSET
from .unit_of_work import UnitOfWork, run_in_unit_of_work

logger = logging.getLogger(__name__)

STORE_FIELDS = ("name", "address", "phone", "email", "is_active")


def _check_unique(uow: UnitOfWork, *, name=None, email=None, exclude_id: int | None = None) -> None:
    if name:
        query = uow.query(Store).filter(Store.name == name)
        if exclude_id is not None:
            query = query.filter(Store.id != exclude_id)
        if query.first() is not None:
            raise ConflictError(f"A store named '{name}' already exists")
    if email:
        query = uow.query(Store).filter(Store.email == email)
        if exclude_id is not None:
            query = query.filter(Store.id != exclude_id)
        if query.first() is not None:
            raise ConflictError(f"A store with email '{email}' already exists")


def _locked_store(uow: UnitOfWork, store_id: int) -> Store:
    store = uow.locked(uow.query(Store).filter_by(id=store_id)).first()
    if store is None:
        raise NotFoundError("Store not found")
    return store


def list_stores(actor: Actor, *, include_inactive: bool = False) -> list[Store]:
    query = Store.query
    if not actor.is_admin:
        query = query.filter(Store.id == actor.store_id)
    elif not include_inactive:
        query = query.filter(Store.is_active.is_(True))
    return query.order_by(Store.name.asc(), Store.id.asc()).all()


def get_store(actor: Actor, store_id: int) -> Store:
    ensure_store_access(actor, store_id)
    store = db.session.get(Store, store_id)
    if store is None:
        raise NotFoundError("Store not found")
    return store


def create_store(actor: Actor, req) -> Store:
    ensure_admin(actor)

    def _op(uow: UnitOfWork) -> Store:
        _check_unique(uow, name=req.name, email=req.email or None)
        store = Store(
            name=req.name,
            address=req.address or None,
            phone=req.phone or None,
            email=req.email or None,
            is_active=True if req.is_active is UNSET else req.is_active,
        )
        uow.add(store)
        uow.flush()
        return store

    store = run_in_unit_of_work(_op)
    logger.info("Store %s created: %s", store.id, store.name)
    return store


def update_store(actor: Actor, store_id: int, req) -> Store:
    ensure_admin(actor)

    def _op(uow: UnitOfWork) -> Store:
        store = _locked_store(uow, store_id)
        _check_unique(
            uow,
            name=req.name if req.name is not UNSET else None,
            email=req.email if req.email is not UNSET else None,
            exclude_id=store.id,
        )
        for field in STORE_FIELDS:
            value = getattr(req, field)
            if value is UNSET:
                continue
            if field == "name" and not value:
                continue
            setattr(store, field, value)
        return store

    return run_in_unit_of_work(_op)


def toggle_store(actor: Actor, store_id: int) -> Store:
    ensure_admin(actor)

    def _op(uow: UnitOfWork) -> Store:
        store = _locked_store(uow, store_id)
        store.is_active = not store.is_active
        return store

    store = run_in_unit_of_work(_op)
    logger.info("Store %s is now %s", store.id, "active" if store.is_active else "inactive")
    return store


def delete_store(actor: Actor, store_id: int) -> Store:
    """Soft delete: the store keeps its history but stops trading."""
    ensure_admin(actor)

    def _op(uow: UnitOfWork) -> Store:
        store = _locked_store(uow, store_id)
        store.is_active = False
        return store

    return run_in_unit_of_work(_op)

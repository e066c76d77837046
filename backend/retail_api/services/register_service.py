# Overview: Cash register sessions per store: open, cash movements, expected cash, close, history.

# backend/retail_api/services/register_service.py
"""
Cash register service.

Tracks the cash drawer of each store between opening and closing.
At most one register per store is open at a time; a partial unique index
on (store_id) WHERE status = 'open' enforces it even under concurrent opens.

Expected cash at any moment:
    opening amount + cash sales since opening + income - expense
"""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..actors import Actor, ensure_store_access
from ..errors import ConflictError, InvalidState, NotFoundError, ValidationError
from ..extensions import db
from ..models import CashMovement, CashRegister, Sale
from ..models.registers import (
    MOVEMENT_EXPENSE,
    MOVEMENT_INCOME,
    REGISTER_STATUS_CLOSED,
    REGISTER_STATUS_OPEN,
)
from ..models.sales import PAYMENT_METHODS, SALE_STATUS_COMPLETED
from ..pricing import expected_cash
from ..time_utils import utcnow
from .sales_service import active_store, cash_sales_since
from .unit_of_work import UnitOfWork, run_in_unit_of_work

logger = logging.getLogger(__name__)


def resolve_store_id(actor: Actor, requested_store_id: int | None) -> int:
    """Admins name the store explicitly; store users always act on their own."""
    if actor.is_admin:
        if requested_store_id is None:
            raise ValidationError("Validation failed", errors=[
                {"field": "store_id", "message": "is required for administrators"},
            ])
        return requested_store_id
    if requested_store_id is not None:
        ensure_store_access(actor, requested_store_id)
    return actor.store_id


def _open_register(uow: UnitOfWork, store_id: int) -> CashRegister | None:
    return uow.locked(
        uow.query(CashRegister).filter_by(store_id=store_id, status=REGISTER_STATUS_OPEN)
    ).first()


def _movement_totals(register: CashRegister) -> tuple[int, int]:
    income = sum(m.amount_cents for m in register.movements if m.movement_type == MOVEMENT_INCOME)
    expense = sum(m.amount_cents for m in register.movements if m.movement_type == MOVEMENT_EXPENSE)
    return income, expense


def _sales_by_method(store_id: int, since: datetime) -> dict[str, int]:
    rows = (
        db.session.query(Sale.payment_method, func.coalesce(func.sum(Sale.final_total_cents), 0))
        .filter(
            Sale.store_id == store_id,
            Sale.status == SALE_STATUS_COMPLETED,
            Sale.created_at >= since,
        )
        .group_by(Sale.payment_method)
        .all()
    )
    totals = {method: 0 for method in PAYMENT_METHODS}
    totals.update({method: int(total) for method, total in rows})
    return totals


def calculated_totals(register: CashRegister) -> dict:
    cash_sales = cash_sales_since(register.store_id, register.opened_at)
    income, expense = _movement_totals(register)
    by_method = _sales_by_method(register.store_id, register.opened_at)
    return {
        "opening_amount_cents": register.opening_amount_cents,
        "cash_sales_cents": cash_sales,
        "income_cents": income,
        "expense_cents": expense,
        "expected_amount_cents": expected_cash(register.opening_amount_cents, cash_sales, income, expense),
        "sales_by_method": by_method,
        "total_sales_all_methods_cents": sum(by_method.values()),
    }


def open_register(actor: Actor, req) -> CashRegister:
    """
    Open the store's register.

    Raises:
        ConflictError: The store already has an open register
    """
    store_id = resolve_store_id(actor, req.store_id)

    def _op(uow: UnitOfWork) -> CashRegister:
        active_store(uow, store_id)
        if _open_register(uow, store_id) is not None:
            raise ConflictError("This store already has an open cash register")
        register = CashRegister(
            store_id=store_id,
            status=REGISTER_STATUS_OPEN,
            opened_by_user_id=actor.user_id,
            opening_amount_cents=req.opening_amount_cents,
            opened_at=utcnow(),
        )
        uow.add(register)
        uow.flush()
        return register

    try:
        register = run_in_unit_of_work(_op)
    except IntegrityError:
        # Lost the race against a concurrent open; the partial index caught it
        raise ConflictError("This store already has an open cash register")
    logger.info("Cash register %s opened at store %s with %s cents", register.id, store_id,
                register.opening_amount_cents)
    return register


def add_movement(actor: Actor, req) -> CashRegister:
    store_id = resolve_store_id(actor, req.store_id)

    def _op(uow: UnitOfWork) -> CashRegister:
        register = _open_register(uow, store_id)
        if register is None:
            raise InvalidState("cash_register", REGISTER_STATUS_CLOSED, "movement",
                               "There is no open cash register for this store")
        register.movements.append(CashMovement(
            movement_type=req.movement_type,
            amount_cents=req.amount_cents,
            description=req.description,
            created_by_user_id=actor.user_id,
            created_at=utcnow(),
        ))
        return register

    register = run_in_unit_of_work(_op)
    logger.info("Cash %s of %s cents on register %s", req.movement_type, req.amount_cents, register.id)
    return register


def current_register(actor: Actor, store_id: int | None = None) -> dict | None:
    """The open register with its running totals, or None."""
    store_id = resolve_store_id(actor, store_id)
    register = CashRegister.query.filter_by(store_id=store_id, status=REGISTER_STATUS_OPEN).first()
    if register is None:
        return None
    data = register.to_dict()
    data["calculated_totals"] = calculated_totals(register)
    return data


def close_register(actor: Actor, req) -> CashRegister:
    store_id = resolve_store_id(actor, req.store_id)

    def _op(uow: UnitOfWork) -> CashRegister:
        register = _open_register(uow, store_id)
        if register is None:
            raise InvalidState("cash_register", REGISTER_STATUS_CLOSED, REGISTER_STATUS_CLOSED,
                               "There is no open cash register for this store")
        expected = calculated_totals(register)["expected_amount_cents"]
        register.status = REGISTER_STATUS_CLOSED
        register.closed_by_user_id = actor.user_id
        register.closed_at = utcnow()
        register.expected_amount_cents = expected
        register.actual_closing_amount_cents = req.actual_closing_amount_cents
        register.difference_cents = req.actual_closing_amount_cents - expected
        register.notes = req.notes
        return register

    register = run_in_unit_of_work(_op)
    if register.difference_cents:
        logger.warning("Cash register %s closed with difference %s cents", register.id, register.difference_cents)
    else:
        logger.info("Cash register %s closed balanced", register.id)
    return register


def register_history(actor: Actor, *, store_id: int | None = None, start: datetime | None = None,
                     end: datetime | None = None, limit: int = 30) -> dict:
    """Closed registers, newest first, plus difference statistics."""
    if actor.is_admin:
        target = store_id
    else:
        target = resolve_store_id(actor, store_id)

    query = CashRegister.query.filter(CashRegister.status == REGISTER_STATUS_CLOSED)
    if target is not None:
        query = query.filter(CashRegister.store_id == target)
    if start is not None:
        query = query.filter(CashRegister.opened_at >= start)
    if end is not None:
        query = query.filter(CashRegister.opened_at <= end)

    registers = query.order_by(CashRegister.opened_at.desc(), CashRegister.id.desc()).limit(limit).all()
    differences = [r.difference_cents or 0 for r in query.all()]
    stats = {
        "total_days": len(differences),
        "total_difference_cents": sum(differences),
        "average_difference_cents": round(sum(differences) / len(differences)) if differences else 0,
        "days_with_shortage": sum(1 for d in differences if d < 0),
        "days_with_surplus": sum(1 for d in differences if d > 0),
    }
    return {"registers": registers, "stats": stats}


def get_register(actor: Actor, register_id: int) -> CashRegister:
    register = db.session.get(CashRegister, register_id)
    if register is None:
        raise NotFoundError("Cash register not found")
    ensure_store_access(actor, register.store_id)
    return register

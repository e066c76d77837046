# Overview: Customer credits (fiado and apartado): stock reservation tied to a payment ledger.

# backend/retail_api/services/credit_service.py
"""
Credits.

- fiado: goods leave with the customer, so stock is decremented when the
  credit is created and restocked if it is cancelled.
- apartado: goods stay on the shelf until the layaway is paid off. The
  completing payment re-checks every item and decrements them all in the
  same unit of work as the payment; any shortfall aborts the payment too,
  so the credit stays `partial` with the ledger untouched.

Payments are append-only. paid/remaining/status are recomputed from the
pricing helpers after each payment, never edited directly.
"""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, or_

from ..actors import Actor, ensure_admin, ensure_store_access, scoped_store_id
from ..errors import BusinessRuleError, CreditAlreadyCompleted, InvalidState, NotFoundError, ValidationError
from ..extensions import db
from ..models import Credit, CreditLine, CreditPayment
from ..models.credits import (
    CREDIT_STATUS_CANCELLED,
    CREDIT_STATUS_COMPLETED,
    CREDIT_STATUS_PARTIAL,
    CREDIT_STATUS_PENDING,
    CREDIT_TYPE_APARTADO,
    CREDIT_TYPE_FIADO,
    CREDIT_TYPES,
)
from ..pagination import PageParams, paginate
from ..pricing import credit_balance, credit_status, line_subtotal
from ..time_utils import utcnow
from . import inventory_service
from .document_service import next_document_number
from .inventory_service import Reference, as_lines
from .sales_service import active_store, priced_products
from .unit_of_work import UnitOfWork, run_in_unit_of_work

logger = logging.getLogger(__name__)

INITIAL_PAYMENT_NOTE = "Pago inicial"


def _commit_stock(uow: UnitOfWork, credit: Credit, actor: Actor) -> None:
    """Decrement every item of the credit; all or nothing."""
    inventory_service.apply_decrements(
        uow, credit.store_id, as_lines(credit.lines), inventory_service.REASON_CREDIT,
        actor_user_id=actor.user_id, reference=Reference("credit", credit.id),
    )
    credit.stock_committed = True


def _apply_payment(uow: UnitOfWork, credit: Credit, actor: Actor, amount: int, method: str,
                   notes: str | None) -> CreditPayment:
    payment = CreditPayment(
        amount_cents=amount,
        payment_method=method,
        notes=notes,
        received_by_user_id=actor.user_id,
        paid_at=utcnow(),
    )
    credit.payments.append(payment)
    credit.paid_cents = credit.paid_cents + amount
    credit.remaining_cents = credit_balance(credit.total_cents, credit.paid_cents)
    credit.status = credit_status(credit.total_cents, credit.paid_cents, cancelled=False)

    if credit.status == CREDIT_STATUS_COMPLETED:
        credit.completed_at = utcnow()
        if credit.credit_type == CREDIT_TYPE_APARTADO and not credit.stock_committed:
            _commit_stock(uow, credit, actor)
    return payment


def create_credit(actor: Actor, req) -> Credit:
    """
    Open a fiado or apartado for a customer.

    Raises:
        ValidationError: Initial payment larger than the total
        ProductNotInInventory / InsufficientStock: fiado stock check failed
    """
    ensure_store_access(actor, req.store_id)

    def _op(uow: UnitOfWork) -> Credit:
        active_store(uow, req.store_id)
        products = priced_products(uow, req.items)

        prices = [
            item.unit_price_cents if item.unit_price_cents is not None else products[item.product_id].price_cents
            for item in req.items
        ]
        total = sum(line_subtotal(item.quantity, price) for item, price in zip(req.items, prices))
        if req.initial_payment_cents > total:
            raise ValidationError("Validation failed", errors=[
                {"field": "initial_payment_cents", "message": "cannot exceed the credit total"},
            ])

        credit = Credit(
            store_id=req.store_id,
            credit_number=next_document_number(
                uow, store_id=req.store_id, document_type="CREDIT", prefix="CR",
            ),
            credit_type=req.credit_type,
            status=CREDIT_STATUS_PENDING,
            customer_name=req.customer_name,
            customer_phone=req.customer_phone,
            customer_document=req.customer_document,
            customer_address=req.customer_address,
            total_cents=total,
            paid_cents=0,
            remaining_cents=total,
            stock_committed=False,
            due_date=req.due_date,
            notes=req.notes,
            created_by_user_id=actor.user_id,
            created_at=utcnow(),
        )
        for item, price in zip(req.items, prices):
            credit.lines.append(CreditLine(
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price_cents=price,
                subtotal_cents=line_subtotal(item.quantity, price),
            ))
        uow.add(credit)
        uow.flush()

        if credit.credit_type == CREDIT_TYPE_FIADO:
            _commit_stock(uow, credit, actor)

        if req.initial_payment_cents > 0:
            _apply_payment(uow, credit, actor, req.initial_payment_cents, req.payment_method,
                           INITIAL_PAYMENT_NOTE)
        inventory_service.invalidate_reports(uow)
        return credit

    credit = run_in_unit_of_work(_op)
    logger.info("Credit %s (%s) created at store %s: %s cents", credit.credit_number, credit.credit_type,
                credit.store_id, credit.total_cents)
    return credit


def add_payment(actor: Actor, credit_id: int, req) -> Credit:
    """
    Record a payment against a credit.

    Raises:
        CreditAlreadyCompleted: Nothing left to pay
        InvalidState: The credit was cancelled
        BusinessRuleError: Amount not positive or larger than the balance
        InsufficientStock / ProductNotInInventory: The completing payment of
            an apartado could not take the goods off the shelf
    """
    def _op(uow: UnitOfWork) -> Credit:
        credit = uow.locked(uow.query(Credit).filter_by(id=credit_id)).first()
        if credit is None:
            raise NotFoundError("Credit not found")
        ensure_store_access(actor, credit.store_id)

        if credit.status == CREDIT_STATUS_COMPLETED:
            raise CreditAlreadyCompleted(credit.id)
        if credit.status == CREDIT_STATUS_CANCELLED:
            raise InvalidState("credit", credit.status, "payment", "Cannot add a payment to a cancelled credit")
        if req.amount_cents <= 0:
            raise BusinessRuleError("Payment amount must be greater than zero")
        if req.amount_cents > credit.remaining_cents:
            raise BusinessRuleError(
                f"Payment of {req.amount_cents} exceeds the remaining balance of {credit.remaining_cents}",
                errors=[{"field": "amount_cents", "remaining_cents": credit.remaining_cents}],
            )

        _apply_payment(uow, credit, actor, req.amount_cents, req.payment_method, req.notes)
        inventory_service.invalidate_reports(uow)
        return credit

    credit = run_in_unit_of_work(_op)
    logger.info("Payment of %s cents on credit %s (status=%s)", req.amount_cents, credit.credit_number,
                credit.status)
    return credit


def cancel_credit(actor: Actor, credit_id: int, reason: str | None) -> Credit:
    """
    Cancel a credit (admin only); fiado items go back on the shelf.

    Raises:
        CreditAlreadyCompleted: Completed credits cannot be cancelled
        InvalidState: Already cancelled
    """
    ensure_admin(actor)

    def _op(uow: UnitOfWork) -> Credit:
        credit = uow.locked(uow.query(Credit).filter_by(id=credit_id)).first()
        if credit is None:
            raise NotFoundError("Credit not found")
        if credit.status == CREDIT_STATUS_COMPLETED:
            raise CreditAlreadyCompleted(credit.id)
        if credit.status == CREDIT_STATUS_CANCELLED:
            raise InvalidState("credit", credit.status, CREDIT_STATUS_CANCELLED, "Credit is already cancelled")

        if credit.stock_committed:
            inventory_service.apply_increments(
                uow, credit.store_id, as_lines(credit.lines), inventory_service.REASON_CREDIT_CANCEL,
                actor_user_id=actor.user_id, reference=Reference("credit", credit.id),
            )
            credit.stock_committed = False
        else:
            inventory_service.invalidate_reports(uow)

        credit.status = CREDIT_STATUS_CANCELLED
        credit.cancelled_by_user_id = actor.user_id
        credit.cancelled_at = utcnow()
        if reason:
            marker = f"[CANCELADO] {reason}"
            credit.notes = f"{credit.notes}\n{marker}" if credit.notes else marker
        return credit

    credit = run_in_unit_of_work(_op)
    logger.info("Credit %s cancelled by user %s", credit.credit_number, actor.user_id)
    return credit


# =============================================================================
# Reads
# =============================================================================

def get_credit(actor: Actor, credit_id: int) -> Credit:
    credit = db.session.get(Credit, credit_id)
    if credit is None:
        raise NotFoundError("Credit not found")
    ensure_store_access(actor, credit.store_id)
    return credit


def list_credits(actor: Actor, params: PageParams, *, store_id: int | None = None, status: str | None = None,
                 credit_type: str | None = None, search: str | None = None,
                 start: datetime | None = None, end: datetime | None = None):
    store_id = scoped_store_id(actor, store_id)
    query = Credit.query
    if store_id is not None:
        query = query.filter(Credit.store_id == store_id)
    if status:
        query = query.filter(Credit.status == status)
    if credit_type:
        query = query.filter(Credit.credit_type == credit_type)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Credit.customer_name.ilike(pattern),
            Credit.customer_phone.ilike(pattern),
            Credit.customer_document.ilike(pattern),
            Credit.credit_number.ilike(pattern),
        ))
    if start is not None:
        query = query.filter(Credit.created_at >= start)
    if end is not None:
        query = query.filter(Credit.created_at <= end)
    return paginate(query.order_by(Credit.created_at.desc(), Credit.id.desc()), params)


def credit_summary(actor: Actor, store_id: int | None = None) -> dict:
    """Per-type totals, the largest open balances and overdue credits."""
    store_id = scoped_store_id(actor, store_id)
    base = Credit.query
    if store_id is not None:
        base = base.filter(Credit.store_id == store_id)

    by_type = {}
    for credit_type in CREDIT_TYPES:
        typed = base.filter(Credit.credit_type == credit_type)
        row = typed.with_entities(
            func.count(Credit.id),
            func.coalesce(func.sum(Credit.total_cents), 0),
            func.coalesce(func.sum(Credit.paid_cents), 0),
        ).filter(Credit.status != CREDIT_STATUS_CANCELLED).one()
        counts = dict(
            typed.with_entities(Credit.status, func.count(Credit.id)).group_by(Credit.status).all()
        )
        open_remaining = typed.filter(
            Credit.status.in_((CREDIT_STATUS_PENDING, CREDIT_STATUS_PARTIAL))
        ).with_entities(func.coalesce(func.sum(Credit.remaining_cents), 0)).scalar()
        by_type[credit_type] = {
            "count": int(row[0] or 0),
            "total_cents": int(row[1] or 0),
            "paid_cents": int(row[2] or 0),
            "remaining_cents": int(open_remaining or 0),
            "by_status": {status: int(n) for status, n in counts.items()},
        }

    open_credits = base.filter(Credit.status.in_((CREDIT_STATUS_PENDING, CREDIT_STATUS_PARTIAL)))
    top_pending = open_credits.order_by(Credit.remaining_cents.desc(), Credit.id).limit(10).all()
    overdue = open_credits.filter(Credit.due_date.isnot(None), Credit.due_date < utcnow()) \
        .order_by(Credit.due_date).all()

    return {
        "by_type": by_type,
        "top_pending": [c.to_dict(include_lines=False) for c in top_pending],
        "overdue": [c.to_dict(include_lines=False) for c in overdue],
        "overdue_count": len(overdue),
    }

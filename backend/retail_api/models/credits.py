from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


CREDIT_TYPE_FIADO = "fiado"
CREDIT_TYPE_APARTADO = "apartado"
CREDIT_TYPES = (CREDIT_TYPE_FIADO, CREDIT_TYPE_APARTADO)

CREDIT_STATUS_PENDING = "pending"
CREDIT_STATUS_PARTIAL = "partial"
CREDIT_STATUS_COMPLETED = "completed"
CREDIT_STATUS_CANCELLED = "cancelled"

CREDIT_PAYMENT_METHODS = (
    "efectivo",
    "nequi",
    "daviplata",
    "llave_bancolombia",
    "tarjeta",
    "transferencia",
)


class Credit(db.Model):
    """
    Customer credit: fiado (goods leave now) or apartado (layaway).

    stock_committed records whether the items have left the ledger. It is
    set at creation for fiado and on completion for apartado, and drives
    whether cancellation has to restock.
    """
    __tablename__ = "credits"
    __table_args__ = (
        db.UniqueConstraint("store_id", "credit_number", name="uq_credits_store_number"),
        db.Index("ix_credits_store_status", "store_id", "status"),
        db.CheckConstraint("paid_cents >= 0", name="ck_credits_paid_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    credit_number = db.Column(db.String(64), nullable=False)

    credit_type = db.Column(db.String(16), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=CREDIT_STATUS_PENDING, index=True)

    customer_name = db.Column(db.String(100), nullable=False)
    customer_phone = db.Column(db.String(32), nullable=True)
    customer_document = db.Column(db.String(32), nullable=True)
    customer_address = db.Column(db.String(255), nullable=True)

    total_cents = db.Column(db.Integer, nullable=False)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)
    remaining_cents = db.Column(db.Integer, nullable=False)

    stock_committed = db.Column(db.Boolean, nullable=False, default=False)

    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("credits", lazy=True))
    lines = db.relationship("CreditLine", backref="credit", lazy=True, order_by="CreditLine.id",
                            cascade="all, delete-orphan")
    payments = db.relationship("CreditPayment", backref="credit", lazy=True, order_by="CreditPayment.id",
                               cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_overdue(self) -> bool:
        if self.due_date is None or self.status in (CREDIT_STATUS_COMPLETED, CREDIT_STATUS_CANCELLED):
            return False
        return self.due_date < utcnow()

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "store_id": self.store_id,
            "credit_number": self.credit_number,
            "type": self.credit_type,
            "status": self.status,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_document": self.customer_document,
            "customer_address": self.customer_address,
            "total_cents": self.total_cents,
            "paid_cents": self.paid_cents,
            "remaining_cents": self.remaining_cents,
            "stock_committed": self.stock_committed,
            "is_overdue": self.is_overdue,
            "due_date": to_utc_z(self.due_date),
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancelled_at": to_utc_z(self.cancelled_at),
        }
        if include_lines:
            data["items"] = [line.to_dict() for line in self.lines]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class CreditLine(db.Model):
    __tablename__ = "credit_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    credit_id = db.Column(db.Integer, db.ForeignKey("credits.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": self.product.to_summary() if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "subtotal_cents": self.subtotal_cents,
        }


class CreditPayment(db.Model):
    """Append-only payment against a credit."""
    __tablename__ = "credit_payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_credit_payments_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    credit_id = db.Column(db.Integer, db.ForeignKey("credits.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, default="efectivo")
    notes = db.Column(db.String(255), nullable=True)
    received_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "credit_id": self.credit_id,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "received_by_user_id": self.received_by_user_id,
            "paid_at": to_utc_z(self.paid_at),
        }

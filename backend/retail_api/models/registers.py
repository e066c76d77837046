from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


REGISTER_STATUS_OPEN = "open"
REGISTER_STATUS_CLOSED = "closed"

MOVEMENT_INCOME = "income"
MOVEMENT_EXPENSE = "expense"
MOVEMENT_TYPES = (MOVEMENT_INCOME, MOVEMENT_EXPENSE)


class CashRegister(db.Model):
    """
    Cash drawer shift for a store.

    The partial unique index allows any number of closed registers per store
    but at most one with status 'open'.
    """
    __tablename__ = "cash_registers"
    __table_args__ = (
        db.Index(
            "uq_cash_registers_one_open_per_store",
            "store_id",
            unique=True,
            sqlite_where=db.text("status = 'open'"),
            postgresql_where=db.text("status = 'open'"),
        ),
        db.Index("ix_cash_registers_store_opened", "store_id", "opened_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=REGISTER_STATUS_OPEN)

    opened_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    opening_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    closed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    expected_amount_cents = db.Column(db.Integer, nullable=True)
    actual_closing_amount_cents = db.Column(db.Integer, nullable=True)
    difference_cents = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store")
    movements = db.relationship("CashMovement", backref="register", lazy=True, order_by="CashMovement.id",
                                cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_movements: bool = True) -> dict:
        data = {
            "id": self.id,
            "store_id": self.store_id,
            "status": self.status,
            "opened_by_user_id": self.opened_by_user_id,
            "opening_amount_cents": self.opening_amount_cents,
            "opened_at": to_utc_z(self.opened_at),
            "closed_by_user_id": self.closed_by_user_id,
            "closed_at": to_utc_z(self.closed_at),
            "expected_amount_cents": self.expected_amount_cents,
            "actual_closing_amount_cents": self.actual_closing_amount_cents,
            "difference_cents": self.difference_cents,
            "notes": self.notes,
        }
        if include_movements:
            data["movements"] = [m.to_dict() for m in self.movements]
        return data


class CashMovement(db.Model):
    """Manual cash in/out recorded against an open register."""
    __tablename__ = "cash_movements"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_cash_movements_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    register_id = db.Column(db.Integer, db.ForeignKey("cash_registers.id"), nullable=False, index=True)
    movement_type = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=False)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "register_id": self.register_id,
            "type": self.movement_type,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }

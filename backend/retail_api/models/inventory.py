from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


DEFAULT_MIN_STOCK = 10
DEFAULT_MAX_STOCK = 1000

# Thresholds for rows created implicitly by receipts, transfers and returns
AUTO_MIN_STOCK = 5
AUTO_MAX_STOCK = 100


class InventoryLedger(db.Model):
    """
    Stock of one product at one store.

    This row is the single source of truth for on-hand quantity. Every
    stock-mutating workflow reads it under lock and writes it inside the
    caller's unit of work; version_id turns a lost update into StaleDataError.
    """
    __tablename__ = "inventory_ledger"
    __table_args__ = (
        db.UniqueConstraint("store_id", "product_id", name="uq_inventory_store_product"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        db.CheckConstraint("max_stock > min_stock", name="ck_inventory_thresholds"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=DEFAULT_MIN_STOCK)
    max_stock = db.Column(db.Integer, nullable=False, default=DEFAULT_MAX_STOCK)
    last_restock_date = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    store = db.relationship("Store", backref=db.backref("inventory_rows", lazy=True))
    product = db.relationship("Product", backref=db.backref("inventory_rows", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.min_stock

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "product_id": self.product_id,
            "product": self.product.to_summary() if self.product else None,
            "quantity": self.quantity,
            "min_stock": self.min_stock,
            "max_stock": self.max_stock,
            "is_low_stock": self.is_low_stock,
            "last_restock_date": to_utc_z(self.last_restock_date),
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryMovement(db.Model):
    """
    Append-only log of ledger adjustments.

    One row per adjust() call, written in the same unit of work as the
    ledger change it describes.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_inventory_movements_store_product", "store_id", "product_id"),
        db.Index("ix_inventory_movements_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    delta = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(32), nullable=False, index=True)

    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "product_id": self.product_id,
            "delta": self.delta,
            "quantity_after": self.quantity_after,
            "reason": self.reason,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "actor_user_id": self.actor_user_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }

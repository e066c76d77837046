from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


# =============================================================================
# TRANSFERS
# =============================================================================

TRANSFER_STATUS_PENDING = "pending"
TRANSFER_STATUS_IN_TRANSIT = "in_transit"
TRANSFER_STATUS_RECEIVED = "received"
TRANSFER_STATUS_CANCELLED = "cancelled"
TRANSFER_STATUSES = (
    TRANSFER_STATUS_PENDING,
    TRANSFER_STATUS_IN_TRANSIT,
    TRANSFER_STATUS_RECEIVED,
    TRANSFER_STATUS_CANCELLED,
)


class Transfer(db.Model):
    """
    Store-to-store stock move.

    Lifecycle: pending -> in_transit -> received, with cancelled reachable
    from pending or in_transit. The send leg decrements the source ledger,
    the receive leg increments the destination ledger.
    """
    __tablename__ = "transfers"
    __table_args__ = (
        db.UniqueConstraint("transfer_number", name="uq_transfers_number"),
        db.CheckConstraint("from_store_id <> to_store_id", name="ck_transfers_distinct_stores"),
        db.Index("ix_transfers_from_status", "from_store_id", "status"),
        db.Index("ix_transfers_to_status", "to_store_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transfer_number = db.Column(db.String(64), nullable=False)

    from_store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False)
    to_store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=TRANSFER_STATUS_PENDING, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    sent_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    from_store = db.relationship("Store", foreign_keys=[from_store_id])
    to_store = db.relationship("Store", foreign_keys=[to_store_id])
    lines = db.relationship("TransferLine", backref="transfer", lazy=True, order_by="TransferLine.id",
                            cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "transfer_number": self.transfer_number,
            "from_store_id": self.from_store_id,
            "to_store_id": self.to_store_id,
            "status": self.status,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "sent_by_user_id": self.sent_by_user_id,
            "sent_at": to_utc_z(self.sent_at),
            "received_by_user_id": self.received_by_user_id,
            "received_at": to_utc_z(self.received_at),
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
        }
        if include_lines:
            data["items"] = [line.to_dict() for line in self.lines]
        return data


class TransferLine(db.Model):
    __tablename__ = "transfer_lines"
    __table_args__ = (
        db.UniqueConstraint("transfer_id", "product_id", name="uq_transfer_lines_transfer_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transfer_id = db.Column(db.Integer, db.ForeignKey("transfers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    # Set on receipt; may be lower than quantity (under-delivery)
    received_quantity = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": self.product.to_summary() if self.product else None,
            "quantity": self.quantity,
            "received_quantity": self.received_quantity,
            "notes": self.notes,
        }


# =============================================================================
# PURCHASE ORDERS
# =============================================================================

PO_STATUS_PENDING = "pending"
PO_STATUS_PARTIAL = "partial"
PO_STATUS_RECEIVED = "received"
PO_STATUS_CANCELLED = "cancelled"
PO_STATUSES = (PO_STATUS_PENDING, PO_STATUS_PARTIAL, PO_STATUS_RECEIVED, PO_STATUS_CANCELLED)

PO_PAYMENT_STATUSES = ("pending", "partial", "paid")


class PurchaseOrder(db.Model):
    """
    Order placed with a supplier for one store.

    Status is derived from the lines by pricing.purchase_order_status():
    nothing received -> pending, some received -> partial, every line
    received in full -> received.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_purchase_orders_number"),
        db.Index("ix_purchase_orders_store_status", "store_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=PO_STATUS_PENDING, index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    final_total_cents = db.Column(db.Integer, nullable=False, default=0)

    order_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expected_delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)
    received_date = db.Column(db.DateTime(timezone=True), nullable=True)
    invoice_number = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    received_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    supplier = db.relationship("Supplier", backref=db.backref("purchase_orders", lazy=True))
    store = db.relationship("Store")
    lines = db.relationship("PurchaseOrderLine", backref="purchase_order", lazy=True,
                            order_by="PurchaseOrderLine.id", cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "store_id": self.store_id,
            "status": self.status,
            "payment_status": self.payment_status,
            "total_cost_cents": self.total_cost_cents,
            "tax_cents": self.tax_cents,
            "shipping_cost_cents": self.shipping_cost_cents,
            "final_total_cents": self.final_total_cents,
            "order_date": to_utc_z(self.order_date),
            "expected_delivery_date": to_utc_z(self.expected_delivery_date),
            "received_date": to_utc_z(self.received_date),
            "invoice_number": self.invoice_number,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "received_by_user_id": self.received_by_user_id,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancelled_at": to_utc_z(self.cancelled_at),
        }
        if include_lines:
            data["items"] = [line.to_dict() for line in self.lines]
        return data


class PurchaseOrderLine(db.Model):
    __tablename__ = "purchase_order_lines"
    __table_args__ = (
        db.UniqueConstraint("purchase_order_id", "product_id", name="uq_po_lines_order_product"),
        db.CheckConstraint("quantity_ordered >= 1", name="ck_po_lines_quantity_ordered"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity_ordered = db.Column(db.Integer, nullable=False)
    quantity_received = db.Column(db.Integer, nullable=False, default=0)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": self.product.to_summary() if self.product else None,
            "quantity_ordered": self.quantity_ordered,
            "quantity_received": self.quantity_received,
            "unit_cost_cents": self.unit_cost_cents,
            "subtotal_cents": self.subtotal_cents,
        }


# =============================================================================
# RETURNS
# =============================================================================

RETURN_STATUS_PENDING = "pending"
RETURN_STATUS_APPROVED = "approved"
RETURN_STATUS_COMPLETED = "completed"
RETURN_STATUS_REJECTED = "rejected"
RETURN_STATUSES = (RETURN_STATUS_PENDING, RETURN_STATUS_APPROVED, RETURN_STATUS_COMPLETED, RETURN_STATUS_REJECTED)

RETURN_TYPE_REFUND = "refund"
RETURN_TYPE_EXCHANGE = "exchange"
RETURN_TYPE_STORE_CREDIT = "store_credit"
RETURN_TYPES = (RETURN_TYPE_REFUND, RETURN_TYPE_EXCHANGE, RETURN_TYPE_STORE_CREDIT)


class Return(db.Model):
    """
    Return (and optional exchange) against a completed sale.

    Lifecycle: pending -> approved -> completed, or pending -> rejected.
    Inventory is touched only on completion.
    """
    __tablename__ = "returns"
    __table_args__ = (
        db.UniqueConstraint("store_id", "return_number", name="uq_returns_store_number"),
        db.Index("ix_returns_store_status", "store_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    return_number = db.Column(db.String(64), nullable=False)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    return_type = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=RETURN_STATUS_PENDING, index=True)

    total_refund_cents = db.Column(db.Integer, nullable=False, default=0)
    exchange_total_cents = db.Column(db.Integer, nullable=False, default=0)
    price_difference_cents = db.Column(db.Integer, nullable=False, default=0)

    reason = db.Column(db.String(255), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    customer_name = db.Column(db.String(100), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)

    processed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    sale = db.relationship("Sale", backref=db.backref("returns", lazy=True))
    lines = db.relationship("ReturnLine", backref="return_doc", lazy=True, order_by="ReturnLine.id",
                            cascade="all, delete-orphan")
    exchange_lines = db.relationship("ReturnExchangeLine", backref="return_doc", lazy=True,
                                     order_by="ReturnExchangeLine.id", cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "return_number": self.return_number,
            "sale_id": self.sale_id,
            "sale_document_number": self.sale.document_number if self.sale else None,
            "store_id": self.store_id,
            "return_type": self.return_type,
            "status": self.status,
            "total_refund_cents": self.total_refund_cents,
            "exchange_total_cents": self.exchange_total_cents,
            "price_difference_cents": self.price_difference_cents,
            "reason": self.reason,
            "notes": self.notes,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "processed_by_user_id": self.processed_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "approved_by_user_id": self.approved_by_user_id,
            "approved_at": to_utc_z(self.approved_at),
            "completed_by_user_id": self.completed_by_user_id,
            "completed_at": to_utc_z(self.completed_at),
            "rejected_by_user_id": self.rejected_by_user_id,
            "rejected_at": to_utc_z(self.rejected_at),
        }
        if include_lines:
            data["items"] = [line.to_dict() for line in self.lines]
            data["exchange_items"] = [line.to_dict() for line in self.exchange_lines]
        return data


class ReturnLine(db.Model):
    __tablename__ = "return_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    # Unit price paid on the original sale
    price_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": self.product.to_summary() if self.product else None,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "reason": self.reason,
        }


class ReturnExchangeLine(db.Model):
    __tablename__ = "return_exchange_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    # Current product price when the return was created
    price_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": self.product.to_summary() if self.product else None,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
        }


# =============================================================================
# DOCUMENT NUMBERING
# =============================================================================

class DocumentSequence(db.Model):
    """
    Atomic document counters keyed by scope (e.g. "SALE:3", "PO:2026").
    """
    __tablename__ = "document_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    scope = db.Column(db.String(64), nullable=False, unique=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

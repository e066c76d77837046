# Overview: Typed request structs parsed from JSON bodies, one per mutating endpoint.

"""
Each request class has a `from_json(payload)` constructor that validates the
body completely and raises ValidationError with the field-level list before
any unit of work opens. Services receive these structs, never raw dicts.

Optional fields that distinguish "absent" from "null" use the UNSET marker.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .models.auth import PERMISSION_DEFAULTS, ROLES
from .models.credits import CREDIT_PAYMENT_METHODS, CREDIT_TYPES
from .models.documents import PO_PAYMENT_STATUSES, RETURN_TYPES
from .models.registers import MOVEMENT_TYPES
from .models.sales import PAYMENT_METHODS
from .validation import PayloadReader, reject_duplicate_products


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


def _optional(reader: PayloadReader, name: str, value):
    return value if reader.has(name) else UNSET


# =============================================================================
# Shared line shapes
# =============================================================================

@dataclass(frozen=True)
class StockLine:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class PricedLine:
    product_id: int
    quantity: int
    unit_price_cents: int | None = None


def _stock_line(reader: PayloadReader) -> StockLine:
    return StockLine(
        product_id=reader.identifier("product_id", required=True),
        quantity=reader.integer("quantity", required=True, minimum=1),
    )


def _priced_line(reader: PayloadReader) -> PricedLine:
    return PricedLine(
        product_id=reader.identifier("product_id", required=True),
        quantity=reader.integer("quantity", required=True, minimum=1),
        unit_price_cents=reader.cents("unit_price_cents", default=None),
    )


@dataclass(frozen=True)
class ReasonRequest:
    reason: str | None = None

    @classmethod
    def from_json(cls, payload) -> "ReasonRequest":
        reader = PayloadReader(payload)
        reason = reader.string("reason", max_length=255)
        reader.raise_if_errors()
        return cls(reason=reason)


# =============================================================================
# Sales
# =============================================================================

@dataclass(frozen=True)
class CreateSaleRequest:
    store_id: int
    items: list[PricedLine]
    payment_method: str = "cash"
    tax_cents: int = 0
    discount_cents: int = 0
    notes: str | None = None

    @classmethod
    def from_json(cls, payload) -> "CreateSaleRequest":
        reader = PayloadReader(payload)
        req = cls(
            store_id=reader.identifier("store_id", required=True),
            items=reader.items("items", _priced_line, required=True),
            payment_method=reader.choice("payment_method", PAYMENT_METHODS, default="cash"),
            tax_cents=reader.cents("tax_cents"),
            discount_cents=reader.cents("discount_cents"),
            notes=reader.string("notes", max_length=1000),
        )
        reader.raise_if_errors()
        reject_duplicate_products(req.items)
        return req


@dataclass(frozen=True)
class UpdateSaleRequest:
    notes: Any = UNSET
    payment_method: Any = UNSET
    discount_cents: Any = UNSET

    @classmethod
    def from_json(cls, payload) -> "UpdateSaleRequest":
        reader = PayloadReader(payload)
        req = cls(
            notes=_optional(reader, "notes", reader.string("notes", max_length=1000)),
            payment_method=_optional(reader, "payment_method",
                                     reader.choice("payment_method", PAYMENT_METHODS, required=True)
                                     if reader.has("payment_method") else None),
            discount_cents=_optional(reader, "discount_cents", reader.cents("discount_cents")),
        )
        reader.raise_if_errors()
        return req


@dataclass(frozen=True)
class CancelSaleRequest:
    reason: str

    @classmethod
    def from_json(cls, payload) -> "CancelSaleRequest":
        reader = PayloadReader(payload)
        reason = reader.string("reason", required=True, max_length=255)
        reader.raise_if_errors()
        return cls(reason=reason)


# =============================================================================
# Credits
# =============================================================================

@dataclass(frozen=True)
class CreateCreditRequest:
    store_id: int
    credit_type: str
    customer_name: str
    items: list[PricedLine]
    customer_phone: str | None = None
    customer_document: str | None = None
    customer_address: str | None = None
    initial_payment_cents: int = 0
    payment_method: str = "efectivo"
    due_date: datetime | None = None
    notes: str | None = None

    @classmethod
    def from_json(cls, payload) -> "CreateCreditRequest":
        reader = PayloadReader(payload)
        req = cls(
            store_id=reader.identifier("store_id", required=True),
            credit_type=reader.choice("type", CREDIT_TYPES, required=True),
            customer_name=reader.string("customer_name", required=True, max_length=100),
            items=reader.items("items", _priced_line, required=True),
            customer_phone=reader.string("customer_phone", max_length=32),
            customer_document=reader.string("customer_document", max_length=32),
            customer_address=reader.string("customer_address", max_length=255),
            initial_payment_cents=reader.cents("initial_payment_cents"),
            payment_method=reader.choice("payment_method", CREDIT_PAYMENT_METHODS, default="efectivo"),
            due_date=reader.datetime("due_date"),
            notes=reader.string("notes", max_length=1000),
        )
        reader.raise_if_errors()
        reject_duplicate_products(req.items)
        return req


@dataclass(frozen=True)
class CreditPaymentRequest:
    amount_cents: int
    payment_method: str = "efectivo"
    notes: str | None = None

    @classmethod
    def from_json(cls, payload) -> "CreditPaymentRequest":
        reader = PayloadReader(payload)
        # Positivity is a business rule enforced by the service
        req = cls(
            amount_cents=reader.integer("amount_cents", required=True),
            payment_method=reader.choice("payment_method", CREDIT_PAYMENT_METHODS, default="efectivo"),
            notes=reader.string("notes", max_length=255),
        )
        reader.raise_if_errors()
        return req


# =============================================================================
# Transfers
# =============================================================================

@dataclass(frozen=True)
class TransferLineRequest:
    product_id: int
    quantity: int
    notes: str | None = None


def _transfer_line(reader: PayloadReader) -> TransferLineRequest:
    return TransferLineRequest(
        product_id=reader.identifier("product_id", required=True),
        quantity=reader.integer("quantity", required=True, minimum=1),
        notes=reader.string("notes", max_length=255),
    )


@dataclass(frozen=True)
class CreateTransferRequest:
    from_store_id: int
    to_store_id: int
    items: list[TransferLineRequest]
    notes: str | None = None

    @classmethod
    def from_json(cls, payload) -> "CreateTransferRequest":
        reader = PayloadReader(payload)
        req = cls(
            from_store_id=reader.identifier("from_store_id", required=True),
            to_store_id=reader.identifier("to_store_id", required=True),
            items=reader.items("items", _transfer_line, required=True),
            notes=reader.string("notes", max_length=1000),
        )
        if req.from_store_id and req.from_store_id == req.to_store_id:
            reader.errors.append({"field": "to_store_id", "message": "must differ from from_store_id"})
        reader.raise_if_errors()
        reject_duplicate_products(req.items)
        return req


@dataclass(frozen=True)
class ReceivedLine:
    product_id: int
    received_quantity: int
    notes: str | None = None


def _received_line(reader: PayloadReader) -> ReceivedLine:
    return ReceivedLine(
        product_id=reader.identifier("product_id", required=True),
        received_quantity=reader.integer("received_quantity", required=True, minimum=0),
        notes=reader.string("notes", max_length=255),
    )


@dataclass(frozen=True)
class ReceiveTransferRequest:
    # Empty means "everything arrived as requested"
    received_items: list[ReceivedLine] = field(default_factory=list)

    @classmethod
    def from_json(cls, payload) -> "ReceiveTransferRequest":
        reader = PayloadReader(payload)
        req = cls(received_items=reader.items("received_items", _received_line))
        reader.raise_if_errors()
        reject_duplicate_products(req.received_items, field="received_items")
        return req


# =============================================================================
# Purchase orders
# =============================================================================

@dataclass(frozen=True)
class PurchaseOrderLineRequest:
    product_id: int
    quantity_ordered: int
    unit_cost_cents: int


def _po_line(reader: PayloadReader) -> PurchaseOrderLineRequest:
    return PurchaseOrderLineRequest(
        product_id=reader.identifier("product_id", required=True),
        quantity_ordered=reader.integer("quantity_ordered", required=True, minimum=1),
        unit_cost_cents=reader.cents("unit_cost_cents", required=True),
    )


@dataclass(frozen=True)
class CreatePurchaseOrderRequest:
    supplier_id: int
    store_id: int
    items: list[PurchaseOrderLineRequest]
    tax_cents: int = 0
    shipping_cost_cents: int = 0
    expected_delivery_date: datetime | None = None
    invoice_number: str | None = None
    notes: str | None = None

    @classmethod
    def from_json(cls, payload) -> "CreatePurchaseOrderRequest":
        reader = PayloadReader(payload)
        req = cls(
            supplier_id=reader.identifier("supplier_id", required=True),
            store_id=reader.identifier("store_id", required=True),
            items=reader.items("items", _po_line, required=True),
            tax_cents=reader.cents("tax_cents"),
            shipping_cost_cents=reader.cents("shipping_cost_cents"),
            expected_delivery_date=reader.datetime("expected_delivery_date"),
            invoice_number=reader.string("invoice_number", max_length=64),
            notes=reader.string("notes", max_length=1000),
        )
        reader.raise_if_errors()
        reject_duplicate_products(req.items)
        return req


@dataclass(frozen=True)
class UpdatePurchaseOrderRequest:
    supplier_id: Any = UNSET
    items: Any = UNSET
    tax_cents: Any = UNSET
    shipping_cost_cents: Any = UNSET
    expected_delivery_date: Any = UNSET
    invoice_number: Any = UNSET
    payment_status: Any = UNSET
    notes: Any = UNSET

    @classmethod
    def from_json(cls, payload) -> "UpdatePurchaseOrderRequest":
        reader = PayloadReader(payload)
        req = cls(
            supplier_id=_optional(reader, "supplier_id", reader.identifier("supplier_id")),
            items=_optional(reader, "items", reader.items("items", _po_line, required=reader.has("items"))),
            tax_cents=_optional(reader, "tax_cents", reader.cents("tax_cents")),
            shipping_cost_cents=_optional(reader, "shipping_cost_cents", reader.cents("shipping_cost_cents")),
            expected_delivery_date=_optional(reader, "expected_delivery_date",
                                             reader.datetime("expected_delivery_date")),
            invoice_number=_optional(reader, "invoice_number", reader.string("invoice_number", max_length=64)),
            payment_status=_optional(reader, "payment_status",
                                     reader.choice("payment_status", PO_PAYMENT_STATUSES, default="pending")),
            notes=_optional(reader, "notes", reader.string("notes", max_length=1000)),
        )
        reader.raise_if_errors()
        if req.items is not UNSET:
            reject_duplicate_products(req.items)
        return req


@dataclass(frozen=True)
class ReceiptLine:
    product_id: int
    quantity_received: int


def _receipt_line(reader: PayloadReader) -> ReceiptLine:
    return ReceiptLine(
        product_id=reader.identifier("product_id", required=True),
        quantity_received=reader.integer("quantity_received", required=True, minimum=1),
    )


@dataclass(frozen=True)
class ReceivePurchaseOrderRequest:
    items: list[ReceiptLine]
    notes: str | None = None

    @classmethod
    def from_json(cls, payload) -> "ReceivePurchaseOrderRequest":
        reader = PayloadReader(payload)
        req = cls(
            items=reader.items("items", _receipt_line, required=True),
            notes=reader.string("notes", max_length=1000),
        )
        reader.raise_if_errors()
        reject_duplicate_products(req.items)
        return req


# =============================================================================
# Returns
# =============================================================================

@dataclass(frozen=True)
class ReturnLineRequest:
    product_id: int
    quantity: int
    reason: str | None = None


def _return_line(reader: PayloadReader) -> ReturnLineRequest:
    return ReturnLineRequest(
        product_id=reader.identifier("product_id", required=True),
        quantity=reader.integer("quantity", required=True, minimum=1),
        reason=reader.string("reason", max_length=255),
    )


@dataclass(frozen=True)
class CreateReturnRequest:
    sale_id: int
    items: list[ReturnLineRequest]
    return_type: str
    reason: str
    exchange_items: list[StockLine] = field(default_factory=list)
    notes: str | None = None
    customer_name: str | None = None
    customer_phone: str | None = None

    @classmethod
    def from_json(cls, payload) -> "CreateReturnRequest":
        reader = PayloadReader(payload)
        req = cls(
            sale_id=reader.identifier("sale_id", required=True),
            items=reader.items("items", _return_line, required=True),
            return_type=reader.choice("return_type", RETURN_TYPES, required=True),
            reason=reader.string("reason", required=True, max_length=255),
            exchange_items=reader.items("exchange_items", _stock_line),
            notes=reader.string("notes", max_length=1000),
            customer_name=reader.string("customer_name", max_length=100),
            customer_phone=reader.string("customer_phone", max_length=32),
        )
        if req.return_type == "exchange" and not req.exchange_items:
            reader.errors.append({"field": "exchange_items", "message": "required for exchange returns"})
        if req.return_type and req.return_type != "exchange" and req.exchange_items:
            reader.errors.append({"field": "exchange_items", "message": "only allowed for exchange returns"})
        reader.raise_if_errors()
        reject_duplicate_products(req.items)
        reject_duplicate_products(req.exchange_items, field="exchange_items")
        return req


# =============================================================================
# Cash register
# =============================================================================

@dataclass(frozen=True)
class OpenRegisterRequest:
    opening_amount_cents: int
    store_id: int | None = None

    @classmethod
    def from_json(cls, payload) -> "OpenRegisterRequest":
        reader = PayloadReader(payload)
        req = cls(
            opening_amount_cents=reader.cents("opening_amount_cents", required=True),
            store_id=reader.identifier("store_id"),
        )
        reader.raise_if_errors()
        return req


@dataclass(frozen=True)
class CashMovementRequest:
    movement_type: str
    amount_cents: int
    description: str
    store_id: int | None = None

    @classmethod
    def from_json(cls, payload) -> "CashMovementRequest":
        reader = PayloadReader(payload)
        req = cls(
            movement_type=reader.choice("type", MOVEMENT_TYPES, required=True),
            amount_cents=reader.integer("amount_cents", required=True, minimum=1),
            description=reader.string("description", required=True, max_length=255),
            store_id=reader.identifier("store_id"),
        )
        reader.raise_if_errors()
        return req


@dataclass(frozen=True)
class CloseRegisterRequest:
    actual_closing_amount_cents: int
    notes: str | None = None
    store_id: int | None = None

    @classmethod
    def from_json(cls, payload) -> "CloseRegisterRequest":
        reader = PayloadReader(payload)
        req = cls(
            actual_closing_amount_cents=reader.cents("actual_closing_amount_cents", required=True),
            notes=reader.string("notes", max_length=1000),
            store_id=reader.identifier("store_id"),
        )
        reader.raise_if_errors()
        return req


# =============================================================================
# Inventory
# =============================================================================

INVENTORY_OPERATIONS = ("add", "subtract", "set")


@dataclass(frozen=True)
class AssignInventoryRequest:
    store_id: int
    product_id: int
    quantity: int = 0
    min_stock: int | None = None
    max_stock: int | None = None

    @classmethod
    def from_json(cls, payload) -> "AssignInventoryRequest":
        reader = PayloadReader(payload)
        req = cls(
            store_id=reader.identifier("store_id", required=True),
            product_id=reader.identifier("product_id", required=True),
            quantity=reader.integer("quantity", minimum=0, default=0),
            min_stock=reader.integer("min_stock", minimum=0),
            max_stock=reader.integer("max_stock", minimum=1),
        )
        reader.raise_if_errors()
        return req


@dataclass(frozen=True)
class UpdateInventoryRequest:
    operation: str | None = None
    quantity: int | None = None
    min_stock: int | None = None
    max_stock: int | None = None

    @classmethod
    def from_json(cls, payload) -> "UpdateInventoryRequest":
        reader = PayloadReader(payload)
        req = cls(
            operation=reader.choice("operation", INVENTORY_OPERATIONS, default="set"),
            quantity=reader.integer("quantity", minimum=0),
            min_stock=reader.integer("min_stock", minimum=0),
            max_stock=reader.integer("max_stock", minimum=1),
        )
        if req.operation in ("add", "subtract") and not req.quantity:
            reader.errors.append({"field": "quantity", "message": f"must be >= 1 for {req.operation}"})
        reader.raise_if_errors()
        return req


# =============================================================================
# Catalog
# =============================================================================

@dataclass(frozen=True)
class StoreRequest:
    name: Any = UNSET
    address: Any = UNSET
    phone: Any = UNSET
    email: Any = UNSET
    is_active: Any = UNSET

    @classmethod
    def from_json(cls, payload, *, partial: bool = False) -> "StoreRequest":
        reader = PayloadReader(payload)
        req = cls(
            name=_optional(reader, "name", reader.string("name", required=not partial, max_length=120))
            if partial else reader.string("name", required=True, max_length=120),
            address=_optional(reader, "address", reader.string("address", max_length=255)),
            phone=_optional(reader, "phone", reader.string("phone", max_length=32)),
            email=_optional(reader, "email", _lower(reader.string("email", max_length=255))),
            is_active=_optional(reader, "is_active", reader.boolean("is_active", default=True)),
        )
        reader.raise_if_errors()
        return req


def _lower(value: str | None) -> str | None:
    return value.lower() if value else value


@dataclass(frozen=True)
class ProductRequest:
    sku: Any = UNSET
    barcode: Any = UNSET
    name: Any = UNSET
    description: Any = UNSET
    category: Any = UNSET
    price_cents: Any = UNSET
    cost_cents: Any = UNSET
    is_active: Any = UNSET
    price_change_reason: str | None = None

    @classmethod
    def from_json(cls, payload, *, partial: bool = False) -> "ProductRequest":
        reader = PayloadReader(payload)
        required = not partial

        def opt(name, value):
            return _optional(reader, name, value) if partial else value

        sku = reader.string("sku", required=required, max_length=64)
        req = cls(
            sku=opt("sku", sku.upper() if sku else sku),
            barcode=_optional(reader, "barcode", reader.string("barcode", max_length=64)),
            name=opt("name", reader.string("name", required=required, max_length=255)),
            description=_optional(reader, "description", reader.string("description", max_length=2000)),
            category=opt("category", reader.string("category", required=required, max_length=100)),
            price_cents=opt("price_cents", reader.cents("price_cents", required=required, default=None)),
            cost_cents=_optional(reader, "cost_cents", reader.cents("cost_cents")),
            is_active=_optional(reader, "is_active", reader.boolean("is_active", default=True)),
            price_change_reason=reader.string("price_change_reason", max_length=255),
        )
        reader.raise_if_errors()
        return req


@dataclass(frozen=True)
class InitialStock:
    store_id: int
    quantity: int
    min_stock: int | None = None
    max_stock: int | None = None

    @classmethod
    def from_json(cls, payload) -> "InitialStock":
        reader = PayloadReader(payload, prefix="inventory")
        req = cls(
            store_id=reader.identifier("store_id", required=True),
            quantity=reader.integer("quantity", required=True, minimum=0),
            min_stock=reader.integer("min_stock", minimum=0),
            max_stock=reader.integer("max_stock", minimum=1),
        )
        reader.raise_if_errors()
        return req


SUPPLIER_TEXT_FIELDS = {
    "contact_name": 100,
    "email": 255,
    "phone": 32,
    "address": 255,
    "city": 100,
    "country": 100,
    "tax_id": 64,
    "payment_terms": 100,
    "website": 255,
    "notes": 2000,
}


@dataclass(frozen=True)
class SupplierRequest:
    values: dict

    @classmethod
    def from_json(cls, payload, *, partial: bool = False) -> "SupplierRequest":
        reader = PayloadReader(payload)
        values: dict = {}
        if reader.has("name") or not partial:
            values["name"] = reader.string("name", required=True, max_length=200)
        for name, max_length in SUPPLIER_TEXT_FIELDS.items():
            if reader.has(name):
                values[name] = reader.string(name, max_length=max_length)
        if reader.has("categories"):
            values["categories"] = reader.string_list("categories") or []
        if reader.has("rating"):
            values["rating"] = reader.integer("rating", minimum=1, maximum=5)
        if reader.has("is_active"):
            values["is_active"] = reader.boolean("is_active", default=True)
        reader.raise_if_errors()
        if values.get("email"):
            values["email"] = values["email"].lower()
        return cls(values=values)


# =============================================================================
# Users
# =============================================================================

def _permission_flags(reader: PayloadReader) -> dict | None:
    raw = reader.payload.get("permissions")
    if raw is None:
        return None
    sub = PayloadReader(raw, prefix="permissions", errors=reader.errors)
    flags = {}
    for name in PERMISSION_DEFAULTS:
        value = sub.boolean(name)
        if value is not None:
            flags[name] = value
    unknown = set(sub.payload) - set(PERMISSION_DEFAULTS)
    for name in sorted(unknown):
        reader.errors.append({"field": f"permissions.{name}", "message": "unknown permission"})
    return flags


@dataclass(frozen=True)
class CreateUserRequest:
    name: str
    email: str
    password: str
    role: str = "user"
    store_id: int | None = None
    permissions: dict | None = None

    @classmethod
    def from_json(cls, payload) -> "CreateUserRequest":
        reader = PayloadReader(payload)
        req = cls(
            name=reader.string("name", required=True, max_length=100),
            email=_lower(reader.string("email", required=True, max_length=255)),
            password=reader.string("password", required=True, max_length=128),
            role=reader.choice("role", ROLES, default="user"),
            store_id=reader.identifier("store_id"),
            permissions=_permission_flags(reader),
        )
        if req.email and "@" not in req.email:
            reader.errors.append({"field": "email", "message": "must be a valid email"})
        if req.role == "user" and req.store_id is None:
            reader.errors.append({"field": "store_id", "message": "store users must be assigned to a store"})
        reader.raise_if_errors()
        return req


@dataclass(frozen=True)
class UpdateUserRequest:
    name: Any = UNSET
    email: Any = UNSET
    role: Any = UNSET
    store_id: Any = UNSET
    permissions: Any = UNSET
    is_active: Any = UNSET

    @classmethod
    def from_json(cls, payload) -> "UpdateUserRequest":
        reader = PayloadReader(payload)
        req = cls(
            name=_optional(reader, "name", reader.string("name", required=reader.has("name"), max_length=100)),
            email=_optional(reader, "email", _lower(reader.string("email", required=reader.has("email"),
                                                                  max_length=255))),
            role=_optional(reader, "role", reader.choice("role", ROLES, required=reader.has("role"))),
            store_id=_optional(reader, "store_id", reader.identifier("store_id")),
            permissions=_optional(reader, "permissions", _permission_flags(reader)),
            is_active=_optional(reader, "is_active", reader.boolean("is_active", default=True)),
        )
        reader.raise_if_errors()
        return req


@dataclass(frozen=True)
class LoginRequest:
    email: str
    password: str

    @classmethod
    def from_json(cls, payload) -> "LoginRequest":
        reader = PayloadReader(payload)
        req = cls(
            email=_lower(reader.string("email", required=True, max_length=255)),
            password=reader.string("password", required=True, max_length=128),
        )
        reader.raise_if_errors()
        return req


@dataclass(frozen=True)
class ChangePasswordRequest:
    current_password: str
    new_password: str

    @classmethod
    def from_json(cls, payload) -> "ChangePasswordRequest":
        reader = PayloadReader(payload)
        req = cls(
            current_password=reader.string("current_password", required=True, max_length=128),
            new_password=reader.string("new_password", required=True, max_length=128),
        )
        reader.raise_if_errors()
        return req

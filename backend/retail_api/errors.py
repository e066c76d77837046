# Overview: Domain error hierarchy and the Flask handlers that turn it into JSON responses.

"""
Error taxonomy for the retail API.

Every error raised on purpose by a service is an ApiError subclass. The
status code, message and structured details travel with the exception so
routes never build error responses by hand:

- ValidationError        400  malformed input, field-level list in `errors`
- BusinessRuleError      400  stock, state-machine and payment rules
- AuthenticationError    401
- ForbiddenError         403
- NotFoundError          404
- ConflictError          409  duplicates, second open register
- AccountLockedError     423

Anything else reaching the handler is a 500: logged with the stack, message
sanitized unless the app runs in debug mode.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, asdict

from flask import current_app, jsonify
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from .extensions import db


class ApiError(Exception):
    status_code = 400

    def __init__(self, message: str, *, errors: list | None = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        body = {"success": False, "message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationError(ApiError):
    """400-level input problem."""
    status_code = 400


class NotFoundError(ApiError):
    status_code = 404


class ConflictError(ApiError):
    """409-level business rule conflict (e.g., duplicate SKU)."""
    status_code = 409


class AuthenticationError(ApiError):
    status_code = 401


class ForbiddenError(ApiError):
    status_code = 403


class AccountLockedError(ApiError):
    status_code = 423

    def __init__(self, message: str, *, retry_after_seconds: int | None = None):
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["retry_after_seconds"] = self.retry_after_seconds
        return body


class BusinessRuleError(ApiError):
    status_code = 400


@dataclass(frozen=True)
class StockShortage:
    store_id: int
    product_id: int
    requested: int
    available: int
    product_name: str | None = None
    sku: str | None = None
    missing_row: bool = False


def _describe(shortage: StockShortage) -> str:
    label = shortage.product_name or f"product {shortage.product_id}"
    if shortage.sku:
        label = f"{label} ({shortage.sku})"
    if shortage.missing_row:
        return f"{label} is not stocked at store {shortage.store_id}"
    return f"{label}: requested {shortage.requested}, available {shortage.available}"


class InsufficientStock(BusinessRuleError):
    """One or more ledger rows cannot cover the requested decrement."""

    def __init__(self, shortages: list[StockShortage]):
        self.shortages = list(shortages)
        message = "Insufficient stock: " + "; ".join(_describe(s) for s in self.shortages)
        super().__init__(message, errors=[asdict(s) for s in self.shortages])


class ProductNotInInventory(BusinessRuleError):
    """A decrement referenced a (store, product) pair with no ledger row."""

    def __init__(self, shortages: list[StockShortage]):
        self.shortages = list(shortages)
        message = "Product not in inventory: " + "; ".join(_describe(s) for s in self.shortages)
        super().__init__(message, errors=[asdict(s) for s in self.shortages])


class InvalidState(BusinessRuleError):
    def __init__(self, entity: str, current: str, target: str, message: str | None = None):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(
            message or f"Cannot move {entity} from '{current}' to '{target}'",
            errors=[{"entity": entity, "from": current, "to": target}],
        )


class InvalidTransferState(InvalidState):
    def __init__(self, current: str, target: str, message: str | None = None):
        super().__init__("transfer", current, target, message)


class CreditAlreadyCompleted(BusinessRuleError):
    def __init__(self, credit_id: int):
        self.credit_id = credit_id
        super().__init__(f"Credit {credit_id} is already completed")


class SaleNotCompleted(BusinessRuleError):
    def __init__(self, sale_id: int, status: str):
        self.sale_id = sale_id
        self.status = status
        super().__init__(
            f"Sale {sale_id} is '{status}'; only completed sales can be changed",
            errors=[{"entity": "sale", "from": status}],
        )


def register_error_handlers(app) -> None:
    """Translate every error leaving a view into the response envelope."""

    @app.errorhandler(ApiError)
    def handle_api_error(exc: ApiError):
        db.session.rollback()
        if exc.status_code >= 500:
            current_app.logger.error("API error: %s", exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(exc: IntegrityError):
        db.session.rollback()
        current_app.logger.warning("Integrity error: %s", exc.orig)
        return jsonify({"success": False, "message": "Duplicate or conflicting record"}), 409

    @app.errorhandler(HTTPException)
    def handle_http_exception(exc: HTTPException):
        return jsonify({"success": False, "message": exc.description}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        db.session.rollback()
        current_app.logger.exception("Unhandled error")
        body = {"success": False, "message": "Internal server error"}
        if current_app.debug:
            body["message"] = str(exc)
            body["stack"] = traceback.format_exc()
        return jsonify(body), 500

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

from .errors import ValidationError
from .time_utils import parse_iso_datetime


# Maximum amount: $9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999


class PayloadReader:
    """
    Reads one JSON object field by field and collects every problem.

    Callers pull typed values out of the payload, then call `raise_if_errors()`
    once so the client receives the complete field-level list instead of the
    first failure only.
    """

    def __init__(self, payload: Any, prefix: str = "", errors: list | None = None):
        if payload is None:
            payload = {}
        self.errors: list[dict] = errors if errors is not None else []
        self.prefix = prefix
        if not isinstance(payload, dict):
            self._fail("", "must be a JSON object")
            payload = {}
        self.payload = payload

    def _name(self, field: str) -> str:
        if not field:
            return self.prefix or "body"
        return f"{self.prefix}.{field}" if self.prefix else field

    def _fail(self, field: str, message: str) -> None:
        self.errors.append({"field": self._name(field), "message": message})

    def has(self, field: str) -> bool:
        return field in self.payload

    def string(self, field: str, *, required: bool = False, max_length: int | None = None,
               default: str | None = None) -> str | None:
        raw = self.payload.get(field)
        if raw is None:
            if required:
                self._fail(field, "is required")
            return default
        if not isinstance(raw, (str, int, float)) or isinstance(raw, bool):
            self._fail(field, "must be a string")
            return default
        value = str(raw).strip()
        if required and not value:
            self._fail(field, "cannot be blank")
            return default
        if max_length and len(value) > max_length:
            self._fail(field, f"exceeds max length {max_length}")
            return default
        return value or default

    def integer(self, field: str, *, required: bool = False, minimum: int | None = None,
                maximum: int | None = None, default: int | None = None) -> int | None:
        raw = self.payload.get(field)
        if raw is None:
            if required:
                self._fail(field, "is required")
            return default

        value: int | None = None
        if isinstance(raw, bool):
            value = None
        elif isinstance(raw, int):
            value = raw
        elif isinstance(raw, str):
            stripped = raw.strip()
            # Reject decimals and scientific notation
            if stripped.lstrip("-").isdigit():
                value = int(stripped)
        if value is None:
            self._fail(field, "must be an integer")
            return default

        if minimum is not None and value < minimum:
            self._fail(field, f"must be >= {minimum}")
            return default
        if maximum is not None and value > maximum:
            self._fail(field, f"must be <= {maximum}")
            return default
        return value

    def cents(self, field: str, *, required: bool = False, default: int | None = 0) -> int | None:
        return self.integer(field, required=required, minimum=0, maximum=MAX_AMOUNT_CENTS, default=default)

    def identifier(self, field: str, *, required: bool = False) -> int | None:
        return self.integer(field, required=required, minimum=1)

    def boolean(self, field: str, *, default: bool | None = None) -> bool | None:
        raw = self.payload.get(field)
        if raw is None:
            return default
        if isinstance(raw, bool):
            return raw
        self._fail(field, "must be a boolean")
        return default

    def choice(self, field: str, choices, *, required: bool = False, default: str | None = None) -> str | None:
        value = self.string(field, required=required)
        if value is None:
            return default
        value = value.lower()
        if value not in choices:
            self._fail(field, f"must be one of: {', '.join(sorted(choices))}")
            return default
        return value

    def datetime(self, field: str, *, required: bool = False) -> datetime | None:
        raw = self.payload.get(field)
        if raw is None or raw == "":
            if required:
                self._fail(field, "is required")
            return None
        if not isinstance(raw, str):
            self._fail(field, "must be an ISO-8601 datetime")
            return None
        try:
            return parse_iso_datetime(raw)
        except ValueError:
            self._fail(field, "must be an ISO-8601 datetime")
            return None

    def string_list(self, field: str) -> list[str] | None:
        raw = self.payload.get(field)
        if raw is None:
            return None
        if not isinstance(raw, list) or not all(isinstance(v, str) for v in raw):
            self._fail(field, "must be a list of strings")
            return None
        return [v.strip() for v in raw if v.strip()]

    def items(self, field: str, parse_item: Callable[["PayloadReader"], Any], *,
              required: bool = False) -> list:
        """Parse a list of objects; each element gets its own prefixed reader."""
        raw = self.payload.get(field)
        if raw is None:
            if required:
                self._fail(field, "is required")
            return []
        if not isinstance(raw, list):
            self._fail(field, "must be a list")
            return []
        if required and not raw:
            self._fail(field, "must contain at least one item")
            return []
        parsed = []
        for index, entry in enumerate(raw):
            reader = PayloadReader(entry, prefix=f"{self._name(field)}[{index}]", errors=self.errors)
            parsed.append(parse_item(reader))
        return parsed

    def raise_if_errors(self) -> None:
        if self.errors:
            raise ValidationError("Validation failed", errors=self.errors)


def reject_duplicate_products(lines, field: str = "items") -> None:
    seen: set[int] = set()
    errors = []
    for index, line in enumerate(lines):
        if line.product_id in seen:
            errors.append({"field": f"{field}[{index}].product_id", "message": "duplicate product"})
        seen.add(line.product_id)
    if errors:
        raise ValidationError("Validation failed", errors=errors)


def query_datetime(args, name: str) -> datetime | None:
    """Parse an optional ISO-8601 query argument (?start=, ?end=)."""
    raw = args.get(name)
    if not raw:
        return None
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError("Validation failed", errors=[
            {"field": name, "message": "must be an ISO-8601 datetime"},
        ])


def query_bool(args, name: str, default: bool | None = None) -> bool | None:
    raw = args.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes")

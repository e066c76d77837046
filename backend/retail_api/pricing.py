# Overview: Pure functions for derived document fields (totals, balances, statuses).

"""
Every derived field is computed here, explicitly, before a document is
persisted. Nothing recomputes totals as a side effect of saving a row.
All amounts are integer cents.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class SaleTotals:
    subtotals: tuple[int, ...]
    total: int
    tax: int
    discount: int
    final_total: int


def line_subtotal(quantity: int, unit_price_cents: int) -> int:
    return quantity * unit_price_cents


def sale_totals(lines: Iterable[tuple[int, int]], tax_cents: int = 0, discount_cents: int = 0) -> SaleTotals:
    """lines: (quantity, unit_price_cents) pairs."""
    subtotals = tuple(line_subtotal(qty, price) for qty, price in lines)
    total = sum(subtotals)
    return SaleTotals(
        subtotals=subtotals,
        total=total,
        tax=tax_cents,
        discount=discount_cents,
        final_total=final_total(total, tax_cents, discount_cents),
    )


def final_total(total_cents: int, tax_cents: int, discount_cents: int) -> int:
    return total_cents + tax_cents - discount_cents


def credit_balance(total_cents: int, paid_cents: int) -> int:
    return total_cents - paid_cents


def credit_status(total_cents: int, paid_cents: int, cancelled: bool) -> str:
    if cancelled:
        return "cancelled"
    if credit_balance(total_cents, paid_cents) <= 0:
        return "completed"
    if paid_cents > 0:
        return "partial"
    return "pending"


def purchase_order_totals(lines: Iterable[tuple[int, int]], tax_cents: int, shipping_cents: int) -> tuple[int, int]:
    """lines: (quantity_ordered, unit_cost_cents). Returns (total_cost, final_total)."""
    total_cost = sum(line_subtotal(qty, cost) for qty, cost in lines)
    return total_cost, total_cost + tax_cents + shipping_cents


def purchase_order_status(lines: Iterable[tuple[int, int]]) -> str:
    """lines: (quantity_ordered, quantity_received)."""
    lines = list(lines)
    if lines and all(received >= ordered for ordered, received in lines):
        return "received"
    if any(received > 0 for _, received in lines):
        return "partial"
    return "pending"


def return_totals(items: Iterable[tuple[int, int]], exchange_items: Iterable[tuple[int, int]]) -> tuple[int, int, int]:
    """Returns (total_refund, exchange_total, price_difference)."""
    refund = sum(line_subtotal(qty, price) for qty, price in items)
    exchange = sum(line_subtotal(qty, price) for qty, price in exchange_items)
    return refund, exchange, exchange - refund


def price_change(old_price: int, new_price: int) -> tuple[str, float]:
    """Returns (change_type, percentage_change rounded to 2 decimals)."""
    if new_price > old_price:
        change_type = "increase"
    elif new_price < old_price:
        change_type = "decrease"
    else:
        change_type = "no_change"
    if old_price == 0:
        return change_type, 0.0
    return change_type, round((new_price - old_price) / old_price * 100, 2)


def expected_cash(opening_cents: int, cash_sales_cents: int, income_cents: int, expense_cents: int) -> int:
    return opening_cents + cash_sales_cents + income_cents - expense_cents

"""
Derived-field tests for pricing helpers.
"""

import pytest

from retail_api.pricing import (
    credit_status,
    expected_cash,
    price_change,
    purchase_order_status,
    purchase_order_totals,
    return_totals,
    sale_totals,
)


def test_sale_totals():
    totals = sale_totals([(2, 900), (4, 250)], tax_cents=190, discount_cents=100)

    assert totals.subtotals == (1800, 1000)
    assert totals.total == 2800
    assert totals.final_total == 2890


@pytest.mark.parametrize("total,paid,cancelled,expected", [
    (1000, 0, False, "pending"),
    (1000, 1, False, "partial"),
    (1000, 1000, False, "completed"),
    (1000, 1000, True, "cancelled"),
    (0, 0, False, "completed"),
])
def test_credit_status(total, paid, cancelled, expected):
    assert credit_status(total, paid, cancelled) == expected


@pytest.mark.parametrize("lines,expected", [
    ([(10, 0), (5, 0)], "pending"),
    ([(10, 4), (5, 0)], "partial"),
    ([(10, 10), (5, 5)], "received"),
    ([], "pending"),
])
def test_purchase_order_status(lines, expected):
    assert purchase_order_status(lines) == expected


def test_purchase_order_totals():
    assert purchase_order_totals([(10, 400), (5, 1000)], 1710, 500) == (9000, 11210)


def test_return_totals_difference_sign():
    assert return_totals([(2, 1000)], [(1, 1500)]) == (2000, 1500, -500)
    assert return_totals([(1, 1000)], []) == (1000, 0, -1000)


def test_expected_cash():
    assert expected_cash(5000, 2000, 700, 300) == 7400


@pytest.mark.parametrize("old,new,expected", [
    (1000, 1250, ("increase", 25.0)),
    (1000, 750, ("decrease", -25.0)),
    (1000, 1000, ("no_change", 0.0)),
    (0, 500, ("increase", 0.0)),
])
def test_price_change(old, new, expected):
    assert price_change(old, new) == expected

"""Pure pipeline helpers: conversion, regrouping and derived metrics."""
import math
from datetime import date
from decimal import Decimal

import pytest

from dashboard.services.aggregation import (
    MonetaryField,
    collapse_dimension,
    convert_rows,
    hourly_buckets,
    normalize_row,
    peak_hour,
    rank_rows,
    regroup_rows,
    safe_divide,
)
from dashboard.services.exchange_rate_service import CurrencyConversionIndex

MARCH = date(2024, 3, 5)


@pytest.fixture
def index():
    # Store "201" is in EUR at 0.5 EUR per GBP: multiplier 2.0
    return CurrencyConversionIndex(
        base_currency="GBP",
        monthly_rates={"EUR": {"2024-03": 0.5}},
        store_currencies={"101": "GBP", "201": "EUR"},
    )


def test_conversion_happens_before_aggregation(index):
    rows = [
        {"date": MARCH, "website_id": "101", "total_revenue": 100.0},
        {"date": MARCH, "website_id": "201", "total_revenue": 100.0},
    ]

    convert_rows(rows, index, [MonetaryField("total_revenue")])
    merged = regroup_rows(rows, ["date"], ["total_revenue"])

    assert merged == [{"date": MARCH, "total_revenue": 300.0}]


def test_convert_rows_uses_row_store_and_date_fields(index):
    rows = [{"order_date": "2024-03-09", "store_id": "201", "total_revenue": 10.0, "label": "x"}]

    convert_rows(rows, index, [MonetaryField("total_revenue", store_field="store_id", date_field="order_date")])

    assert rows[0]["total_revenue"] == 20.0
    assert rows[0]["label"] == "x"


def test_convert_rows_falls_back_to_query_month(index):
    rows = [{"website_id": "201", "total_spend": 5.0}]

    convert_rows(rows, index, [MonetaryField("total_spend", date_field=None)], fallback_month="2024-03")

    assert rows[0]["total_spend"] == 10.0


def test_regroup_keeps_first_seen_order_and_first_row_fields():
    rows = [
        {"sku": "B", "name": "first-b", "qty": 1, "max_price": 3, "website_id": "1"},
        {"sku": "A", "name": "first-a", "qty": 2, "max_price": 5, "website_id": "1"},
        {"sku": "B", "name": "second-b", "qty": 4, "max_price": 7, "website_id": "2"},
    ]

    merged = regroup_rows(rows, ["sku"], ["qty"], ["max_price"])

    assert merged == [
        {"sku": "B", "name": "first-b", "qty": 5, "max_price": 7},
        {"sku": "A", "name": "first-a", "qty": 2, "max_price": 5},
    ]


@pytest.mark.parametrize("numerator, denominator", [
    (10, 0),
    (0, 0),
    (None, 5),
    (5, None),
    (math.inf, 1),
    (math.nan, 1),
])
def test_safe_divide_is_always_finite(numerator, denominator):
    assert safe_divide(numerator, denominator) == 0.0


def test_safe_divide_divides():
    assert safe_divide(10, 4) == 2.5


def test_normalize_row_unwraps_decimal_and_date_wrappers():
    class DateWrapper:
        value = "2024-03-01"

    row = normalize_row({"revenue": Decimal("12.50"), "date": DateWrapper(), "day": MARCH, "name": "x"})

    assert row == {"revenue": 12.5, "date": "2024-03-01", "day": MARCH, "name": "x"}


def test_collapse_dimension_percentages_and_order():
    rows = [
        {"order_date": MARCH, "group": "A", "total_revenue": 30.0, "total_qty": 3},
        {"order_date": MARCH, "group": "B", "total_revenue": 20.0, "total_qty": 9},
        {"order_date": date(2024, 3, 6), "group": "C", "total_revenue": 20.0, "total_qty": 1},
        {"order_date": MARCH, "group": "C", "total_revenue": 30.0, "total_qty": 1},
    ]

    collapsed = collapse_dimension(rows, "group", ["total_revenue", "total_qty"], "total_revenue")

    assert [r["group"] for r in collapsed] == ["C", "A", "B"]
    assert [r["percentage"] for r in collapsed] == [50.0, 30.0, 20.0]
    assert "order_date" not in collapsed[0]


def test_collapse_dimension_limit_applies_after_percentages():
    rows = [{"g": g, "v": v} for g, v in (("A", 60.0), ("B", 30.0), ("C", 10.0))]

    collapsed = collapse_dimension(rows, "g", ["v"], "v", limit=1)

    assert collapsed == [{"g": "A", "v": 60.0, "percentage": 60.0}]


def test_rank_rows_is_stable_for_ties():
    rows = [{"id": 1, "v": 5}, {"id": 2, "v": 9}, {"id": 3, "v": 5}]

    assert [r["id"] for r in rank_rows(rows, "v")] == [2, 1, 3]
    assert [r["id"] for r in rank_rows(rows, "v", limit=2)] == [2, 1]


def test_hourly_buckets_average_over_distinct_days():
    rows = [
        {"date": date(2024, 3, 1), "hour": 9, "total_orders": 4, "total_revenue": 40.0},
        {"date": date(2024, 3, 2), "hour": 9, "total_orders": 2, "total_revenue": 20.0},
        {"date": date(2024, 3, 2), "hour": 9, "total_orders": 0, "total_revenue": 0.0},
    ]

    buckets = hourly_buckets(rows)

    assert len(buckets) == 24
    assert buckets[9].days == 2
    assert buckets[9].avg_orders == 3
    assert buckets[9].avg_revenue == 30.0
    assert buckets[10].avg_orders == 0.0


def test_peak_hour_ties_go_to_the_lowest_hour():
    rows = [
        {"date": MARCH, "hour": 7, "total_orders": 10, "total_revenue": 1.0},
        {"date": MARCH, "hour": 3, "total_orders": 10, "total_revenue": 2.0},
        {"date": MARCH, "hour": 12, "total_orders": 4, "total_revenue": 2.0},
    ]
    buckets = hourly_buckets(rows)

    assert peak_hour(buckets, lambda b: b.total_orders) == 3
    assert peak_hour(buckets, lambda b: b.total_revenue) == 3


def test_peak_hour_with_no_data_is_midnight():
    assert peak_hour(hourly_buckets([]), lambda b: b.total_orders) == 0

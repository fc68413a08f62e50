"""
Aggregation helpers
Pure functions for the convert -> regroup -> derive pipeline that every
report runs over warehouse rows. Nothing here touches SQL or storage.
"""
import logging
import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from dashboard.services.exchange_rate_service import CurrencyConversionIndex

logger = logging.getLogger(__name__)

STORE_FIELD = "website_id"
HOURS_PER_DAY = 24

Row = Dict[str, Any]


@dataclass(frozen=True)
class MonetaryField:
    """A money column, converted with the rate of its row's store and date."""
    field: str
    store_field: str = STORE_FIELD
    date_field: Optional[str] = "date"


def safe_divide(numerator: Optional[float], denominator: Optional[float]) -> float:
    """numerator / denominator, or 0.0 when the result would not be finite."""
    if not numerator or not denominator:
        return 0.0
    result = numerator / denominator
    return result if math.isfinite(result) else 0.0


def percentage_of_total(value: Optional[float], total: Optional[float]) -> float:
    return safe_divide((value or 0) * 100, total)


def normalize_value(value: Any) -> Any:
    # NUMERIC/BIGNUMERIC columns arrive as Decimal
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return value
    # DATE wrappers exposing the ISO string as .value
    inner = getattr(value, "value", None)
    if isinstance(inner, str):
        return inner
    return value


def normalize_row(row: Any) -> Row:
    return {key: normalize_value(value) for key, value in dict(row).items()}


def convert_rows(
    rows: List[Row],
    index: Optional[CurrencyConversionIndex],
    monetary_fields: Sequence[MonetaryField],
    fallback_month: Optional[str] = None,
) -> List[Row]:
    """Convert monetary fields of every row into the reporting currency, in place."""
    if index is None or not monetary_fields:
        return rows

    for row in rows:
        for money in monetary_fields:
            value = row.get(money.field)
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                continue
            day = row.get(money.date_field) if money.date_field else None
            row[money.field] = index.convert(value, row.get(money.store_field), day, fallback_month)
    return rows


def regroup_rows(
    rows: Iterable[Row],
    group_by: Sequence[str],
    sum_fields: Sequence[str] = (),
    max_fields: Sequence[str] = (),
    drop_fields: Sequence[str] = (STORE_FIELD,),
) -> List[Row]:
    """Merge rows sharing the ``group_by`` key.

    Summed and maxed fields are combined across the group, other fields keep
    the first row's value. Groups come out in first-seen order.
    """
    grouped: Dict[tuple, Row] = {}

    for row in rows:
        key = tuple(row.get(f) for f in group_by)
        current = grouped.get(key)
        if current is None:
            current = {k: v for k, v in row.items() if k not in drop_fields}
            for f in sum_fields:
                current[f] = row.get(f) or 0
            for f in max_fields:
                current[f] = row.get(f) or 0
            grouped[key] = current
            continue

        for f in sum_fields:
            current[f] = (current.get(f) or 0) + (row.get(f) or 0)
        for f in max_fields:
            current[f] = max(current.get(f) or 0, row.get(f) or 0)

    return list(grouped.values())


def sum_field(rows: Iterable[Any], field: str) -> float:
    total = 0
    for row in rows:
        value = row.get(field) if isinstance(row, dict) else getattr(row, field, 0)
        total += value or 0
    return total


def rank_rows(rows: List[Row], sort_field: str, limit: Optional[int] = None) -> List[Row]:
    """Sort descending by ``sort_field`` (stable) and truncate to ``limit``."""
    ranked = sorted(rows, key=lambda r: r.get(sort_field) or 0, reverse=True)
    return ranked[:limit] if limit else ranked


def collapse_dimension(
    rows: Iterable[Row],
    dimension: str,
    sum_fields: Sequence[str],
    value_field: str,
    sort_field: Optional[str] = None,
    limit: Optional[int] = None,
    percentage_field: str = "percentage",
) -> List[Row]:
    """Second stage of a breakdown: one row per dimension value across all dates.

    Adds ``percentage_field`` = value_field / total * 100, sorts descending and
    truncates. Percentages are taken before truncation.
    """
    keep = {dimension, *sum_fields}
    collapsed = regroup_rows(
        ({k: v for k, v in row.items() if k in keep} for row in rows),
        [dimension],
        sum_fields,
        drop_fields=(),
    )
    total = sum_field(collapsed, value_field)
    for row in collapsed:
        row[percentage_field] = percentage_of_total(row.get(value_field), total)
    return rank_rows(collapsed, sort_field or value_field, limit)


@dataclass
class HourlyBucket:
    hour: int
    total_orders: float = 0
    total_revenue: float = 0
    days: int = 0

    @property
    def avg_orders(self) -> float:
        return safe_divide(self.total_orders, self.days)

    @property
    def avg_revenue(self) -> float:
        return safe_divide(self.total_revenue, self.days)


def hourly_buckets(rows: Iterable[Row]) -> List[HourlyBucket]:
    """Fold (date, hour) rows into 24 buckets.

    ``days`` counts distinct dates that have rows in that hour.
    """
    buckets = [HourlyBucket(hour=h) for h in range(HOURS_PER_DAY)]
    seen_dates: List[set] = [set() for _ in range(HOURS_PER_DAY)]

    for row in rows:
        hour = row.get("hour")
        if hour is None:
            continue
        hour = int(hour)
        if not 0 <= hour < HOURS_PER_DAY:
            logger.warning("Ignoring out of range hour %s", hour)
            continue
        bucket = buckets[hour]
        bucket.total_orders += row.get("total_orders") or 0
        bucket.total_revenue += row.get("total_revenue") or 0
        seen_dates[hour].add(row.get("date"))

    for bucket, dates in zip(buckets, seen_dates):
        bucket.days = len(dates)
    return buckets


def peak_hour(buckets: Sequence[HourlyBucket], value: Callable[[HourlyBucket], float]) -> int:
    """Index of the largest value; ties go to the lowest hour."""
    best = buckets[0]
    for bucket in buckets[1:]:
        if value(bucket) > value(best):
            best = bucket
    return best.hour

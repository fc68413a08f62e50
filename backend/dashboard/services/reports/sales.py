"""
Sales reports: daily overview, headline KPIs and the hourly distribution.
"""
import logging
from typing import List, Optional

from dashboard.schemas.reports import (
    HourlyPeaks,
    HourlySalesBucket,
    HourlySalesResult,
    HourlySalesRow,
    SalesKpiMetrics,
    SalesKpiResult,
    SalesKpiRow,
    SalesKpiTotals,
    SalesOverviewDailyRow,
    SalesOverviewResult,
    SalesOverviewSummary,
)
from dashboard.services.aggregation import (
    MonetaryField,
    hourly_buckets,
    peak_hour,
    percentage_of_total,
    safe_divide,
    sum_field,
)
from dashboard.services.query_executor import PostProcessSpec
from dashboard.services.query_filters import ORDER_TYPE_SAMPLE, sample_order_filter, table_ref
from dashboard.services.reports.base import (
    ReportContext,
    ReportQuery,
    resolve_scope,
    validate_order_type,
)
from dashboard.services.warehouse import WarehouseQueryError

logger = logging.getLogger(__name__)

OVERVIEW_TABLE = "mv_agg_sales_overview_daily"
ORDERS_TABLE = "mv_adobe_commerce_orders_flattened"

OVERVIEW_MONEY = [
    MonetaryField(f) for f in (
        "total_revenue", "subtotal", "total_tax", "total_shipping",
        "total_discounts", "revenue_complete", "revenue_pending",
    )
]
OVERVIEW_SUMS = [
    "total_orders", "unique_customers", "total_revenue", "subtotal", "total_tax",
    "total_shipping", "total_discounts", "total_items", "orders_complete",
    "orders_pending", "orders_processing", "orders_canceled", "revenue_complete",
    "revenue_pending", "orders_sample", "orders_not_sample",
]


async def _has_sample_columns(ctx: ReportContext, dataset_id: str) -> bool:
    """Older datasets build the overview view without the sample split."""
    sql = f"""
        SELECT column_name
        FROM {table_ref(dataset_id, "INFORMATION_SCHEMA.COLUMNS")}
        WHERE table_name = @table_name
          AND column_name IN ('orders_sample', 'orders_not_sample')
    """
    try:
        rows = await ctx.executor.fetch(sql, {"table_name": OVERVIEW_TABLE}, "sales_overview_schema")
    except WarehouseQueryError:
        logger.warning("Could not inspect %s columns in %s, assuming no sample split", OVERVIEW_TABLE, dataset_id)
        return False
    return len(rows) > 0


def _overview_from_view(query: ReportQuery, clause: str, has_sample_columns: bool) -> str:
    sample_columns = (
        "orders_sample,\n            orders_not_sample"
        if has_sample_columns
        else "CAST(NULL AS INT64) AS orders_sample,\n            CAST(NULL AS INT64) AS orders_not_sample"
    )
    return f"""
        SELECT
            date,
            website_id,
            total_orders,
            unique_customers,
            total_revenue,
            subtotal,
            total_tax,
            total_shipping,
            total_discounts,
            total_items,
            orders_complete,
            orders_pending,
            orders_processing,
            orders_canceled,
            revenue_complete,
            revenue_pending,
            {sample_columns}
        FROM {table_ref(query.dataset_id, OVERVIEW_TABLE)}
        WHERE date BETWEEN @start_date AND @end_date
          {clause}
        ORDER BY date DESC
    """


def _overview_from_orders(query: ReportQuery, clause: str, order_type: str) -> str:
    is_sample = 1 if order_type == ORDER_TYPE_SAMPLE else 0
    return f"""
        SELECT
            o.order_date AS date,
            o.website_id,
            COUNT(DISTINCT o.entity_id) AS total_orders,
            COUNT(DISTINCT o.customer_id) AS unique_customers,
            SUM(CAST(o.grand_total AS FLOAT64)) AS total_revenue,
            SUM(CAST(o.subtotal AS FLOAT64)) AS subtotal,
            SUM(CAST(o.tax_amount AS FLOAT64)) AS total_tax,
            SUM(CAST(o.shipping_amount AS FLOAT64)) AS total_shipping,
            SUM(CAST(o.discount_amount AS FLOAT64)) AS total_discounts,
            SUM(CAST(o.total_qty_ordered AS FLOAT64)) AS total_items,
            COUNTIF(o.status = 'complete') AS orders_complete,
            COUNTIF(o.status = 'pending') AS orders_pending,
            COUNTIF(o.status = 'processing') AS orders_processing,
            COUNTIF(o.status = 'canceled') AS orders_canceled,
            SUM(IF(o.status = 'complete', CAST(o.grand_total AS FLOAT64), 0)) AS revenue_complete,
            SUM(IF(o.status = 'pending', CAST(o.grand_total AS FLOAT64), 0)) AS revenue_pending,
            COUNT(DISTINCT o.entity_id) * {is_sample} AS orders_sample,
            COUNT(DISTINCT o.entity_id) * {1 - is_sample} AS orders_not_sample
        FROM {table_ref(query.dataset_id, ORDERS_TABLE)} o
        WHERE o.order_date BETWEEN @start_date AND @end_date
          AND {sample_order_filter(order_type, "o")}
          {clause}
        GROUP BY date, o.website_id
        ORDER BY date DESC
    """


def _overview_summary(daily: List[SalesOverviewDailyRow], has_sample_split: bool) -> SalesOverviewSummary:
    totals = {f: sum_field(daily, f) for f in OVERVIEW_SUMS}
    if not has_sample_split:
        totals["orders_sample"] = 0
        totals["orders_not_sample"] = totals["total_orders"]
    return SalesOverviewSummary(
        **totals,
        aov=safe_divide(totals["total_revenue"], totals["total_orders"]),
        items_per_order=safe_divide(totals["total_items"], totals["total_orders"]),
    )


async def get_sales_overview(
    ctx: ReportContext,
    query: ReportQuery,
    order_type: Optional[str] = None,
) -> SalesOverviewResult:
    """Daily order/revenue series plus period totals.

    Without ``order_type`` the pre-aggregated view is used and covers every
    order. With "main" or "sample" the flattened orders are filtered on the
    sample flag instead.
    """
    if order_type is not None:
        order_type = validate_order_type(order_type)
    scope = resolve_scope(ctx, query)
    if scope.is_empty:
        return SalesOverviewResult()

    if order_type is None:
        website = scope.website_filter("website_id")
        has_sample_split = await _has_sample_columns(ctx, query.dataset_id)
        sql = _overview_from_view(query, website.clause, has_sample_split)
    else:
        website = scope.website_filter("o.website_id")
        has_sample_split = True
        sql = _overview_from_orders(query, website.clause, order_type)

    daily = await ctx.executor.execute(
        sql,
        {**query.date_params(), **website.params},
        PostProcessSpec(
            name="sales_overview",
            row_model=SalesOverviewDailyRow,
            monetary_fields=OVERVIEW_MONEY,
            group_by=["date"],
            sum_fields=OVERVIEW_SUMS,
            fallback_month=query.fallback_month,
        ),
        query.client_id,
    )
    return SalesOverviewResult(daily=daily, summary=_overview_summary(daily, has_sample_split))


KPI_TABLE = "agg_sales_overview_daily"
KPI_SUMS = ["total_sales", "total_orders", "total_sessions", "total_media_spend", "total_revenue"]


def kpi_metrics(totals: SalesKpiTotals) -> SalesKpiMetrics:
    return SalesKpiMetrics(
        aov=safe_divide(totals.total_sales, totals.total_orders),
        cvr=percentage_of_total(totals.total_orders, totals.total_sessions),
        blended_roas=safe_divide(totals.total_revenue, totals.total_media_spend),
        cpa=safe_divide(totals.total_media_spend, totals.total_orders),
    )


async def get_sales_kpis(ctx: ReportContext, query: ReportQuery) -> SalesKpiResult:
    """Headline KPIs: AOV, conversion rate, blended ROAS and CPA."""
    scope = resolve_scope(ctx, query)
    if scope.is_empty:
        return SalesKpiResult()

    website = scope.website_filter("website_id")
    sql = f"""
        SELECT
            date,
            website_id,
            SUM(total_sales) AS total_sales,
            SUM(total_orders) AS total_orders,
            SUM(total_sessions) AS total_sessions,
            SUM(total_media_spend) AS total_media_spend,
            SUM(total_revenue) AS total_revenue
        FROM {table_ref(query.dataset_id, KPI_TABLE)}
        WHERE date BETWEEN @start_date AND @end_date
          {website.clause}
        GROUP BY date, website_id
        ORDER BY date ASC
    """
    rows = await ctx.executor.execute(
        sql,
        {**query.date_params(), **website.params},
        PostProcessSpec(
            name="sales_kpis",
            row_model=SalesKpiRow,
            monetary_fields=[MonetaryField("total_sales"), MonetaryField("total_media_spend"), MonetaryField("total_revenue")],
            group_by=["date"],
            sum_fields=KPI_SUMS,
            fallback_month=query.fallback_month,
        ),
        query.client_id,
    )
    totals = SalesKpiTotals(**{f: sum_field(rows, f) for f in KPI_SUMS})
    return SalesKpiResult(rows=rows, totals=totals, metrics=kpi_metrics(totals))


HOURLY_TABLE = "mv_agg_sales_overview_hourly"


def _hourly_result(rows: List[HourlySalesRow]) -> HourlySalesResult:
    buckets = hourly_buckets(r.model_dump() for r in rows)
    hourly = [
        HourlySalesBucket(
            hour=b.hour,
            total_orders=b.total_orders,
            total_revenue=b.total_revenue,
            avg_orders_per_day=b.avg_orders,
            avg_revenue_per_day=b.avg_revenue,
        )
        for b in buckets
    ]
    peaks = HourlyPeaks(
        orders=hourly[peak_hour(buckets, lambda b: b.total_orders)],
        revenue=hourly[peak_hour(buckets, lambda b: b.total_revenue)],
    )
    return HourlySalesResult(hourly=hourly, peaks=peaks)


async def get_hourly_sales(
    ctx: ReportContext,
    query: ReportQuery,
    order_type: Optional[str] = None,
) -> HourlySalesResult:
    """24-hour distribution of orders and revenue with peak hours.

    Without an order type every order is read from the hourly view; "main"
    or "sample" read the flattened orders filtered on the sample flag.
    """
    if order_type is not None:
        order_type = validate_order_type(order_type)
    scope = resolve_scope(ctx, query)
    if scope.is_empty:
        return _hourly_result([])

    if order_type is not None:
        website = scope.website_filter("o.website_id")
        sql = f"""
            SELECT
                o.order_date AS date,
                EXTRACT(HOUR FROM TIMESTAMP(o.order_created_at)) AS hour,
                o.website_id,
                COUNT(DISTINCT o.entity_id) AS total_orders,
                SUM(CAST(o.grand_total AS FLOAT64)) AS total_revenue
            FROM {table_ref(query.dataset_id, ORDERS_TABLE)} o
            WHERE o.order_date BETWEEN @start_date AND @end_date
              AND {sample_order_filter(order_type, "o")}
              {website.clause}
            GROUP BY date, hour, o.website_id
            ORDER BY date DESC, hour DESC
        """
    else:
        website = scope.website_filter("website_id")
        sql = f"""
            SELECT
                date,
                hour,
                website_id,
                total_orders,
                total_revenue
            FROM {table_ref(query.dataset_id, HOURLY_TABLE)}
            WHERE date BETWEEN @start_date AND @end_date
              {website.clause}
            ORDER BY date DESC, hour DESC
        """

    rows = await ctx.executor.execute(
        sql,
        {**query.date_params(), **website.params},
        PostProcessSpec(
            name=f"hourly_sales_{order_type or 'all'}",
            row_model=HourlySalesRow,
            monetary_fields=[MonetaryField("total_revenue")],
            group_by=["date", "hour"],
            sum_fields=["total_orders", "total_revenue"],
            fallback_month=query.fallback_month,
        ),
        query.client_id,
    )
    return _hourly_result(rows)

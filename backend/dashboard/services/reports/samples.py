"""
Sample order reports. Every query here is restricted to orders flagged as
product-sample requests.
"""
import logging
from typing import List, Optional

from dashboard.schemas.reports import (
    SampleCollectionRow,
    SampleOrdersDailyResult,
    SampleOrdersDailyRow,
    SampleOrdersDailySummary,
    SampleOrdersSummary,
    SampleOrdersSummaryRow,
    SampleProductItemRow,
    TopSampleProduct,
)
from dashboard.services.aggregation import MonetaryField, rank_rows, safe_divide, sum_field
from dashboard.services.query_executor import PostProcessSpec
from dashboard.services.query_filters import ORDER_TYPE_SAMPLE, sample_order_filter, table_ref
from dashboard.services.reports.base import ReportContext, ReportQuery, resolve_scope, validate_limit

logger = logging.getLogger(__name__)

ORDERS_TABLE = "mv_adobe_commerce_orders_flattened"
SALES_ITEMS_TABLE = "mv_adobe_commerce_sales_items"
PRODUCTS_TABLE = "mv_adobe_commerce_products_flattened"

TOP_SAMPLE_PRODUCTS_LIMIT = 10

IS_SAMPLE = sample_order_filter(ORDER_TYPE_SAMPLE, "o")


async def get_sample_orders_summary(ctx: ReportContext, query: ReportQuery) -> SampleOrdersSummary:
    scope = resolve_scope(ctx, query)
    if scope.is_empty:
        return SampleOrdersSummary()

    website = scope.website_filter("o.website_id")
    sql = f"""
        SELECT
            o.order_date,
            o.website_id AS store_id,
            COUNT(DISTINCT o.entity_id) AS total_sample_orders,
            SUM(CAST(o.total_qty_ordered AS FLOAT64)) AS total_sample_qty,
            SUM(CAST(o.grand_total AS FLOAT64)) AS total_sample_revenue
        FROM {table_ref(query.dataset_id, ORDERS_TABLE)} o
        WHERE o.order_date BETWEEN @start_date AND @end_date
          AND {IS_SAMPLE}
          {website.clause}
        GROUP BY order_date, store_id
    """
    sums = ["total_sample_orders", "total_sample_qty", "total_sample_revenue"]
    rows = await ctx.executor.execute(
        sql,
        {**query.date_params(), **website.params},
        PostProcessSpec(
            name="sample_orders_summary",
            row_model=SampleOrdersSummaryRow,
            monetary_fields=[MonetaryField("total_sample_revenue", store_field="store_id", date_field="order_date")],
            group_by=["order_date"],
            sum_fields=sums,
            fallback_month=query.fallback_month,
            store_field="store_id",
        ),
        query.client_id,
    )
    return SampleOrdersSummary(**{f: sum_field(rows, f) for f in sums})


async def get_sample_orders_daily(ctx: ReportContext, query: ReportQuery) -> SampleOrdersDailyResult:
    scope = resolve_scope(ctx, query)
    if scope.is_empty:
        return SampleOrdersDailyResult()

    website = scope.website_filter("o.website_id")
    sql = f"""
        SELECT
            o.order_date AS date,
            o.website_id,
            COUNT(DISTINCT o.entity_id) AS total_orders,
            SUM(CAST(o.grand_total AS FLOAT64)) AS total_revenue,
            SUM(CAST(o.total_qty_ordered AS FLOAT64)) AS total_items
        FROM {table_ref(query.dataset_id, ORDERS_TABLE)} o
        WHERE o.order_date BETWEEN @start_date AND @end_date
          AND {IS_SAMPLE}
          {website.clause}
        GROUP BY date, o.website_id
        ORDER BY date DESC
    """
    daily = await ctx.executor.execute(
        sql,
        {**query.date_params(), **website.params},
        PostProcessSpec(
            name="sample_orders_daily",
            row_model=SampleOrdersDailyRow,
            monetary_fields=[MonetaryField("total_revenue")],
            group_by=["date"],
            sum_fields=["total_orders", "total_revenue", "total_items"],
            fallback_month=query.fallback_month,
        ),
        query.client_id,
    )

    total_orders = sum_field(daily, "total_orders")
    total_items = sum_field(daily, "total_items")
    summary = SampleOrdersDailySummary(
        total_orders=total_orders,
        total_revenue=sum_field(daily, "total_revenue"),
        total_items=total_items,
        items_per_order=safe_divide(total_items, total_orders),
    )
    return SampleOrdersDailyResult(daily=daily, summary=summary)


async def get_sample_orders_by_collection(ctx: ReportContext, query: ReportQuery) -> List[SampleCollectionRow]:
    """Sample items per collection. Quantities only, so no currency conversion."""
    scope = resolve_scope(ctx, query)
    if scope.is_empty:
        return []

    website = scope.website_filter("item.website_id")
    sql = f"""
        SELECT
            COALESCE(p.attr_sdb_collection_name, 'Unknown') AS collection,
            SUM(CAST(item.qty_ordered AS FLOAT64)) AS total_items,
            COUNT(DISTINCT item.order_entity_id) AS total_orders
        FROM {table_ref(query.dataset_id, SALES_ITEMS_TABLE)} item
        INNER JOIN {table_ref(query.dataset_id, ORDERS_TABLE)} o
            ON item.order_entity_id = o.entity_id
        LEFT JOIN {table_ref(query.dataset_id, PRODUCTS_TABLE)} p
            ON item.sku = p.sku
        WHERE item.order_date BETWEEN @start_date AND @end_date
          AND {IS_SAMPLE}
          {website.clause}
        GROUP BY collection
        ORDER BY total_items DESC
    """
    return await ctx.executor.execute(
        sql,
        {**query.date_params(), **website.params},
        PostProcessSpec(name="sample_orders_by_collection", row_model=SampleCollectionRow),
        query.client_id,
    )


async def get_top_sample_products(
    ctx: ReportContext,
    query: ReportQuery,
    limit: Optional[int] = None,
) -> List[TopSampleProduct]:
    """Most requested sample products by quantity, with distinct order counts."""
    limit = validate_limit(limit, TOP_SAMPLE_PRODUCTS_LIMIT)
    scope = resolve_scope(ctx, query)
    if scope.is_empty:
        return []

    website = scope.website_filter("item.website_id")
    sql = f"""
        SELECT
            item.order_date,
            item.website_id AS store_id,
            CAST(item.order_entity_id AS STRING) AS order_id,
            item.sku,
            item.product_name,
            item.product_id,
            CAST(item.qty_ordered AS FLOAT64) AS total_qty_ordered,
            CAST(item.row_total AS FLOAT64) AS total_revenue
        FROM {table_ref(query.dataset_id, SALES_ITEMS_TABLE)} item
        INNER JOIN {table_ref(query.dataset_id, ORDERS_TABLE)} o
            ON item.order_entity_id = o.entity_id
        WHERE item.order_date BETWEEN @start_date AND @end_date
          AND {IS_SAMPLE}
          {website.clause}
    """
    # Item level rows are kept as-is so distinct orders can be counted per product
    items = await ctx.executor.execute(
        sql,
        {**query.date_params(), **website.params},
        PostProcessSpec(
            name="top_sample_products",
            row_model=SampleProductItemRow,
            monetary_fields=[MonetaryField("total_revenue", store_field="store_id", date_field="order_date")],
            fallback_month=query.fallback_month,
            store_field="store_id",
            regroup=False,
        ),
        query.client_id,
    )

    products = {}
    order_ids = {}
    for item in items:
        key = f"{item.sku or 'unknown'}__{item.product_id or 'unknown'}"
        product = products.get(key)
        if product is None:
            product = products[key] = {
                "sku": item.sku,
                "product_name": item.product_name,
                "product_id": item.product_id,
                "total_qty_ordered": 0,
                "total_revenue": 0,
            }
            order_ids[key] = set()
        product["total_qty_ordered"] += item.total_qty_ordered
        product["total_revenue"] += item.total_revenue
        if item.order_id:
            order_ids[key].add(item.order_id)

    for key, product in products.items():
        product["order_count"] = len(order_ids[key])
        product["avg_price"] = safe_divide(product["total_revenue"], product["total_qty_ordered"])

    return [TopSampleProduct(**p) for p in rank_rows(list(products.values()), "total_qty_ordered", limit)]

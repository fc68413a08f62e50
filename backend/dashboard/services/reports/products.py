"""
Product reports: top products, product performance with return rates and
the category / collection breakdowns.
"""
import json
import logging
from typing import List, Optional

from dashboard.schemas.reports import (
    CategoryBreakdownRow,
    CategoryDailyRow,
    CollectionDailyRow,
    CollectionPerformanceRow,
    ProductDailyRow,
    ProductPerformance,
    ProductPerformanceRow,
    TopProduct,
)
from dashboard.services.aggregation import (
    MonetaryField,
    collapse_dimension,
    percentage_of_total,
    rank_rows,
    regroup_rows,
    safe_divide,
)
from dashboard.services.query_executor import PostProcessSpec
from dashboard.services.query_filters import sample_order_filter, table_ref
from dashboard.services.reports.base import (
    ReportContext,
    ReportQuery,
    resolve_scope,
    validate_limit,
    validate_order_type,
    validate_sort_by,
)

logger = logging.getLogger(__name__)

PRODUCT_DAILY_TABLE = "mv_agg_product_performance_daily"
PRODUCT_PERFORMANCE_TABLE = "agg_product_performance_daily"
SALES_ITEMS_TABLE = "mv_adobe_commerce_sales_items"
ORDERS_TABLE = "mv_adobe_commerce_orders_flattened"
PRODUCTS_TABLE = "mv_adobe_commerce_products_flattened"

TOP_PRODUCTS_LIMIT = 10
PRODUCT_PERFORMANCE_LIMIT = 50
COLLECTIONS_LIMIT = 20

PRODUCT_SUMS = [
    "total_qty_ordered", "total_qty_invoiced", "total_qty_shipped",
    "total_revenue", "total_discount", "order_count",
]
BREAKDOWN_SUMS = ["total_revenue", "total_qty", "order_count"]


def _product_key(row: ProductDailyRow) -> str:
    return f"{row.sku or 'unknown'}__{row.product_id or 'unknown'}"


async def get_top_products(
    ctx: ReportContext,
    query: ReportQuery,
    limit: Optional[int] = None,
    sort_by: Optional[str] = None,
) -> List[TopProduct]:
    """Best sellers by revenue (default) or quantity."""
    limit = validate_limit(limit, TOP_PRODUCTS_LIMIT)
    sort_by = validate_sort_by(sort_by)
    scope = resolve_scope(ctx, query)
    if scope.is_empty:
        return []

    website = scope.website_filter("website_id")
    sql = f"""
        SELECT
            date,
            website_id,
            sku,
            product_name,
            product_id,
            total_qty_ordered,
            total_qty_invoiced,
            total_qty_shipped,
            total_revenue,
            total_discount,
            avg_price,
            order_count
        FROM {table_ref(query.dataset_id, PRODUCT_DAILY_TABLE)}
        WHERE date BETWEEN @start_date AND @end_date
          {website.clause}
    """
    rows = await ctx.executor.execute(
        sql,
        {**query.date_params(), **website.params},
        PostProcessSpec(
            name="top_products",
            row_model=ProductDailyRow,
            monetary_fields=[MonetaryField("total_revenue"), MonetaryField("total_discount"), MonetaryField("avg_price")],
            group_by=["date", "sku", "product_id"],
            sum_fields=PRODUCT_SUMS,
            fallback_month=query.fallback_month,
        ),
        query.client_id,
    )

    products = regroup_rows(
        ({**r.model_dump(exclude={"date"}), "key": _product_key(r)} for r in rows),
        ["key"],
        PRODUCT_SUMS,
        drop_fields=("key",),
    )
    for product in products:
        product["avg_price"] = safe_divide(product["total_revenue"], product["total_qty_ordered"])

    sort_field = "total_qty_ordered" if sort_by == "quantity" else "total_revenue"
    return [TopProduct(**p) for p in rank_rows(products, sort_field, limit)]


async def get_product_performance(
    ctx: ReportContext,
    query: ReportQuery,
    limit: Optional[int] = None,
) -> List[ProductPerformance]:
    """Products by revenue with average price and return rate (% of ordered qty refunded)."""
    limit = validate_limit(limit, PRODUCT_PERFORMANCE_LIMIT)
    scope = resolve_scope(ctx, query)
    if scope.is_empty:
        return []

    website = scope.website_filter("website_id")
    sql = f"""
        SELECT
            date,
            website_id,
            product_id,
            product_name,
            sku,
            SUM(total_qty_ordered) AS total_qty_ordered,
            SUM(total_revenue) AS total_revenue,
            SUM(total_qty_refunded) AS total_qty_refunded
        FROM {table_ref(query.dataset_id, PRODUCT_PERFORMANCE_TABLE)}
        WHERE date BETWEEN @start_date AND @end_date
          {website.clause}
        GROUP BY date, website_id, product_id, product_name, sku
    """
    sums = ["total_qty_ordered", "total_revenue", "total_qty_refunded"]
    rows = await ctx.executor.execute(
        sql,
        {**query.date_params(), **website.params},
        PostProcessSpec(
            name="product_performance",
            row_model=ProductPerformanceRow,
            monetary_fields=[MonetaryField("total_revenue")],
            group_by=["product_id", "product_name", "sku"],
            sum_fields=sums,
            fallback_month=query.fallback_month,
        ),
        query.client_id,
    )

    products = []
    for row in rows:
        product = ProductPerformance(**row.model_dump(exclude={"date"}))
        product.avg_price = safe_divide(row.total_revenue, row.total_qty_ordered)
        product.return_rate = percentage_of_total(row.total_qty_refunded, row.total_qty_ordered)
        products.append(product)

    products.sort(key=lambda p: p.total_revenue, reverse=True)
    return products[:limit]


def unwrap_label(value: Optional[str]) -> str:
    """Product group codes are sometimes stored as JSON: '[{"label": "Wallpaper"}]'."""
    if not value:
        return "Unknown"
    text = value.strip()
    if not text.startswith(("[", "{")):
        return text
    try:
        parsed = json.loads(text)
    except ValueError:
        return text
    if isinstance(parsed, list) and parsed and isinstance(parsed[0], dict) and parsed[0].get("label"):
        return str(parsed[0]["label"])
    if isinstance(parsed, dict) and parsed.get("label"):
        return str(parsed["label"])
    return text


def _breakdown_sql(query: ReportQuery, attribute: str, alias: str, order_type: str, clause: str) -> str:
    return f"""
        SELECT
            item.order_date,
            item.website_id AS store_id,
            COALESCE(JSON_VALUE(p.attributes, '$.{attribute}'), 'Unknown') AS {alias},
            SUM(CAST(item.row_total AS FLOAT64)) AS total_revenue,
            SUM(CAST(item.qty_ordered AS FLOAT64)) AS total_qty,
            COUNT(DISTINCT item.order_entity_id) AS order_count
        FROM {table_ref(query.dataset_id, SALES_ITEMS_TABLE)} item
        INNER JOIN {table_ref(query.dataset_id, ORDERS_TABLE)} o
            ON item.order_entity_id = o.entity_id
        LEFT JOIN {table_ref(query.dataset_id, PRODUCTS_TABLE)} p
            ON item.sku = p.sku
        WHERE item.order_date BETWEEN @start_date AND @end_date
          AND {sample_order_filter(order_type, "o")}
          {clause}
        GROUP BY order_date, store_id, {alias}
    """


def _breakdown_spec(name: str, row_model, dimension: str, query: ReportQuery) -> PostProcessSpec:
    return PostProcessSpec(
        name=name,
        row_model=row_model,
        monetary_fields=[MonetaryField("total_revenue", store_field="store_id", date_field="order_date")],
        group_by=["order_date", dimension],
        sum_fields=BREAKDOWN_SUMS,
        fallback_month=query.fallback_month,
        store_field="store_id",
    )


async def get_category_breakdown(
    ctx: ReportContext,
    query: ReportQuery,
    order_type: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[CategoryBreakdownRow]:
    """Revenue share per product group, largest first."""
    order_type = validate_order_type(order_type)
    limit = validate_limit(limit, default=None)
    scope = resolve_scope(ctx, query)
    if scope.is_empty:
        return []

    website = scope.website_filter("item.website_id")
    rows = await ctx.executor.execute(
        _breakdown_sql(query, "sdb_product_group_code_data", "product_group", order_type, website.clause),
        {**query.date_params(), **website.params},
        _breakdown_spec(f"category_breakdown_{order_type}", CategoryDailyRow, "product_group", query),
        query.client_id,
    )

    labelled = [{**r.model_dump(), "product_group": unwrap_label(r.product_group)} for r in rows]
    collapsed = collapse_dimension(labelled, "product_group", BREAKDOWN_SUMS, "total_revenue", limit=limit)
    return [CategoryBreakdownRow(**r) for r in collapsed]


async def get_collections_performance(
    ctx: ReportContext,
    query: ReportQuery,
    order_type: Optional[str] = None,
    sort_by: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[CollectionPerformanceRow]:
    """Revenue and quantity per collection, sorted by revenue or quantity."""
    order_type = validate_order_type(order_type)
    sort_by = validate_sort_by(sort_by)
    limit = validate_limit(limit, COLLECTIONS_LIMIT)
    scope = resolve_scope(ctx, query)
    if scope.is_empty:
        return []

    website = scope.website_filter("item.website_id")
    rows = await ctx.executor.execute(
        _breakdown_sql(query, "sdb_collection_name", "collection", order_type, website.clause),
        {**query.date_params(), **website.params},
        _breakdown_spec(f"collections_performance_{order_type}", CollectionDailyRow, "collection", query),
        query.client_id,
    )

    collapsed = collapse_dimension(
        [{**r.model_dump(), "collection": r.collection or "Unknown"} for r in rows],
        "collection",
        BREAKDOWN_SUMS,
        "total_revenue",
        sort_field="total_qty" if sort_by == "quantity" else "total_revenue",
        limit=limit,
    )
    return [CollectionPerformanceRow(**r) for r in collapsed]

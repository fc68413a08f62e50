"""Report functions against a fake warehouse and a seeded client."""
import asyncio
import logging
from datetime import date

import pytest

from conftest import CLIENT_ID, DATASET_ID, table
from dashboard.services.reports import customers, marketing, products, sales, samples
from dashboard.services.reports.base import ReportQuery, ReportValidationError
from dashboard.services.warehouse import WarehouseQueryError, run_concurrently
from dashboard.services.website_resolver import AllCombined, SpecificWebsite


def make_query(scope=None, start=date(2024, 3, 1), end=date(2024, 3, 31), dataset_id=DATASET_ID) -> ReportQuery:
    return ReportQuery(
        dataset_id=dataset_id,
        client_id=CLIENT_ID,
        start_date=start,
        end_date=end,
        scope=scope or AllCombined(),
    )


# ============================================================================
# Sales
# ============================================================================

def test_sales_kpis_scenario(report_ctx, warehouse, seeded_client):
    warehouse.add(table("agg_sales_overview_daily"), [
        {"date": "2024-03-01", "website_id": "101", "total_sales": 6000, "total_orders": 60,
         "total_sessions": 1200, "total_media_spend": 600, "total_revenue": 7200},
        {"date": "2024-03-02", "website_id": "101", "total_sales": 4000, "total_orders": 40,
         "total_sessions": 800, "total_media_spend": 400, "total_revenue": 4800},
    ])

    result = asyncio.run(sales.get_sales_kpis(report_ctx, make_query()))

    assert result.totals.total_sales == 10000
    assert result.totals.total_orders == 100
    assert result.metrics.aov == 100
    assert result.metrics.cvr == 5
    assert result.metrics.blended_roas == 12
    assert result.metrics.cpa == 10


def test_all_combined_emits_no_website_predicate(report_ctx, warehouse, seeded_client):
    asyncio.run(sales.get_sales_kpis(report_ctx, make_query()))

    [call] = warehouse.calls
    assert "@website_id" not in call["sql"]
    assert call["params"] == {"start_date": date(2024, 3, 1), "end_date": date(2024, 3, 31)}


def test_rows_are_converted_before_they_are_summed(report_ctx, warehouse, seeded_client):
    warehouse.add(table("agg_sales_overview_daily"), [
        {"date": "2024-03-01", "website_id": "101", "total_revenue": 100, "total_orders": 1},
        {"date": "2024-03-01", "website_id": "201", "total_revenue": 100, "total_orders": 1},
    ])

    result = asyncio.run(sales.get_sales_kpis(report_ctx, make_query()))

    assert len(result.rows) == 1
    assert result.rows[0].total_revenue == 300
    assert result.totals.total_orders == 2


def test_grouped_website_sums_member_stores(report_ctx, warehouse, seeded_client):
    warehouse.add("INFORMATION_SCHEMA", [])
    warehouse.add(table("mv_agg_sales_overview_daily"), [
        {"date": "2024-03-01", "website_id": "101", "total_orders": 5, "total_revenue": 500},
        {"date": "2024-03-01", "website_id": "102", "total_orders": 3, "total_revenue": 300},
    ])

    result = asyncio.run(sales.get_sales_overview(report_ctx, make_query(SpecificWebsite("uk_ie"))))

    assert result.summary.total_orders == 8
    assert result.summary.total_revenue == 800
    assert result.summary.aov == 100
    assert len(result.daily) == 1

    [overview_sql] = warehouse.sql_for(table("mv_agg_sales_overview_daily"))
    assert "website_id IN (@website_id0, @website_id1)" in overview_sql
    assert warehouse.calls[-1]["params"]["website_id0"] == "101"
    assert warehouse.calls[-1]["params"]["website_id1"] == "102"


def test_overview_without_sample_split_counts_every_order_as_main(report_ctx, warehouse, seeded_client):
    warehouse.add("INFORMATION_SCHEMA", [])
    warehouse.add(table("mv_agg_sales_overview_daily"), [
        {"date": "2024-03-01", "website_id": "101", "total_orders": 7, "orders_sample": None},
    ])

    result = asyncio.run(sales.get_sales_overview(report_ctx, make_query()))

    assert result.summary.orders_sample == 0
    assert result.summary.orders_not_sample == 7
    assert "CAST(NULL AS INT64) AS orders_sample" in warehouse.sql_for(table("mv_agg_sales_overview_daily"))[0]


def test_overview_schema_check_failure_is_not_fatal(report_ctx, warehouse, seeded_client, caplog):
    warehouse.fail("INFORMATION_SCHEMA", WarehouseQueryError("no access"))
    warehouse.add(table("mv_agg_sales_overview_daily"), [
        {"date": "2024-03-01", "website_id": "101", "total_orders": 2},
    ])

    with caplog.at_level(logging.WARNING):
        result = asyncio.run(sales.get_sales_overview(report_ctx, make_query()))

    assert result.summary.total_orders == 2
    assert "assuming no sample split" in caplog.text


def test_overview_by_order_type_filters_sample_flag(report_ctx, warehouse, seeded_client):
    asyncio.run(sales.get_sales_overview(report_ctx, make_query(SpecificWebsite("uk")), order_type="sample"))

    [call] = warehouse.calls
    assert "COALESCE(CAST(o.ext_is_samples AS INT64), 0) = 1" in call["sql"]
    assert "AND o.website_id = @website_id" in call["sql"]
    assert call["params"]["website_id"] == "101"


def test_hourly_sales_peaks_break_ties_on_lowest_hour(report_ctx, warehouse, seeded_client):
    warehouse.add(table("mv_agg_sales_overview_hourly"), [
        {"date": "2024-03-01", "hour": 7, "website_id": "101", "total_orders": 10, "total_revenue": 50},
        {"date": "2024-03-01", "hour": 3, "website_id": "101", "total_orders": 10, "total_revenue": 80},
    ])

    result = asyncio.run(sales.get_hourly_sales(report_ctx, make_query()))

    assert len(result.hourly) == 24
    assert result.peaks.orders.hour == 3
    assert result.peaks.revenue.hour == 3
    assert result.hourly[7].avg_orders_per_day == 10


@pytest.mark.parametrize("order_type, flag", [("main", 0), ("sample", 1)])
def test_hourly_sales_by_order_type_reads_filtered_orders(report_ctx, warehouse, seeded_client, order_type, flag):
    warehouse.add(table(sales.ORDERS_TABLE), [
        {"date": "2024-03-01", "hour": 9, "website_id": "101", "total_orders": 4, "total_revenue": 40},
    ])

    result = asyncio.run(sales.get_hourly_sales(report_ctx, make_query(SpecificWebsite("uk")), order_type))

    [call] = warehouse.calls
    assert f"COALESCE(CAST(o.ext_is_samples AS INT64), 0) = {flag}" in call["sql"]
    assert table(sales.HOURLY_TABLE) not in call["sql"]
    assert "AND o.website_id = @website_id" in call["sql"]
    assert result.hourly[9].total_orders == 4


def test_hourly_sales_without_order_type_reads_every_order(report_ctx, warehouse, seeded_client):
    asyncio.run(sales.get_hourly_sales(report_ctx, make_query()))

    [call] = warehouse.calls
    assert table(sales.HOURLY_TABLE) in call["sql"]
    assert "ext_is_samples" not in call["sql"]


# ============================================================================
# Products
# ============================================================================

def test_category_breakdown_percentages(report_ctx, warehouse, seeded_client):
    warehouse.add(table(products.SALES_ITEMS_TABLE), [
        {"order_date": "2024-03-01", "store_id": "101", "product_group": '[{"label": "A"}]', "total_revenue": 10},
        {"order_date": "2024-03-02", "store_id": "101", "product_group": "A", "total_revenue": 20},
        {"order_date": "2024-03-01", "store_id": "101", "product_group": "B", "total_revenue": 20},
        {"order_date": "2024-03-01", "store_id": "101", "product_group": "C", "total_revenue": 50},
    ])

    result = asyncio.run(products.get_category_breakdown(report_ctx, make_query()))

    assert [r.product_group for r in result] == ["C", "A", "B"]
    assert [r.percentage for r in result] == [50, 30, 20]
    assert "ext_is_samples AS INT64), 0) = 0" in warehouse.calls[0]["sql"]


def test_unwrap_label():
    assert products.unwrap_label('[{"label": "Rugs"}]') == "Rugs"
    assert products.unwrap_label('{"label": "Rugs"}') == "Rugs"
    assert products.unwrap_label("Rugs") == "Rugs"


@pytest.mark.parametrize("kwargs", [{"limit": 0}, {"sort_by": "price"}, {"order_type": "all"}])
def test_invalid_report_options_are_rejected_before_querying(report_ctx, warehouse, seeded_client, kwargs):
    with pytest.raises(ReportValidationError):
        asyncio.run(products.get_collections_performance(report_ctx, make_query(), **kwargs))
    assert warehouse.calls == []


# ============================================================================
# Scope and validation
# ============================================================================

def test_unresolvable_website_makes_no_warehouse_call(report_ctx, warehouse, seeded_client):
    query = make_query(SpecificWebsite("ghost"))

    overview = asyncio.run(sales.get_sales_overview(report_ctx, query))
    kpis = asyncio.run(sales.get_sales_kpis(report_ctx, query))
    top = asyncio.run(products.get_top_products(report_ctx, query))

    assert overview.daily == []
    assert kpis.totals.total_orders == 0
    assert top == []
    assert warehouse.calls == []


@pytest.mark.parametrize("query", [
    make_query(start=date(2024, 4, 1), end=date(2024, 3, 1)),
    make_query(dataset_id="acme-ds"),
    make_query(dataset_id=""),
])
def test_invalid_queries_raise_validation_error(report_ctx, warehouse, seeded_client, query):
    with pytest.raises(ReportValidationError):
        asyncio.run(sales.get_sales_kpis(report_ctx, query))
    assert warehouse.calls == []


def test_warehouse_failure_is_logged_and_propagated(report_ctx, warehouse, seeded_client, caplog):
    warehouse.fail(table("agg_sales_overview_daily"), WarehouseQueryError("boom"))

    with caplog.at_level(logging.ERROR):
        with pytest.raises(WarehouseQueryError):
            asyncio.run(sales.get_sales_kpis(report_ctx, make_query()))

    assert "sales_kpis" in caplog.text


# ============================================================================
# Samples
# ============================================================================

def test_sample_summary_converts_revenue_per_store(report_ctx, warehouse, seeded_client):
    warehouse.add(table(samples.ORDERS_TABLE), [
        {"order_date": "2024-03-01", "store_id": "101", "total_sample_orders": 2,
         "total_sample_qty": 3, "total_sample_revenue": 100},
        {"order_date": "2024-03-01", "store_id": "201", "total_sample_orders": 1,
         "total_sample_qty": 1, "total_sample_revenue": 50},
    ])

    result = asyncio.run(samples.get_sample_orders_summary(report_ctx, make_query()))

    assert result.total_sample_orders == 3
    assert result.total_sample_qty == 4
    assert result.total_sample_revenue == 200
    assert "ext_is_samples AS INT64), 0) = 1" in warehouse.calls[0]["sql"]


def test_top_sample_products_count_distinct_orders(report_ctx, warehouse, seeded_client):
    warehouse.add(table(samples.SALES_ITEMS_TABLE), [
        {"order_date": "2024-03-01", "store_id": "101", "order_id": "1", "sku": "A", "product_id": 7,
         "total_qty_ordered": 2, "total_revenue": 10},
        {"order_date": "2024-03-01", "store_id": "101", "order_id": "1", "sku": "A", "product_id": 7,
         "total_qty_ordered": 1, "total_revenue": 5},
        {"order_date": "2024-03-02", "store_id": "201", "order_id": "2", "sku": "A", "product_id": 7,
         "total_qty_ordered": 1, "total_revenue": 5},
        {"order_date": "2024-03-02", "store_id": "101", "order_id": "3", "sku": "B", "product_id": 8,
         "total_qty_ordered": 5, "total_revenue": 10},
    ])

    result = asyncio.run(samples.get_top_sample_products(report_ctx, make_query()))

    assert [p.sku for p in result] == ["B", "A"]
    a = result[1]
    assert a.product_id == "7"
    assert a.total_qty_ordered == 4
    assert a.total_revenue == 25
    assert a.order_count == 2
    assert a.avg_price == 6.25


# ============================================================================
# Customers and marketing
# ============================================================================

def test_customer_insights_derives_returning_users(report_ctx, warehouse, seeded_client):
    warehouse.add(table("ga4_daily_active_users"), [{"active_users": 12}])
    warehouse.add(table("ga4_weekly_active_users"), [{"active_users": 70}])
    warehouse.add(table("ga4_four_weekly_active_users"), [{"active_users": 250}])
    warehouse.add("AS new_users", [{"total_users": 200, "new_users": 50, "bounce_rate": 0.4}])
    warehouse.add("'Global' AS country", [{"country": "Global", "users": 200, "sessions": 260}])
    warehouse.add(table("ga4_devices"), [
        {"device_category": "mobile", "users": 150, "sessions": 190},
        {"device_category": "desktop", "users": 50, "sessions": 70},
    ])

    result = asyncio.run(customers.get_customer_insights(report_ctx, make_query()))

    assert (result.active_users.daily, result.active_users.weekly, result.active_users.monthly) == (12, 70, 250)
    assert result.user_metrics.returning_users == 150
    assert result.user_metrics.new_user_percentage == 25
    assert result.user_metrics.returning_user_percentage == 75
    assert [d.percentage for d in result.demographics.by_device] == [75, 25]
    assert len(warehouse.calls) == 6


def test_marketing_channels_convert_spend_and_rank(report_ctx, warehouse, seeded_client):
    warehouse.add(table("agg_marketing_channel_daily"), [
        {"date": "2024-03-01", "website_id": "101", "channel": "search", "total_spend": 100,
         "total_revenue": 400, "total_clicks": 50, "total_impressions": 1000, "total_conversions": 5},
        {"date": "2024-03-01", "website_id": "201", "channel": "search", "total_spend": 50,
         "total_revenue": 100, "total_clicks": 50, "total_impressions": 1000, "total_conversions": 5},
        {"date": "2024-03-01", "website_id": "101", "channel": "social", "total_spend": 300,
         "total_revenue": 300, "total_clicks": 0, "total_impressions": 0, "total_conversions": 0},
    ])

    result = asyncio.run(marketing.get_marketing_performance(report_ctx, make_query()))

    [social, search] = result.channels
    assert social.channel == "social"
    assert social.cpc == 0
    assert search.total_spend == 200
    assert search.total_revenue == 600
    assert search.roas == 3
    assert search.ctr == 5
    assert search.cpa == 20


def test_customer_metrics_weight_revenue_per_customer_across_stores(report_ctx, warehouse, seeded_client):
    warehouse.add(table(customers.CUSTOMER_METRICS_TABLE), [
        {"date": "2024-03-02", "website_id": "101", "unique_customers": 4, "revenue_per_customer": 20},
        {"date": "2024-03-01", "website_id": "101", "unique_customers": 10, "revenue_per_customer": 5},
        {"date": "2024-03-01", "website_id": "201", "unique_customers": 30, "revenue_per_customer": 5},
    ])

    result = asyncio.run(customers.get_customer_metrics(report_ctx, make_query()))

    by_date = {str(d.date): d for d in result.daily}
    # 10 customers at 5 and 30 customers at 5 EUR (10 in GBP)
    assert by_date["2024-03-01"].unique_customers == 40
    assert by_date["2024-03-01"].revenue_per_customer == 8.75
    assert by_date["2024-03-02"].revenue_per_customer == 20
    assert result.summary.total_unique_customers == 44
    assert result.summary.avg_revenue_per_customer == 14.375


def test_seo_insights_combine_stores_and_rank_queries(report_ctx, warehouse, seeded_client):
    warehouse.add("ORDER BY SUM(total_clicks)", [
        {"date": "2024-03-01", "website_id": "101", "query_text": "rugs", "total_clicks": 30,
         "total_impressions": 300, "position_sum": 4, "position_count": 2, "attributed_revenue": 100},
        {"date": "2024-03-01", "website_id": "201", "query_text": "rugs", "total_clicks": 10,
         "total_impressions": 100, "position_sum": 5, "position_count": 1, "attributed_revenue": 50},
        {"date": "2024-03-02", "website_id": "101", "query_text": "wallpaper", "total_clicks": 50,
         "total_impressions": 200, "position_sum": 1, "position_count": 1},
    ])
    warehouse.add("ORDER BY SUM(total_impressions)", [])
    warehouse.add("position_range", [
        {"position_range": "1-3", "total_clicks": 60, "total_impressions": 500},
        {"position_range": "4-10", "total_clicks": 30, "total_impressions": 100},
    ])
    warehouse.add(table(marketing.SEO_TABLE), [
        {"date": "2024-03-01", "website_id": "101", "total_clicks": 80, "total_impressions": 500,
         "position_sum": 5, "position_count": 3, "ctr_sum": 0.5, "ctr_count": 2, "attributed_revenue": 100},
        {"date": "2024-03-01", "website_id": "201", "total_clicks": 10, "total_impressions": 100,
         "position_sum": 7, "position_count": 1, "ctr_sum": 0.1, "ctr_count": 2, "attributed_revenue": 50},
    ])

    result = asyncio.run(marketing.get_seo_insights(report_ctx, make_query()))

    assert result.overview.total_clicks == 90
    assert result.overview.total_impressions == 600
    assert result.overview.avg_position == 3
    assert result.overview.avg_ctr == pytest.approx(0.15)
    assert result.overview.total_attributed_revenue == 200

    [wallpaper, rugs] = result.top_queries
    assert wallpaper.query == "wallpaper"
    assert rugs.total_clicks == 40
    assert rugs.avg_position == 3
    assert rugs.attributed_revenue == 200
    assert result.top_impressions == []
    assert [b.position_range for b in result.position_distribution] == ["1-3", "4-10"]
    assert len(warehouse.calls) == 4


def test_seo_insights_filter_every_query_by_website(report_ctx, warehouse, seeded_client):
    asyncio.run(marketing.get_seo_insights(report_ctx, make_query(SpecificWebsite("uk_ie"))))

    assert len(warehouse.calls) == 4
    for call in warehouse.calls:
        assert "website_id IN (@website_id0, @website_id1)" in call["sql"]
        assert call["params"]["website_id0"] == "101"


def test_website_behavior(report_ctx, warehouse, seeded_client):
    warehouse.add(table("ga4_website_overview"), [
        {"total_sessions": 300, "total_pageviews": 900, "total_users": 200,
         "avg_session_duration": 62.5, "bounce_rate": 0.4},
    ])
    warehouse.add(table("ga4_pages"), [
        {"page_path": "/rugs", "total_pageviews": 500, "total_unique_pageviews": 20, "bounce_rate": 0.3},
    ])
    warehouse.add(table("ga4_traffic_sources"), [
        {"traffic_source": "google / organic", "total_sessions": 200, "total_users": 150, "bounce_rate": None},
    ])
    warehouse.add(table("ga4_devices"), [
        {"device_category": "mobile", "users": 120, "sessions": 210, "bounce_rate": 0.5},
        {"device_category": "desktop", "users": 80, "sessions": 90, "bounce_rate": 0.3},
    ])

    result = asyncio.run(customers.get_website_behavior(report_ctx, make_query()))

    assert result.metrics.total_sessions == 300
    assert result.metrics.avg_session_duration == 62.5
    assert result.top_pages[0].page_path == "/rugs"
    assert result.traffic_sources[0].bounce_rate == 0
    assert [d.percentage for d in result.devices] == [60, 40]
    assert result.devices[0].bounce_rate == 0.5
    assert len(warehouse.calls) == 4
    assert all("FORMAT_DATE('%Y%m%d', @start_date)" in c["sql"] for c in warehouse.calls)


def test_website_behavior_for_unknown_website_is_empty(report_ctx, warehouse, seeded_client):
    result = asyncio.run(customers.get_website_behavior(report_ctx, make_query(SpecificWebsite("ghost"))))

    assert result.top_pages == []
    assert result.metrics.total_sessions == 0
    assert warehouse.calls == []


# ============================================================================
# Concurrency
# ============================================================================

def test_run_concurrently_keeps_argument_order():
    async def value(v, delay):
        await asyncio.sleep(delay)
        return v

    assert asyncio.run(run_concurrently(value("a", 0.02), value("b", 0))) == ["a", "b"]


def test_run_concurrently_cancels_siblings_on_failure():
    cancelled = []

    async def slow():
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.append(True)
            raise

    async def failing():
        raise WarehouseQueryError("boom")

    with pytest.raises(WarehouseQueryError):
        asyncio.run(run_concurrently(slow(), failing()))
    assert cancelled == [True]

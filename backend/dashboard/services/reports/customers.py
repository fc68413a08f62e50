"""
Customer reports: daily customer metrics from the orders warehouse, GA4
audience insights and GA4 website behaviour.
"""
import logging
from typing import List

from dashboard.schemas.reports import (
    ActiveUsers,
    ActiveUsersRow,
    CustomerInsightsResult,
    CustomerMetricsResult,
    CustomerMetricsRow,
    CustomerMetricsSummary,
    Demographics,
    DeviceShare,
    Engagement,
    Ga4BehaviorMetricsRow,
    Ga4DeviceRow,
    Ga4LocationRow,
    Ga4OverviewRow,
    Ga4PageRow,
    Ga4TrafficSourceRow,
    LocationShare,
    UserMetrics,
    WebsiteBehaviorResult,
)
from dashboard.services.aggregation import (
    MonetaryField,
    percentage_of_total,
    regroup_rows,
    safe_divide,
    sum_field,
)
from dashboard.services.query_executor import PostProcessSpec
from dashboard.services.query_filters import table_ref
from dashboard.services.reports.base import ReportContext, ReportQuery, resolve_scope
from dashboard.services.warehouse import run_concurrently

logger = logging.getLogger(__name__)

CUSTOMER_METRICS_TABLE = "mv_agg_customer_metrics_daily"
CUSTOMER_SUMS = ["unique_customers", "registered_customers", "guest_customers", "customer_revenue"]


async def get_customer_metrics(ctx: ReportContext, query: ReportQuery) -> CustomerMetricsResult:
    """Unique, registered and guest customers per day.

    Stores sharing a day are combined by weighting ``revenue_per_customer``
    with each store's customers. ``avg_revenue_per_customer`` is the mean
    of the daily values.
    """
    scope = resolve_scope(ctx, query)
    if scope.is_empty:
        return CustomerMetricsResult()

    website = scope.website_filter("website_id")
    sql = f"""
        SELECT
            date,
            website_id,
            unique_customers,
            registered_customers,
            guest_customers,
            revenue_per_customer
        FROM {table_ref(query.dataset_id, CUSTOMER_METRICS_TABLE)}
        WHERE date BETWEEN @start_date AND @end_date
          {website.clause}
        ORDER BY date DESC
    """
    # Per store rows; revenue_per_customer is a ratio and cannot be summed across stores
    rows = await ctx.executor.execute(
        sql,
        {**query.date_params(), **website.params},
        PostProcessSpec(
            name="customer_metrics",
            row_model=CustomerMetricsRow,
            monetary_fields=[MonetaryField("revenue_per_customer")],
            fallback_month=query.fallback_month,
            regroup=False,
        ),
        query.client_id,
    )
    per_store = [
        {**r.model_dump(), "customer_revenue": r.revenue_per_customer * r.unique_customers}
        for r in rows
    ]
    daily = []
    for row in regroup_rows(per_store, ["date"], CUSTOMER_SUMS):
        customer_revenue = row.pop("customer_revenue")
        row["revenue_per_customer"] = safe_divide(customer_revenue, row["unique_customers"])
        daily.append(CustomerMetricsRow.model_validate(row))

    summary = CustomerMetricsSummary(
        total_unique_customers=sum_field(daily, "unique_customers"),
        total_registered_customers=sum_field(daily, "registered_customers"),
        total_guest_customers=sum_field(daily, "guest_customers"),
        avg_revenue_per_customer=safe_divide(sum_field(daily, "revenue_per_customer"), len(daily)),
    )
    return CustomerMetricsResult(daily=daily, summary=summary)


# GA4 export tables store dates as YYYYMMDD strings
GA4_DATE_RANGE = "date BETWEEN FORMAT_DATE('%Y%m%d', @start_date) AND FORMAT_DATE('%Y%m%d', @end_date)"


def _latest_active_users_sql(dataset_id: str, table: str, column: str) -> str:
    return f"""
        SELECT {column} AS active_users
        FROM {table_ref(dataset_id, table)}
        WHERE {GA4_DATE_RANGE}
        ORDER BY date DESC
        LIMIT 1
    """


def _location_shares(rows: List[Ga4LocationRow]) -> List[LocationShare]:
    total = sum_field(rows, "users")
    return [
        LocationShare(**r.model_dump(), percentage=percentage_of_total(r.users, total))
        for r in rows
    ]


def _device_shares(rows: List[Ga4DeviceRow]) -> List[DeviceShare]:
    total = sum_field(rows, "users")
    return [
        DeviceShare(**r.model_dump(), percentage=percentage_of_total(r.users, total))
        for r in rows
    ]


async def get_customer_insights(ctx: ReportContext, query: ReportQuery) -> CustomerInsightsResult:
    """Active users, new vs returning users, location/device split and engagement.

    GA4 exports are per property (one dataset), so website scope does not
    narrow these queries; an unresolvable website still yields an empty result.
    """
    scope = resolve_scope(ctx, query)
    if scope.is_empty:
        return CustomerInsightsResult()

    dataset = query.dataset_id
    params = query.date_params()
    overview_table = table_ref(dataset, "ga4_website_overview")

    def fetch(sql: str, row_model, name: str):
        return ctx.executor.execute(sql, params, PostProcessSpec(name=name, row_model=row_model), query.client_id)

    dau, wau, mau, overview, locations, devices = await run_concurrently(
        fetch(_latest_active_users_sql(dataset, "ga4_daily_active_users", "active1DayUsers"), ActiveUsersRow, "ga4_dau"),
        fetch(_latest_active_users_sql(dataset, "ga4_weekly_active_users", "active7DayUsers"), ActiveUsersRow, "ga4_wau"),
        fetch(_latest_active_users_sql(dataset, "ga4_four_weekly_active_users", "active28DayUsers"), ActiveUsersRow, "ga4_mau"),
        fetch(f"""
            SELECT
                SUM(CAST(totalUsers AS INT64)) AS total_users,
                SUM(CAST(newUsers AS INT64)) AS new_users,
                AVG(CAST(averageSessionDuration AS FLOAT64)) AS average_session_duration,
                AVG(CAST(screenPageViewsPerSession AS FLOAT64)) AS screen_page_views_per_session,
                AVG(CAST(bounceRate AS FLOAT64)) AS bounce_rate
            FROM {overview_table}
            WHERE {GA4_DATE_RANGE}
        """, Ga4OverviewRow, "ga4_overview"),
        fetch(f"""
            SELECT
                'Global' AS country,
                SUM(CAST(totalUsers AS INT64)) AS users,
                SUM(CAST(sessions AS INT64)) AS sessions,
                0 AS revenue
            FROM {overview_table}
            WHERE {GA4_DATE_RANGE}
            GROUP BY country
            LIMIT 10
        """, Ga4LocationRow, "ga4_locations"),
        fetch(f"""
            SELECT
                deviceCategory AS device_category,
                SUM(CAST(totalUsers AS INT64)) AS users,
                SUM(CAST(sessions AS INT64)) AS sessions,
                0 AS revenue,
                AVG(CAST(bounceRate AS FLOAT64)) AS bounce_rate
            FROM {table_ref(dataset, "ga4_devices")}
            WHERE {GA4_DATE_RANGE}
            GROUP BY deviceCategory
            ORDER BY users DESC
        """, Ga4DeviceRow, "ga4_devices"),
    )

    stats = overview[0] if overview else Ga4OverviewRow()
    returning = max(stats.total_users - stats.new_users, 0)

    return CustomerInsightsResult(
        active_users=ActiveUsers(
            daily=dau[0].active_users if dau else 0,
            weekly=wau[0].active_users if wau else 0,
            monthly=mau[0].active_users if mau else 0,
        ),
        user_metrics=UserMetrics(
            total_users=stats.total_users,
            new_users=stats.new_users,
            returning_users=returning,
            new_user_percentage=percentage_of_total(stats.new_users, stats.total_users),
            returning_user_percentage=percentage_of_total(returning, stats.total_users),
        ),
        demographics=Demographics(
            by_location=_location_shares(locations),
            by_device=_device_shares(devices),
        ),
        engagement=Engagement(
            average_session_duration=stats.average_session_duration,
            screen_page_views_per_session=stats.screen_page_views_per_session,
            engagement_rate=stats.engagement_rate,
            bounce_rate=stats.bounce_rate,
        ),
    )


TOP_PAGES_LIMIT = 20
TRAFFIC_SOURCES_LIMIT = 10


async def get_website_behavior(ctx: ReportContext, query: ReportQuery) -> WebsiteBehaviorResult:
    """Sessions and page views, top pages, traffic sources and devices from GA4."""
    scope = resolve_scope(ctx, query)
    if scope.is_empty:
        return WebsiteBehaviorResult()

    dataset = query.dataset_id
    params = query.date_params()

    def fetch(sql: str, row_model, name: str):
        return ctx.executor.execute(sql, params, PostProcessSpec(name=name, row_model=row_model), query.client_id)

    metrics, pages, sources, devices = await run_concurrently(
        fetch(f"""
            SELECT
                SUM(CAST(sessions AS INT64)) AS total_sessions,
                SUM(CAST(screenPageViews AS INT64)) AS total_pageviews,
                SUM(CAST(totalUsers AS INT64)) AS total_users,
                AVG(CAST(averageSessionDuration AS FLOAT64)) AS avg_session_duration,
                AVG(CAST(bounceRate AS FLOAT64)) AS bounce_rate
            FROM {table_ref(dataset, "ga4_website_overview")}
            WHERE {GA4_DATE_RANGE}
        """, Ga4BehaviorMetricsRow, "ga4_behavior_metrics"),
        fetch(f"""
            SELECT
                pagePathPlusQueryString AS page_path,
                SUM(CAST(screenPageViews AS INT64)) AS total_pageviews,
                COUNT(DISTINCT CONCAT(property_id, date)) AS total_unique_pageviews,
                0 AS avg_time_on_page,
                AVG(CAST(bounceRate AS FLOAT64)) AS bounce_rate
            FROM {table_ref(dataset, "ga4_pages")}
            WHERE {GA4_DATE_RANGE}
            GROUP BY pagePathPlusQueryString
            ORDER BY total_pageviews DESC
            LIMIT {TOP_PAGES_LIMIT}
        """, Ga4PageRow, "ga4_pages"),
        fetch(f"""
            SELECT
                CONCAT(sessionSource, ' / ', sessionMedium) AS traffic_source,
                SUM(CAST(sessions AS INT64)) AS total_sessions,
                SUM(CAST(totalUsers AS INT64)) AS total_users,
                AVG(CAST(bounceRate AS FLOAT64)) AS bounce_rate
            FROM {table_ref(dataset, "ga4_traffic_sources")}
            WHERE {GA4_DATE_RANGE}
            GROUP BY sessionSource, sessionMedium
            ORDER BY total_sessions DESC
            LIMIT {TRAFFIC_SOURCES_LIMIT}
        """, Ga4TrafficSourceRow, "ga4_traffic_sources"),
        fetch(f"""
            SELECT
                deviceCategory AS device_category,
                SUM(CAST(totalUsers AS INT64)) AS users,
                SUM(CAST(sessions AS INT64)) AS sessions,
                AVG(CAST(bounceRate AS FLOAT64)) AS bounce_rate
            FROM {table_ref(dataset, "ga4_devices")}
            WHERE {GA4_DATE_RANGE}
            GROUP BY deviceCategory
            ORDER BY sessions DESC
        """, Ga4DeviceRow, "ga4_behavior_devices"),
    )

    return WebsiteBehaviorResult(
        metrics=metrics[0] if metrics else Ga4BehaviorMetricsRow(),
        top_pages=pages,
        traffic_sources=sources,
        devices=_device_shares(devices),
    )

"""
Marketing performance: paid channel efficiency and organic search insights.
"""
import logging

from dashboard.schemas.reports import (
    ChannelPerformance,
    MarketingChannelRow,
    MarketingPerformanceResult,
    SeoInsightsResult,
    SeoOverview,
    SeoPositionBucket,
    SeoQueryRow,
    SeoQueryStats,
    SeoStatsRow,
)
from dashboard.services.aggregation import (
    MonetaryField,
    percentage_of_total,
    rank_rows,
    safe_divide,
    sum_field,
)
from dashboard.services.query_executor import PostProcessSpec
from dashboard.services.query_filters import table_ref
from dashboard.services.reports.base import ReportContext, ReportQuery, resolve_scope
from dashboard.services.warehouse import run_concurrently

logger = logging.getLogger(__name__)

CHANNEL_TABLE = "agg_marketing_channel_daily"
SEO_TABLE = "agg_seo_performance_daily"
SEO_QUERY_LIMIT = 20
SEO_INSIGHTS_LIMIT = 50

CHANNEL_SUMS = ["total_spend", "total_revenue", "total_clicks", "total_impressions", "total_conversions"]
SEO_SUMS = [
    "total_clicks",
    "total_impressions",
    "position_sum",
    "position_count",
    "ctr_sum",
    "ctr_count",
    "attributed_revenue",
]

SEO_STATS_COLUMNS = """
    SUM(total_clicks) AS total_clicks,
    SUM(total_impressions) AS total_impressions,
    SUM(avg_position) AS position_sum,
    COUNT(avg_position) AS position_count,
    SUM(avg_ctr) AS ctr_sum,
    COUNT(avg_ctr) AS ctr_count,
    SUM(attributed_revenue) AS attributed_revenue
"""


def channel_metrics(row: dict) -> ChannelPerformance:
    return ChannelPerformance(
        **row,
        roas=safe_divide(row["total_revenue"], row["total_spend"]),
        cpc=safe_divide(row["total_spend"], row["total_clicks"]),
        ctr=percentage_of_total(row["total_clicks"], row["total_impressions"]),
        cpa=safe_divide(row["total_spend"], row["total_conversions"]),
    )


async def get_marketing_performance(ctx: ReportContext, query: ReportQuery) -> MarketingPerformanceResult:
    scope = resolve_scope(ctx, query)
    if scope.is_empty:
        return MarketingPerformanceResult()

    website = scope.website_filter("website_id")
    params = {**query.date_params(), **website.params}

    # Grouped per store and day so spend/revenue convert at the right rate
    channel_sql = f"""
        SELECT
            date,
            website_id,
            channel,
            SUM(total_spend) AS total_spend,
            SUM(total_revenue) AS total_revenue,
            SUM(total_clicks) AS total_clicks,
            SUM(total_impressions) AS total_impressions,
            SUM(total_conversions) AS total_conversions
        FROM {table_ref(query.dataset_id, CHANNEL_TABLE)}
        WHERE date BETWEEN @start_date AND @end_date
          {website.clause}
        GROUP BY date, website_id, channel
    """
    seo_sql = f"""
        SELECT
            query_text,
            SUM(total_clicks) AS total_clicks,
            SUM(total_impressions) AS total_impressions,
            AVG(avg_position) AS avg_position,
            AVG(avg_ctr) AS avg_ctr
        FROM {table_ref(query.dataset_id, SEO_TABLE)}
        WHERE date BETWEEN @start_date AND @end_date
          {website.clause}
        GROUP BY query_text
        ORDER BY total_clicks DESC
        LIMIT {SEO_QUERY_LIMIT}
    """

    channel_rows, seo_rows = await run_concurrently(
        ctx.executor.execute(
            channel_sql,
            params,
            PostProcessSpec(
                name="marketing_channels",
                row_model=MarketingChannelRow,
                monetary_fields=[MonetaryField("total_spend"), MonetaryField("total_revenue")],
                group_by=["channel"],
                sum_fields=CHANNEL_SUMS,
                fallback_month=query.fallback_month,
            ),
            query.client_id,
        ),
        ctx.executor.execute(seo_sql, params, PostProcessSpec(name="marketing_seo", row_model=SeoQueryRow), query.client_id),
    )

    channels = [r.model_dump(exclude={"date"}) for r in channel_rows]
    return MarketingPerformanceResult(
        channels=[channel_metrics(r) for r in rank_rows(channels, "total_spend")],
        seo=seo_rows,
    )


def seo_query_stats(row: SeoStatsRow) -> SeoQueryStats:
    return SeoQueryStats(
        query=row.query_text,
        total_clicks=row.total_clicks,
        total_impressions=row.total_impressions,
        avg_position=safe_divide(row.position_sum, row.position_count),
        avg_ctr=safe_divide(row.ctr_sum, row.ctr_count),
        attributed_revenue=row.attributed_revenue,
    )


def _seo_top_queries_sql(query: ReportQuery, clause: str, rank_field: str) -> str:
    # Ranked in the warehouse, then broken out per store and day for conversion
    return f"""
        WITH ranked AS (
            SELECT query_text
            FROM {table_ref(query.dataset_id, SEO_TABLE)}
            WHERE date BETWEEN @start_date AND @end_date
              {clause}
            GROUP BY query_text
            ORDER BY SUM({rank_field}) DESC
            LIMIT {SEO_INSIGHTS_LIMIT}
        )
        SELECT
            date,
            website_id,
            query_text,
            {SEO_STATS_COLUMNS}
        FROM {table_ref(query.dataset_id, SEO_TABLE)}
        JOIN ranked USING (query_text)
        WHERE date BETWEEN @start_date AND @end_date
          {clause}
        GROUP BY date, website_id, query_text
    """


async def get_seo_insights(ctx: ReportContext, query: ReportQuery) -> SeoInsightsResult:
    """Organic search overview, top queries by clicks and by impressions,
    and clicks per ranking position band."""
    scope = resolve_scope(ctx, query)
    if scope.is_empty:
        return SeoInsightsResult()

    website = scope.website_filter("website_id")
    params = {**query.date_params(), **website.params}

    overview_sql = f"""
        SELECT
            date,
            website_id,
            {SEO_STATS_COLUMNS}
        FROM {table_ref(query.dataset_id, SEO_TABLE)}
        WHERE date BETWEEN @start_date AND @end_date
          {website.clause}
        GROUP BY date, website_id
    """
    position_sql = f"""
        SELECT
            CASE
                WHEN avg_position <= 3 THEN '1-3'
                WHEN avg_position <= 10 THEN '4-10'
                WHEN avg_position <= 20 THEN '11-20'
                WHEN avg_position <= 50 THEN '21-50'
                ELSE '51+'
            END AS position_range,
            SUM(total_clicks) AS total_clicks,
            SUM(total_impressions) AS total_impressions
        FROM {table_ref(query.dataset_id, SEO_TABLE)}
        WHERE date BETWEEN @start_date AND @end_date
          {website.clause}
        GROUP BY position_range
        ORDER BY MIN(avg_position)
    """

    def stats_spec(name: str, group_by: list) -> PostProcessSpec:
        return PostProcessSpec(
            name=name,
            row_model=SeoStatsRow,
            monetary_fields=[MonetaryField("attributed_revenue")],
            group_by=group_by,
            sum_fields=SEO_SUMS,
            fallback_month=query.fallback_month,
        )

    overview_rows, by_clicks, by_impressions, positions = await run_concurrently(
        ctx.executor.execute(overview_sql, params, stats_spec("seo_overview", []), query.client_id),
        ctx.executor.execute(
            _seo_top_queries_sql(query, website.clause, "total_clicks"),
            params,
            stats_spec("seo_top_queries", ["query_text"]),
            query.client_id,
        ),
        ctx.executor.execute(
            _seo_top_queries_sql(query, website.clause, "total_impressions"),
            params,
            stats_spec("seo_top_impressions", ["query_text"]),
            query.client_id,
        ),
        ctx.executor.execute(
            position_sql, params, PostProcessSpec(name="seo_positions", row_model=SeoPositionBucket), query.client_id
        ),
    )

    overview = SeoOverview(
        total_clicks=sum_field(overview_rows, "total_clicks"),
        total_impressions=sum_field(overview_rows, "total_impressions"),
        avg_position=safe_divide(sum_field(overview_rows, "position_sum"), sum_field(overview_rows, "position_count")),
        avg_ctr=safe_divide(sum_field(overview_rows, "ctr_sum"), sum_field(overview_rows, "ctr_count")),
        total_attributed_revenue=sum_field(overview_rows, "attributed_revenue"),
    )

    def top(rows, rank_field):
        ranked = rank_rows([r.model_dump() for r in rows], rank_field, SEO_INSIGHTS_LIMIT)
        return [seo_query_stats(SeoStatsRow.model_validate(r)) for r in ranked]

    return SeoInsightsResult(
        overview=overview,
        top_queries=top(by_clicks, "total_clicks"),
        top_impressions=top(by_impressions, "total_impressions"),
        position_distribution=positions,
    )

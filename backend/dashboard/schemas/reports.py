"""
Report Schemas
Typed warehouse rows (validated straight after each query) and report results.
"""
import datetime as dt
from typing import Any, List, Optional

from pydantic import BaseModel, model_validator


class WarehouseRow(BaseModel):
    """Base for rows coming back from the warehouse.

    NULL columns are dropped before validation so numeric fields fall back
    to their zero defaults. Columns the model does not declare are ignored.
    """

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data

    class Config:
        extra = "ignore"
        coerce_numbers_to_str = True


# ─────────────────────────────────────────────────────────────
# Sales overview
# ─────────────────────────────────────────────────────────────

class SalesOverviewDailyRow(WarehouseRow):
    date: Optional[dt.date] = None
    total_orders: int = 0
    unique_customers: int = 0
    total_revenue: float = 0
    subtotal: float = 0
    total_tax: float = 0
    total_shipping: float = 0
    total_discounts: float = 0
    total_items: float = 0
    orders_complete: int = 0
    orders_pending: int = 0
    orders_processing: int = 0
    orders_canceled: int = 0
    revenue_complete: float = 0
    revenue_pending: float = 0
    orders_sample: int = 0
    orders_not_sample: int = 0


class SalesOverviewSummary(BaseModel):
    total_orders: int = 0
    total_revenue: float = 0
    total_items: float = 0
    unique_customers: int = 0
    subtotal: float = 0
    total_tax: float = 0
    total_shipping: float = 0
    total_discounts: float = 0
    orders_complete: int = 0
    orders_pending: int = 0
    orders_processing: int = 0
    orders_canceled: int = 0
    orders_sample: int = 0
    orders_not_sample: int = 0
    aov: float = 0
    items_per_order: float = 0


class SalesOverviewResult(BaseModel):
    daily: List[SalesOverviewDailyRow] = []
    summary: SalesOverviewSummary = SalesOverviewSummary()


# ─────────────────────────────────────────────────────────────
# Sales KPIs
# ─────────────────────────────────────────────────────────────

class SalesKpiRow(WarehouseRow):
    date: Optional[dt.date] = None
    total_sales: float = 0
    total_orders: int = 0
    total_sessions: int = 0
    total_media_spend: float = 0
    total_revenue: float = 0


class SalesKpiTotals(BaseModel):
    total_sales: float = 0
    total_orders: int = 0
    total_sessions: int = 0
    total_media_spend: float = 0
    total_revenue: float = 0


class SalesKpiMetrics(BaseModel):
    aov: float = 0
    cvr: float = 0
    blended_roas: float = 0
    cpa: float = 0


class SalesKpiResult(BaseModel):
    rows: List[SalesKpiRow] = []
    totals: SalesKpiTotals = SalesKpiTotals()
    metrics: SalesKpiMetrics = SalesKpiMetrics()


# ─────────────────────────────────────────────────────────────
# Hourly
# ─────────────────────────────────────────────────────────────

class HourlySalesRow(WarehouseRow):
    date: Optional[dt.date] = None
    hour: int = 0
    total_orders: int = 0
    total_revenue: float = 0


class HourlySalesBucket(BaseModel):
    hour: int
    total_orders: float = 0
    total_revenue: float = 0
    avg_orders_per_day: float = 0
    avg_revenue_per_day: float = 0


class HourlyPeaks(BaseModel):
    orders: HourlySalesBucket
    revenue: HourlySalesBucket


class HourlySalesResult(BaseModel):
    hourly: List[HourlySalesBucket]
    peaks: HourlyPeaks


# ─────────────────────────────────────────────────────────────
# Products
# ─────────────────────────────────────────────────────────────

class ProductDailyRow(WarehouseRow):
    date: Optional[dt.date] = None
    sku: str = ""
    product_name: str = ""
    product_id: str = ""
    total_qty_ordered: float = 0
    total_qty_invoiced: float = 0
    total_qty_shipped: float = 0
    total_revenue: float = 0
    total_discount: float = 0
    avg_price: float = 0
    order_count: int = 0


class TopProduct(BaseModel):
    sku: str = ""
    product_name: str = ""
    product_id: str = ""
    total_qty_ordered: float = 0
    total_qty_invoiced: float = 0
    total_qty_shipped: float = 0
    total_revenue: float = 0
    total_discount: float = 0
    avg_price: float = 0
    order_count: int = 0


class ProductPerformanceRow(WarehouseRow):
    date: Optional[dt.date] = None
    product_id: str = ""
    product_name: str = ""
    sku: str = ""
    total_qty_ordered: float = 0
    total_revenue: float = 0
    total_qty_refunded: float = 0


class ProductPerformance(BaseModel):
    product_id: str = ""
    product_name: str = ""
    sku: str = ""
    total_qty_ordered: float = 0
    total_revenue: float = 0
    total_qty_refunded: float = 0
    avg_price: float = 0
    return_rate: float = 0


class CategoryDailyRow(WarehouseRow):
    order_date: Optional[dt.date] = None
    product_group: str = "Unknown"
    total_revenue: float = 0
    total_qty: float = 0
    order_count: int = 0


class CategoryBreakdownRow(BaseModel):
    product_group: str
    total_revenue: float = 0
    total_qty: float = 0
    order_count: int = 0
    percentage: float = 0


class CollectionDailyRow(WarehouseRow):
    order_date: Optional[dt.date] = None
    collection: str = "Unknown"
    total_revenue: float = 0
    total_qty: float = 0
    order_count: int = 0


class CollectionPerformanceRow(BaseModel):
    collection: str
    total_revenue: float = 0
    total_qty: float = 0
    order_count: int = 0
    percentage: float = 0


# ─────────────────────────────────────────────────────────────
# Customers
# ─────────────────────────────────────────────────────────────

class CustomerMetricsRow(WarehouseRow):
    date: Optional[dt.date] = None
    unique_customers: int = 0
    registered_customers: int = 0
    guest_customers: int = 0
    revenue_per_customer: float = 0


class CustomerMetricsSummary(BaseModel):
    total_unique_customers: int = 0
    total_registered_customers: int = 0
    total_guest_customers: int = 0
    avg_revenue_per_customer: float = 0


class CustomerMetricsResult(BaseModel):
    daily: List[CustomerMetricsRow] = []
    summary: CustomerMetricsSummary = CustomerMetricsSummary()


class ActiveUsersRow(WarehouseRow):
    active_users: int = 0


class Ga4OverviewRow(WarehouseRow):
    total_users: int = 0
    new_users: int = 0
    average_session_duration: float = 0
    screen_page_views_per_session: float = 0
    engagement_rate: float = 0
    bounce_rate: float = 0


class Ga4LocationRow(WarehouseRow):
    country: str = "Unknown"
    users: int = 0
    sessions: int = 0
    revenue: float = 0


class Ga4DeviceRow(WarehouseRow):
    device_category: str = "Unknown"
    users: int = 0
    sessions: int = 0
    revenue: float = 0
    bounce_rate: float = 0


class ActiveUsers(BaseModel):
    daily: int = 0
    weekly: int = 0
    monthly: int = 0


class UserMetrics(BaseModel):
    total_users: int = 0
    new_users: int = 0
    returning_users: int = 0
    new_user_percentage: float = 0
    returning_user_percentage: float = 0


class LocationShare(BaseModel):
    country: str
    users: int = 0
    sessions: int = 0
    revenue: float = 0
    percentage: float = 0


class DeviceShare(BaseModel):
    device_category: str
    users: int = 0
    sessions: int = 0
    revenue: float = 0
    bounce_rate: float = 0
    percentage: float = 0


class Demographics(BaseModel):
    by_location: List[LocationShare] = []
    by_device: List[DeviceShare] = []


class Engagement(BaseModel):
    average_session_duration: float = 0
    screen_page_views_per_session: float = 0
    engagement_rate: float = 0
    bounce_rate: float = 0


class CustomerInsightsResult(BaseModel):
    active_users: ActiveUsers = ActiveUsers()
    user_metrics: UserMetrics = UserMetrics()
    demographics: Demographics = Demographics()
    engagement: Engagement = Engagement()


class Ga4BehaviorMetricsRow(WarehouseRow):
    total_sessions: int = 0
    total_pageviews: int = 0
    total_users: int = 0
    avg_session_duration: float = 0
    bounce_rate: float = 0


class Ga4PageRow(WarehouseRow):
    page_path: str = ""
    total_pageviews: int = 0
    total_unique_pageviews: int = 0
    avg_time_on_page: float = 0
    bounce_rate: float = 0


class Ga4TrafficSourceRow(WarehouseRow):
    traffic_source: str = "Unknown"
    total_sessions: int = 0
    total_users: int = 0
    bounce_rate: float = 0


class WebsiteBehaviorResult(BaseModel):
    metrics: Ga4BehaviorMetricsRow = Ga4BehaviorMetricsRow()
    top_pages: List[Ga4PageRow] = []
    traffic_sources: List[Ga4TrafficSourceRow] = []
    devices: List[DeviceShare] = []


# ─────────────────────────────────────────────────────────────
# Sample orders
# ─────────────────────────────────────────────────────────────

class SampleOrdersSummaryRow(WarehouseRow):
    order_date: Optional[dt.date] = None
    total_sample_orders: int = 0
    total_sample_qty: float = 0
    total_sample_revenue: float = 0


class SampleOrdersSummary(BaseModel):
    total_sample_orders: int = 0
    total_sample_qty: float = 0
    total_sample_revenue: float = 0


class SampleOrdersDailyRow(WarehouseRow):
    date: Optional[dt.date] = None
    total_orders: int = 0
    total_revenue: float = 0
    total_items: float = 0


class SampleOrdersDailySummary(BaseModel):
    total_orders: int = 0
    total_revenue: float = 0
    total_items: float = 0
    items_per_order: float = 0


class SampleOrdersDailyResult(BaseModel):
    daily: List[SampleOrdersDailyRow] = []
    summary: SampleOrdersDailySummary = SampleOrdersDailySummary()


class SampleCollectionRow(WarehouseRow):
    collection: str = "Unknown"
    total_items: float = 0
    total_orders: int = 0


class SampleProductItemRow(WarehouseRow):
    order_date: Optional[dt.date] = None
    order_id: str = ""
    sku: str = ""
    product_name: str = ""
    product_id: str = ""
    total_qty_ordered: float = 0
    total_revenue: float = 0


class TopSampleProduct(BaseModel):
    sku: str = ""
    product_name: str = ""
    product_id: str = ""
    total_qty_ordered: float = 0
    total_revenue: float = 0
    avg_price: float = 0
    order_count: int = 0


# ─────────────────────────────────────────────────────────────
# Marketing
# ─────────────────────────────────────────────────────────────

class MarketingChannelRow(WarehouseRow):
    date: Optional[dt.date] = None
    channel: str = "Unknown"
    total_spend: float = 0
    total_revenue: float = 0
    total_clicks: int = 0
    total_impressions: int = 0
    total_conversions: float = 0


class ChannelPerformance(BaseModel):
    channel: str
    total_spend: float = 0
    total_revenue: float = 0
    total_clicks: int = 0
    total_impressions: int = 0
    total_conversions: float = 0
    roas: float = 0
    cpc: float = 0
    ctr: float = 0
    cpa: float = 0


class SeoQueryRow(WarehouseRow):
    query_text: str = ""
    total_clicks: int = 0
    total_impressions: int = 0
    avg_position: float = 0
    avg_ctr: float = 0


class MarketingPerformanceResult(BaseModel):
    channels: List[ChannelPerformance] = []
    seo: List[SeoQueryRow] = []


class SeoStatsRow(WarehouseRow):
    """Search console totals for one store and day, optionally per query.

    Averages travel as sums plus counts so they stay exact across stores.
    """
    date: Optional[dt.date] = None
    query_text: str = ""
    total_clicks: int = 0
    total_impressions: int = 0
    position_sum: float = 0
    position_count: int = 0
    ctr_sum: float = 0
    ctr_count: int = 0
    attributed_revenue: float = 0


class SeoOverview(BaseModel):
    total_clicks: int = 0
    total_impressions: int = 0
    avg_position: float = 0
    avg_ctr: float = 0
    total_attributed_revenue: float = 0


class SeoQueryStats(BaseModel):
    query: str
    total_clicks: int = 0
    total_impressions: int = 0
    avg_position: float = 0
    avg_ctr: float = 0
    attributed_revenue: float = 0


class SeoPositionBucket(WarehouseRow):
    position_range: str = ""
    total_clicks: int = 0
    total_impressions: int = 0


class SeoInsightsResult(BaseModel):
    overview: SeoOverview = SeoOverview()
    top_queries: List[SeoQueryStats] = []
    top_impressions: List[SeoQueryStats] = []
    position_distribution: List[SeoPositionBucket] = []

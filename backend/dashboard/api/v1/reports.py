"""
Reports API Endpoints
Every endpoint takes the same scope parameters (dataset, client, website,
date range), checks the caller may read that client's dataset, and returns
``{"success": true, "data": ...}``.
"""
from datetime import date
from typing import Awaitable, List, Optional, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query, status

from dashboard.dependencies import (
    ensure_client_access,
    get_current_user,
    get_document_store,
    get_report_context,
)
from dashboard.schemas.auth import Principal
from dashboard.schemas.common import ApiResponse
from dashboard.schemas.reports import (
    CategoryBreakdownRow,
    CollectionPerformanceRow,
    CustomerInsightsResult,
    CustomerMetricsResult,
    HourlySalesResult,
    MarketingPerformanceResult,
    ProductPerformance,
    SalesKpiResult,
    SalesOverviewResult,
    SampleCollectionRow,
    SampleOrdersDailyResult,
    SampleOrdersSummary,
    SeoInsightsResult,
    TopProduct,
    TopSampleProduct,
    WebsiteBehaviorResult,
)
from dashboard.services.document_store import CLIENTS, DocumentStore
from dashboard.services.reports import customers, marketing, products, sales, samples
from dashboard.services.reports.base import ReportContext, ReportQuery, ReportValidationError
from dashboard.services.warehouse import WarehouseQueryError
from dashboard.services.website_resolver import parse_website_scope

router = APIRouter(prefix="/reports", tags=["Reports"])

T = TypeVar("T")


async def get_report_query(
    dataset_id: str = Query(..., description="BigQuery dataset of the client"),
    start_date: date = Query(..., description="Inclusive start date (YYYY-MM-DD)"),
    end_date: date = Query(..., description="Inclusive end date (YYYY-MM-DD)"),
    website_id: Optional[str] = Query(None, description="Website id, or all_combined"),
    client_id: Optional[str] = Query(None, description="Defaults to the caller's client"),
    current_user: Principal = Depends(get_current_user),
    store: DocumentStore = Depends(get_document_store),
) -> ReportQuery:
    """Build the report scope and enforce tenant access before any query runs."""
    client_id = client_id or current_user.client_id
    if not client_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="client_id is required",
        )

    ensure_client_access(current_user, client_id)

    if not current_user.is_admin:
        client = store.get_document(CLIENTS, client_id)
        if client is None or client.get("bigQueryDatasetId") != dataset_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied to this dataset",
            )

    return ReportQuery(
        dataset_id=dataset_id,
        client_id=client_id,
        start_date=start_date,
        end_date=end_date,
        scope=parse_website_scope(website_id),
    )


async def _respond(report: Awaitable[T]) -> ApiResponse[T]:
    try:
        data = await report
    except ReportValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except WarehouseQueryError:
        # Already logged with the report name and params by the executor
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load report",
        )
    return ApiResponse(data=data)


# ─────────────────────────────────────────────
# Sales
# ─────────────────────────────────────────────

@router.get("/sales-overview", response_model=ApiResponse[SalesOverviewResult])
async def sales_overview(
    order_type: Optional[str] = Query(None, description="main or sample; omitted means all orders"),
    query: ReportQuery = Depends(get_report_query),
    ctx: ReportContext = Depends(get_report_context),
):
    """Daily orders and revenue with period totals"""
    return await _respond(sales.get_sales_overview(ctx, query, order_type))


@router.get("/sales-kpis", response_model=ApiResponse[SalesKpiResult])
async def sales_kpis(
    query: ReportQuery = Depends(get_report_query),
    ctx: ReportContext = Depends(get_report_context),
):
    """Sales, media spend and sessions with AOV, CVR, blended ROAS and CPA"""
    return await _respond(sales.get_sales_kpis(ctx, query))


@router.get("/hourly-sales", response_model=ApiResponse[HourlySalesResult])
async def hourly_sales(
    order_type: Optional[str] = Query(None),
    query: ReportQuery = Depends(get_report_query),
    ctx: ReportContext = Depends(get_report_context),
):
    return await _respond(sales.get_hourly_sales(ctx, query, order_type))


# ─────────────────────────────────────────────
# Products
# ─────────────────────────────────────────────

@router.get("/top-products", response_model=ApiResponse[List[TopProduct]])
async def top_products(
    limit: Optional[int] = Query(None),
    sort_by: Optional[str] = Query(None, description="revenue or quantity"),
    query: ReportQuery = Depends(get_report_query),
    ctx: ReportContext = Depends(get_report_context),
):
    return await _respond(products.get_top_products(ctx, query, limit, sort_by))


@router.get("/product-performance", response_model=ApiResponse[List[ProductPerformance]])
async def product_performance(
    limit: Optional[int] = Query(None),
    query: ReportQuery = Depends(get_report_query),
    ctx: ReportContext = Depends(get_report_context),
):
    return await _respond(products.get_product_performance(ctx, query, limit))


@router.get("/category-breakdown", response_model=ApiResponse[List[CategoryBreakdownRow]])
async def category_breakdown(
    order_type: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    query: ReportQuery = Depends(get_report_query),
    ctx: ReportContext = Depends(get_report_context),
):
    """Revenue share per product group"""
    return await _respond(products.get_category_breakdown(ctx, query, order_type, limit))


@router.get("/collections-performance", response_model=ApiResponse[List[CollectionPerformanceRow]])
async def collections_performance(
    order_type: Optional[str] = Query(None),
    sort_by: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    query: ReportQuery = Depends(get_report_query),
    ctx: ReportContext = Depends(get_report_context),
):
    return await _respond(products.get_collections_performance(ctx, query, order_type, sort_by, limit))


# ─────────────────────────────────────────────
# Customers
# ─────────────────────────────────────────────

@router.get("/customer-metrics", response_model=ApiResponse[CustomerMetricsResult])
async def customer_metrics(
    query: ReportQuery = Depends(get_report_query),
    ctx: ReportContext = Depends(get_report_context),
):
    return await _respond(customers.get_customer_metrics(ctx, query))


@router.get("/customer-insights", response_model=ApiResponse[CustomerInsightsResult])
async def customer_insights(
    query: ReportQuery = Depends(get_report_query),
    ctx: ReportContext = Depends(get_report_context),
):
    """Active users, new vs returning, locations, devices and engagement"""
    return await _respond(customers.get_customer_insights(ctx, query))


@router.get("/website-behavior", response_model=ApiResponse[WebsiteBehaviorResult])
async def website_behavior(
    query: ReportQuery = Depends(get_report_query),
    ctx: ReportContext = Depends(get_report_context),
):
    """Sessions, top pages, traffic sources and devices"""
    return await _respond(customers.get_website_behavior(ctx, query))


# ─────────────────────────────────────────────
# Sample orders
# ─────────────────────────────────────────────

@router.get("/sample-orders-summary", response_model=ApiResponse[SampleOrdersSummary])
async def sample_orders_summary(
    query: ReportQuery = Depends(get_report_query),
    ctx: ReportContext = Depends(get_report_context),
):
    return await _respond(samples.get_sample_orders_summary(ctx, query))


@router.get("/sample-orders-daily", response_model=ApiResponse[SampleOrdersDailyResult])
async def sample_orders_daily(
    query: ReportQuery = Depends(get_report_query),
    ctx: ReportContext = Depends(get_report_context),
):
    return await _respond(samples.get_sample_orders_daily(ctx, query))


@router.get("/sample-orders-by-collection", response_model=ApiResponse[List[SampleCollectionRow]])
async def sample_orders_by_collection(
    query: ReportQuery = Depends(get_report_query),
    ctx: ReportContext = Depends(get_report_context),
):
    return await _respond(samples.get_sample_orders_by_collection(ctx, query))


@router.get("/top-sample-products", response_model=ApiResponse[List[TopSampleProduct]])
async def top_sample_products(
    limit: Optional[int] = Query(None),
    query: ReportQuery = Depends(get_report_query),
    ctx: ReportContext = Depends(get_report_context),
):
    return await _respond(samples.get_top_sample_products(ctx, query, limit))


# ─────────────────────────────────────────────
# Marketing
# ─────────────────────────────────────────────

@router.get("/marketing-performance", response_model=ApiResponse[MarketingPerformanceResult])
async def marketing_performance(
    query: ReportQuery = Depends(get_report_query),
    ctx: ReportContext = Depends(get_report_context),
):
    """Paid channel spend and returns plus top organic search queries"""
    return await _respond(marketing.get_marketing_performance(ctx, query))


@router.get("/seo-insights", response_model=ApiResponse[SeoInsightsResult])
async def seo_insights(
    query: ReportQuery = Depends(get_report_query),
    ctx: ReportContext = Depends(get_report_context),
):
    return await _respond(marketing.get_seo_insights(ctx, query))

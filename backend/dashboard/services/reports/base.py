"""
Shared plumbing for report functions: the request scope, injected context,
validation and website-scope resolution.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from dashboard.services.query_executor import QueryExecutor
from dashboard.services.query_filters import (
    ORDER_TYPES,
    WebsiteFilter,
    build_website_filter,
    validate_dataset_id,
)
from dashboard.services.website_resolver import AllCombined, WebsiteResolver, WebsiteScope

logger = logging.getLogger(__name__)

VALID_SORT_KEYS = ("revenue", "quantity", "qty")


class ReportValidationError(ValueError):
    """Invalid report input. Raised before any warehouse query."""


@dataclass(frozen=True)
class ReportQuery:
    dataset_id: str
    client_id: str
    start_date: date
    end_date: date
    scope: WebsiteScope = field(default_factory=AllCombined)

    def validate(self) -> "ReportQuery":
        if not self.client_id:
            raise ReportValidationError("client_id is required")
        try:
            validate_dataset_id(self.dataset_id)
        except ValueError as e:
            raise ReportValidationError(str(e)) from e
        if self.start_date is None or self.end_date is None:
            raise ReportValidationError("start_date and end_date are required")
        if self.start_date > self.end_date:
            raise ReportValidationError("start_date must be on or before end_date")
        return self

    @property
    def fallback_month(self) -> str:
        return self.start_date.strftime("%Y-%m")

    def date_params(self) -> Dict[str, Any]:
        return {"start_date": self.start_date, "end_date": self.end_date}


@dataclass
class ReportContext:
    executor: QueryExecutor
    resolver: WebsiteResolver


@dataclass
class ResolvedScope:
    """Store ids a report covers. ``store_ids is None`` means every store."""
    store_ids: Optional[List[str]]

    @property
    def is_empty(self) -> bool:
        return self.store_ids is not None and not self.store_ids

    def website_filter(self, column: str = "website_id") -> WebsiteFilter:
        return build_website_filter(self.store_ids, column)


def resolve_scope(ctx: ReportContext, query: ReportQuery) -> ResolvedScope:
    """Validate the query and resolve its website scope."""
    query.validate()
    store_ids = ctx.resolver.resolve_scope(query.client_id, query.scope)
    if store_ids is not None and not store_ids:
        logger.info(
            "Website scope %s for client %s resolved to no stores; returning empty report",
            query.scope, query.client_id,
        )
    return ResolvedScope(store_ids)


def validate_limit(limit: Optional[int], default: Optional[int]) -> Optional[int]:
    if limit is None:
        return default
    if limit < 1:
        raise ReportValidationError("limit must be a positive integer")
    return limit


def validate_order_type(order_type: Optional[str]) -> str:
    order_type = order_type or "main"
    if order_type not in ORDER_TYPES:
        raise ReportValidationError(f"order_type must be one of {', '.join(ORDER_TYPES)}")
    return order_type


def validate_sort_by(sort_by: Optional[str]) -> str:
    """Normalizes to "revenue" or "quantity"."""
    sort_by = sort_by or "revenue"
    if sort_by not in VALID_SORT_KEYS:
        raise ReportValidationError("sort_by must be 'revenue' or 'quantity'")
    return "quantity" if sort_by == "qty" else sort_by

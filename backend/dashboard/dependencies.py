"""
Common Dependencies for FastAPI Routes
"""
from functools import lru_cache
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from dashboard.config import settings
from dashboard.database import get_db
from dashboard.schemas.auth import Principal
from dashboard.services.auth_service import USERS
from dashboard.services.document_store import DocumentStore
from dashboard.services.exchange_rate_service import ExchangeRateService
from dashboard.services.query_executor import QueryExecutor
from dashboard.services.reports.base import ReportContext
from dashboard.services.warehouse import BigQueryWarehouse, Warehouse
from dashboard.services.website_resolver import WebsiteResolver
from dashboard.utils.security import decode_access_token

security = HTTPBearer()


def get_document_store(db: Session = Depends(get_db)) -> DocumentStore:
    return DocumentStore(db)


@lru_cache()
def _bigquery_warehouse() -> BigQueryWarehouse:
    return BigQueryWarehouse(
        project=settings.GOOGLE_CLOUD_PROJECT,
        location=settings.BIGQUERY_LOCATION,
        timeout_seconds=settings.WAREHOUSE_QUERY_TIMEOUT_SECONDS,
    )


def get_warehouse() -> Warehouse:
    """One BigQuery client per process; overridden in tests."""
    return _bigquery_warehouse()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    store: DocumentStore = Depends(get_document_store),
) -> Principal:
    """
    Dependency to get the current authenticated user.

    The role and client are always read from the user document, not from
    token claims, so role changes apply to existing tokens.
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = store.get_document(USERS, payload["sub"])
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    if user.get("role") not in ("admin", "client"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User has no role assigned",
        )

    return Principal(
        uid=user["id"],
        email=user.get("email", ""),
        role=user["role"],
        client_id=user.get("clientId"),
    )


async def require_admin(current_user: Principal = Depends(get_current_user)) -> Principal:
    """Require the admin role"""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


def ensure_client_access(current_user: Principal, client_id: Optional[str]) -> None:
    """Client users may only touch their own client."""
    if current_user.is_admin:
        return
    if not client_id or client_id != current_user.client_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied to this client",
        )


def get_report_context(
    store: DocumentStore = Depends(get_document_store),
    warehouse: Warehouse = Depends(get_warehouse),
) -> ReportContext:
    """Per-request report context; the currency index cache lives for one request."""
    executor = QueryExecutor(
        warehouse=warehouse,
        store=store,
        rates=ExchangeRateService(settings.DEFAULT_REPORTING_CURRENCY),
        location=settings.BIGQUERY_LOCATION,
    )
    resolver = WebsiteResolver(store, legacy_fallback=settings.LEGACY_WEBSITE_ID_FALLBACK)
    return ReportContext(executor=executor, resolver=resolver)

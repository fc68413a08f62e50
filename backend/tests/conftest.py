"""Pytest configuration shared by unit and API tests

Provides an in-memory document store, a fake warehouse that records every
query it receives, a seeded client with plain and grouped websites, and a
TestClient wired to both through dependency overrides.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from typing import Any, Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from dashboard.database import Base, get_db
from dashboard.dependencies import get_warehouse
from dashboard.models import Document  # noqa: F401  registers the table
from dashboard.services import auth_service
from dashboard.services.document_store import CLIENTS, DocumentStore, collection_path
from dashboard.services.query_executor import QueryExecutor
from dashboard.services.reports.base import ReportContext
from dashboard.services.website_resolver import WebsiteResolver

CLIENT_ID = "acme"
DATASET_ID = "acme_ds"


# ============================================================================
# Fake warehouse
# ============================================================================

class FakeWarehouse:
    """Returns canned rows for the first registered fragment found in the SQL."""

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []
        self._responses: List[tuple] = []

    def add(self, fragment: str, rows: List[Dict[str, Any]]) -> None:
        self._responses.append((fragment, rows))

    def fail(self, fragment: str, error: Exception) -> None:
        self._responses.append((fragment, error))

    def sql_for(self, fragment: str) -> List[str]:
        return [c["sql"] for c in self.calls if fragment in c["sql"]]

    async def query(self, sql: str, params: Dict[str, Any], location: Optional[str] = None) -> List[Dict[str, Any]]:
        self.calls.append({"sql": sql, "params": dict(params), "location": location})
        for fragment, result in self._responses:
            if fragment in sql:
                if isinstance(result, Exception):
                    raise result
                return [dict(r) for r in result]
        return []


def table(name: str) -> str:
    """Fragment that matches exactly one table reference in generated SQL"""
    return f"`{DATASET_ID}.{name}`"


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session(db_engine) -> Generator[Session, None, None]:
    session = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)()
    yield session
    session.close()


@pytest.fixture
def store(db_session) -> DocumentStore:
    return DocumentStore(db_session)


@pytest.fixture
def warehouse() -> FakeWarehouse:
    return FakeWarehouse()


# ============================================================================
# Tenant Fixtures
# ============================================================================

def add_website(store: DocumentStore, website_id: str, **fields) -> dict:
    data = {
        "websiteName": website_id.upper(),
        "bigQueryWebsiteId": fields.get("storeId") or website_id,
        "storeId": "",
        "isGrouped": False,
        "groupedWebsiteIds": [],
        **fields,
    }
    return store.set_document(collection_path(CLIENTS, CLIENT_ID, "websites"), website_id, data)


@pytest.fixture
def seeded_client(store) -> dict:
    """Client "acme" reporting in GBP.

    Websites: uk (store 101, GBP), ie (store 102, no currency),
    eu (store 201, EUR at 0.5 per GBP in March 2024, so x2.0),
    uk_ie (group of uk and ie).
    """
    client = store.set_document(CLIENTS, CLIENT_ID, {
        "clientName": "Acme",
        "bigQueryDatasetId": DATASET_ID,
        "currencySettings": {
            "baseCurrency": "GBP",
            "monthlyRates": {"EUR": {"2024-03": 0.5}},
        },
        "disabledMenuItems": ["seo"],
    })
    add_website(store, "uk", storeId="101", storeCurrencyCode="GBP")
    add_website(store, "ie", storeId="102")
    add_website(store, "eu", storeId="201", storeCurrencyCode="EUR")
    add_website(store, "uk_ie", isGrouped=True, groupedWebsiteIds=["uk", "ie"])
    return client


@pytest.fixture
def report_ctx(store, warehouse) -> ReportContext:
    return ReportContext(
        executor=QueryExecutor(warehouse=warehouse, store=store),
        resolver=WebsiteResolver(store),
    )


# ============================================================================
# Application & Client Fixtures
# ============================================================================

@pytest.fixture
def app(db_session, warehouse):
    from dashboard.main import app as fastapi_app

    def override_get_db():
        yield db_session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_warehouse] = lambda: warehouse
    fastapi_app.state.limiter.enabled = False
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


# ============================================================================
# Authentication Fixtures
# ============================================================================

def auth_headers_for(user: dict) -> Dict[str, str]:
    return {"Authorization": f"Bearer {auth_service.create_user_token(user)}"}


@pytest.fixture
def admin_user(store) -> dict:
    return auth_service.create_user(store, email="admin@example.com", role="admin")


@pytest.fixture
def client_user(store, seeded_client) -> dict:
    return auth_service.create_user(store, email="viewer@example.com", role="client", client_id=CLIENT_ID)


@pytest.fixture
def admin_headers(admin_user) -> Dict[str, str]:
    return auth_headers_for(admin_user)


@pytest.fixture
def client_headers(client_user) -> Dict[str, str]:
    return auth_headers_for(client_user)

"""
Clients API Endpoints
Read-only client views for any signed-in user, scoped to what they may see.
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from dashboard.dependencies import ensure_client_access, get_current_user, get_document_store
from dashboard.schemas.auth import Principal
from dashboard.schemas.client import ClientResponse, ClientSettingsResponse, CustomLinkResponse
from dashboard.schemas.common import ApiResponse
from dashboard.schemas.website import WebsiteResponse
from dashboard.services.document_store import CLIENTS, DocumentStore, collection_path

router = APIRouter(prefix="/clients", tags=["Clients"])


def _visible_client(store: DocumentStore, current_user: Principal, client_id: str) -> dict:
    ensure_client_access(current_user, client_id)
    client = store.get_document(CLIENTS, client_id)
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Client not found",
        )
    return client


@router.get("", response_model=ApiResponse[List[ClientResponse]])
async def list_clients(
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(get_current_user),
):
    """
    List clients. Admins see every client, client users only their own.
    """
    if current_user.is_admin:
        return ApiResponse(data=store.list_documents(CLIENTS, order_by="clientName"))

    client = store.get_document(CLIENTS, current_user.client_id) if current_user.client_id else None
    return ApiResponse(data=[client] if client else [])


@router.get("/{client_id}/settings", response_model=ApiResponse[ClientSettingsResponse])
async def get_client_settings(
    client_id: str,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(get_current_user),
):
    """Menu and currency settings the dashboard needs to render"""
    client = _visible_client(store, current_user, client_id)
    settings = ClientSettingsResponse(
        disabled_menu_items=client.get("disabledMenuItems") or [],
        currency_settings=client.get("currencySettings") or {},
    )
    return ApiResponse(data=settings)


@router.get("/{client_id}/websites", response_model=ApiResponse[List[WebsiteResponse]])
async def list_client_websites(
    client_id: str,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(get_current_user),
):
    _visible_client(store, current_user, client_id)
    websites = store.list_documents(collection_path(CLIENTS, client_id, "websites"), order_by="websiteName")
    return ApiResponse(data=websites)


@router.get("/{client_id}/custom-links", response_model=ApiResponse[List[CustomLinkResponse]])
async def list_client_custom_links(
    client_id: str,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(get_current_user),
):
    _visible_client(store, current_user, client_id)
    links = store.list_documents(collection_path(CLIENTS, client_id, "customLinks"), order_by="sortOrder")
    return ApiResponse(data=links)

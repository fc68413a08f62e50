"""
Admin Client API Endpoints
Clients and the records stored beneath them: websites, targets and custom links.
"""
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import ValidationError

from dashboard.dependencies import get_document_store, require_admin
from dashboard.schemas.auth import Principal
from dashboard.schemas.client import (
    ClientCreate,
    ClientResponse,
    ClientUpdate,
    CustomLinkCreate,
    CustomLinkResponse,
    CustomLinkUpdate,
)
from dashboard.schemas.common import ApiResponse, MessageResponse
from dashboard.schemas.target import TargetCreate, TargetResponse, TargetUpdate
from dashboard.schemas.website import WebsiteCreate, WebsiteFields, WebsiteResponse, WebsiteUpdate
from dashboard.services.document_store import (
    CLIENTS,
    CLIENT_SUBCOLLECTIONS,
    DocumentStore,
    collection_path,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/clients", tags=["Admin Clients"])


def _get_client_or_404(store: DocumentStore, client_id: str) -> Dict[str, Any]:
    client = store.get_document(CLIENTS, client_id)
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Client not found",
        )
    return client


def _sub_path(client_id: str, name: str) -> str:
    return collection_path(CLIENTS, client_id, name)


def _get_child_or_404(store: DocumentStore, client_id: str, name: str, doc_id: str, label: str) -> Dict[str, Any]:
    _get_client_or_404(store, client_id)
    doc = store.get_document(_sub_path(client_id, name), doc_id)
    if doc is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{label} not found",
        )
    return doc


# ─────────────────────────────────────────────
# Clients
# ─────────────────────────────────────────────

@router.get("", response_model=ApiResponse[List[ClientResponse]])
async def list_clients(
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(require_admin),
):
    return ApiResponse(data=store.list_documents(CLIENTS, order_by="clientName"))


@router.post("", response_model=ApiResponse[ClientResponse], status_code=status.HTTP_201_CREATED)
async def create_client(
    client_data: ClientCreate,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(require_admin),
):
    """
    Create a new client (Admin only)

    The id may be chosen by the caller; otherwise one is generated.
    """
    if client_data.id and store.get_document(CLIENTS, client_data.id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Client already exists",
        )

    client = store.set_document(CLIENTS, client_data.id, client_data.to_document())
    logger.info("Client %s created by %s", client["id"], current_user.uid)
    return ApiResponse(data=client)


@router.get("/{client_id}", response_model=ApiResponse[ClientResponse])
async def get_client(
    client_id: str,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(require_admin),
):
    return ApiResponse(data=_get_client_or_404(store, client_id))


@router.patch("/{client_id}", response_model=ApiResponse[ClientResponse])
async def update_client(
    client_id: str,
    client_data: ClientUpdate,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(require_admin),
):
    _get_client_or_404(store, client_id)
    client = store.update_document(CLIENTS, client_id, client_data.to_document(exclude_unset=True))
    return ApiResponse(data=client)


@router.delete("/{client_id}", response_model=MessageResponse)
async def delete_client(
    client_id: str,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(require_admin),
):
    """
    Delete a client together with its websites, targets, annotations and
    custom links. Sub-collections go first so a failure never leaves
    orphans behind a deleted client.
    """
    _get_client_or_404(store, client_id)

    for name in CLIENT_SUBCOLLECTIONS:
        store.delete_collection(_sub_path(client_id, name))
    store.delete_document(CLIENTS, client_id)

    logger.info("Client %s deleted by %s", client_id, current_user.uid)
    return MessageResponse(message="Client deleted successfully")


# ─────────────────────────────────────────────
# Websites
# ─────────────────────────────────────────────

def _check_group_members(store: DocumentStore, client_id: str, website_id: str, member_ids: List[str]) -> None:
    """Members must be existing, non-grouped websites of the same client."""
    path = _sub_path(client_id, "websites")
    for member_id in member_ids:
        if member_id == website_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A grouped website cannot contain itself",
            )
        member = store.get_document(path, member_id)
        if member is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Grouped website member {member_id} does not exist",
            )
        if member.get("isGrouped"):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Grouped website member {member_id} is itself a group",
            )


def _check_not_a_member(store: DocumentStore, client_id: str, website_id: str) -> None:
    for website in store.list_documents(_sub_path(client_id, "websites")):
        if website_id in (website.get("groupedWebsiteIds") or []):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Website {website_id} is a member of group {website['id']} and cannot become a group",
            )


@router.get("/{client_id}/websites", response_model=ApiResponse[List[WebsiteResponse]])
async def list_websites(
    client_id: str,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(require_admin),
):
    _get_client_or_404(store, client_id)
    return ApiResponse(data=store.list_documents(_sub_path(client_id, "websites"), order_by="websiteName"))


@router.post("/{client_id}/websites", response_model=ApiResponse[WebsiteResponse], status_code=status.HTTP_201_CREATED)
async def create_website(
    client_id: str,
    website_data: WebsiteCreate,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(require_admin),
):
    _get_client_or_404(store, client_id)
    path = _sub_path(client_id, "websites")

    if store.get_document(path, website_data.id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Website already exists",
        )
    if website_data.is_grouped:
        _check_group_members(store, client_id, website_data.id, website_data.grouped_website_ids)

    website = store.set_document(path, website_data.id, website_data.to_document())
    return ApiResponse(data=website)


@router.get("/{client_id}/websites/{website_id}", response_model=ApiResponse[WebsiteResponse])
async def get_website(
    client_id: str,
    website_id: str,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(require_admin),
):
    return ApiResponse(data=_get_child_or_404(store, client_id, "websites", website_id, "Website"))


@router.patch("/{client_id}/websites/{website_id}", response_model=ApiResponse[WebsiteResponse])
async def update_website(
    client_id: str,
    website_id: str,
    website_data: WebsiteUpdate,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(require_admin),
):
    """Merge the update and re-check the grouping rules on the result."""
    existing = _get_child_or_404(store, client_id, "websites", website_id, "Website")
    updates = website_data.to_document(exclude_unset=True)

    try:
        merged = WebsiteFields.model_validate({**existing, **updates})
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=e.errors()[0]["msg"],
        )

    if merged.is_grouped:
        _check_group_members(store, client_id, website_id, merged.grouped_website_ids)
        if not existing.get("isGrouped"):
            _check_not_a_member(store, client_id, website_id)

    website = store.update_document(_sub_path(client_id, "websites"), website_id, merged.to_document())
    return ApiResponse(data=website)


@router.delete("/{client_id}/websites/{website_id}", response_model=MessageResponse)
async def delete_website(
    client_id: str,
    website_id: str,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(require_admin),
):
    _get_child_or_404(store, client_id, "websites", website_id, "Website")
    store.delete_document(_sub_path(client_id, "websites"), website_id)
    return MessageResponse(message="Website deleted successfully")


# ─────────────────────────────────────────────
# Targets
# ─────────────────────────────────────────────

@router.get("/{client_id}/targets", response_model=ApiResponse[List[TargetResponse]])
async def list_targets(
    client_id: str,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(require_admin),
):
    _get_client_or_404(store, client_id)
    return ApiResponse(data=store.list_documents(_sub_path(client_id, "targets"), order_by="startDate"))


@router.post("/{client_id}/targets", response_model=ApiResponse[TargetResponse], status_code=status.HTTP_201_CREATED)
async def create_target(
    client_id: str,
    target_data: TargetCreate,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(require_admin),
):
    _get_client_or_404(store, client_id)
    target = store.set_document(_sub_path(client_id, "targets"), None, target_data.to_document())
    return ApiResponse(data=target)


@router.patch("/{client_id}/targets/{target_id}", response_model=ApiResponse[TargetResponse])
async def update_target(
    client_id: str,
    target_id: str,
    target_data: TargetUpdate,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(require_admin),
):
    existing = _get_child_or_404(store, client_id, "targets", target_id, "Target")
    updates = target_data.to_document(exclude_unset=True)
    if (updates.get("startDate") or existing["startDate"]) > (updates.get("endDate") or existing["endDate"]):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="startDate must be on or before endDate",
        )
    target = store.update_document(_sub_path(client_id, "targets"), target_id, updates)
    return ApiResponse(data=target)


@router.delete("/{client_id}/targets/{target_id}", response_model=MessageResponse)
async def delete_target(
    client_id: str,
    target_id: str,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(require_admin),
):
    _get_child_or_404(store, client_id, "targets", target_id, "Target")
    store.delete_document(_sub_path(client_id, "targets"), target_id)
    return MessageResponse(message="Target deleted successfully")


# ─────────────────────────────────────────────
# Custom links
# ─────────────────────────────────────────────

@router.get("/{client_id}/custom-links", response_model=ApiResponse[List[CustomLinkResponse]])
async def list_custom_links(
    client_id: str,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(require_admin),
):
    _get_client_or_404(store, client_id)
    return ApiResponse(data=store.list_documents(_sub_path(client_id, "customLinks"), order_by="sortOrder"))


@router.post("/{client_id}/custom-links", response_model=ApiResponse[CustomLinkResponse], status_code=status.HTTP_201_CREATED)
async def create_custom_link(
    client_id: str,
    link_data: CustomLinkCreate,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(require_admin),
):
    _get_client_or_404(store, client_id)
    link = store.set_document(_sub_path(client_id, "customLinks"), None, link_data.to_document())
    return ApiResponse(data=link)


@router.patch("/{client_id}/custom-links/{link_id}", response_model=ApiResponse[CustomLinkResponse])
async def update_custom_link(
    client_id: str,
    link_id: str,
    link_data: CustomLinkUpdate,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(require_admin),
):
    _get_child_or_404(store, client_id, "customLinks", link_id, "Custom link")
    link = store.update_document(
        _sub_path(client_id, "customLinks"), link_id, link_data.to_document(exclude_unset=True)
    )
    return ApiResponse(data=link)


@router.delete("/{client_id}/custom-links/{link_id}", response_model=MessageResponse)
async def delete_custom_link(
    client_id: str,
    link_id: str,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(require_admin),
):
    _get_child_or_404(store, client_id, "customLinks", link_id, "Custom link")
    store.delete_document(_sub_path(client_id, "customLinks"), link_id)
    return MessageResponse(message="Custom link deleted successfully")

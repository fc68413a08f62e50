"""
Annotations API Endpoints
Annotations are stored per client and readable/writable by that client's
users and by admins.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from dashboard.dependencies import ensure_client_access, get_current_user, get_document_store
from dashboard.schemas.annotation import AnnotationCreate, AnnotationResponse, AnnotationUpdate
from dashboard.schemas.auth import Principal
from dashboard.schemas.common import ApiResponse, MessageResponse
from dashboard.services.document_store import CLIENTS, DocumentStore, collection_path

router = APIRouter(prefix="/annotations", tags=["Annotations"])


def _annotations_path(client_id: str) -> str:
    return collection_path(CLIENTS, client_id, "annotations")


def _scoped_client_id(current_user: Principal, client_id: Optional[str]) -> str:
    client_id = client_id or current_user.client_id
    if not client_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing client_id parameter",
        )
    ensure_client_access(current_user, client_id)
    return client_id


def _get_annotation_or_404(store: DocumentStore, client_id: str, annotation_id: str) -> dict:
    annotation = store.get_document(_annotations_path(client_id), annotation_id)
    if annotation is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Annotation not found",
        )
    return annotation


@router.get("", response_model=ApiResponse[List[AnnotationResponse]])
async def list_annotations(
    client_id: Optional[str] = Query(None),
    website_id: Optional[str] = Query(None, description="Also includes annotations not tied to a website"),
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(get_current_user),
):
    """List a client's annotations, newest start date first"""
    client_id = _scoped_client_id(current_user, client_id)
    annotations = store.list_documents(_annotations_path(client_id), order_by="startDate", descending=True)
    if website_id:
        annotations = [a for a in annotations if a.get("websiteId") in (None, website_id)]
    return ApiResponse(data=annotations)


@router.post("", response_model=ApiResponse[AnnotationResponse], status_code=status.HTTP_201_CREATED)
async def create_annotation(
    annotation_data: AnnotationCreate,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(get_current_user),
):
    ensure_client_access(current_user, annotation_data.client_id)
    if store.get_document(CLIENTS, annotation_data.client_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Client not found",
        )

    data = {**annotation_data.to_document(), "createdBy": current_user.uid}
    annotation = store.set_document(_annotations_path(annotation_data.client_id), None, data)
    return ApiResponse(data=annotation)


@router.get("/{annotation_id}", response_model=ApiResponse[AnnotationResponse])
async def get_annotation(
    annotation_id: str,
    client_id: Optional[str] = Query(None),
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(get_current_user),
):
    client_id = _scoped_client_id(current_user, client_id)
    return ApiResponse(data=_get_annotation_or_404(store, client_id, annotation_id))


@router.patch("/{annotation_id}", response_model=ApiResponse[AnnotationResponse])
async def update_annotation(
    annotation_id: str,
    annotation_data: AnnotationUpdate,
    client_id: Optional[str] = Query(None),
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(get_current_user),
):
    client_id = _scoped_client_id(current_user, client_id)
    existing = _get_annotation_or_404(store, client_id, annotation_id)
    updates = annotation_data.to_document(exclude_unset=True)

    start = updates.get("startDate") or existing["startDate"]
    end = updates.get("endDate") or existing.get("endDate") or start
    if start > end:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="startDate must be on or before endDate",
        )

    annotation = store.update_document(_annotations_path(client_id), annotation_id, updates)
    return ApiResponse(data=annotation)


@router.delete("/{annotation_id}", response_model=MessageResponse)
async def delete_annotation(
    annotation_id: str,
    client_id: Optional[str] = Query(None),
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(get_current_user),
):
    client_id = _scoped_client_id(current_user, client_id)
    _get_annotation_or_404(store, client_id, annotation_id)
    store.delete_document(_annotations_path(client_id), annotation_id)
    return MessageResponse(message="Annotation deleted successfully")

"""
User Management API Endpoints
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from dashboard.dependencies import get_current_user, get_document_store, require_admin
from dashboard.schemas.auth import Principal
from dashboard.schemas.common import ApiResponse, MessageResponse
from dashboard.schemas.user import UserCreate, UserResponse, UserRole, UserUpdate
from dashboard.services import auth_service
from dashboard.services.auth_service import USERS, EmailAlreadyExistsError
from dashboard.services.document_store import CLIENTS, DocumentStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Users"])


def _require_client(store: DocumentStore, client_id: str) -> None:
    if store.get_document(CLIENTS, client_id) is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Client {client_id} does not exist",
        )


@router.get("/users/me", response_model=ApiResponse[UserResponse])
async def get_me(
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(get_current_user),
):
    """Get the signed-in user's profile"""
    return ApiResponse(data=UserResponse.from_document(store.get_document(USERS, current_user.uid)))


@router.get("/admin/users", response_model=ApiResponse[List[UserResponse]])
async def list_users(
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(require_admin),
):
    users = store.list_documents(USERS, order_by="email")
    return ApiResponse(data=[UserResponse.from_document(u) for u in users])


@router.post("/admin/users", response_model=ApiResponse[UserResponse], status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(require_admin),
):
    """
    Create a user with a password (Admin only)

    Client users must belong to an existing client.
    """
    if user_data.client_id:
        _require_client(store, user_data.client_id)

    try:
        user = auth_service.create_user(
            store,
            email=user_data.email,
            role=user_data.role.value,
            client_id=user_data.client_id,
            password=user_data.password,
        )
    except EmailAlreadyExistsError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already exists",
        )
    return ApiResponse(data=UserResponse.from_document(user))


@router.patch("/admin/users/{user_id}", response_model=ApiResponse[UserResponse])
async def update_user(
    user_id: str,
    user_data: UserUpdate,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(require_admin),
):
    """Change a user's role or client. Switching to admin clears the client."""
    if store.get_document(USERS, user_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )

    updates = user_data.to_document(exclude_unset=True)
    if user_data.role == UserRole.ADMIN:
        updates["clientId"] = None
    elif user_data.client_id:
        _require_client(store, user_data.client_id)

    user = store.update_document(USERS, user_id, updates)
    logger.info("User %s updated by %s", user_id, current_user.uid)
    return ApiResponse(data=UserResponse.from_document(user))


@router.delete("/admin/users/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: str,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(require_admin),
):
    if user_id == current_user.uid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot delete your own account",
        )
    if not store.delete_document(USERS, user_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    logger.info("User %s deleted by %s", user_id, current_user.uid)
    return MessageResponse(message="User deleted successfully")

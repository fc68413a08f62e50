"""
Invite API Endpoints
Admins invite a user by email; the invitee sets a password through the token.
"""
from fastapi import APIRouter, Depends, HTTPException, status

from dashboard.dependencies import get_document_store, require_admin
from dashboard.schemas.auth import Principal
from dashboard.schemas.common import ApiResponse
from dashboard.schemas.invite import InviteAccept, InviteCreate, InviteDetails, InviteResponse
from dashboard.schemas.user import UserResponse
from dashboard.services import auth_service
from dashboard.services.auth_service import (
    EmailAlreadyExistsError,
    InviteError,
    InviteNotFoundError,
)
from dashboard.services.document_store import CLIENTS, DocumentStore

router = APIRouter(prefix="/invites", tags=["Invites"])


def _invite_http_error(e: InviteError) -> HTTPException:
    if isinstance(e, InviteNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    # Expired and already used invites are gone for good
    return HTTPException(status_code=status.HTTP_410_GONE, detail=str(e))


@router.post("", response_model=ApiResponse[InviteResponse], status_code=status.HTTP_201_CREATED)
async def create_invite(
    invite_data: InviteCreate,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(require_admin),
):
    """
    Invite a user (Admin only)

    Creates the user without a password and returns the invite token to
    send to them.
    """
    if invite_data.client_id and store.get_document(CLIENTS, invite_data.client_id) is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Client {invite_data.client_id} does not exist",
        )

    try:
        invite = auth_service.create_invite(
            store, invite_data.email, invite_data.role.value, invite_data.client_id
        )
    except EmailAlreadyExistsError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already exists",
        )
    return ApiResponse(data=invite)


@router.get("/{token}", response_model=ApiResponse[InviteDetails])
async def get_invite(token: str, store: DocumentStore = Depends(get_document_store)):
    """Verify an invite token and return who it is for"""
    try:
        invite = auth_service.get_valid_invite(store, token)
    except InviteError as e:
        raise _invite_http_error(e)
    return ApiResponse(data=invite)


@router.post("/{token}/accept", response_model=ApiResponse[UserResponse])
async def accept_invite(
    token: str,
    accept_data: InviteAccept,
    store: DocumentStore = Depends(get_document_store),
):
    """Set the invitee's password and mark the invite used"""
    try:
        user = auth_service.accept_invite(store, token, accept_data.password)
    except InviteError as e:
        raise _invite_http_error(e)
    return ApiResponse(data=UserResponse.from_document(user))

"""
Authentication API Routes
"""
from fastapi import APIRouter, Depends, HTTPException, status

from dashboard.dependencies import get_document_store
from dashboard.schemas.auth import LoginRequest, LoginResponse
from dashboard.schemas.user import UserResponse
from dashboard.services import auth_service
from dashboard.services.document_store import DocumentStore

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/login", response_model=LoginResponse)
async def login(
    credentials: LoginRequest,
    store: DocumentStore = Depends(get_document_store),
):
    """
    Login with email and password

    Returns an access token and the user profile
    """
    user = auth_service.authenticate_user(store, credentials.email, credentials.password)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return LoginResponse(
        access_token=auth_service.create_user_token(user),
        user=UserResponse.from_document(user),
    )

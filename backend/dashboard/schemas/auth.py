"""
Authentication Schemas
"""
from typing import Optional

from pydantic import BaseModel, EmailStr

from dashboard.schemas.user import UserResponse, UserRole


class LoginRequest(BaseModel):
    """Login request schema"""
    email: EmailStr
    password: str


class LoginResponse(BaseModel):
    """Login response schema"""
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class Principal(BaseModel):
    """The authenticated caller, as loaded from the users collection"""
    uid: str
    email: str
    role: UserRole
    client_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

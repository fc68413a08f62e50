"""
User Schemas
"""
from enum import Enum
from typing import Optional

from pydantic import EmailStr, Field, model_validator

from dashboard.schemas.common import CamelModel


class UserRole(str, Enum):
    ADMIN = "admin"
    CLIENT = "client"


class UserCreate(CamelModel):
    """User creation schema"""
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: UserRole
    client_id: Optional[str] = None

    @model_validator(mode="after")
    def check_client(self):
        if self.role == UserRole.CLIENT and not self.client_id:
            raise ValueError("clientId is required for client users")
        if self.role == UserRole.ADMIN:
            self.client_id = None
        return self


class UserUpdate(CamelModel):
    """User update schema"""
    role: Optional[UserRole] = None
    client_id: Optional[str] = None

    @model_validator(mode="after")
    def check_client(self):
        if self.role == UserRole.CLIENT and not self.client_id:
            raise ValueError("clientId is required for client users")
        return self


class UserResponse(CamelModel):
    """User response schema; the password hash never leaves the store"""
    uid: str
    email: str
    role: UserRole
    client_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    verified_at: Optional[str] = None
    last_logged_in_at: Optional[str] = None

    @classmethod
    def from_document(cls, doc: dict) -> "UserResponse":
        return cls.model_validate({**doc, "uid": doc["id"]})

"""
Invite Schemas
"""
from typing import Optional

from pydantic import EmailStr, Field, model_validator

from dashboard.schemas.common import CamelModel
from dashboard.schemas.user import UserRole


class InviteCreate(CamelModel):
    email: EmailStr
    role: UserRole = UserRole.CLIENT
    client_id: Optional[str] = None

    @model_validator(mode="after")
    def check_client(self):
        if self.role == UserRole.CLIENT and not self.client_id:
            raise ValueError("clientId is required for client users")
        if self.role == UserRole.ADMIN:
            self.client_id = None
        return self


class InviteResponse(CamelModel):
    token: str
    email: str
    role: UserRole
    client_id: Optional[str] = None
    expires_at: str
    used_at: Optional[str] = None


class InviteDetails(CamelModel):
    """What an unauthenticated invitee sees before setting a password"""
    email: str
    role: UserRole
    client_id: Optional[str] = None


class InviteAccept(CamelModel):
    password: str = Field(..., min_length=6)

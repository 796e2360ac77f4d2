"""
schemas/user.py
---------------
Pydantic models for User registration, login, and responses.

Security note:
  - hashed_password is NEVER included in any response schema.
  - Passwords require min 8 chars; enforce stronger rules in production.
  - The tenant is never taken from the body: it is the tenant resolved from
    the request host.
"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from compliance_api.models.user import UserRole


class UserCreate(BaseModel):
    """Used by admin to create a new user within their tenant."""
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    role: UserRole = UserRole.staff


class UserRegister(BaseModel):
    """Customer self-registration on the tenant's storefront host."""
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    date_of_birth: Optional[date] = None


class UserRead(BaseModel):
    id: str
    email: str
    role: str
    tenant_id: str
    date_of_birth: Optional[date] = None
    id_verified_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds
    user: UserRead

"""
schemas/tenant.py
-----------------
Pydantic request/response models for Tenant and Dispensary.

Naming convention:
  TenantCreate  → inbound request body
  TenantRead    → outbound response body (never exposes internal fields)
"""

from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

from compliance_api.core.config import settings

# One DNS label: lowercase letters, digits, inner hyphens.
SUBDOMAIN_PATTERN = r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$"


def _check_timezone(v: str) -> str:
    try:
        ZoneInfo(v)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone '{v}'")
    return v


class TenantCreate(BaseModel):
    name: str = Field(
        ...,
        min_length=2,
        max_length=255,
        examples=["Green Leaf Collective"],
        description="Unique operator / tenant name",
    )
    subdomain: str = Field(
        ...,
        pattern=SUBDOMAIN_PATTERN,
        examples=["green-leaf"],
        description="Host label the tenant is served under",
    )
    jurisdiction: str = Field(default_factory=lambda: settings.DEFAULT_JURISDICTION)
    timezone: str = Field(default_factory=lambda: settings.DEFAULT_TIMEZONE)
    age_verification_required: bool = True
    medical_only: bool = False
    require_id_scan: bool = False

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()

    @field_validator("subdomain", mode="before")
    @classmethod
    def lower_subdomain(cls, v: str) -> str:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("jurisdiction")
    @classmethod
    def known_jurisdiction(cls, v: str) -> str:
        v = v.strip().upper()
        if v not in settings.PURCHASE_LIMITS:
            raise ValueError(f"No purchase limits configured for jurisdiction '{v}'")
        return v

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, v: str) -> str:
        return _check_timezone(v)


class TenantRename(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()


class TenantComplianceUpdate(BaseModel):
    """Checkout eligibility rules; omitted fields keep their current value."""
    age_verification_required: Optional[bool] = None
    medical_only: Optional[bool] = None
    require_id_scan: Optional[bool] = None


class TenantRead(BaseModel):
    id: str
    name: str
    subdomain: str
    jurisdiction: str
    timezone: str
    age_verification_required: bool
    medical_only: bool
    require_id_scan: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class DispensaryCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    license_number: str = Field(..., min_length=1, max_length=64)


class DispensaryRead(BaseModel):
    id: str
    tenant_id: str
    name: str
    license_number: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

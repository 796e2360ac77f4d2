"""
schemas/compliance.py
---------------------
Pydantic models for compliance events, log queries, quota decisions and
chain verification.

Each event type has a fixed details shape. Details are validated against
the matching model and stored in its JSON form (Decimals as strings), so the
stored payload and the hashed payload are byte-for-byte the same.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Literal, Optional, Type

from pydantic import BaseModel, Field, model_validator

from compliance_api.models.compliance import ComplianceEventType


# ── Details payloads ─────────────────────────────────────────────────────────

class SaleItemDetails(BaseModel):
    product_name: str
    variant_name: Optional[str] = None
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    batch_number: Optional[str] = None
    license_number: Optional[str] = None


class SaleDetails(BaseModel):
    order_id: str
    order_number: str
    items: list[SaleItemDetails]
    subtotal: Decimal
    tax_amount: Decimal
    excise_tax: Decimal
    total: Decimal


class ReturnDetails(BaseModel):
    order_id: str
    order_number: str
    refunded_amount: Decimal
    reason: Optional[str] = None


class InventoryAdjustmentDetails(BaseModel):
    variant_id: str
    old_quantity: Decimal
    new_quantity: Decimal
    reason: str


class InventoryMovementDetails(BaseModel):
    """INVENTORY_RECEIVED and INVENTORY_DESTROYED."""
    variant_id: str
    quantity: Decimal
    batch_number: Optional[str] = None
    manifest_number: Optional[str] = None
    reason: Optional[str] = None


class ProductRecallDetails(BaseModel):
    product_id: str
    batch_number: str
    reason: str


class IdVerificationDetails(BaseModel):
    customer_id: str
    verification_type: str
    verified: bool


class PurchaseLimitCheckDetails(BaseModel):
    customer_id: str
    daily_total: Decimal
    requested_weight: Decimal
    within_limit: bool
    limit: Decimal
    product_category: str
    jurisdiction: str


EVENT_DETAILS: Dict[ComplianceEventType, Type[BaseModel]] = {
    ComplianceEventType.SALE: SaleDetails,
    ComplianceEventType.RETURN: ReturnDetails,
    ComplianceEventType.INVENTORY_ADJUSTMENT: InventoryAdjustmentDetails,
    ComplianceEventType.INVENTORY_RECEIVED: InventoryMovementDetails,
    ComplianceEventType.INVENTORY_DESTROYED: InventoryMovementDetails,
    ComplianceEventType.PRODUCT_RECALL: ProductRecallDetails,
    ComplianceEventType.ID_VERIFICATION: IdVerificationDetails,
    ComplianceEventType.PURCHASE_LIMIT_CHECK: PurchaseLimitCheckDetails,
}

# Events produced by the order flow and the quota checker, not by clients.
SYSTEM_EVENTS = {
    ComplianceEventType.SALE,
    ComplianceEventType.RETURN,
    ComplianceEventType.PURCHASE_LIMIT_CHECK,
}


def normalise_details(event_type: ComplianceEventType, details: Any) -> Dict[str, Any]:
    """Validate details for the event type and return its JSON-safe form."""
    model = EVENT_DETAILS[event_type]
    if isinstance(details, model):
        return details.model_dump(mode="json")
    return model.model_validate(details).model_dump(mode="json")


# ── Requests ─────────────────────────────────────────────────────────────────

class ComplianceEventCreate(BaseModel):
    """Manually recorded event (inventory movements, recalls, ID checks)."""
    dispensary_id: str
    event_type: ComplianceEventType
    details: Dict[str, Any]
    order_id: Optional[str] = None

    @model_validator(mode="after")
    def check_event(self) -> "ComplianceEventCreate":
        if self.event_type in SYSTEM_EVENTS:
            raise ValueError(f"{self.event_type.value} events are recorded by the system")
        normalise_details(self.event_type, self.details)
        return self



class IdVerificationCreate(BaseModel):
    """An ID check performed at the counter."""
    dispensary_id: str
    customer_id: str
    verification_type: str = Field(..., min_length=1, max_length=64, examples=["drivers_license"])
    verified: bool
    date_of_birth: Optional[date] = None


# ── Responses ────────────────────────────────────────────────────────────────

class ComplianceLogRead(BaseModel):
    id: str
    dispensary_id: str
    event_type: ComplianceEventType
    details: Dict[str, Any]
    actor_id: Optional[str]
    order_id: Optional[str]
    created_at: datetime
    sequence: int
    previous_hash: str
    hash: str

    model_config = {"from_attributes": True}


class ComplianceLogPage(BaseModel):
    items: list[ComplianceLogRead]
    total: int
    page: int
    limit: int
    total_pages: int


class ChainVerification(BaseModel):
    dispensary_id: str
    valid: bool
    entries_checked: int
    first_invalid_id: Optional[str] = None
    first_invalid_sequence: Optional[int] = None
    reason: Optional[str] = None


class PurchaseLimitResult(BaseModel):
    within_limit: bool
    daily_total: Decimal
    limit: Decimal
    requested_weight: Decimal
    product_category: str
    jurisdiction: str
    window_date: date


Period = Literal["day", "week", "month"]

"""
schemas/order.py
----------------
Pydantic models for order placement and order responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class OrderItemCreate(BaseModel):
    product_name: str = Field(..., min_length=1, max_length=255)
    variant_name: Optional[str] = None
    product_category: str = Field(default="flower", max_length=32)
    quantity: int = Field(..., ge=1)
    weight_grams: Optional[Decimal] = Field(default=None, gt=0)
    unit_price: Decimal = Field(..., ge=0)
    batch_number: Optional[str] = None
    license_number: Optional[str] = None


class OrderCreate(BaseModel):
    dispensary_id: str
    customer_id: Optional[str] = Field(
        default=None, description="Required when staff place an order for a customer"
    )
    items: list[OrderItemCreate] = Field(..., min_length=1)
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=1)
    excise_rate: Decimal = Field(default=Decimal("0"), ge=0, le=1)


class OrderRefund(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class OrderItemRead(BaseModel):
    product_name: str
    variant_name: Optional[str]
    product_category: str
    quantity: int
    weight_grams: Optional[Decimal]
    unit_price: Decimal
    line_total: Decimal
    batch_number: Optional[str]
    license_number: Optional[str]

    model_config = {"from_attributes": True}


class OrderRead(BaseModel):
    id: str
    order_number: str
    dispensary_id: str
    customer_id: str
    status: str
    subtotal: Decimal
    tax_amount: Decimal
    excise_tax: Decimal
    total: Decimal
    created_at: datetime
    completed_at: Optional[datetime]
    items: list[OrderItemRead]

    model_config = {"from_attributes": True}

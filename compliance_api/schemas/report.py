"""
schemas/report.py
-----------------
Daily sales report and analytics responses.

DailySalesReportRead deliberately omits row timestamps: regenerating a
report from unchanged orders must serialise identically.
"""

from datetime import date
from decimal import Decimal
from typing import Dict

from pydantic import BaseModel


class DailyReportRequest(BaseModel):
    dispensary_id: str
    date: date


class CategorySales(BaseModel):
    count: int
    revenue: Decimal


class DailySalesReportRead(BaseModel):
    id: str
    dispensary_id: str
    report_date: date
    total_orders: int
    total_revenue: Decimal
    total_tax: Decimal
    total_excise_tax: Decimal
    total_items_sold: int
    average_order_value: Decimal
    unique_customers: int
    cancelled_orders: int
    refunded_amount: Decimal
    sales_by_category: Dict[str, CategorySales]

    model_config = {"from_attributes": True}


class RevenueBucket(BaseModel):
    period: str
    order_count: int
    total_revenue: Decimal
    total_tax: Decimal
    total_excise_tax: Decimal


class TopProduct(BaseModel):
    product_name: str
    total_quantity: int
    total_revenue: Decimal

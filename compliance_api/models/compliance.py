"""
models/compliance.py
--------------------
Compliance log entries and persisted daily sales reports.

ComplianceLogEntry is append-only. Rows form a hash chain per dispensary:
sequence counts from 1, previous_hash holds the prior entry's hash ("" for
the first) and hash covers every stored field plus previous_hash. Nothing in
this codebase updates or deletes an entry; the unique (dispensary_id,
sequence) constraint rejects a forked chain.

DailySalesReport is one row per (dispensary, report_date), overwritten in
place each time the report is regenerated.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from compliance_api.db.base import Base, Money, TimestampMixin, new_id


class ComplianceEventType(str, PyEnum):
    SALE = "sale"
    RETURN = "return"
    INVENTORY_ADJUSTMENT = "inventory_adjustment"
    INVENTORY_RECEIVED = "inventory_received"
    INVENTORY_DESTROYED = "inventory_destroyed"
    PRODUCT_RECALL = "product_recall"
    ID_VERIFICATION = "id_verification"
    PURCHASE_LIMIT_CHECK = "purchase_limit_check"


class ComplianceLogEntry(Base):
    __tablename__ = "compliance_logs"
    __table_args__ = (
        UniqueConstraint("dispensary_id", "sequence", name="uq_compliance_logs_chain"),
        Index("ix_compliance_logs_dispensary_created", "dispensary_id", "created_at"),
        Index("ix_compliance_logs_event_created", "event_type", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    dispensary_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("dispensaries.id", ondelete="RESTRICT"), nullable=False
    )
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    actor_id: Mapped[Optional[str]] = mapped_column(String(36))
    order_id: Mapped[Optional[str]] = mapped_column(String(36), index=True)
    # Assigned by the application before hashing, never by the database.
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_hash: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ComplianceLogEntry id={self.id} seq={self.sequence} "
            f"type={self.event_type}>"
        )


class DailySalesReport(Base, TimestampMixin):
    __tablename__ = "daily_sales_reports"
    __table_args__ = (
        UniqueConstraint("dispensary_id", "report_date", name="uq_daily_sales_reports_day"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    dispensary_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("dispensaries.id", ondelete="CASCADE"), nullable=False
    )
    report_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_orders: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_revenue: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    total_tax: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    total_excise_tax: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    total_items_sold: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    average_order_value: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    unique_customers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cancelled_orders: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    refunded_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    # {"flower": {"count": 3, "revenue": "120.00"}, ...}
    sales_by_category: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<DailySalesReport dispensary={self.dispensary_id} date={self.report_date}>"

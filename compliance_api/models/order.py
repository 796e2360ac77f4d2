"""
models/order.py
---------------
Order and line-item ORM models.

Orders belong to the commerce side of the platform; the compliance
components only read them (quota checks, daily reports, analytics) and the
minimal order service drives the status transitions that produce audit
events. tenant_id is denormalised next to dispensary_id to allow efficient
tenant-scoped queries without a JOIN.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from compliance_api.db.base import Base, Grams, Money, TimestampMixin, new_id


class OrderStatus(str, PyEnum):
    pending = "pending"
    confirmed = "confirmed"
    completed = "completed"
    cancelled = "cancelled"
    refunded = "refunded"


class Order(Base, TimestampMixin):
    __tablename__ = "orders"
    __table_args__ = (
        Index("ix_orders_dispensary_created", "dispensary_id", "created_at"),
        Index("ix_orders_customer_created", "dispensary_id", "customer_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    order_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    tenant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    dispensary_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("dispensaries.id", ondelete="CASCADE"), nullable=False
    )
    customer_id: Mapped[str] = mapped_column(String(36), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=OrderStatus.pending.value
    )
    subtotal: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    excise_tax: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.position",
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number} status={self.status}>"


class OrderItem(Base):
    __tablename__ = "order_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    variant_name: Mapped[Optional[str]] = mapped_column(String(255))
    product_category: Mapped[str] = mapped_column(String(32), nullable=False, default="flower")
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    # Total cannabis weight of the line; when absent, quantity is taken as grams.
    weight_grams: Mapped[Optional[Decimal]] = mapped_column(Grams)
    unit_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    line_total: Mapped[Decimal] = mapped_column(Money, nullable=False)
    batch_number: Mapped[Optional[str]] = mapped_column(String(64))
    license_number: Mapped[Optional[str]] = mapped_column(String(64))

    order: Mapped["Order"] = relationship("Order", back_populates="items")

    @property
    def grams(self) -> Decimal:
        if self.weight_grams is not None:
            return Decimal(self.weight_grams)
        return Decimal(self.quantity)

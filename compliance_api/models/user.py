"""
models/user.py
--------------
User ORM model with roles and tenant binding.

Role design:
  - 'admin':    Manages staff, dispensaries, reports and the audit trail.
  - 'staff':    Budtenders: check limits, place/complete orders, record events.
  - 'customer': Places their own orders.

The hashed_password column stores bcrypt hashes only; plain text is
never stored and never logged.

date_of_birth and id_verified_at feed the checkout eligibility check;
id_verified_at is set when staff record a successful ID verification.
"""

from datetime import date, datetime
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import Date, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from compliance_api.db.base import Base, TimestampMixin, new_id


class UserRole(str, PyEnum):
    admin = "admin"
    staff = "staff"
    customer = "customer"


class User(Base, TimestampMixin):
    __tablename__ = "users"
    # The same person may hold accounts with several operators.
    __table_args__ = (UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(
        String(320), nullable=False, index=True
    )
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=UserRole.customer.value
    )
    tenant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    id_verified_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="users")  # noqa: F821

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} role={self.role}>"

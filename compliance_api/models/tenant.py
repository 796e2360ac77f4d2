"""
models/tenant.py
----------------
Tenant (dispensary operator) ORM model.

Each tenant is an isolated organisational unit resolved from the request
host's leading label (its subdomain). All data belonging to a tenant is
scoped by tenant_id at the query level: never trust application-level
filtering alone; always include tenant_id in WHERE clauses.

jurisdiction selects the purchase-limit table; timezone defines the
calendar day used for quotas and daily reports.

Compliance config (checked at checkout):
  - age_verification_required: customers need a recorded date of birth and
    the minimum age (21, or 18 for medical-only operators).
  - medical_only: lowers the minimum age to the medical threshold.
  - require_id_scan: the customer's last ID verification must be recent.
"""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from compliance_api.db.base import Base, TimestampMixin, new_id


class Tenant(Base, TimestampMixin):
    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    subdomain: Mapped[str] = mapped_column(String(63), unique=True, nullable=False, index=True)
    jurisdiction: Mapped[str] = mapped_column(String(16), nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False)
    age_verification_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    medical_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    require_id_scan: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Relationships
    users: Mapped[list["User"]] = relationship(  # noqa: F821
        "User", back_populates="tenant", cascade="all, delete-orphan"
    )
    dispensaries: Mapped[list["Dispensary"]] = relationship(  # noqa: F821
        "Dispensary", back_populates="tenant", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} subdomain={self.subdomain}>"

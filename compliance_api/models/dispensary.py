"""
models/dispensary.py
--------------------
A licensed retail location operated by a tenant. Compliance logs, orders
and daily reports are all keyed by dispensary and, through it, by tenant.
"""

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from compliance_api.db.base import Base, TimestampMixin, new_id


class Dispensary(Base, TimestampMixin):
    __tablename__ = "dispensaries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    license_number: Mapped[str] = mapped_column(String(64), nullable=False)
    tenant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="dispensaries")  # noqa: F821

    def __repr__(self) -> str:
        return f"<Dispensary id={self.id} license={self.license_number}>"

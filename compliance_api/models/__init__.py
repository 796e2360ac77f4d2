"""
models/__init__.py
------------------
Re-export all models so create_tables.py (and Alembic's env.py) can import
Base and discover all tables via a single import:

    from compliance_api.models import Base
"""

from compliance_api.db.base import Base
from compliance_api.models.compliance import (
    ComplianceEventType,
    ComplianceLogEntry,
    DailySalesReport,
)
from compliance_api.models.dispensary import Dispensary
from compliance_api.models.order import Order, OrderItem, OrderStatus
from compliance_api.models.tenant import Tenant
from compliance_api.models.user import User, UserRole

__all__ = [
    "Base",
    "ComplianceEventType",
    "ComplianceLogEntry",
    "DailySalesReport",
    "Dispensary",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Tenant",
    "User",
    "UserRole",
]

"""
core/exceptions.py
------------------
Error taxonomy for tenancy, compliance and order flows.

Every error carries the HTTP status it maps to and a JSON-safe payload that
is merged into the response body by the handler registered in main.py.
Services raise these; routes never catch them to hide a failure.
"""

from typing import Any, Dict, Optional

from fastapi import status


class ComplianceError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail: str = "Compliance error"

    def __init__(self, detail: Optional[str] = None, **payload: Any) -> None:
        self.detail = detail or self.detail
        self.payload: Dict[str, Any] = payload
        super().__init__(self.detail)

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.detail, **self.payload}


# ── Tenancy ──────────────────────────────────────────────────────────────────

class TenantNotIdentified(ComplianceError):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Tenant could not be identified from the request host"


class TenantNotFound(ComplianceError):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Tenant not found"

    def __init__(self, subdomain: str) -> None:
        super().__init__(subdomain=subdomain)


class TenantMismatch(ComplianceError):
    status_code = status.HTTP_403_FORBIDDEN
    detail = "Credentials were issued for a different tenant"


class DispensaryNotFound(ComplianceError):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Dispensary not found"

    def __init__(self, dispensary_id: str) -> None:
        super().__init__(dispensary_id=dispensary_id)


# ── Orders ───────────────────────────────────────────────────────────────────

class OrderNotFound(ComplianceError):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Order not found"

    def __init__(self, order_id: str) -> None:
        super().__init__(order_id=order_id)


class InvalidOrderTransition(ComplianceError):
    status_code = status.HTTP_409_CONFLICT
    detail = "Order cannot move to the requested status"

    def __init__(self, order_id: str, current: str, requested: str) -> None:
        super().__init__(order_id=order_id, current=current, requested=requested)


class PurchaseLimitExceeded(ComplianceError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    detail = "Purchase limit exceeded"

    def __init__(self, daily_total, requested_weight, limit, product_category: str) -> None:
        super().__init__(
            daily_total=str(daily_total),
            requested_weight=str(requested_weight),
            limit=str(limit),
            product_category=product_category,
        )


class UnknownPurchaseLimit(ComplianceError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    detail = "No purchase limit configured"

    def __init__(self, jurisdiction: str, product_category: str) -> None:
        super().__init__(jurisdiction=jurisdiction, product_category=product_category)


# ── Checkout eligibility ─────────────────────────────────────────────────────

class CustomerNotEligible(ComplianceError):
    status_code = status.HTTP_403_FORBIDDEN
    detail = "Customer is not eligible to purchase"


class DateOfBirthRequired(CustomerNotEligible):
    detail = "Date of birth required"

    def __init__(self, customer_id: str) -> None:
        super().__init__(customer_id=customer_id)


class UnderMinimumAge(CustomerNotEligible):
    def __init__(self, customer_id: str, minimum_age: int) -> None:
        super().__init__(
            f"Must be {minimum_age}+ to purchase",
            customer_id=customer_id,
            minimum_age=minimum_age,
        )


class IdVerificationRequired(CustomerNotEligible):
    detail = "ID verification required"

    def __init__(self, customer_id: str) -> None:
        super().__init__(customer_id=customer_id)


class IdVerificationExpired(CustomerNotEligible):
    detail = "ID verification expired"

    def __init__(self, customer_id: str, verified_at: str, max_age_days: int) -> None:
        super().__init__(
            customer_id=customer_id, verified_at=verified_at, max_age_days=max_age_days
        )


# ── Audit / reporting ────────────────────────────────────────────────────────

class AuditWriteFailure(ComplianceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail = "Compliance event could not be recorded"


class ReportGenerationFailure(ComplianceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    detail = "Daily report generation failed; safe to retry"

"""
api/routes/orders.py
--------------------
Order endpoints that drive the compliance flow.

POST /orders                  - Place an order (purchase limits enforced).
GET  /orders/{order_id}       - Read an order.
POST /orders/{order_id}/confirm
POST /orders/{order_id}/complete - Records the SALE compliance event.
POST /orders/{order_id}/cancel
POST /orders/{order_id}/refund   - Records the RETURN compliance event.
"""

from fastapi import APIRouter, HTTPException, status

from compliance_api.dependencies import CurrentUser, DbSession, StaffUser, TenantCtx
from compliance_api.models.user import UserRole
from compliance_api.schemas.order import OrderCreate, OrderRead, OrderRefund
from compliance_api.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post(
    "",
    response_model=OrderRead,
    status_code=status.HTTP_201_CREATED,
    summary="Place an order",
)
async def place_order(
    body: OrderCreate, ctx: TenantCtx, db: DbSession, current_user: CurrentUser
) -> OrderRead:
    """
    Customers order for themselves; staff must name the customer.
    Responds 422 with the daily total and limit when the purchase would
    exceed the customer's limit for today.
    """
    if current_user.role == UserRole.customer.value:
        customer_id = current_user.id
    elif body.customer_id:
        customer_id = body.customer_id
    else:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="customer_id is required when staff place an order",
        )
    order = await OrderService.place_order(
        db, ctx, body, customer_id=customer_id, actor_id=current_user.id
    )
    return OrderRead.model_validate(order)


@router.get("/{order_id}", response_model=OrderRead, summary="Get an order")
async def get_order(
    order_id: str, ctx: TenantCtx, db: DbSession, current_user: CurrentUser
) -> OrderRead:
    order = await OrderService.get_order(db, ctx, order_id)
    if current_user.role == UserRole.customer.value and order.customer_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return OrderRead.model_validate(order)


@router.post("/{order_id}/confirm", response_model=OrderRead, summary="Confirm an order")
async def confirm_order(
    order_id: str, ctx: TenantCtx, db: DbSession, staff: StaffUser
) -> OrderRead:
    return OrderRead.model_validate(await OrderService.confirm_order(db, ctx, order_id))


@router.post("/{order_id}/complete", response_model=OrderRead, summary="Complete a sale")
async def complete_order(
    order_id: str, ctx: TenantCtx, db: DbSession, staff: StaffUser
) -> OrderRead:
    order = await OrderService.complete_order(db, ctx, order_id, actor_id=staff.id)
    return OrderRead.model_validate(order)


@router.post("/{order_id}/cancel", response_model=OrderRead, summary="Cancel an order")
async def cancel_order(
    order_id: str, ctx: TenantCtx, db: DbSession, staff: StaffUser
) -> OrderRead:
    return OrderRead.model_validate(await OrderService.cancel_order(db, ctx, order_id))


@router.post("/{order_id}/refund", response_model=OrderRead, summary="Refund a sale")
async def refund_order(
    order_id: str, body: OrderRefund, ctx: TenantCtx, db: DbSession, staff: StaffUser
) -> OrderRead:
    order = await OrderService.refund_order(
        db, ctx, order_id, actor_id=staff.id, reason=body.reason
    )
    return OrderRead.model_validate(order)

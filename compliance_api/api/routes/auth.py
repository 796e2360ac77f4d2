"""
api/routes/auth.py
------------------
Authentication endpoints. All are host-scoped: the tenant is the one the
request host resolves to, never a value from the body.

POST /register  - Customer self-registration on the tenant's storefront.
POST /login     - Exchange credentials for a JWT access token.
                  Accepts OAuth2 form data (Swagger UI).
GET  /me        - Return the authenticated user's profile.
"""

from datetime import timedelta
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm

from compliance_api.core.config import settings
from compliance_api.core.security import create_access_token
from compliance_api.dependencies import CurrentUser, DbSession, TenantCtx
from compliance_api.schemas.user import TokenResponse, UserRead, UserRegister
from compliance_api.services.user_service import UserService

router = APIRouter(tags=["Authentication"])


@router.post(
    "/register",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    summary="Register a customer account",
)
async def register(body: UserRegister, ctx: TenantCtx, db: DbSession) -> UserRead:
    try:
        user = await UserService.register_user(db, ctx, body)
        return UserRead.model_validate(user)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Login and receive a JWT access token",
)
async def login(
    ctx: TenantCtx,
    # The OAuth2 "username" field carries the email address.
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    db: DbSession,
) -> TokenResponse:
    """
    Authenticate with email + password and receive a signed JWT that is
    only valid on this tenant's host.

    Via curl: send as form data (not JSON):
        -d "username=you@email.com&password=yourpassword"
    """
    user = await UserService.authenticate(db, ctx, form_data.username, form_data.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    token = create_access_token(
        subject=user.id,
        tenant_id=user.tenant_id,
        role=user.role,
        expires_delta=expires,
    )
    return TokenResponse(
        access_token=token,
        token_type="bearer",
        expires_in=int(expires.total_seconds()),
        user=UserRead.model_validate(user),
    )


@router.get("/me", response_model=UserRead, summary="Get the currently authenticated user")
async def get_me(current_user: CurrentUser) -> UserRead:
    return UserRead.model_validate(current_user)

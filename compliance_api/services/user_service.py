"""
services/user_service.py
------------------------
Business logic for user registration, authentication, and listing.

All queries are scoped by the tenant resolved from the request host to
enforce strict data isolation: an email registered with one operator does
not authenticate against another.
"""

from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from compliance_api.core.context import TenantContext
from compliance_api.core.logging import get_logger
from compliance_api.core.security import hash_password, verify_password
from compliance_api.models.user import User, UserRole
from compliance_api.schemas.user import UserCreate, UserRegister

logger = get_logger(__name__)


class UserService:

    @staticmethod
    async def _create(
        db: AsyncSession,
        ctx: TenantContext,
        email: str,
        password: str,
        role: UserRole,
        date_of_birth: date | None = None,
    ) -> User:
        user = User(
            email=email.lower(),
            hashed_password=hash_password(password),
            role=role.value,
            tenant_id=ctx.tenant_id,
            date_of_birth=date_of_birth,
        )
        db.add(user)
        try:
            await db.flush()
            await db.refresh(user)
            return user
        except IntegrityError:
            await db.rollback()
            raise ValueError(f"Email '{email}' is already registered")

    @staticmethod
    async def register_user(db: AsyncSession, ctx: TenantContext, data: UserRegister) -> User:
        """
        Storefront self-registration: creates a 'customer' account in the
        host's tenant. Raises ValueError on duplicate email.
        """
        user = await UserService._create(
            db, ctx, data.email, data.password, UserRole.customer, data.date_of_birth
        )
        logger.info("Customer registered", user_id=user.id)
        return user

    @staticmethod
    async def create_user_by_admin(
        db: AsyncSession, ctx: TenantContext, data: UserCreate
    ) -> User:
        """Admin-initiated user creation; admins can assign any role."""
        user = await UserService._create(db, ctx, data.email, data.password, data.role)
        logger.info("Admin created user", new_user_id=user.id, role=user.role)
        return user

    @staticmethod
    async def authenticate(
        db: AsyncSession, ctx: TenantContext, email: str, password: str
    ) -> User | None:
        """
        Verify credentials within the tenant and return the User if valid.
        Email lookup is case-insensitive.
        """
        result = await db.execute(
            select(User).where(User.tenant_id == ctx.tenant_id, User.email == email.lower())
        )
        user = result.scalar_one_or_none()
        if user is None or not verify_password(password, user.hashed_password):
            return None
        return user

    @staticmethod
    async def get_user(db: AsyncSession, ctx: TenantContext, user_id: str) -> User | None:
        result = await db.execute(
            select(User).where(User.id == user_id, User.tenant_id == ctx.tenant_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def list_users_in_tenant(db: AsyncSession, ctx: TenantContext) -> list[User]:
        result = await db.execute(
            select(User).where(User.tenant_id == ctx.tenant_id).order_by(User.created_at)
        )
        return list(result.scalars().all())

"""
Shared pytest fixtures for all tests.

Tests run against an in-memory SQLite database through aiosqlite. The
application's get_db dependency is overridden to use the same engine, so
HTTP tests and service tests see the same data.
"""

import os
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

# Settings are read at import time; set test values before importing the app.
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DEFAULT_JURISDICTION", "NY")
os.environ.setdefault("DEFAULT_TIMEZONE", "America/New_York")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from compliance_api.core.context import TenantContext
from compliance_api.core.security import create_access_token, hash_password
from compliance_api.db.session import get_db
from compliance_api.models import Base, Dispensary, Order, OrderItem, Tenant, User, UserRole

# 12:00 in New York on 2026-02-10.
NOON_FEB_10 = datetime(2026, 2, 10, 17, 0, tzinfo=timezone.utc)


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest_asyncio.fixture
async def async_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(async_engine) -> async_sessionmaker:
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ============================================================================
# TENANT FIXTURES
# ============================================================================


async def _make_tenant(session: AsyncSession, name: str, subdomain: str) -> Tenant:
    tenant = Tenant(
        name=name, subdomain=subdomain, jurisdiction="NY", timezone="America/New_York"
    )
    session.add(tenant)
    await session.commit()
    return tenant


def context_for(tenant: Tenant) -> TenantContext:
    return TenantContext(
        tenant_id=tenant.id,
        subdomain=tenant.subdomain,
        jurisdiction=tenant.jurisdiction,
        timezone=tenant.timezone,
    )


@pytest_asyncio.fixture
async def tenant(db_session) -> Tenant:
    return await _make_tenant(db_session, "Green Leaf Collective", "green-leaf")


@pytest_asyncio.fixture
async def other_tenant(db_session) -> Tenant:
    return await _make_tenant(db_session, "High Street Cannabis", "high-street")


@pytest.fixture
def ctx(tenant) -> TenantContext:
    return context_for(tenant)


@pytest.fixture
def other_ctx(other_tenant) -> TenantContext:
    return context_for(other_tenant)


@pytest_asyncio.fixture
async def dispensary(db_session, tenant) -> Dispensary:
    dispensary = Dispensary(tenant_id=tenant.id, name="Downtown", license_number="OCM-AUCP-0001")
    db_session.add(dispensary)
    await db_session.commit()
    return dispensary


@pytest.fixture
def make_order(db_session, tenant, dispensary):
    """Factory for orders written directly, bypassing placement checks."""
    counter = {"n": 0}

    async def _make(
        created_at: datetime,
        total: str,
        status: str = "completed",
        customer_id: str = "customer-1",
        tax: str = "0",
        excise: str = "0",
        items: Optional[list[dict]] = None,
    ) -> Order:
        counter["n"] += 1
        items = items if items is not None else [
            {"product_name": "Blue Dream 3.5g", "quantity": 1, "line_total": total}
        ]
        order = Order(
            order_number=f"ORD-TEST-{counter['n']:04d}",
            tenant_id=tenant.id,
            dispensary_id=dispensary.id,
            customer_id=customer_id,
            status=status,
            subtotal=Decimal(total) - Decimal(tax) - Decimal(excise),
            tax_amount=Decimal(tax),
            excise_tax=Decimal(excise),
            total=Decimal(total),
            created_at=created_at,
            items=[
                OrderItem(
                    position=position,
                    product_name=item["product_name"],
                    product_category=item.get("product_category", "flower"),
                    quantity=item["quantity"],
                    weight_grams=item.get("weight_grams"),
                    unit_price=Decimal(item["line_total"]) / item["quantity"],
                    line_total=Decimal(item["line_total"]),
                    batch_number="B-100",
                    license_number="LIC-1",
                )
                for position, item in enumerate(items)
            ],
        )
        db_session.add(order)
        await db_session.commit()
        return order

    return _make


# ============================================================================
# HTTP FIXTURES
# ============================================================================


@pytest_asyncio.fixture
async def app(session_factory):
    from main import app as fastapi_app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    fastapi_app.dependency_overrides[get_db] = override_get_db
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


def tenant_client(app, subdomain: str) -> AsyncClient:
    return AsyncClient(
        transport=ASGITransport(app=app),
        base_url=f"http://{subdomain}.dispensary.test",
    )


@pytest_asyncio.fixture
async def client(app, tenant) -> AsyncGenerator[AsyncClient, None]:
    async with tenant_client(app, tenant.subdomain) as c:
        yield c


async def make_user(
    session: AsyncSession,
    tenant: Tenant,
    email: str,
    role: UserRole,
    date_of_birth: Optional[date] = date(1990, 5, 1),
    id_verified_at: Optional[datetime] = None,
) -> User:
    user = User(
        email=email,
        hashed_password=hash_password("correct-horse-battery"),
        role=role.value,
        tenant_id=tenant.id,
        date_of_birth=date_of_birth,
        id_verified_at=id_verified_at,
    )
    session.add(user)
    await session.commit()
    return user


def auth_headers(user: User) -> dict:
    token = create_access_token(subject=user.id, tenant_id=user.tenant_id, role=user.role)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def admin_user(db_session, tenant) -> User:
    return await make_user(db_session, tenant, "owner@greenleaf.test", UserRole.admin)


@pytest_asyncio.fixture
async def staff_user(db_session, tenant) -> User:
    return await make_user(db_session, tenant, "budtender@greenleaf.test", UserRole.staff)


@pytest_asyncio.fixture
async def customer_user(db_session, tenant) -> User:
    return await make_user(db_session, tenant, "shopper@example.test", UserRole.customer)


@pytest.fixture
def make_customer(db_session, tenant):
    """Factory for customer accounts with a given date of birth and ID check."""
    counter = {"n": 0}

    async def _make(
        date_of_birth: Optional[date] = date(1990, 5, 1),
        id_verified_at: Optional[datetime] = None,
    ) -> User:
        counter["n"] += 1
        return await make_user(
            db_session, tenant, f"customer-{counter['n']}@example.test", UserRole.customer,
            date_of_birth=date_of_birth, id_verified_at=id_verified_at,
        )

    return _make


@pytest.fixture
def now() -> datetime:
    return NOON_FEB_10


@pytest.fixture
def headers_for():
    return auth_headers


@pytest.fixture
def client_for(app):
    """Client factory for an arbitrary host label."""

    def _client(subdomain: str) -> AsyncClient:
        return tenant_client(app, subdomain)

    return _client

"""
Tests for host-based tenant resolution and the request-scoped TenantContext.
"""

import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest

from compliance_api.core.context import TenantContext, extract_subdomain
from compliance_api.core.exceptions import DispensaryNotFound, TenantNotFound, TenantNotIdentified
from compliance_api.services.tenant_service import DispensaryService, TenantService


class TestExtractSubdomain:
    """Tests for reading the tenant label from a Host header."""

    @pytest.mark.parametrize(
        "host, expected",
        [
            ("green-leaf.example.com", "green-leaf"),
            ("Green-Leaf.Example.com", "green-leaf"),
            ("green-leaf.example.com:8443", "green-leaf"),
            ("green-leaf.localhost", "green-leaf"),
            ("localhost", None),
            ("localhost:8000", None),
            ("", None),
            (None, None),
            ("[::1]:8000", None),
        ],
    )
    def test_extract_subdomain(self, host, expected):
        """Test the leading label is returned only for multi-label hosts."""
        assert extract_subdomain(host) == expected


class TestTenantContext:
    """Tests for local calendar-day arithmetic."""

    def test_context_is_immutable(self):
        """Test a context cannot be reassigned to another tenant."""
        ctx = TenantContext("t", "green-leaf", "NY", "America/New_York")
        with pytest.raises(AttributeError):
            ctx.tenant_id = "someone-else"

    def test_day_bounds_standard_day(self):
        """Test a winter day in New York spans 05:00 to 05:00 UTC."""
        ctx = TenantContext("t", "green-leaf", "NY", "America/New_York")
        start, end = ctx.day_bounds(date(2026, 2, 10))
        assert start == datetime(2026, 2, 10, 5, 0, tzinfo=timezone.utc)
        assert end == datetime(2026, 2, 11, 5, 0, tzinfo=timezone.utc)

    def test_day_bounds_dst_start(self):
        """Test the spring-forward day is 23 hours long."""
        ctx = TenantContext("t", "green-leaf", "NY", "America/New_York")
        start, end = ctx.day_bounds(date(2026, 3, 8))
        assert end - start == timedelta(hours=23)

    def test_local_date_crosses_utc_midnight(self):
        """Test 02:00 UTC is still the previous day in New York."""
        ctx = TenantContext("t", "green-leaf", "NY", "America/New_York")
        at = datetime(2026, 2, 11, 2, 0, tzinfo=timezone.utc)
        assert ctx.local_date(at) == date(2026, 2, 10)

    def test_range_bounds_inclusive(self):
        """Test a two-day range ends at the midnight after the second day."""
        ctx = TenantContext("t", "green-leaf", "NY", "America/New_York")
        start, end = ctx.range_bounds(date(2026, 2, 9), date(2026, 2, 10))
        assert start == datetime(2026, 2, 9, 5, 0, tzinfo=timezone.utc)
        assert end == datetime(2026, 2, 11, 5, 0, tzinfo=timezone.utc)


class TestResolve:
    """Tests for TenantService.resolve."""

    @pytest.mark.asyncio
    async def test_resolve_known_subdomain(self, db_session, tenant):
        """Test a known host resolves to its tenant."""
        ctx = await TenantService.resolve(db_session, "green-leaf.example.com")
        assert ctx.tenant_id == tenant.id
        assert ctx.subdomain == "green-leaf"
        assert ctx.jurisdiction == "NY"
        assert ctx.timezone == "America/New_York"

    @pytest.mark.asyncio
    async def test_resolve_single_label_host(self, db_session, tenant):
        """Test a bare host cannot identify a tenant."""
        with pytest.raises(TenantNotIdentified):
            await TenantService.resolve(db_session, "localhost")

    @pytest.mark.asyncio
    async def test_resolve_unknown_subdomain(self, db_session, tenant):
        """Test an unknown label raises TenantNotFound naming the label."""
        with pytest.raises(TenantNotFound) as exc_info:
            await TenantService.resolve(db_session, "unknown.example.com")
        assert exc_info.value.payload == {"subdomain": "unknown"}

    @pytest.mark.asyncio
    async def test_foreign_dispensary_not_found(self, db_session, ctx, other_ctx, dispensary):
        """Test a dispensary is invisible from another tenant's context."""
        found = await DispensaryService.get_dispensary(db_session, ctx, dispensary.id)
        assert found.id == dispensary.id
        with pytest.raises(DispensaryNotFound):
            await DispensaryService.get_dispensary(db_session, other_ctx, dispensary.id)


class TestResolveOverHttp:
    """Tests for the tenant dependency as seen by clients."""

    @pytest.mark.asyncio
    async def test_unknown_host_returns_404(self, client_for, tenant):
        """Test a request to an unknown subdomain is rejected."""
        async with client_for("unknown") as client:
            response = await client.get("/tenant")
        assert response.status_code == 404
        assert response.json()["subdomain"] == "unknown"

    @pytest.mark.asyncio
    async def test_bare_host_returns_404(self, app, tenant):
        """Test a single-label host is rejected."""
        from httpx import ASGITransport, AsyncClient

        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://localhost"
        ) as client:
            response = await client.get("/tenant")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, client):
        """Test the request id header is returned to the caller."""
        response = await client.get("/tenant", headers={"X-Request-ID": "req-123"})
        assert response.status_code == 200
        assert response.headers["X-Request-ID"] == "req-123"

    @pytest.mark.asyncio
    async def test_interleaved_requests_keep_their_tenant(
        self, client_for, tenant, other_tenant
    ):
        """Test concurrent requests for two tenants never see each other's tenant."""
        async with client_for("green-leaf") as green, client_for("high-street") as high:
            responses = await asyncio.gather(
                *[(green if i % 2 == 0 else high).get("/tenant") for i in range(10)]
            )
        for i, response in enumerate(responses):
            assert response.status_code == 200
            expected = tenant if i % 2 == 0 else other_tenant
            assert response.json()["id"] == expected.id
            assert response.json()["subdomain"] == expected.subdomain

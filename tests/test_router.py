"""Multi-tenant routing tests."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest
import structlog
from starlette.responses import Response

from gateway.middleware.pipeline import RequestContext
from gateway.middleware.router import TenantRouter


class _MockHeaders(dict):
    """Dict subclass for mock Starlette headers."""

    def get(self, key, default=None):
        return super().get(key.lower(), default)


def _make_request(host: str = "acme.vekino.site"):
    """Create a mock request with Host header."""
    request = MagicMock()
    request.headers = _MockHeaders({"host": host})
    return request


@pytest.mark.asyncio
async def test_tenant_subdomain_routes_to_tenant_origin():
    context = RequestContext()
    result = await TenantRouter().process_request(_make_request("acme.vekino.site"), context)

    assert result is None
    assert context.tenant_id == "acme"
    assert context.is_local is False
    assert context.origin == "https://acme.vekino.site"


@pytest.mark.asyncio
async def test_platform_domain_routes_to_bare_origin():
    context = RequestContext()
    await TenantRouter().process_request(_make_request("vekino.site"), context)

    assert context.tenant_id is None
    assert context.origin == "https://vekino.site"


@pytest.mark.asyncio
async def test_strips_port_from_host():
    """Port is stripped before parsing."""
    context = RequestContext()
    await TenantRouter().process_request(_make_request("acme.localhost:3000"), context)

    assert context.hostname == "acme.localhost"
    assert context.is_local is True
    assert context.tenant_id == "acme"
    assert context.origin == "https://acme.vekino.site"


@pytest.mark.asyncio
async def test_bare_localhost():
    context = RequestContext()
    await TenantRouter().process_request(_make_request("localhost:3000"), context)

    assert context.tenant_id is None
    assert context.origin == "https://vekino.site"


@pytest.mark.asyncio
async def test_missing_host_header():
    """No Host header means no tenant, platform origin."""
    request = MagicMock()
    request.headers = _MockHeaders({})
    context = RequestContext()

    await TenantRouter().process_request(request, context)

    assert context.hostname == ""
    assert context.tenant_id is None
    assert context.origin == "https://vekino.site"


@pytest.mark.asyncio
async def test_platform_domain_from_settings(monkeypatch):
    monkeypatch.setenv("GATEWAY_PLATFORM_DOMAIN", "example.org")
    monkeypatch.setenv("GATEWAY_ORIGIN_SCHEME", "http")

    context = RequestContext()
    await TenantRouter().process_request(_make_request("acme.localhost"), context)

    assert context.origin == "http://acme.example.org"


@pytest.mark.asyncio
async def test_same_host_same_origin():
    """Two requests from the same host resolve identically."""
    first, second = RequestContext(), RequestContext()
    router = TenantRouter()
    await router.process_request(_make_request("acme.vekino.site"), first)
    await router.process_request(_make_request("acme.vekino.site"), second)

    assert first.origin == second.origin
    assert first.tenant_id == second.tenant_id


@pytest.mark.asyncio
async def test_interleaved_tenants_do_not_leak():
    router = TenantRouter()
    a, b = RequestContext(), RequestContext()
    await router.process_request(_make_request("a.vekino.site"), a)
    await router.process_request(_make_request("b.vekino.site"), b)

    assert a.origin == "https://a.vekino.site"
    assert b.origin == "https://b.vekino.site"


@pytest.mark.asyncio
async def test_binds_log_context():
    context = RequestContext()
    await TenantRouter().process_request(_make_request("acme.vekino.site"), context)

    bound = structlog.contextvars.get_contextvars()
    assert bound["request_id"] == context.request_id
    assert bound["tenant_id"] == "acme"
    assert bound["origin"] == "https://acme.vekino.site"
    structlog.contextvars.clear_contextvars()


# --- Hosts that cannot name a tenant ---


@pytest.mark.asyncio
@pytest.mark.parametrize("host", ["a/.x.y", "a?.x.y", "a#.x.y", "internal-svc/.vekino.site", "a@evil.vekino.site"])
async def test_url_syntax_in_host_never_reaches_origin(host):
    context = RequestContext()
    result = await TenantRouter().process_request(_make_request(host), context)

    assert result is None
    assert context.tenant_id is None
    assert context.origin == "https://vekino.site"


@pytest.mark.asyncio
async def test_localhost_label_on_platform_domain_is_not_a_tenant():
    context = RequestContext()
    await TenantRouter().process_request(_make_request("localhost.vekino.site"), context)

    assert context.is_local is False
    assert context.tenant_id is None
    assert context.origin == "https://vekino.site"


@pytest.mark.asyncio
async def test_origin_outside_platform_is_400(monkeypatch):
    monkeypatch.setattr(
        "gateway.middleware.router.resolve_origin",
        lambda tenant_id, **kwargs: "https://internal-svc/.vekino.site",
    )
    context = RequestContext()
    result = await TenantRouter().process_request(_make_request("acme.vekino.site"), context)

    assert result.status_code == 400
    assert json.loads(result.body) == {
        "error": True,
        "status": 400,
        "message": "Invalid host",
        "request_id": context.request_id,
    }
    structlog.contextvars.clear_contextvars()


# --- Response phase ---


@pytest.mark.asyncio
async def test_response_headers_for_tenant():
    context = RequestContext(tenant_id="acme")
    response = await TenantRouter().process_response(Response(content="ok"), context)

    assert response.headers["x-request-id"] == context.request_id
    assert response.headers["x-subdomain"] == "acme"


@pytest.mark.asyncio
async def test_no_subdomain_header_without_tenant():
    response = await TenantRouter().process_response(Response(content="ok"), RequestContext())

    assert "x-subdomain" not in response.headers
    assert "x-request-id" in response.headers

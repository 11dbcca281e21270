"""Tenant introspection endpoint for the browser application."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Request

from gateway.config.loader import get_settings
from gateway.tenancy.host_parser import is_local_host, parse_tenant, strip_port
from gateway.tenancy.origin import resolve_origin

logger = structlog.get_logger()

router = APIRouter(prefix="/_gateway", tags=["tenant"])


@router.get("/tenant")
async def current_tenant(request: Request):
    """Tenant, origin and known tenants for the requesting host.

    Lets the browser build its tenant context from the same parser the
    gateway routes with.
    """
    settings = get_settings()
    hostname = strip_port(request.headers.get("host", ""))
    is_local = is_local_host(hostname)
    tenant_id = parse_tenant(hostname, is_local)

    directory = getattr(request.app.state, "tenant_directory", None)
    known = await directory.get_tenants() if directory is not None else []

    return {
        "hostname": hostname,
        "local": is_local,
        "tenant_id": tenant_id,
        "origin": resolve_origin(
            tenant_id,
            platform_domain=settings.platform_domain,
            scheme=settings.origin_scheme,
        ),
        "known_tenants": known,
    }

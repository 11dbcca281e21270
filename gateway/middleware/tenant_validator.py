"""Tenant validator middleware: redirects mistyped tenant subdomains."""

from __future__ import annotations

import structlog
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response

from gateway.config.loader import get_settings
from gateway.middleware.pipeline import Middleware, RequestContext
from gateway.tenancy.directory import TenantDirectory
from gateway.tenancy.suggest import find_closest_tenant

logger = structlog.get_logger()


def suggested_host(tenant: str, context: RequestContext, host_header: str, default_local_port: int) -> str:
    """Rebuild the authority for *tenant* on the same platform as the request."""
    if context.is_local:
        port = host_header.rsplit(":", 1)[1] if ":" in host_header else str(default_local_port)
        return f"{tenant}.localhost:{port}"
    base_domain = ".".join(context.hostname.split(".")[-2:])
    return f"{tenant}.{base_domain}"


class TenantValidator(Middleware):
    """Reject requests for tenant ids the platform directory doesn't know.

    - Known tenant, platform tenant, or empty directory: pass through.
    - Unknown tenant close to a known one (edit distance <= 3): 307 to it.
    - Anything else: 404.

    Runs after TenantRouter; an unreachable directory never blocks traffic.
    """

    def __init__(self, directory: TenantDirectory) -> None:
        self._directory = directory

    async def process_request(self, request: Request, context: RequestContext) -> Response | None:
        if not context.tenant_id:
            return None

        known = await self._directory.get_tenants()
        if not known or context.tenant_id in known:
            return None

        closest = find_closest_tenant(context.tenant_id, known)
        if closest is None:
            logger.info("unknown_tenant", tenant=context.tenant_id)
            return JSONResponse(
                status_code=404,
                content={"error": True, "status": 404, "message": "Unknown tenant"},
            )

        settings = get_settings()
        host = suggested_host(
            closest,
            context,
            request.headers.get("host", ""),
            settings.default_local_port,
        )
        target = str(request.url.replace(netloc=host))
        logger.info("unknown_tenant_redirect", tenant=context.tenant_id, suggestion=closest)
        return RedirectResponse(target, status_code=307)

"""Tenant router middleware: resolves Host header to tenant id and backend origin."""

from __future__ import annotations

import structlog
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from gateway.config.loader import get_settings
from gateway.logging_config import bind_request
from gateway.middleware.pipeline import Middleware, RequestContext
from gateway.tenancy.host_parser import is_local_host, parse_tenant, strip_port
from gateway.tenancy.origin import is_platform_origin, resolve_origin

logger = structlog.get_logger()


class TenantRouter(Middleware):
    """Derive the tenant from the Host header and attach its origin to the context.

    Only the host name is consulted, never the path or body. The result is
    computed fresh per request, and an origin outside the platform domain is
    answered with 400 instead of being forwarded.
    """

    async def process_request(self, request: Request, context: RequestContext) -> Response | None:
        settings = get_settings()
        hostname = strip_port(request.headers.get("host", ""))

        context.hostname = hostname
        context.is_local = is_local_host(hostname)
        context.tenant_id = parse_tenant(hostname, context.is_local)
        context.origin = resolve_origin(
            context.tenant_id,
            platform_domain=settings.platform_domain,
            scheme=settings.origin_scheme,
        )
        bind_request(context)

        if not is_platform_origin(context.origin, settings.platform_domain):
            logger.warning("origin_outside_platform", hostname=hostname)
            return JSONResponse(
                status_code=400,
                content={
                    "error": True,
                    "status": 400,
                    "message": "Invalid host",
                    "request_id": context.request_id,
                },
            )

        logger.debug("tenant_resolved", hostname=hostname, local=context.is_local)
        return None

    async def process_response(self, response: Response, context: RequestContext) -> Response:
        response.headers["x-request-id"] = context.request_id
        if context.tenant_id:
            response.headers["x-subdomain"] = context.tenant_id
        return response

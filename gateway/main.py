"""FastAPI tenant gateway application."""

from __future__ import annotations

from contextlib import asynccontextmanager
from uuid import uuid4

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from gateway.api.tenant_routes import router as tenant_router
from gateway.config.loader import get_settings, load_settings, register_reload_handler
from gateway.errors import GatewayError
from gateway.forwarder import forward, raw_subpath, relay
from gateway.health import router as health_router
from gateway.logging_config import setup_logging
from gateway.middleware.pipeline import MiddlewarePipeline, RequestContext
from gateway.middleware.response_sanitizer import ResponseSanitizer
from gateway.middleware.router import TenantRouter
from gateway.middleware.tenant_validator import TenantValidator
from gateway.tenancy.directory import TenantDirectory

logger = structlog.get_logger()

_http_client: httpx.AsyncClient | None = None
_pipeline: MiddlewarePipeline | None = None
_directory: TenantDirectory | None = None


def _build_pipeline(directory: TenantDirectory) -> MiddlewarePipeline:
    """Build the ordered middleware pipeline.

    ResponseSanitizer sits right after TenantRouter so its response hook runs
    after every later stage has had its say.
    """
    settings = get_settings()
    pipeline = MiddlewarePipeline()
    pipeline.add(TenantRouter())        # 0: host -> tenant -> origin
    pipeline.add(ResponseSanitizer())   # 1: strip unsafe response headers
    pipeline.add(TenantValidator(directory), enabled=settings.tenant_validation_enabled)  # 2
    return pipeline


def _build_http_client() -> httpx.AsyncClient:
    settings = get_settings()
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.proxy_timeout, connect=settings.connect_timeout),
        follow_redirects=False,
        limits=httpx.Limits(
            max_connections=settings.upstream_max_connections,
            max_keepalive_connections=settings.upstream_max_keepalive,
        ),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    global _http_client, _pipeline, _directory

    settings = load_settings()
    setup_logging(settings)
    register_reload_handler()

    _http_client = _build_http_client()
    _directory = TenantDirectory(
        _http_client,
        settings.directory_url,
        timeout=settings.directory_timeout,
        cache_ttl=settings.directory_cache_ttl,
    )
    app.state.tenant_directory = _directory
    _pipeline = _build_pipeline(_directory)

    logger.info(
        "gateway_started",
        platform_domain=settings.platform_domain,
        port=settings.listen_port,
    )

    yield

    logger.info("gateway_shutting_down")
    if _http_client:
        await _http_client.aclose()
    logger.info("gateway_stopped")


app = FastAPI(title="Tenant Gateway", lifespan=lifespan)

app.include_router(health_router)
app.include_router(tenant_router)


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    """Surface upstream failures as structured 502/504 responses; 499 when the caller left."""
    error_id = uuid4().hex[:8]
    request_id = getattr(request.state, "request_id", "")
    logger.warning(
        "gateway_error",
        error_id=error_id,
        request_id=request_id,
        kind=exc.__class__.__name__,
        origin=exc.origin,
        detail=exc.detail,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": True,
            "status": exc.status_code,
            "message": exc.message,
            "error_id": error_id,
            "request_id": request_id,
        },
    )


@app.api_route("/api/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"])
async def proxy_request(request: Request, path: str) -> Response:
    """Catch-all tenant gateway handler."""
    if _http_client is None or _pipeline is None:
        return Response(content="Gateway not initialized", status_code=503)

    context = RequestContext()
    request.state.request_id = context.request_id

    short_circuit = await _pipeline.process_request(request, context)
    if short_circuit is not None:
        return await _pipeline.process_response(short_circuit, context)

    upstream = await forward(_http_client, request, context.origin, raw_subpath(request, path))
    context.upstream_status = upstream.status_code
    logger.info(
        "request_forwarded",
        method=request.method,
        path=path,
        upstream_status=context.upstream_status,
    )

    response = relay(upstream)
    return await _pipeline.process_response(response, context)

"""Request pipeline: ordered gateway stages around the upstream hop.

Request hooks run in registration order and may answer the request
themselves (redirect, 404); response hooks run in reverse order on whatever
response leaves the gateway, relayed or locally generated.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from uuid import uuid4

import structlog
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = structlog.get_logger()


@dataclass
class RequestContext:
    """What the gateway knows about one inbound request.

    Built fresh for every request; nothing here outlives it.
    """

    request_id: str = ""
    hostname: str = ""
    is_local: bool = False
    tenant_id: str | None = None
    origin: str = ""
    # None until the tenant backend has answered
    upstream_status: int | None = None

    def __post_init__(self):
        if not self.request_id:
            self.request_id = uuid4().hex[:8]


class Middleware(abc.ABC):
    """One gateway stage."""

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abc.abstractmethod
    async def process_request(self, request: Request, context: RequestContext) -> Response | None:
        """Return None to continue, or a Response to answer without forwarding."""
        ...

    async def process_response(self, response: Response, context: RequestContext) -> Response:
        return response


def stage_failure_response(context: RequestContext) -> JSONResponse:
    """502 in the same shape as an upstream failure."""
    return JSONResponse(
        status_code=502,
        content={
            "error": True,
            "status": 502,
            "message": "The gateway could not route this request.",
            "request_id": context.request_id,
        },
    )


class MiddlewarePipeline:
    """Stages fixed at startup; disabled stages are never registered."""

    def __init__(self) -> None:
        self._stages: list[Middleware] = []

    def add(self, middleware: Middleware, enabled: bool = True) -> None:
        if not enabled:
            logger.info("gateway_stage_disabled", stage=middleware.name)
            return
        self._stages.append(middleware)
        logger.info("gateway_stage_registered", stage=middleware.name, position=len(self._stages) - 1)

    @property
    def names(self) -> list[str]:
        return [stage.name for stage in self._stages]

    async def process_request(self, request: Request, context: RequestContext) -> Response | None:
        """Run request hooks in order until one answers.

        A stage that raises answers with a 502; the request is never forwarded
        with a half-filled context.
        """
        for stage in self._stages:
            try:
                result = await stage.process_request(request, context)
            except Exception:
                logger.exception("gateway_stage_request_error", stage=stage.name)
                return stage_failure_response(context)
            if result is not None:
                logger.info("gateway_stage_answered", stage=stage.name, status_code=result.status_code)
                return result
        return None

    async def process_response(self, response: Response, context: RequestContext) -> Response:
        """Run response hooks in reverse order.

        A failing hook is logged and skipped so the caller still gets the
        response the other stages produced.
        """
        for stage in reversed(self._stages):
            try:
                response = await stage.process_response(response, context)
            except Exception:
                logger.exception("gateway_stage_response_error", stage=stage.name)
        return response

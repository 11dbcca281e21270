"""structlog setup for the gateway.

Every event carries ``request_id``, ``tenant_id`` and ``origin``: bound per
request by the tenant router, empty outside a request (startup, directory
refreshes), so log queries can always filter on them.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from gateway.config.loader import GatewaySettings
    from gateway.middleware.pipeline import RequestContext

REQUEST_FIELDS = ("request_id", "tenant_id", "origin")

# These log every upstream call at INFO; the gateway logs its own hops
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore")


def _rename_logger_to_module(
    logger: logging.Logger, method_name: str, event_dict: dict
) -> dict:
    if "logger" in event_dict:
        event_dict["module"] = event_dict.pop("logger")
    return event_dict


def _default_request_fields(
    logger: logging.Logger, method_name: str, event_dict: dict
) -> dict:
    for field in REQUEST_FIELDS:
        event_dict.setdefault(field, "")
    return event_dict


def bind_request(context: RequestContext) -> None:
    """Bind one request's routing result to every event logged while serving it."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=context.request_id,
        tenant_id=context.tenant_id or "",
        origin=context.origin,
    )


def _renderer(json_format: bool) -> structlog.types.Processor:
    if json_format:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging(settings: GatewaySettings) -> None:
    """Route structlog and stdlib logging through one stdout handler.

    ``log_level`` and ``log_json`` come from the gateway settings.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _default_request_fields,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            _rename_logger_to_module,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(settings.log_json),
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

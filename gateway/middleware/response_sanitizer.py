"""Response sanitizer middleware: strips unsafe headers before relaying.

Two independent rules, both remove-only and idempotent:

1. Set-Cookie on 4xx. A backend answering 401/403 for an expired or
   unauthorised call may also clear the session cookie; relaying that would
   log the user out of the tenant even when the failure is transient or a
   plain permission error. Under the default ``strip_all`` policy every
   Set-Cookie on a 4xx is dropped, which also suppresses legitimate clearing
   (e.g. a logout answered with 400). ``strip_clearing`` drops only clearing
   directives; ``off`` disables the rule.

2. Content-Encoding the browser cannot decode (zstd by default). Only the
   header is removed; the body is relayed as-is. This is correct only when
   the bytes on the wire are not actually in that encoding, i.e. the backend
   negotiated a supported encoding (or none) and merely mislabelled the
   response. It is a precondition on the backend, not something enforced here.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

import structlog
from starlette.datastructures import MutableHeaders
from starlette.requests import Request
from starlette.responses import Response

from gateway.config.loader import get_settings
from gateway.middleware.pipeline import Middleware, RequestContext

logger = structlog.get_logger()

STRIP_ALL = "strip_all"
STRIP_CLEARING = "strip_clearing"
OFF = "off"


def is_client_error(status_code: int) -> bool:
    return 400 <= status_code <= 499


def is_clearing_cookie(set_cookie: str) -> bool:
    """True when a Set-Cookie value deletes the cookie rather than setting it."""
    pair, _, attrs = set_cookie.partition(";")
    _, _, value = pair.partition("=")
    if not value.strip().strip('"'):
        return True

    for attr in attrs.split(";"):
        key, _, raw = attr.strip().partition("=")
        key = key.strip().lower()
        raw = raw.strip()
        if key == "max-age":
            try:
                if int(raw) <= 0:
                    return True
            except ValueError:
                continue
        elif key == "expires":
            try:
                expires = parsedate_to_datetime(raw)
            except (TypeError, ValueError):
                continue
            if expires.tzinfo is None:
                expires = expires.replace(tzinfo=timezone.utc)
            if expires <= datetime.now(timezone.utc):
                return True
    return False


def encoding_tokens(content_encoding: str) -> list[str]:
    return [token.strip().lower() for token in content_encoding.split(",") if token.strip()]


def sanitize_headers(
    status_code: int,
    headers: MutableHeaders,
    *,
    cookie_policy: str = STRIP_ALL,
    unsupported_encodings: Iterable[str] = ("zstd",),
) -> list[str]:
    """Remove unsafe headers in place. Returns the header names touched.

    Never adds a header, and a second call on the result removes nothing.
    """
    removed: list[str] = []

    if cookie_policy != OFF and is_client_error(status_code) and "set-cookie" in headers:
        cookies = headers.getlist("set-cookie")
        if cookie_policy == STRIP_CLEARING:
            kept = [c for c in cookies if not is_clearing_cookie(c)]
        else:
            kept = []
        if len(kept) != len(cookies):
            del headers["set-cookie"]
            for cookie in kept:
                headers.append("set-cookie", cookie)
            removed.append("set-cookie")

    blocked = {token.lower() for token in unsupported_encodings}
    content_encoding = headers.get("content-encoding")
    if content_encoding is not None and blocked.intersection(encoding_tokens(content_encoding)):
        del headers["content-encoding"]
        removed.append("content-encoding")

    return removed


class ResponseSanitizer(Middleware):
    """Apply :func:`sanitize_headers` to every response leaving the gateway."""

    async def process_request(self, request: Request, context: RequestContext) -> Response | None:
        return None

    async def process_response(self, response: Response, context: RequestContext) -> Response:
        settings = get_settings()
        removed = sanitize_headers(
            response.status_code,
            response.headers,
            cookie_policy=settings.cookie_strip_policy,
            unsupported_encodings=settings.unsupported_encodings,
        )
        if removed:
            logger.info(
                "response_headers_stripped",
                headers=removed,
                status_code=response.status_code,
                relayed=context.upstream_status is not None,
                policy=settings.cookie_strip_policy,
            )
        return response

"""Request forwarder: relays an inbound request to a tenant backend origin.

Outbound request: same method, ``origin + /api/ + path + ?query``, inbound
headers minus ``Host`` and hop-by-hop headers, ``Cookie`` re-joined from
its name=value pairs (count, order and values kept), and the raw body bytes
(none for GET/HEAD). A client that disconnects while the backend is still
thinking cancels the upstream call.

Outbound response: relayed as a byte stream with redirects left for the
browser to follow.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable

import httpx
import structlog
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import StreamingResponse

from gateway.errors import (
    ClientDisconnectedError,
    GatewayError,
    MalformedUpstreamResponseError,
    UpstreamTimeoutError,
    UpstreamUnreachableError,
)

logger = structlog.get_logger()

HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
})

# Recomputed on the outbound hop
_REBUILT_HEADERS = frozenset({"host", "cookie", "content-length"})

BODYLESS_METHODS = frozenset({"GET", "HEAD"})

API_PREFIX = "/api/"


def build_target_url(origin: str, path: str, query: str = "") -> str:
    url = f"{origin.rstrip('/')}{API_PREFIX}{path.lstrip('/')}"
    if query:
        url = f"{url}?{query}"
    return url


def raw_subpath(request: Request, fallback: str) -> str:
    """Path below ``/api/`` exactly as the client sent it (still percent-encoded)."""
    raw = request.scope.get("raw_path")
    if raw:
        raw_path = raw.decode("latin-1")
        if raw_path.startswith(API_PREFIX):
            return raw_path[len(API_PREFIX):]
    return fallback


def parse_cookie_pairs(header_values: Iterable[str]) -> list[tuple[str, str]]:
    """Split ``Cookie`` header values into ``(name, value)`` pairs.

    Order and duplicates are kept and values are not unquoted. A segment
    without ``=`` comes back with an empty name and the segment as its value.
    """
    pairs: list[tuple[str, str]] = []
    for header in header_values:
        for segment in header.split(";"):
            segment = segment.strip()
            if not segment:
                continue
            name, sep, value = segment.partition("=")
            if sep:
                pairs.append((name.strip(), value.strip()))
            else:
                pairs.append(("", segment))
    return pairs


def rebuild_cookie_header(pairs: Iterable[tuple[str, str]]) -> str | None:
    """Join cookie pairs as ``a=1; b=2``. None when there are none."""
    parts = [f"{name}={value}" if name else value for name, value in pairs]
    if not parts:
        return None
    return "; ".join(parts)


def build_forward_headers(request: Request) -> list[tuple[str, str]]:
    """Copy inbound headers for the upstream hop, duplicates included.

    Identity headers from the auth layer (x-user-*) pass through like any other.
    """
    headers: list[tuple[str, str]] = []
    for raw_key, raw_value in request.headers.raw:
        key = raw_key.decode("latin-1")
        lower = key.lower()
        if lower in HOP_BY_HOP_HEADERS or lower in _REBUILT_HEADERS:
            continue
        headers.append((key, raw_value.decode("latin-1")))

    cookie = rebuild_cookie_header(parse_cookie_pairs(request.headers.getlist("cookie")))
    if cookie is not None:
        headers.append(("cookie", cookie))
    return headers


async def _wait_for_disconnect(request: Request) -> None:
    # Body (if any) is already read; the next message that matters is the disconnect
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


async def _send_unless_disconnected(
    client: httpx.AsyncClient,
    upstream_request: httpx.Request,
    request: Request,
    origin: str,
) -> httpx.Response:
    """``client.send`` raced against the caller hanging up.

    If the caller disconnects first the upstream call is cancelled and
    :class:`ClientDisconnectedError` is raised; transport errors propagate.
    """
    send_task = asyncio.ensure_future(client.send(upstream_request, stream=True, follow_redirects=False))
    watch_task = asyncio.ensure_future(_wait_for_disconnect(request))
    try:
        await asyncio.wait({send_task, watch_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        watch_task.cancel()
        if not send_task.done():
            send_task.cancel()
            await asyncio.gather(send_task, return_exceptions=True)

    if send_task.cancelled():
        raise ClientDisconnectedError(origin, "client disconnected before upstream answered")
    return send_task.result()


async def forward(
    client: httpx.AsyncClient,
    request: Request,
    origin: str,
    path: str,
) -> httpx.Response:
    """Send the inbound request to *origin* and return the open upstream response.

    The response is streamed; the caller owns it and must close it (``relay``
    does). Transport failures raise a :class:`GatewayError` subclass and are
    not retried; a caller that hangs up first cancels the upstream call.
    """
    method = request.method.upper()
    url = build_target_url(origin, path, request.url.query)
    headers = build_forward_headers(request)
    content = None if method in BODYLESS_METHODS else await request.body()

    try:
        upstream_request = client.build_request(method, url, headers=headers, content=content)
    except httpx.InvalidURL as exc:
        logger.error("upstream_invalid_url", url=url, error=str(exc))
        raise UpstreamUnreachableError(origin, "invalid upstream URL") from exc

    try:
        upstream = await _send_unless_disconnected(client, upstream_request, request, origin)
    except httpx.TimeoutException as exc:
        logger.error("upstream_timeout", url=url)
        raise UpstreamTimeoutError(origin, str(exc)) from exc
    except httpx.ConnectError as exc:
        logger.error("upstream_connect_error", url=url, error=str(exc))
        raise UpstreamUnreachableError(origin, str(exc)) from exc
    except (httpx.RemoteProtocolError, httpx.DecodingError) as exc:
        logger.error("upstream_protocol_error", url=url, error=str(exc))
        raise MalformedUpstreamResponseError(origin, str(exc)) from exc
    except ClientDisconnectedError:
        logger.info("client_disconnected", url=url)
        raise
    except httpx.HTTPError as exc:
        logger.error("upstream_error", url=url, error=str(exc))
        raise GatewayError(origin, str(exc)) from exc

    logger.debug("upstream_response", url=url, method=method, status_code=upstream.status_code)
    return upstream


async def _relay_body(upstream: httpx.Response) -> AsyncIterator[bytes]:
    """Yield upstream bytes untouched; closes upstream on finish or disconnect."""
    try:
        async for chunk in upstream.aiter_raw():
            yield chunk
    except httpx.HTTPError as exc:
        # Headers are already sent; aborting the connection is the only signal left
        logger.error("upstream_stream_error", status_code=upstream.status_code, error=str(exc))
        raise
    finally:
        await upstream.aclose()


def relay(upstream: httpx.Response) -> StreamingResponse:
    """Wrap an open upstream response for the inbound caller.

    Status and headers (multi-valued ones like Set-Cookie included) are
    copied minus hop-by-hop headers; the body is not decoded or buffered.
    """
    response = StreamingResponse(
        _relay_body(upstream),
        status_code=upstream.status_code,
        background=BackgroundTask(upstream.aclose),
    )
    for key, value in upstream.headers.multi_items():
        if key.lower() in HOP_BY_HOP_HEADERS:
            continue
        response.headers.append(key, value)
    return response

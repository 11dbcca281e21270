"""Gateway failure taxonomy.

Tenant parsing and origin resolution cannot fail; everything that can go
wrong happens on the hop to the tenant backend and is surfaced to the caller
as a structured 502/504 instead of an empty success.
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base class for failures talking to a tenant backend."""

    status_code = 502
    message = "The upstream service is temporarily unavailable."

    def __init__(self, origin: str, detail: str = "") -> None:
        self.origin = origin
        self.detail = detail
        super().__init__(f"{self.__class__.__name__}: {origin}: {detail}" if detail else origin)


class UpstreamUnreachableError(GatewayError):
    """Connection refused, DNS failure, TLS failure."""


class UpstreamTimeoutError(GatewayError):
    status_code = 504
    message = "The upstream service did not respond in time."


class MalformedUpstreamResponseError(GatewayError):
    message = "The upstream service returned an invalid response."


class ClientDisconnectedError(GatewayError):
    """The caller went away before the backend answered; nothing is sent back."""

    status_code = 499
    message = "Client closed request."

"""Host parser: derive the tenant id from an inbound host name.

The same functions back the server-side tenant router and the client-side
tenant context, so both sides always agree on which tenant a host belongs to.

Two regimes:

- local (``*.localhost``): ``acme.localhost`` -> ``acme``, ``localhost`` -> None
- production: ``acme.vekino.site`` -> ``acme``, ``vekino.site`` -> None

Nothing here raises; anything that does not look like a tenant host yields
None, which is the platform/root tenant. A tenant id is always a single DNS
label, so it can never carry URL syntax into the origin built from it.
"""

from __future__ import annotations

import ipaddress
import re

LOCAL_LABEL = "localhost"

# Labels in a bare production platform domain ("vekino.site")
_PLATFORM_LABELS = 2

# One DNS label: the only shape a tenant id may take
_TENANT_LABEL_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")


def strip_port(host: str) -> str:
    """Return the host name part of an authority (``host[:port]``)."""
    if not host:
        return ""
    host = host.strip()
    if host.startswith("["):
        end = host.find("]")
        return host[: end + 1] if end != -1 else host
    if host.count(":") == 1:
        return host.split(":", 1)[0]
    return host


def is_valid_tenant_id(label: str) -> bool:
    return bool(_TENANT_LABEL_RE.fullmatch(label))


def _is_ip_literal(hostname: str) -> bool:
    try:
        ipaddress.ip_address(hostname.strip("[]"))
    except ValueError:
        return False
    return True


def is_local_host(hostname: str) -> bool:
    """True for development loopback names (``localhost``, ``*.localhost``)."""
    hostname = strip_port(hostname).lower().rstrip(".")
    return hostname == LOCAL_LABEL or hostname.endswith("." + LOCAL_LABEL)


def parse_tenant(hostname: str, is_local: bool) -> str | None:
    """Return the tenant id for *hostname*, or None for the platform tenant.

    Only the host name is parsed; callers holding an authority should pass it
    through :func:`strip_port` first (``tenant_from_host`` does this).
    """
    if not hostname:
        return None
    hostname = hostname.lower().rstrip(".")
    if _is_ip_literal(hostname):
        return None

    labels = hostname.split(".")
    first = labels[0]
    if not is_valid_tenant_id(first):
        return None

    if is_local:
        if len(labels) >= 2 and first != LOCAL_LABEL and labels[-1] == LOCAL_LABEL:
            return first
        return None

    # "localhost" is never a tenant id, in either regime
    if len(labels) > _PLATFORM_LABELS and first != LOCAL_LABEL:
        return first
    return None


def tenant_from_host(host: str) -> str | None:
    """Strip the port, pick the regime from the name itself, and parse."""
    hostname = strip_port(host)
    return parse_tenant(hostname, is_local_host(hostname))

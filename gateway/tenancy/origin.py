"""Origin resolver: map a tenant id to its backend origin."""

from __future__ import annotations

from urllib.parse import urlparse

DEFAULT_PLATFORM_DOMAIN = "vekino.site"
DEFAULT_SCHEME = "https"


def _normalize_domain(platform_domain: str) -> str:
    return platform_domain.strip().strip(".").rstrip("/").lower()


def resolve_origin(
    tenant_id: str | None,
    *,
    platform_domain: str = DEFAULT_PLATFORM_DOMAIN,
    scheme: str = DEFAULT_SCHEME,
) -> str:
    """Return ``scheme://[tenant.]platform_domain`` with no trailing slash.

    Total: the platform tenant (None or empty) maps to the bare platform origin.
    """
    domain = _normalize_domain(platform_domain)
    if tenant_id:
        return f"{scheme}://{tenant_id}.{domain}"
    return f"{scheme}://{domain}"


def is_platform_origin(origin: str, platform_domain: str = DEFAULT_PLATFORM_DOMAIN) -> bool:
    """True when *origin* is exactly ``scheme://[one-label.]platform_domain``.

    Anything with a path, query, fragment, userinfo or port, or a host outside
    the platform domain, is rejected.
    """
    try:
        parsed = urlparse(origin)
        port = parsed.port
    except ValueError:
        return False
    if parsed.scheme not in ("http", "https") or port is not None:
        return False
    if parsed.path or parsed.params or parsed.query or parsed.fragment:
        return False
    if "@" in parsed.netloc:
        return False

    host = (parsed.hostname or "").lower()
    domain = _normalize_domain(platform_domain)
    if host == domain:
        return True
    label, _, rest = host.partition(".")
    return rest == domain and bool(label)

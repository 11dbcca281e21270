"""Tenant-keyed registry of immutable API client descriptors.

Each backend origin gets its own frozen :class:`ApiClientConfig`. Looking up
a different tenant never rewrites an existing descriptor's base URL, so two
tenants served from the same process cannot see each other's target.
Registering a new origin returns a new registry; the old one is untouched.
"""

from __future__ import annotations

import types
from collections.abc import Mapping
from dataclasses import dataclass, field

import httpx

from gateway.tenancy.origin import DEFAULT_PLATFORM_DOMAIN, DEFAULT_SCHEME, resolve_origin

LOCAL_API_BASE = "/api"

_DEFAULT_HEADERS: Mapping[str, str] = types.MappingProxyType({"Content-Type": "application/json"})


@dataclass(frozen=True)
class ApiClientConfig:
    """How API calls for one backend origin are issued."""

    origin: str
    base_url: str
    headers: Mapping[str, str] = field(default_factory=lambda: _DEFAULT_HEADERS)
    with_credentials: bool = True


def api_base_url(origin: str, is_local: bool) -> str:
    """Same-origin proxied ``/api`` in development, ``{origin}/api`` in production."""
    if is_local:
        return LOCAL_API_BASE
    return f"{origin.rstrip('/')}{LOCAL_API_BASE}"


class ClientRegistry:
    """Immutable ``(origin, is_local) -> ApiClientConfig`` mapping."""

    def __init__(
        self,
        configs: Mapping[tuple[str, bool], ApiClientConfig] | None = None,
        *,
        platform_domain: str = DEFAULT_PLATFORM_DOMAIN,
        scheme: str = DEFAULT_SCHEME,
    ) -> None:
        self._configs = types.MappingProxyType(dict(configs or {}))
        self._platform_domain = platform_domain
        self._scheme = scheme

    def __len__(self) -> int:
        return len(self._configs)

    def __contains__(self, origin: object) -> bool:
        return any(key[0] == origin for key in self._configs)

    @property
    def origins(self) -> frozenset[str]:
        return frozenset(key[0] for key in self._configs)

    def origin_for(self, tenant_id: str | None) -> str:
        return resolve_origin(tenant_id, platform_domain=self._platform_domain, scheme=self._scheme)

    def config_for(self, origin: str, is_local: bool = False) -> ApiClientConfig | None:
        return self._configs.get((origin, is_local))

    def with_tenant(self, tenant_id: str | None, is_local: bool) -> tuple[ClientRegistry, ApiClientConfig]:
        """Return ``(registry, config)`` for *tenant_id*.

        The registry is ``self`` when the origin is already known, otherwise a
        new registry that also holds the new descriptor.
        """
        origin = self.origin_for(tenant_id)
        key = (origin, is_local)
        existing = self._configs.get(key)
        if existing is not None:
            return self, existing

        config = ApiClientConfig(origin=origin, base_url=api_base_url(origin, is_local))
        configs = dict(self._configs)
        configs[key] = config
        registry = ClientRegistry(configs, platform_domain=self._platform_domain, scheme=self._scheme)
        return registry, config


def build_client(
    config: ApiClientConfig,
    *,
    page_origin: str | None = None,
    **kwargs,
) -> httpx.AsyncClient:
    """Create an ``httpx.AsyncClient`` for one descriptor.

    A relative base URL (local mode) needs the page origin to resolve against;
    pass it as ``page_origin``.
    """
    base_url = config.base_url
    if base_url.startswith("/"):
        if not page_origin:
            raise ValueError("page_origin is required for a same-origin base URL")
        base_url = f"{page_origin.rstrip('/')}{base_url}"
    return httpx.AsyncClient(base_url=base_url, headers=dict(config.headers), **kwargs)

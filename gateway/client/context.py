"""Client-side tenant context.

Computed once when an application session starts: the tenant for the page's
host name plus the platform's list of known tenants. The host is parsed with
the same function the gateway's router uses.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from gateway.client.registry import ApiClientConfig, ClientRegistry
from gateway.tenancy.directory import TenantDirectory
from gateway.tenancy.host_parser import is_local_host, strip_port, tenant_from_host

logger = structlog.get_logger()


@dataclass(frozen=True)
class TenantContext:
    """Read-only tenant view shared by everything that issues API calls."""

    hostname: str
    tenant_id: str | None
    is_local: bool
    known_tenants: tuple[str, ...] = ()
    loaded: bool = False

    def api_config(self, registry: ClientRegistry) -> tuple[ClientRegistry, ApiClientConfig]:
        """Descriptor for this context's tenant (see ``ClientRegistry.with_tenant``)."""
        return registry.with_tenant(self.tenant_id, self.is_local)


def tenant_context_for_host(hostname: str) -> TenantContext:
    """Context for *hostname* before the tenant list has been fetched."""
    hostname = strip_port(hostname)
    return TenantContext(
        hostname=hostname,
        tenant_id=tenant_from_host(hostname),
        is_local=is_local_host(hostname),
    )


async def load_tenant_context(hostname: str, directory: TenantDirectory) -> TenantContext:
    """Parse *hostname* and fetch known tenants. Never raises.

    The directory already degrades to an empty list on failure.
    """
    initial = tenant_context_for_host(hostname)
    tenants = await directory.get_tenants()
    if not tenants:
        logger.info("tenant_context_no_directory", hostname=initial.hostname)
    return TenantContext(
        hostname=initial.hostname,
        tenant_id=initial.tenant_id,
        is_local=initial.is_local,
        known_tenants=tuple(tenants),
        loaded=True,
    )

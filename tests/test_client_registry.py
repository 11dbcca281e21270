"""Tenant-keyed API client registry tests."""

from __future__ import annotations

import dataclasses

import pytest

from gateway.client.registry import ApiClientConfig, ClientRegistry, api_base_url, build_client


def test_api_base_url_local():
    assert api_base_url("https://acme.vekino.site", is_local=True) == "/api"


def test_api_base_url_production():
    assert api_base_url("https://acme.vekino.site/", is_local=False) == "https://acme.vekino.site/api"


def test_config_is_frozen():
    config = ApiClientConfig(origin="https://acme.vekino.site", base_url="/api")
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.base_url = "https://evil.example/api"
    with pytest.raises(TypeError):
        config.headers["X-Extra"] = "1"


def test_defaults():
    config = ApiClientConfig(origin="https://vekino.site", base_url="https://vekino.site/api")
    assert config.headers == {"Content-Type": "application/json"}
    assert config.with_credentials is True


class TestWithTenant:
    def test_new_origin_returns_new_registry(self):
        empty = ClientRegistry()
        registry, config = empty.with_tenant("acme", is_local=False)

        assert registry is not empty
        assert len(empty) == 0
        assert len(registry) == 1
        assert config.origin == "https://acme.vekino.site"
        assert config.base_url == "https://acme.vekino.site/api"

    def test_known_origin_reuses_registry(self):
        registry, first = ClientRegistry().with_tenant("acme", is_local=False)
        same, second = registry.with_tenant("acme", is_local=False)

        assert same is registry
        assert second is first

    def test_platform_tenant(self):
        _, config = ClientRegistry().with_tenant(None, is_local=False)
        assert config.origin == "https://vekino.site"

    def test_local_uses_same_origin_base(self):
        _, config = ClientRegistry().with_tenant("acme", is_local=True)
        assert config.origin == "https://acme.vekino.site"
        assert config.base_url == "/api"

    def test_second_tenant_does_not_rewrite_first(self):
        """Switching tenants never changes a previously issued descriptor."""
        registry, acme = ClientRegistry().with_tenant("acme", is_local=False)
        registry, globex = registry.with_tenant("globex", is_local=False)

        assert acme.base_url == "https://acme.vekino.site/api"
        assert globex.base_url == "https://globex.vekino.site/api"
        assert registry.config_for("https://acme.vekino.site") is acme
        assert registry.origins == frozenset({"https://acme.vekino.site", "https://globex.vekino.site"})

    def test_contains(self):
        registry, _ = ClientRegistry().with_tenant("acme", is_local=False)
        assert "https://acme.vekino.site" in registry
        assert "https://globex.vekino.site" not in registry

    def test_custom_platform(self):
        registry = ClientRegistry(platform_domain="example.org", scheme="http")
        _, config = registry.with_tenant("acme", is_local=False)
        assert config.origin == "http://acme.example.org"

    def test_config_for_missing(self):
        assert ClientRegistry().config_for("https://acme.vekino.site") is None


class TestBuildClient:
    @pytest.mark.asyncio
    async def test_absolute_base(self):
        config = ApiClientConfig(origin="https://acme.vekino.site", base_url="https://acme.vekino.site/api")
        async with build_client(config) as client:
            assert str(client.base_url) == "https://acme.vekino.site/api/"
            assert client.headers["content-type"] == "application/json"

    @pytest.mark.asyncio
    async def test_relative_base_with_page_origin(self):
        config = ApiClientConfig(origin="https://acme.vekino.site", base_url="/api")
        async with build_client(config, page_origin="http://acme.localhost:3000") as client:
            assert str(client.base_url) == "http://acme.localhost:3000/api/"

    def test_relative_base_without_page_origin(self):
        config = ApiClientConfig(origin="https://acme.vekino.site", base_url="/api")
        with pytest.raises(ValueError):
            build_client(config)

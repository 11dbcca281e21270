"""Shared test fixtures."""

from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient

from tests.helpers.upstream import DIRECTORY_URL, FakeUpstream


@pytest.fixture(autouse=True)
def _mock_settings(monkeypatch):
    """Provide default settings for all tests."""
    monkeypatch.setenv("GATEWAY_PLATFORM_DOMAIN", "vekino.site")
    monkeypatch.setenv("GATEWAY_ORIGIN_SCHEME", "https")
    monkeypatch.setenv("GATEWAY_LOG_JSON", "false")
    monkeypatch.setenv("GATEWAY_LOG_LEVEL", "debug")
    monkeypatch.delenv("GATEWAY_COOKIE_STRIP_POLICY", raising=False)
    monkeypatch.delenv("GATEWAY_TENANT_VALIDATION_ENABLED", raising=False)
    monkeypatch.delenv("GATEWAY_CONFIG_FILE", raising=False)

    # Reset cached settings
    import gateway.config.loader as loader
    loader._settings = None
    yield
    loader._settings = None


@pytest.fixture
def fake_upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def mock_http(fake_upstream) -> httpx.AsyncClient:
    """Upstream client whose transport is the fake backend."""
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_upstream), follow_redirects=False)


@pytest.fixture
def gateway_client(fake_upstream, mock_http):
    """Test client with the upstream client swapped for a MockTransport."""
    import gateway.main as main_module
    from gateway.tenancy.directory import TenantDirectory

    with TestClient(main_module.app, raise_server_exceptions=False) as c:
        # Set mocks AFTER lifespan runs so they don't get overwritten
        real_client = main_module._http_client
        directory = TenantDirectory(mock_http, DIRECTORY_URL)
        main_module._http_client = mock_http
        main_module._directory = directory
        main_module.app.state.tenant_directory = directory
        main_module._pipeline = main_module._build_pipeline(directory)
        yield c
        if real_client is not None:
            c.portal.call(real_client.aclose)

    main_module._http_client = None
    main_module._pipeline = None
    main_module._directory = None

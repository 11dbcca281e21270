"""YAML + env var config loading with pydantic-settings."""

from __future__ import annotations

import os
import signal
from pathlib import Path

import structlog
from pydantic import field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

logger = structlog.get_logger()

_DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

COOKIE_STRIP_POLICIES = frozenset({"strip_all", "strip_clearing", "off"})


def _config_file() -> Path:
    """YAML file to layer under env vars (GATEWAY_CONFIG_FILE overrides)."""
    return Path(os.environ.get("GATEWAY_CONFIG_FILE", str(_DEFAULTS_PATH)))


class GatewaySettings(BaseSettings):
    """Gateway configuration loaded from YAML defaults, overridden by env vars."""

    model_config = SettingsConfigDict(
        env_prefix="GATEWAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    platform_domain: str = "vekino.site"
    origin_scheme: str = "https"
    listen_port: int = 3000
    log_level: str = "info"
    log_json: bool = True

    # Upstream HTTP client
    proxy_timeout: float = 30.0
    connect_timeout: float = 10.0
    upstream_max_connections: int = 100
    upstream_max_keepalive: int = 20

    # Response sanitizer: "strip_all" (default), "strip_clearing", "off"
    cookie_strip_policy: str = "strip_all"
    unsupported_encodings: list[str] = ["zstd"]

    # Tenant directory
    directory_path: str = "/api/condominios/domains"
    directory_timeout: float = 10.0
    directory_cache_ttl: int = 300

    # Unknown-tenant redirect / 404
    tenant_validation_enabled: bool = False
    default_local_port: int = 3000

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Earlier sources win: env vars beat the YAML file
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=_config_file()),
            file_secret_settings,
        )

    @field_validator("cookie_strip_policy", mode="before")
    @classmethod
    def validate_cookie_strip_policy(cls, v: str) -> str:
        policy = str(v).lower()
        if policy not in COOKIE_STRIP_POLICIES:
            raise ValueError(f"cookie_strip_policy must be one of {sorted(COOKIE_STRIP_POLICIES)}, got {policy}")
        return policy

    @field_validator("unsupported_encodings", mode="after")
    @classmethod
    def normalize_encodings(cls, v: list[str]) -> list[str]:
        return [token.strip().lower() for token in v if token.strip()]

    @property
    def platform_origin(self) -> str:
        """Bare platform origin, used for directory lookups and health checks."""
        return f"{self.origin_scheme}://{self.platform_domain}"

    @property
    def directory_url(self) -> str:
        return f"{self.platform_origin}{self.directory_path}"


_settings: GatewaySettings | None = None


def get_settings() -> GatewaySettings:
    """Get or create the singleton settings instance."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def load_settings() -> GatewaySettings:
    """Load settings from YAML defaults and env vars (env vars win)."""
    global _settings
    _settings = GatewaySettings()
    logger.info(
        "config_loaded",
        platform_domain=_settings.platform_domain,
        port=_settings.listen_port,
        cookie_strip_policy=_settings.cookie_strip_policy,
    )
    return _settings


def register_reload_handler() -> None:
    """Register SIGHUP handler for hot-reload of configuration."""
    import threading

    if threading.current_thread() is not threading.main_thread():
        logger.debug("skipping_sighup_handler", reason="not main thread")
        return

    def _reload(signum, frame):
        logger.info("config_reload_triggered")
        load_settings()

    try:
        signal.signal(signal.SIGHUP, _reload)
    except (ValueError, AttributeError):
        logger.debug("skipping_sighup_handler", reason="signal not supported")

"""
Shared configuration management for the GitHub CORS proxy.
"""

from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.errors import ConfigurationError


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    env: str = Field(default="local", validation_alias="PROXY_ENV")
    log_level: str = Field(default="info", validation_alias="PROXY_LOG_LEVEL")

    # Listener
    host: str = Field(default="0.0.0.0", validation_alias="PROXY_HOST")
    port: int = Field(default=3000, validation_alias="PROXY_PORT")


class ProxyConfig(BaseConfig):
    """Proxy-specific configuration."""

    # Credential injected on every upstream request; read from GITHUB_TOKEN
    github_token: SecretStr

    # Upstream
    upstream_base_url: str = Field(
        default="https://api.github.com/repos/",
        validation_alias="PROXY_UPSTREAM_BASE_URL",
    )
    user_agent: str = Field(default="rust-cors-proxy/1.0", validation_alias="PROXY_USER_AGENT")
    upstream_timeout_seconds: float = Field(default=30.0, validation_alias="PROXY_UPSTREAM_TIMEOUT_SECONDS")
    upstream_http2: bool = Field(default=True, validation_alias="PROXY_UPSTREAM_HTTP2")
    pool_max_keepalive: int = Field(default=100, validation_alias="PROXY_POOL_MAX_KEEPALIVE")
    pool_keepalive_expiry_seconds: float = Field(default=90.0, validation_alias="PROXY_POOL_KEEPALIVE_EXPIRY_SECONDS")
    tcp_keepalive_seconds: int = Field(default=60, validation_alias="PROXY_TCP_KEEPALIVE_SECONDS")
    preserve_upstream_status: bool = Field(default=True, validation_alias="PROXY_PRESERVE_UPSTREAM_STATUS")

    # Origin policy
    allowed_origin_domain: str = Field(default="prigoana.com", validation_alias="PROXY_ALLOWED_ORIGIN_DOMAIN")

    # Response cache
    cache_ttl_seconds: int = Field(default=10, ge=1, validation_alias="PROXY_CACHE_TTL_SECONDS")
    cache_max_entries: int = Field(default=10_000, ge=1, validation_alias="PROXY_CACHE_MAX_ENTRIES")

    @field_validator("github_token")
    @classmethod
    def _token_not_blank(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value().strip():
            raise ValueError("token must not be empty")
        return value


def get_config(**overrides) -> ProxyConfig:
    """Load proxy configuration from the environment.

    Raises ConfigurationError when the upstream credential is missing, so the
    process never starts unauthenticated.
    """
    try:
        return ProxyConfig(**overrides)
    except ValidationError as exc:
        missing_token = any(
            error.get("loc") and error["loc"][0] == "github_token"
            for error in exc.errors()
        )
        if missing_token:
            raise ConfigurationError("GITHUB_TOKEN environment variable must be set") from exc
        raise ConfigurationError(
            "Invalid proxy configuration",
            details={"errors": [_describe(error) for error in exc.errors()]},
        ) from exc


def _describe(error: dict) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"{location}: {error.get('msg')}"

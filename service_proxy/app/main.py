"""
GitHub CORS proxy service.

Exposes ``https://api.github.com/repos/`` to browser clients of the allowed
origin family, adding CORS headers, a short-lived response cache and a
server-side bearer credential.
"""

import sys
from typing import Any, Dict, Optional

import httpx
from fastapi import Request

from shared.base_service import BaseService
from shared.config import ProxyConfig, get_config
from shared.errors import ConfigurationError
from shared.logging import configure_logging, get_logger
from service_proxy.app.adapters.github_client import GitHubClient
from service_proxy.app.caching.response_cache import ResponseCache
from service_proxy.app.domain.proxy_handler import ProxyHandler
from service_proxy.app.policy.origin import OriginPolicyMiddleware


class ProxyService(BaseService):
    """CORS proxy service implementation."""

    def __init__(self, config: ProxyConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__("proxy", config)
        self.cache = ResponseCache(
            ttl_seconds=config.cache_ttl_seconds,
            max_entries=config.cache_max_entries,
        )
        self.github_client = GitHubClient(
            config.github_token.get_secret_value(),
            config.upstream_base_url,
            user_agent=config.user_agent,
            timeout=config.upstream_timeout_seconds,
            max_keepalive=config.pool_max_keepalive,
            keepalive_expiry=config.pool_keepalive_expiry_seconds,
            tcp_keepalive=config.tcp_keepalive_seconds,
            http2=config.upstream_http2,
            transport=transport,
        )
        self.handler = ProxyHandler(
            self.cache,
            self.github_client,
            metrics=self.metrics,
            preserve_upstream_status=config.preserve_upstream_status,
        )

        @self.app.on_event("startup")
        async def _startup():
            self.logger.info(
                "CORS proxy running",
                address=f"http://{config.host}:{config.port}",
                allowed_origins=f"*.{config.allowed_origin_domain}",
                upstream=config.upstream_base_url,
            )

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.github_client.close()

        self._setup_proxy_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.proxy_service = self

    def _setup_middleware(self):
        """Install the origin policy inside the request timing middleware."""
        self.app.add_middleware(
            OriginPolicyMiddleware,
            domain=self.config.allowed_origin_domain,
            metrics=self.metrics,
        )
        super()._setup_middleware()

    def _setup_proxy_routes(self):
        """Set up the catch-all proxy routes."""

        @self.app.options("/{path:path}")
        async def preflight(request: Request, path: str):
            """Answer CORS preflight probes for any proxied path."""
            return await self.handler.preflight(request)

        @self.app.get("/{path:path}")
        async def proxy(request: Request, path: str):
            """Proxy a repositories API GET."""
            return await self.handler.handle(request)

    async def _check_dependencies(self) -> Dict[str, Any]:
        """Report cache state; the upstream is not probed."""
        self.cache.purge_expired()
        self.metrics.set_gauge("cache_entries", len(self.cache))
        return {"cache": self.cache.stats()}


def create_app(config: Optional[ProxyConfig] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
    """Create FastAPI application."""
    service = ProxyService(config or get_config(), transport=transport)
    return service.app


def main() -> None:
    """Console entry point: load configuration, then serve until stopped."""
    try:
        config = get_config()
    except ConfigurationError as exc:
        configure_logging("proxy")
        get_logger("proxy.startup").error("Startup aborted", code=exc.code, message=exc.message, **exc.details)
        sys.exit(1)

    service = ProxyService(config)
    service.run()


if __name__ == "__main__":
    main()

"""
Base service class for proxy services.
"""

from fastapi import FastAPI, Request, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send
from typing import Dict, Any
import time
import os

from shared.config import BaseConfig
from shared.logging import configure_logging, get_logger, set_request_id, clear_context
from shared.metrics import MetricsCollector, get_metrics_collector
from shared.errors import ERROR_CORS_HEADERS, ProxyException


class RequestTimingMiddleware:
    """Pure ASGI middleware recording per-request metrics and an access log line.

    The receive channel is handed to the app untouched, so handlers can watch
    it for client disconnects.
    """

    def __init__(self, app: ASGIApp, logger, metrics: MetricsCollector):
        self.app = app
        self.logger = logger
        self.metrics = metrics

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = set_request_id()
        start_time = time.time()
        status_code = 500

        async def send_with_status(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_with_status)

            duration = time.time() - start_time

            self.metrics.record_http_request(
                method=scope["method"],
                status_code=status_code,
                duration=duration
            )

            self.logger.info(
                "HTTP request",
                method=scope["method"],
                path=scope["path"],
                status_code=status_code,
                duration_ms=round(duration * 1000, 2),
                request_id=request_id,
            )
        finally:
            clear_context()


class BaseService:
    """Base service class with common functionality."""

    def __init__(self, service_name: str, config: BaseConfig):
        self.service_name = service_name
        self.config = config
        self.port = config.port
        self.logger = get_logger(f"{service_name}.service")
        self.metrics = get_metrics_collector(service_name)
        self._start_time = time.time()

        # Configure logging
        configure_logging(service_name, self.config.log_level)

        # Create FastAPI app
        self.app = self._create_app()

        # Set up middleware
        self._setup_middleware()

        # Set up routes
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""
        return FastAPI(
            title=f"{self.service_name.title()} Service",
            description=f"GitHub CORS proxy - {self.service_name.title()} Service",
            version="1.0.0",
            docs_url=None,
            redoc_url=None,
            openapi_url="/openapi.json" if self.config.env == "local" else None,
        )

    def _setup_middleware(self):
        """Set up middleware."""

        # Request timing middleware
        self.app.add_middleware(RequestTimingMiddleware, logger=self.logger, metrics=self.metrics)

    def _setup_routes(self):
        """Set up common routes."""

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            dependencies = await self._check_dependencies()
            self.metrics.record_health_check("ok")

            return {
                "service": self.service_name,
                "status": "ok",
                "uptime_seconds": self._get_uptime(),
                "dependencies": dependencies,
                "version": "1.0.0",
                "commit": os.getenv("GIT_COMMIT", "unknown")
            }

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            from prometheus_client import CONTENT_TYPE_LATEST
            return Response(
                content=self.metrics.render(),
                media_type=CONTENT_TYPE_LATEST
            )

        # Error handlers
        @self.app.exception_handler(ProxyException)
        async def proxy_exception_handler(request: Request, exc: ProxyException):
            """Handle ProxyException with a bodyless CORS-enabled response."""
            self.logger.error("Proxy error", **exc.to_log_fields())
            self.metrics.record_error(exc.code)
            return Response(status_code=exc.status_code, headers=ERROR_CORS_HEADERS)

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            """Handle general exceptions."""
            self.logger.error("Unhandled exception", error=str(exc), exc_info=True)
            self.metrics.record_error("INTERNAL_ERROR")
            return Response(status_code=500, headers=ERROR_CORS_HEADERS)

    async def _check_dependencies(self) -> Dict[str, Any]:
        """Check service dependencies. Override in subclasses."""
        return {}

    def _get_uptime(self) -> float:
        """Get service uptime in seconds."""
        return time.time() - self._start_time

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )

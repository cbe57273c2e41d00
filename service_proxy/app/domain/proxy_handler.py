"""
Request handling for proxied retrievals and preflight probes.

Retrieval flow: fingerprint -> cache lookup -> (miss) upstream fetch ->
cache insert -> response with CORS headers. Concurrent misses on the same
fingerprint each fetch; the last insert wins.
"""

import asyncio
from typing import Optional

from fastapi import Request, Response

from shared.errors import ERROR_CORS_HEADERS
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from service_proxy.app.adapters.github_client import GitHubClient, UpstreamResponse
from service_proxy.app.caching.response_cache import ResponseCache
from service_proxy.app.domain.cors import success_headers, preflight_headers


# nginx convention for "client closed request"; never seen by the client.
CLIENT_CLOSED_REQUEST = 499


class ClientDisconnected(Exception):
    """Inbound client went away before the upstream reply arrived."""


def request_fingerprint(raw_path: str, query_string: str = "") -> str:
    """Cache key and upstream suffix: path after the leading ``/`` plus ``?query``."""
    path = raw_path[1:] if raw_path.startswith("/") else raw_path
    if query_string:
        return f"{path}?{query_string}"
    return path


def fingerprint_from_request(request: Request) -> str:
    """Build the fingerprint from the raw (still percent-encoded) request target."""
    raw_path = request.scope.get("raw_path")
    path = raw_path.decode("latin-1") if raw_path else request.url.path
    query = request.scope.get("query_string", b"").decode("latin-1")
    return request_fingerprint(path, query)


async def _wait_for_disconnect(request: Request) -> None:
    # Needs the raw server channel; wrapping middleware must be pure ASGI.
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


class ProxyHandler:
    """Serves proxied GETs from the response cache or the upstream API."""

    def __init__(
        self,
        cache: ResponseCache,
        client: GitHubClient,
        *,
        metrics: Optional[MetricsCollector] = None,
        preserve_upstream_status: bool = True,
    ):
        self.cache = cache
        self.client = client
        self.metrics = metrics
        self.preserve_upstream_status = preserve_upstream_status
        self.max_age = int(cache.ttl_seconds)
        self.logger = get_logger("proxy.handler")

    async def handle(self, request: Request) -> Response:
        """Answer a proxied retrieval."""
        origin = request.headers.get("origin")
        fingerprint = fingerprint_from_request(request)
        if not fingerprint:
            return Response(status_code=404, headers=ERROR_CORS_HEADERS)

        cached = self.cache.lookup(fingerprint)
        if cached is not None:
            self._count("cache_hits_total")
            self.logger.debug("Cache hit", fingerprint=fingerprint)
            return self._respond(cached.body, cached.status_code, origin)

        self._count("cache_misses_total")
        try:
            upstream = await self._fetch_while_connected(request, fingerprint)
        except ClientDisconnected:
            self.logger.info("Client disconnected; upstream request abandoned", fingerprint=fingerprint)
            self._count("upstream_requests_total", outcome="abandoned")
            return Response(status_code=CLIENT_CLOSED_REQUEST, headers=ERROR_CORS_HEADERS)

        self.cache.insert(fingerprint, upstream.body, upstream.status_code)
        if self.metrics:
            self.metrics.set_gauge("cache_entries", len(self.cache))

        return self._respond(upstream.body, upstream.status_code, origin)

    async def preflight(self, request: Request) -> Response:
        """Answer a CORS preflight probe. The origin policy is not consulted."""
        return Response(status_code=200, headers=preflight_headers(request.headers.get("origin")))

    async def _fetch(self, fingerprint: str) -> UpstreamResponse:
        if self.metrics is None:
            return await self.client.fetch(fingerprint)

        try:
            with self.metrics.time_operation("upstream_request_duration_seconds"):
                upstream = await self.client.fetch(fingerprint)
        except Exception:
            self.metrics.increment_counter("upstream_requests_total", outcome="error")
            raise
        self.metrics.increment_counter("upstream_requests_total", outcome="ok")
        return upstream

    async def _fetch_while_connected(self, request: Request, fingerprint: str) -> UpstreamResponse:
        """Run the upstream fetch, abandoning it if the inbound client disconnects."""
        fetch_task = asyncio.ensure_future(self._fetch(fingerprint))
        watch_task = asyncio.ensure_future(_wait_for_disconnect(request))
        try:
            done, _ = await asyncio.wait({fetch_task, watch_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (fetch_task, watch_task):
                if not task.done():
                    task.cancel()
            # Reap cancelled tasks; their CancelledError is the expected outcome.
            await asyncio.gather(fetch_task, watch_task, return_exceptions=True)

        if fetch_task in done:
            return fetch_task.result()

        # Surface a failure of the watcher itself; otherwise the client left.
        watch_task.result()
        raise ClientDisconnected()

    def _respond(self, body: bytes, upstream_status: int, origin: Optional[str]) -> Response:
        status_code = upstream_status if self.preserve_upstream_status else 200
        return Response(content=body, status_code=status_code, headers=success_headers(origin, self.max_age))

    def _count(self, metric_name: str, **labels) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric_name, **labels)

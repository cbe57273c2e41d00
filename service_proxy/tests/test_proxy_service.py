"""
Unit tests for the proxy FastAPI service.
"""

import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_proxy.app.main import ProxyService, create_app, main
from shared.config import ProxyConfig
from shared.errors import ConfigurationError


class TestProxyService:
    """Test cases for ProxyService."""

    @pytest.fixture
    def upstream_calls(self):
        return []

    @pytest.fixture
    def config(self):
        return ProxyConfig(github_token="test-token", _env_file=None)

    @pytest.fixture
    def service(self, config, upstream_calls):
        def handler(request: httpx.Request) -> httpx.Response:
            upstream_calls.append(request)
            return httpx.Response(200, content=b'{"full_name": "octocat/Hello-World"}')

        return ProxyService(config, transport=httpx.MockTransport(handler))

    @pytest.fixture
    def client(self, service):
        return TestClient(service.app)

    def test_health_endpoint(self, client):
        """Test health endpoint reports cache statistics."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "proxy"
        assert data["status"] == "ok"
        assert data["dependencies"]["cache"]["max_entries"] == 10_000
        assert data["dependencies"]["cache"]["ttl_seconds"] == 10

    def test_metrics_endpoint(self, client):
        client.get("/octocat/Hello-World")
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "cache_misses_total 1.0" in response.text
        assert 'upstream_requests_total{outcome="ok"} 1.0' in response.text

    def test_proxy_route(self, client, upstream_calls):
        response = client.get("/octocat/Hello-World")

        assert response.status_code == 200
        assert response.json() == {"full_name": "octocat/Hello-World"}
        assert len(upstream_calls) == 1

    def test_app_state_exposes_service(self, service):
        assert service.app.state.proxy_service is service

    def test_custom_domain_from_config(self):
        config = ProxyConfig(github_token="t", allowed_origin_domain="example.org", _env_file=None)
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"{}"))
        client = TestClient(create_app(config, transport=transport))

        assert client.get("/x/y", headers={"Origin": "https://ui.example.org"}).status_code == 200
        assert client.get("/x/y", headers={"Origin": "https://app.prigoana.com"}).status_code == 403


def http_scope(path: str, origin: str = None) -> dict:
    """ASGI scope for a GET as a server would present it."""
    headers = [(b"host", b"testserver")]
    if origin is not None:
        headers.append((b"origin", origin.encode("latin-1")))
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": path,
        "raw_path": path.encode("latin-1"),
        "query_string": b"",
        "root_path": "",
        "headers": headers,
        "client": ("127.0.0.1", 50000),
        "server": ("testserver", 80),
    }


class TestRequestLifecycle:
    """Test cases driving the full middleware stack over raw ASGI."""

    @pytest.fixture
    def config(self):
        return ProxyConfig(github_token="test-token", _env_file=None)

    @pytest.mark.asyncio
    async def test_cache_miss_completes_through_middleware(self, config):
        """Test an uncached GET is answered while the client stays connected."""
        service = ProxyService(
            config,
            transport=httpx.MockTransport(lambda request: httpx.Response(200, content=b'{"ok": 1}')),
        )
        response_done = asyncio.Event()
        sent = []
        request_delivered = False

        async def receive():
            nonlocal request_delivered
            if not request_delivered:
                request_delivered = True
                return {"type": "http.request", "body": b"", "more_body": False}
            # A live connection reports nothing until the response is out.
            await response_done.wait()
            return {"type": "http.disconnect"}

        async def send(message):
            sent.append(message)
            if message["type"] == "http.response.body" and not message.get("more_body", False):
                response_done.set()

        await asyncio.wait_for(service.app(http_scope("/x/y", "https://app.prigoana.com"), receive, send), timeout=5)

        start = sent[0]
        assert start["status"] == 200
        assert (b"access-control-allow-origin", b"https://app.prigoana.com") in start["headers"]
        assert b"".join(m.get("body", b"") for m in sent[1:]) == b'{"ok": 1}'
        assert service.cache.lookup("x/y") is not None

    @pytest.mark.asyncio
    async def test_client_disconnect_cancels_upstream_fetch(self, config):
        """Test a client leaving mid-fetch cancels the upstream request and caches nothing."""
        fetch_started = asyncio.Event()
        fetch_cancelled = asyncio.Event()

        async def stalled_upstream(request):
            fetch_started.set()
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                fetch_cancelled.set()
                raise

        service = ProxyService(config, transport=httpx.MockTransport(stalled_upstream))
        sent = []
        request_delivered = False

        async def receive():
            nonlocal request_delivered
            if not request_delivered:
                request_delivered = True
                return {"type": "http.request", "body": b"", "more_body": False}
            await fetch_started.wait()
            return {"type": "http.disconnect"}

        async def send(message):
            sent.append(message)

        await asyncio.wait_for(service.app(http_scope("/x/y", "https://app.prigoana.com"), receive, send), timeout=5)

        assert fetch_cancelled.is_set()
        assert sent[0]["status"] == 499
        assert len(service.cache) == 0
        abandoned = service.metrics.get_metric("upstream_requests_total").labels(outcome="abandoned")
        assert abandoned._value.get() == 1


class TestMain:
    """Test cases for the console entry point."""

    def test_main_exits_without_token(self, monkeypatch):
        """Test the process refuses to start without a credential."""
        def missing_config():
            raise ConfigurationError("GITHUB_TOKEN environment variable must be set")

        monkeypatch.setattr("service_proxy.app.main.get_config", missing_config)

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 1

    def test_main_runs_service(self, monkeypatch):
        started = []
        monkeypatch.setattr(
            "service_proxy.app.main.get_config",
            lambda: ProxyConfig(github_token="t", _env_file=None),
        )
        monkeypatch.setattr(ProxyService, "run", lambda self: started.append(self))

        main()

        assert len(started) == 1
        assert started[0].config.port == 3000

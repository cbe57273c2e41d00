"""
Unit tests for the upstream GitHub client.
"""

import socket

import httpx
import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_proxy.app.adapters.github_client import GitHubClient, keepalive_socket_options
from shared.errors import UpstreamReadError, UpstreamUnavailableError


class BrokenStream(httpx.AsyncByteStream):
    """Body stream that fails after the first chunk."""

    async def __aiter__(self):
        yield b'{"partial": '
        raise httpx.ReadError("connection reset")


class TestGitHubClient:
    """Test cases for GitHubClient."""

    @pytest.fixture
    def captured(self):
        return []

    def _client(self, handler) -> GitHubClient:
        return GitHubClient("test-token", transport=httpx.MockTransport(handler))

    def test_build_url(self):
        client = GitHubClient("test-token", "https://api.github.com/repos")
        assert client.build_url("octocat/Hello-World") == "https://api.github.com/repos/octocat/Hello-World"
        assert client.build_url("x/y?ref=main") == "https://api.github.com/repos/x/y?ref=main"

    def test_token_required(self):
        with pytest.raises(ValueError):
            GitHubClient("")

    @pytest.mark.asyncio
    async def test_fetch_success(self, captured):
        """Test a GET carries exactly the credential and user agent headers."""
        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(200, content=b'{"name": "Hello-World"}')

        client = self._client(handler)
        result = await client.fetch("octocat/Hello-World")
        await client.close()

        assert result.status_code == 200
        assert result.body == b'{"name": "Hello-World"}'
        request = captured[0]
        assert request.method == "GET"
        assert str(request.url) == "https://api.github.com/repos/octocat/Hello-World"
        assert request.headers["Authorization"] == "Bearer test-token"
        assert request.headers["User-Agent"] == "rust-cors-proxy/1.0"
        assert "origin" not in request.headers
        assert "cookie" not in request.headers

    @pytest.mark.asyncio
    async def test_fetch_preserves_raw_query(self, captured):
        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(200, content=b"[]")

        client = self._client(handler)
        await client.fetch("octocat/Hello-World/commits?sha=main&per_page=5")
        await client.close()

        assert captured[0].url.path == "/repos/octocat/Hello-World/commits"
        assert captured[0].url.query == b"sha=main&per_page=5"

    @pytest.mark.asyncio
    async def test_fetch_returns_non_2xx(self):
        """Test upstream error statuses are returned rather than raised."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, content=b'{"message": "Not Found"}')

        client = self._client(handler)
        result = await client.fetch("nobody/nothing")
        await client.close()

        assert result.status_code == 404
        assert result.body == b'{"message": "Not Found"}'

    @pytest.mark.asyncio
    async def test_connect_failure_is_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = self._client(handler)
        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await client.fetch("x/y")
        await client.close()

        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_timeout_is_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        client = self._client(handler)
        with pytest.raises(UpstreamUnavailableError):
            await client.fetch("x/y")
        await client.close()

    @pytest.mark.asyncio
    async def test_body_read_failure(self):
        """Test a failure while reading the body maps to an internal error."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, stream=BrokenStream())

        client = self._client(handler)
        with pytest.raises(UpstreamReadError) as exc_info:
            await client.fetch("x/y")
        await client.close()

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_errors_do_not_leak_token(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = self._client(handler)
        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await client.fetch("x/y")
        await client.close()

        assert "test-token" not in str(exc_info.value.to_log_fields())


def test_keepalive_socket_options():
    options = keepalive_socket_options(60)
    assert (socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1) in options
    if hasattr(socket, "TCP_KEEPIDLE"):
        assert (socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, 60) in options

"""
GitHub repositories API client for the proxy.
"""

import socket
from dataclasses import dataclass
from typing import List, Optional, Tuple

import httpx

from shared.logging import get_logger
from shared.errors import UpstreamUnavailableError, UpstreamReadError


DEFAULT_BASE_URL = "https://api.github.com/repos/"
DEFAULT_USER_AGENT = "rust-cors-proxy/1.0"


@dataclass(frozen=True)
class UpstreamResponse:
    """Upstream reply read fully into memory."""

    status_code: int
    body: bytes


def keepalive_socket_options(idle_seconds: int) -> List[Tuple[int, int, int]]:
    """TCP keepalive options: probe after *idle_seconds* of silence."""
    options = [(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)]
    # TCP_KEEPIDLE is Linux; macOS exposes the same knob as TCP_KEEPALIVE.
    if hasattr(socket, "TCP_KEEPIDLE"):
        options.append((socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, idle_seconds))
    elif hasattr(socket, "TCP_KEEPALIVE"):
        options.append((socket.IPPROTO_TCP, socket.TCP_KEEPALIVE, idle_seconds))
    return options


class GitHubClient:
    """Pooled client issuing authenticated GETs against the repositories API.

    One instance is shared by every request handler; ``httpx.AsyncClient``
    is safe for concurrent use from a single event loop.
    """

    def __init__(
        self,
        token: str,
        base_url: str = DEFAULT_BASE_URL,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 30.0,
        max_keepalive: int = 100,
        keepalive_expiry: float = 90.0,
        tcp_keepalive: int = 60,
        http2: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not token:
            raise ValueError("token is required")

        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.user_agent = user_agent
        self.logger = get_logger("proxy.github_client")
        self._token = token

        limits = httpx.Limits(
            max_connections=None,
            max_keepalive_connections=max_keepalive,
            keepalive_expiry=keepalive_expiry,
        )
        if transport is None:
            transport = httpx.AsyncHTTPTransport(
                http2=http2,
                limits=limits,
                socket_options=keepalive_socket_options(tcp_keepalive),
            )

        self._client = httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(timeout),
            follow_redirects=False,
        )

    def build_url(self, fingerprint: str) -> str:
        """Upstream URL for a request fingerprint (path plus optional raw query)."""
        return self.base_url + fingerprint

    def _headers(self) -> dict:
        # Nothing from the inbound request is forwarded.
        return {
            "User-Agent": self.user_agent,
            "Authorization": f"Bearer {self._token}",
        }

    async def fetch(self, fingerprint: str) -> UpstreamResponse:
        """GET the upstream resource and read the whole body.

        Non-2xx statuses are returned, not raised: upstream error documents
        are relayed to the caller as-is.
        """
        url = self.build_url(fingerprint)
        request = self._client.build_request("GET", url, headers=self._headers())

        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as exc:
            self.logger.error("Upstream request failed", url=url, error=type(exc).__name__)
            raise UpstreamUnavailableError(details={"url": url, "error": type(exc).__name__}) from exc

        try:
            body = await response.aread()
        except httpx.HTTPError as exc:
            self.logger.error(
                "Upstream body read failed",
                url=url,
                status_code=response.status_code,
                error=type(exc).__name__,
            )
            raise UpstreamReadError(details={"url": url, "error": type(exc).__name__}) from exc
        finally:
            await response.aclose()

        self.logger.debug("Upstream response received", url=url, status_code=response.status_code, size=len(body))
        return UpstreamResponse(status_code=response.status_code, body=body)

    async def close(self) -> None:
        """Close pooled connections."""
        await self._client.aclose()

"""
Origin admission policy for the proxy.

Only browser origins in the allowed family may use the proxy:

- ``https://<domain>`` and ``http://<domain>`` exactly
- ``https://*.<domain>`` and ``http://*.<domain>``

Comparison is exact. Ports or paths in the origin are part of the compared
host portion and therefore reject.
"""

from typing import Optional

from starlette.datastructures import Headers
from starlette.responses import Response
from starlette.types import ASGIApp, Receive, Scope, Send

from shared.errors import ERROR_CORS_HEADERS
from shared.logging import get_logger
from shared.metrics import MetricsCollector


DEFAULT_ALLOWED_DOMAIN = "prigoana.com"
WILDCARD_ORIGIN = "*"
_SCHEMES = ("https://", "http://")


def is_allowed_origin(origin: str, domain: str = DEFAULT_ALLOWED_DOMAIN) -> bool:
    """Return True if *origin* belongs to the allowed origin family."""
    suffix = "." + domain
    for scheme in _SCHEMES:
        if not origin.startswith(scheme):
            continue
        host = origin[len(scheme):]
        if host == domain or host.endswith(suffix):
            return True
    return False


def is_header_safe(value: str) -> bool:
    """Return True if *value* can be emitted verbatim as a response header value."""
    return all(char == "\t" or " " <= char <= "~" for char in value)


def allow_origin_value(origin: Optional[str]) -> str:
    """Value for ``Access-Control-Allow-Origin`` given the inbound origin."""
    if origin is None or not is_header_safe(origin):
        return WILDCARD_ORIGIN
    return origin


class OriginPolicyMiddleware:
    """Reject requests whose Origin header is outside the allowed family.

    Requests without an Origin header (same-origin or non-browser callers)
    are admitted. Preflight probes are answered by the preflight handler
    without consulting the policy. Pure ASGI, so the receive channel reaches
    the handler unwrapped.
    """

    def __init__(self, app: ASGIApp, domain: str = DEFAULT_ALLOWED_DOMAIN, metrics: Optional[MetricsCollector] = None):
        self.app = app
        self.domain = domain
        self.metrics = metrics
        self.logger = get_logger("proxy.origin_policy")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] == "OPTIONS":
            await self.app(scope, receive, send)
            return

        origin = Headers(scope=scope).get("origin")
        if origin is not None and not is_allowed_origin(origin, self.domain):
            self.logger.warning("Origin rejected", origin=origin, method=scope["method"])
            if self.metrics:
                self.metrics.increment_counter("origin_rejections_total")
            response = Response(status_code=403, headers=ERROR_CORS_HEADERS)
            await response(scope, receive, send)
            return

        await self.app(scope, receive, send)

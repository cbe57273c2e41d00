"""
CORS response header sets.
"""

from typing import Dict, Optional

from service_proxy.app.policy.origin import allow_origin_value


JSON_CONTENT_TYPE = "application/json"
PREFLIGHT_ALLOW_METHODS = "GET, OPTIONS"
PREFLIGHT_ALLOW_HEADERS = "*"
PREFLIGHT_MAX_AGE = 3600


def success_headers(origin: Optional[str], max_age: int) -> Dict[str, str]:
    """Headers for a proxied retrieval, cached or fresh."""
    return {
        "Access-Control-Allow-Origin": allow_origin_value(origin),
        "Content-Type": JSON_CONTENT_TYPE,
        "Cache-Control": f"public, max-age={max_age}",
    }


def preflight_headers(origin: Optional[str]) -> Dict[str, str]:
    """Headers answering a cross-origin preflight probe."""
    return {
        "Access-Control-Allow-Origin": allow_origin_value(origin),
        "Access-Control-Allow-Methods": PREFLIGHT_ALLOW_METHODS,
        "Access-Control-Allow-Headers": PREFLIGHT_ALLOW_HEADERS,
        "Access-Control-Max-Age": str(PREFLIGHT_MAX_AGE),
    }

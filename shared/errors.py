"""
Shared error handling for the GitHub CORS proxy.

Every in-request failure maps to a bodyless response that still carries
CORS headers, so browsers surface the status instead of a network error.
"""

from typing import Dict, Any, Optional


# Error responses never echo the caller's origin.
ERROR_CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}


class ProxyException(Exception):
    """Base exception for proxy services."""

    status_code: int = 500

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_log_fields(self) -> Dict[str, Any]:
        """Fields safe to attach to a log event."""
        return {"code": self.code, "message": self.message, "status_code": self.status_code, **self.details}


class UpstreamUnavailableError(ProxyException):
    """Upstream could not be reached (DNS, connect, send or timeout)."""

    status_code = 502

    def __init__(self, message: str = "Upstream unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("UPSTREAM_UNAVAILABLE", message, details)


class UpstreamReadError(ProxyException):
    """Upstream response body could not be read to completion."""

    status_code = 500

    def __init__(self, message: str = "Upstream body read failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("UPSTREAM_READ_ERROR", message, details)


class ConfigurationError(ProxyException):
    """Fatal startup configuration errors."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)

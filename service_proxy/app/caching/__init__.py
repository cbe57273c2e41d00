"""
Proxy caching package.

Short-lived, bounded, in-process response cache. Restart is a full flush.
"""

from .response_cache import ResponseCache, CachedResponse

__all__ = ["ResponseCache", "CachedResponse"]

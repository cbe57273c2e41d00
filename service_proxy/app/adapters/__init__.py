"""
Adapters package for the proxy.

Holds the HTTP client wrapper for the upstream repositories API. Keep
adapters thin and side-effect free outside of explicit calls.
"""

from .github_client import GitHubClient, UpstreamResponse

__all__ = [
    "GitHubClient",
    "UpstreamResponse",
]

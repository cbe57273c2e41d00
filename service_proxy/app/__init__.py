"""
GitHub CORS proxy service package.

The proxy fronts the GitHub repositories API for browser clients, adding:
- Origin admission: only the allowed origin family may call it
- CORS headers reflecting the caller's origin
- A short-lived in-memory response cache
- A server-side bearer credential the browser never sees

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.adapters: upstream HTTP client.
- app.caching: in-memory response cache.
- app.policy: origin admission policy and middleware.
- app.domain: request fingerprinting, CORS headers and handlers.
"""

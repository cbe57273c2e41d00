"""
Domain helpers for the proxy: request fingerprinting, CORS header sets and
the retrieval/preflight handlers.
"""

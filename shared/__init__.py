"""
Shared utilities for the GitHub CORS proxy.

This package aggregates common building blocks consumed by services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types
- base_service: FastAPI service scaffolding

Do not import from service packages into shared/.
"""

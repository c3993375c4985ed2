"""
Shared utilities for the response cache layer.

This package aggregates common building blocks consumed by services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Backoff policy and retry decorator
- base_service: FastAPI service skeleton

Do not import from service packages into shared/.
"""

"""
Shared utilities for the Premium service.

This package aggregates common building blocks consumed by the service:

- config: Engine configuration via pydantic-settings
- logging: Structured logging with correlation context
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses

Do not import from service_premium into shared/.
"""

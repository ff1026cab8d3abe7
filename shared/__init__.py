"""
Shared utilities for the CozyBerries storefront.

This package aggregates common building blocks consumed by the storefront
service and the collection sync client:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry decorators for outbound HTTP calls

Do not import from service packages into shared/.
"""

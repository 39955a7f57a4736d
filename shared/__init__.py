"""
Shared utilities for the listing data layer.

This package aggregates common building blocks consumed by the data layer:

- config: Data layer configuration via pydantic-settings
- logging: Structured logging with trace and loader correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types

Do not import from service_* packages into shared/.
"""

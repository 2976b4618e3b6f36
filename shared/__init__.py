"""
Shared utilities for the resource layer.

This package aggregates common building blocks:

- config: Settings via pydantic-settings
- logging: Structured logging with correlation and route context
- errors: Canonical error types and responses
- test_helpers: Record factories and a recording transport for tests

Keep cross-cutting logic here. Only test_helpers may import from resource_layer.
"""

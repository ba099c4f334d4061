"""Shared domain services for HTTP adapters."""

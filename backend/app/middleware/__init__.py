"""Middleware module initialization."""

from app.middleware.prometheus import PrometheusMiddleware, StructuredLoggingMiddleware

__all__ = [
    "PrometheusMiddleware",
    "StructuredLoggingMiddleware",
]

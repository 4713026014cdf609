"""
Prometheus Metrics Middleware
Collects HTTP request metrics and report pipeline metrics
"""

import time
import json
import uuid
from typing import Callable
from datetime import datetime, timezone
import logging

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from prometheus_client import Counter, Histogram, CollectorRegistry

# Create a global registry for metrics
metrics_registry = CollectorRegistry()

# HTTP Metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status'],
    registry=metrics_registry
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0),
    registry=metrics_registry
)

# Error Metrics
errors_total = Counter(
    'errors_total',
    'Total errors by type',
    ['error_type', 'endpoint'],
    registry=metrics_registry
)

# Report Metrics
report_jobs_enqueued_total = Counter(
    'report_jobs_enqueued_total',
    'Report jobs accepted for generation',
    ['report_type'],
    registry=metrics_registry
)

report_jobs_finished_total = Counter(
    'report_jobs_finished_total',
    'Report generation deliveries by outcome',
    ['status'],
    registry=metrics_registry
)

report_generation_duration_seconds = Histogram(
    'report_generation_duration_seconds',
    'Wall time of one report generation attempt',
    ['report_type'],
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
    registry=metrics_registry
)

# Job Metrics
celery_tasks_total = Counter(
    'celery_tasks_total',
    'Total Celery tasks',
    ['task_name', 'status'],
    registry=metrics_registry
)


def _endpoint_label(request: Request) -> str:
    # Route templates keep job ids out of label values
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    Middleware to collect Prometheus metrics for HTTP requests
    """

    SKIP_ENDPOINTS = ['/health', '/metrics', '/docs', '/openapi.json', '/redoc']

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if any(request.url.path.startswith(skip) for skip in self.SKIP_ENDPOINTS):
            return await call_next(request)

        start_time = time.time()
        method = request.method

        try:
            response = await call_next(request)
        except Exception as exc:
            endpoint = _endpoint_label(request)
            errors_total.labels(error_type=type(exc).__name__, endpoint=endpoint).inc()
            http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(time.time() - start_time)
            raise

        duration = time.time() - start_time
        endpoint = _endpoint_label(request)

        http_requests_total.labels(method=method, endpoint=endpoint, status=response.status_code).inc()
        http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(duration)

        response.headers["X-Response-Time"] = str(duration)
        return response


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for structured JSON logging with correlation IDs
    """

    def __init__(self, app, logger: logging.Logger):
        super().__init__(app)
        self.logger = logger

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get('X-Correlation-ID') or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        start_time = time.time()
        base = {
            "correlation_id": correlation_id,
            "method": request.method,
            "path": request.url.path,
            "user_id": request.headers.get("X-User-Id"),
        }

        self.logger.info(json.dumps({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": "http_request_start",
            **base,
            "client_ip": request.client.host if request.client else None,
        }))

        try:
            response = await call_next(request)
        except Exception as exc:
            self.logger.error(json.dumps({
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "event": "http_request_error",
                **base,
                "error_type": type(exc).__name__,
                "error_message": str(exc),
            }))
            raise

        self.logger.info(json.dumps({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": "http_request_complete",
            **base,
            "status_code": response.status_code,
            "duration_seconds": time.time() - start_time,
        }))

        response.headers["X-Correlation-ID"] = correlation_id
        return response


# Metric update functions for application events

def record_report_enqueued(report_type: str) -> None:
    """Record a report job accepted onto the queue"""
    report_jobs_enqueued_total.labels(report_type=report_type).inc()


def record_report_finished(report_type: str, status: str, duration: float) -> None:
    """Record one generation delivery (completed, failed, retrying, cancelled, skipped)"""
    report_jobs_finished_total.labels(status=status).inc()
    report_generation_duration_seconds.labels(report_type=report_type).observe(duration)


def record_celery_task(task_name: str, success: bool) -> None:
    status = "success" if success else "failure"
    celery_tasks_total.labels(task_name=task_name, status=status).inc()

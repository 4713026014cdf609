"""
Metrics API Route
Prometheus scrape target for HTTP and report pipeline metrics
"""

from fastapi import APIRouter, Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from app.middleware.prometheus import metrics_registry

router = APIRouter(tags=["metrics"])


@router.get("/metrics", include_in_schema=False)
async def metrics():
    """Render the report service registry in exposition format."""
    return Response(content=generate_latest(metrics_registry), media_type=CONTENT_TYPE_LATEST)

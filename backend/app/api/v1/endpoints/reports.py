"""
Report Builder Endpoints
========================

Catalog, generation, queue and job management for tabular reports.
Static paths are declared before ``/{job_id}`` routes so they win matching.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from app.api.deps import get_filter_resolver, get_report_service, get_storage
from app.middleware.request_context import RequestContext, get_request_context
from app.schemas.base import PaginatedResponse
from app.schemas.report import (
    CatalogCategory,
    FilterOptionSchema,
    GenerateReportAccepted,
    GenerateReportRequest,
    QueueStatsResponse,
    ReportDefinitionResponse,
    ReportJobResponse,
    ReportJobStatusResponse,
)
from app.services.filter_values import FilterValueResolver
from app.services.report_errors import ReportNotFoundError
from app.services.report_job_service import ReportConfig, ReportJobService
from app.services.report_storage import BlobStore


router = APIRouter()


def _config_from_request(body: GenerateReportRequest) -> ReportConfig:
    return ReportConfig(
        columns=tuple(body.columns),
        filters=dict(body.filters),
        group_by=body.group_by,
        sort_by=body.sort_by,
        sort_order=body.sort_order,
        format=body.format,
    )


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

@router.get("/catalog", response_model=List[CatalogCategory])
async def get_catalog(
    ctx: RequestContext = Depends(get_request_context),
    service: ReportJobService = Depends(get_report_service),
):
    """Report types visible to the caller's role, grouped by category."""
    return service.list_catalog(ctx.role)


@router.get("/config/{report_type}", response_model=ReportDefinitionResponse)
async def get_report_config(
    report_type: str,
    ctx: RequestContext = Depends(get_request_context),
    service: ReportJobService = Depends(get_report_service),
):
    return service.get_definition(report_type)


@router.get("/filters/{report_type}/{filter_id}", response_model=List[FilterOptionSchema])
async def get_filter_values(
    report_type: str,
    filter_id: str,
    institution_id: Optional[str] = Query(None),
    ctx: RequestContext = Depends(get_request_context),
    service: ReportJobService = Depends(get_report_service),
    resolver: FilterValueResolver = Depends(get_filter_resolver),
):
    return await service.resolve_filter_values(
        resolver, report_type, filter_id, ctx.as_requester(), institution_id=institution_id
    )


@router.get("/storage/health")
async def storage_health(
    ctx: RequestContext = Depends(get_request_context),
    storage: BlobStore = Depends(get_storage),
) -> Dict[str, Any]:
    return await storage.health()


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

@router.post("/generate", response_model=GenerateReportAccepted, status_code=status.HTTP_202_ACCEPTED)
async def generate_report(
    body: GenerateReportRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: ReportJobService = Depends(get_report_service),
):
    """Queue a report for background generation."""
    job = await service.enqueue(ctx.as_requester(), body.type, _config_from_request(body))
    return GenerateReportAccepted(job_id=job.id, status=job.status)


@router.post("/generate-sync", response_model=ReportJobStatusResponse)
async def generate_report_sync(
    body: GenerateReportRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: ReportJobService = Depends(get_report_service),
):
    """
    Start generation immediately and return the processing snapshot.

    The file is still produced by a worker; poll ``/{job_id}/status``.
    """
    job = await service.generate_sync(ctx.as_requester(), body.type, _config_from_request(body))
    return ReportJobStatusResponse.model_validate(job)


# ---------------------------------------------------------------------------
# Queue views
# ---------------------------------------------------------------------------

@router.get("/queue/stats", response_model=QueueStatsResponse)
async def queue_stats(
    ctx: RequestContext = Depends(get_request_context),
    service: ReportJobService = Depends(get_report_service),
):
    stats = await service.queue_stats()
    return QueueStatsResponse(
        waiting=stats.waiting,
        active=stats.active,
        completed=stats.completed,
        failed=stats.failed,
        delayed=stats.delayed,
        available=stats.available,
        error=stats.error,
    )


@router.get("/queue/active", response_model=List[ReportJobStatusResponse])
async def active_reports(
    ctx: RequestContext = Depends(get_request_context),
    service: ReportJobService = Depends(get_report_service),
):
    return await service.list_active(ctx.as_requester())


@router.get("/queue/failed", response_model=List[ReportJobStatusResponse])
async def failed_reports(
    ctx: RequestContext = Depends(get_request_context),
    service: ReportJobService = Depends(get_report_service),
):
    return await service.list_failed(ctx.as_requester())


@router.get("/history", response_model=PaginatedResponse[ReportJobStatusResponse])
async def report_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    ctx: RequestContext = Depends(get_request_context),
    service: ReportJobService = Depends(get_report_service),
):
    rows, total = await service.list_history(ctx.as_requester(), page=page, limit=limit)
    return PaginatedResponse.create(
        items=[ReportJobStatusResponse.model_validate(r) for r in rows],
        total=total,
        page=page,
        page_size=limit,
    )


# ---------------------------------------------------------------------------
# Single job
# ---------------------------------------------------------------------------

@router.get("/{job_id}/status", response_model=ReportJobStatusResponse)
async def report_status(
    job_id: str,
    ctx: RequestContext = Depends(get_request_context),
    service: ReportJobService = Depends(get_report_service),
):
    job = await service.get_status(job_id)
    if job is None:
        raise ReportNotFoundError("Report not found")
    return job


@router.get("/{job_id}/download")
async def download_report(
    job_id: str,
    ctx: RequestContext = Depends(get_request_context),
    service: ReportJobService = Depends(get_report_service),
):
    download = await service.download(job_id)
    return Response(
        content=download.content,
        media_type=download.content_type,
        headers={"Content-Disposition": f'attachment; filename="{download.filename}"'},
    )


@router.post("/{job_id}/cancel", response_model=ReportJobStatusResponse)
async def cancel_report(
    job_id: str,
    ctx: RequestContext = Depends(get_request_context),
    service: ReportJobService = Depends(get_report_service),
):
    return await service.cancel(job_id, ctx.as_requester())


@router.post("/{job_id}/retry", response_model=ReportJobStatusResponse)
async def retry_report(
    job_id: str,
    ctx: RequestContext = Depends(get_request_context),
    service: ReportJobService = Depends(get_report_service),
):
    return await service.retry(job_id, ctx.as_requester())


@router.delete("/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_report(
    job_id: str,
    ctx: RequestContext = Depends(get_request_context),
    service: ReportJobService = Depends(get_report_service),
):
    await service.delete(job_id, ctx.as_requester())
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{job_id}", response_model=ReportJobResponse)
async def get_report(
    job_id: str,
    ctx: RequestContext = Depends(get_request_context),
    service: ReportJobService = Depends(get_report_service),
):
    return await service.get_job(job_id)

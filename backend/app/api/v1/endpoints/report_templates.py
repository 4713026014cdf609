"""Saved report template endpoints."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from app.api.deps import get_template_service
from app.middleware.request_context import RequestContext, get_request_context
from app.schemas.report import ReportTemplateCreate, ReportTemplateResponse
from app.services.report_template_service import ReportTemplateService


router = APIRouter()


@router.get("/templates", response_model=List[ReportTemplateResponse])
async def list_templates(
    report_type: Optional[str] = Query(None, max_length=100),
    ctx: RequestContext = Depends(get_request_context),
    service: ReportTemplateService = Depends(get_template_service),
):
    """Templates owned by the caller plus public ones, newest first."""
    return await service.list(ctx.user_id, report_type=report_type)


@router.post("/templates", response_model=ReportTemplateResponse, status_code=status.HTTP_201_CREATED)
async def save_template(
    body: ReportTemplateCreate,
    ctx: RequestContext = Depends(get_request_context),
    service: ReportTemplateService = Depends(get_template_service),
):
    return await service.save(ctx.user_id, body.model_dump())


@router.delete("/templates/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template(
    template_id: str,
    ctx: RequestContext = Depends(get_request_context),
    service: ReportTemplateService = Depends(get_template_service),
):
    await service.delete(template_id, ctx.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

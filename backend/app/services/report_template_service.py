"""Saved report templates (owner-scoped, optionally shared)."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlalchemy import desc, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.report_template import ReportTemplate
from app.services.report_catalog import ReportCatalog
from app.services.report_errors import ReportForbiddenError, ReportNotFoundError


logger = logging.getLogger(__name__)


class ReportTemplateService:
    def __init__(self, session: AsyncSession, catalog: ReportCatalog):
        self.session = session
        self.catalog = catalog

    async def list(self, user_id: str, report_type: str | None = None) -> list[ReportTemplate]:
        stmt = select(ReportTemplate).where(
            or_(ReportTemplate.created_by == user_id, ReportTemplate.is_public.is_(True))
        )
        if report_type:
            stmt = stmt.where(ReportTemplate.report_type == report_type)
        stmt = stmt.order_by(desc(ReportTemplate.created_at))
        return list((await self.session.execute(stmt)).scalars().all())

    async def save(self, user_id: str, payload: Mapping[str, Any]) -> ReportTemplate:
        report_type = payload["report_type"]
        # Raises ReportNotFoundError for unknown types
        self.catalog.get_definition(report_type)

        template = ReportTemplate(
            name=payload["name"],
            description=payload.get("description"),
            report_type=report_type,
            columns=list(payload.get("columns") or []),
            filters=dict(payload.get("filters") or {}),
            group_by=payload.get("group_by"),
            sort_by=payload.get("sort_by"),
            sort_order=payload.get("sort_order"),
            is_public=bool(payload.get("is_public", False)),
            created_by=user_id,
        )
        self.session.add(template)
        await self.session.commit()
        await self.session.refresh(template)
        logger.info("Report template %s saved by %s", template.id, user_id)
        return template

    async def delete(self, template_id: str, user_id: str) -> None:
        template = await self.session.get(ReportTemplate, template_id)
        if template is None:
            raise ReportNotFoundError("Template not found")
        if template.created_by != user_id:
            raise ReportForbiddenError("You can only delete your own templates")

        await self.session.delete(template)
        await self.session.commit()

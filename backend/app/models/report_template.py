"""Saved report configurations, reusable across jobs."""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin, UUIDMixin


class ReportTemplate(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "report_templates"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    report_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    columns: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    filters: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    group_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    sort_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    sort_order: Mapped[str | None] = mapped_column(String(4), nullable=True)

    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    __table_args__ = (
        Index("ix_report_templates_owner_type", "created_by", "report_type"),
    )

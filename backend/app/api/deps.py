"""
API Dependencies
================

Collaborator providers for the report endpoints. Tests swap any of these
through ``app.dependency_overrides``.
"""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.services.filter_values import FilterValueResolver
from app.services.report_catalog import ReportCatalog, get_report_catalog
from app.services.report_data_source import ReportDataSource, get_report_data_source
from app.services.report_job_service import ReportJobService
from app.services.report_queue import ReportQueue, get_report_queue
from app.services.report_storage import BlobStore, get_blob_store
from app.services.report_template_service import ReportTemplateService


def get_catalog() -> ReportCatalog:
    return get_report_catalog()


def get_queue() -> ReportQueue:
    return get_report_queue()


@lru_cache
def get_storage() -> BlobStore:
    return get_blob_store()


def get_data_source() -> ReportDataSource:
    return get_report_data_source()


def get_report_service(
    db: AsyncSession = Depends(get_db),
    queue: ReportQueue = Depends(get_queue),
    catalog: ReportCatalog = Depends(get_catalog),
    storage: BlobStore = Depends(get_storage),
) -> ReportJobService:
    return ReportJobService(db, queue, catalog, blob_store=storage)


def get_template_service(
    db: AsyncSession = Depends(get_db),
    catalog: ReportCatalog = Depends(get_catalog),
) -> ReportTemplateService:
    return ReportTemplateService(db, catalog)


def get_filter_resolver(
    catalog: ReportCatalog = Depends(get_catalog),
    data_source: ReportDataSource = Depends(get_data_source),
) -> FilterValueResolver:
    return FilterValueResolver(catalog, data_source)

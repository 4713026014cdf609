"""
API v1 Router
=============

Main router that combines all API v1 endpoints.
"""

from fastapi import APIRouter

from app.api.v1.endpoints import report_templates, reports


api_router = APIRouter()

# Templates first: "/reports/templates" must not be captured by "/reports/{job_id}".
api_router.include_router(report_templates.router, prefix="/reports", tags=["Report Templates"])
api_router.include_router(reports.router, prefix="/reports", tags=["Reports"])

"""
Request Context Dependency
==========================

FastAPI dependency that reads the caller identity forwarded by the gateway.
Authentication happens upstream; this service trusts the headers:

    X-User-Id          required
    X-User-Role        optional, free-form (normalised by the catalog)
    X-Institution-Id   optional, default scope for report filters
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, status

from app.services.report_catalog import normalize_roles
from app.services.report_job_service import Requester


@dataclass
class RequestContext:
    """
    Identity of the caller for the current request.

    Attributes:
        user_id: Opaque id of the requesting user
        role: Raw role string as sent by the gateway
        institution_id: Institution the caller acts for, if any
    """
    user_id: str
    role: Optional[str] = None
    institution_id: Optional[str] = None

    @property
    def roles(self) -> tuple[str, ...]:
        return normalize_roles(self.role)

    def as_requester(self) -> Requester:
        return Requester(user_id=self.user_id, role=self.role, institution_id=self.institution_id)


async def get_request_context(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(default=None, alias="X-User-Role"),
    x_institution_id: Optional[str] = Header(default=None, alias="X-Institution-Id"),
) -> RequestContext:
    """
    Build the request context from identity headers.

    Raises:
        HTTPException 401: If X-User-Id is missing
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )

    return RequestContext(
        user_id=x_user_id.strip(),
        role=(x_user_role or "").strip() or None,
        institution_id=(x_institution_id or "").strip() or None,
    )

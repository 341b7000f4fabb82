"""
Shared FastAPI dependencies.

Authentication happens upstream; the caller's identity arrives in headers
and is turned into an explicit Actor passed into every service call.
"""

from typing import Optional
from uuid import UUID

from fastapi import Header

from jobflow.core.permissions import Roles
from jobflow.db.session import get_db
from jobflow.errors import PermissionDeniedError
from jobflow.schemas.actor import Actor

__all__ = ["get_db", "get_actor"]


async def get_actor(
    x_user_id: UUID = Header(..., alias="X-User-ID"),
    x_user_role: str = Header(..., alias="X-User-Role"),
    x_company_id: Optional[UUID] = Header(None, alias="X-Company-ID"),
) -> Actor:
    """Build the acting user from the identity headers."""
    role = x_user_role.strip().lower()
    if role not in Roles.ALL:
        raise PermissionDeniedError(f"Unknown role '{x_user_role}'", {"role": x_user_role})
    if x_company_id is None and role != Roles.SITE_ADMIN:
        raise PermissionDeniedError("X-Company-ID is required for company users", {"role": role})
    return Actor(user_id=x_user_id, role=role, company_id=x_company_id)

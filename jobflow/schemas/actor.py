"""
Actor schema.

The authenticated caller, passed explicitly into every engine call.
"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from jobflow.core.permissions import Roles


class Actor(BaseModel):
    """Who is acting: user id, role and the company they act for."""

    user_id: UUID
    role: str
    company_id: Optional[UUID] = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_site_admin(self) -> bool:
        return self.role == Roles.SITE_ADMIN

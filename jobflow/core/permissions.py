"""
Role-based permission helpers for the stage engine.

Defines roles and the checks applied to configuration writes and job access.
"""

from typing import List, Optional
from uuid import UUID

from jobflow.errors import PermissionDeniedError


class Roles:
    """Roles an actor can carry."""
    SITE_ADMIN = "site_admin"
    OWNER = "owner"
    ADMIN = "admin"
    FOREMAN = "foreman"
    WORKER = "worker"
    CLIENT = "client"

    # All roles list for validation
    ALL = [SITE_ADMIN, OWNER, ADMIN, FOREMAN, WORKER, CLIENT]

    # Company-level configuration managers
    COMPANY_ADMINS = [OWNER, ADMIN]

    # Allowed to force a job into any stage
    OVERRIDERS = [SITE_ADMIN, OWNER, ADMIN]


def check_role_permission(user_role: str, allowed_roles: List[str]) -> bool:
    """
    Check if user's role is in the list of allowed roles.

    Args:
        user_role: The user's current role
        allowed_roles: List of roles that are permitted

    Returns:
        True if user has permission, False otherwise
    """
    if not user_role or not allowed_roles:
        return False
    return user_role in allowed_roles


def raise_if_not_roles(user_role: str, allowed_roles: List[str], action: str = "perform this action") -> None:
    """
    Raise 403 error if user doesn't have one of the allowed roles.

    Args:
        user_role: User's role
        allowed_roles: List of permitted roles
        action: Description of action being blocked

    Raises:
        PermissionDeniedError: if user doesn't have permission
    """
    if not check_role_permission(user_role, allowed_roles):
        raise PermissionDeniedError(
            f"Insufficient permissions to {action}. Required: {', '.join(allowed_roles)}",
            {"role": user_role},
        )


def raise_if_cannot_configure(actor, company_id: Optional[UUID], action: str = "change stage configuration") -> None:
    """
    Configuration writes: site admins anywhere, company owners/admins only
    inside their own company. The platform scope (company_id None) is site
    admin only.
    """
    if actor.role == Roles.SITE_ADMIN:
        return
    if company_id is None:
        raise PermissionDeniedError(
            f"Only site admins can {action} for the platform defaults",
            {"role": actor.role},
        )
    raise_if_not_roles(actor.role, Roles.COMPANY_ADMINS, action)
    if actor.company_id != company_id:
        raise PermissionDeniedError(
            f"Cannot {action} for another company",
            {"company_id": str(company_id)},
        )


def can_access_company(actor, company_id: UUID) -> bool:
    """Job-level access: own company, or any company for site admins."""
    return actor.role == Roles.SITE_ADMIN or actor.company_id == company_id

"""
NyayaSetu - User Context
Role and permission handling for each authenticated request.

Roles:
- victim: files grievances and uploads documents for their own cases
- officer: district welfare officer; reviews, approves and disburses
- admin: everything an officer can do, plus document deletion
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class UserRole(str, Enum):
    VICTIM = "victim"
    OFFICER = "officer"
    ADMIN = "admin"


# =============================================================================
# Permissions (derived from role)
# =============================================================================

ROLE_PERMISSIONS = {
    UserRole.VICTIM: {
        "grievance_create",
        "grievance_read_own",
        "document_upload",
        "document_view_own",
        "disbursement_verify",
    },
    UserRole.OFFICER: {
        "grievance_read_all",
        "grievance_review",
        "document_upload",
        "document_view_all",
        "document_download",
        "disbursement_create",
        "fund_manage",
    },
    UserRole.ADMIN: {"*"},
}


def get_permissions(role: UserRole) -> set[str]:
    """Get permissions for a role. Admin expands to every known permission."""
    perms = ROLE_PERMISSIONS.get(role, set())
    if "*" in perms:
        all_perms = {"document_delete"}
        for role_perms in ROLE_PERMISSIONS.values():
            if "*" not in role_perms:
                all_perms.update(role_perms)
        return all_perms
    return set(perms)


@dataclass
class UserContext:
    """
    Context for an authenticated request.
    This is what gets passed to route handlers.
    """
    user_id: str
    role: UserRole = UserRole.VICTIM
    full_name: str = ""
    email: str = ""
    district: Optional[str] = None
    permissions: set[str] = field(default_factory=set)
    session_id: Optional[str] = None
    authenticated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.permissions:
            self.permissions = get_permissions(self.role)

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions

    def can(self, *permissions: str) -> bool:
        """True when the user holds ALL of the given permissions."""
        return all(self.has_permission(p) for p in permissions)

    @property
    def is_victim(self) -> bool:
        return self.role == UserRole.VICTIM

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "role": self.role.value,
            "fullName": self.full_name,
            "email": self.email,
            "district": self.district,
            "permissions": sorted(self.permissions),
        }

# staff_directory/core/roles.py
# Roles, the role assignment table and the region/branch mapping.
import enum
import re
from typing import Dict, FrozenSet, List

from staff_directory.core.exceptions import ValidationError


class Role(str, enum.Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    LINE_MANAGER = "LINE_MANAGER"
    STAFF = "STAFF"


VALID_ROLES = tuple(r.value for r in Role)
MANAGER_ROLES: FrozenSet[str] = frozenset({Role.SUPER_ADMIN.value, Role.LINE_MANAGER.value})

ASSIGNABLE_ROLES: Dict[str, FrozenSet[str]] = {
    Role.SUPER_ADMIN.value: frozenset(VALID_ROLES),
    Role.LINE_MANAGER.value: frozenset({Role.STAFF.value}),
    Role.STAFF.value: frozenset(),
}

REGION_BRANCHES: Dict[str, List[str]] = {
    "Lagos": ["Alimosho", "HQ"],
    "Delta": ["Warri"],
    "Osun": ["Osun"],
}
DEFAULT_REGION, DEFAULT_BRANCH = "Lagos", "HQ"

EMPLOYEE_CODE_RE = re.compile(r"^[A-Z]{2}\d{3}$")

# Read-only capability matrix, served to clients for menu rendering.
ROLE_PERMISSIONS = {
    Role.SUPER_ADMIN.value: {
        "can": ["manage_users", "manage_departments", "manage_activities", "lock_accounts",
                "unlock_accounts", "assign_roles", "view_all_data"],
        "cannot": ["delete_self"],
    },
    Role.LINE_MANAGER.value: {
        "can": ["manage_staff", "view_staff_activities", "lock_staff_accounts",
                "unlock_staff_accounts", "update_staff_details", "view_own_data"],
        "cannot": ["manage_managers", "assign_super_admin", "delete_users"],
    },
    Role.STAFF.value: {
        "can": ["view_own_data", "update_own_profile", "manage_own_activities"],
        "cannot": ["manage_users", "view_others_data", "lock_accounts"],
    },
}


def is_admin(role: str) -> bool:
    return role in MANAGER_ROLES


def can_assign_role(assigner_role: str, assignee_role: str) -> bool:
    return assignee_role in ASSIGNABLE_ROLES.get(assigner_role, frozenset())


def validate_role(role: str) -> str:
    if role not in VALID_ROLES:
        raise ValidationError("Invalid role specified", valid_roles=list(VALID_ROLES))
    return role


def validate_employee_code(code: str) -> str:
    if not code or not EMPLOYEE_CODE_RE.match(code):
        raise ValidationError(
            "ID card must be two capital letters followed by 3 digits (e.g. KE001)",
            error_code="INVALID_ID_FORMAT",
        )
    return code


def validate_region_branch(region: str, branch: str) -> None:
    """Raise ValidationError unless ``branch`` belongs to ``region``."""
    if region not in REGION_BRANCHES:
        raise ValidationError("Invalid region specified", valid_regions=list(REGION_BRANCHES))
    if branch not in REGION_BRANCHES[region]:
        raise ValidationError(
            "Invalid branch for the specified region",
            region=region,
            valid_branches=REGION_BRANCHES[region],
        )

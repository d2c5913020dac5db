"""
Authorization decisions for the staff directory.

Everything here is a pure function of the actor, the target and (where it
matters) the request payload. Nothing is read from or written to the
database; callers apply the mutation once a decision comes back positive.

Actors and targets are anything with ``id``, ``role`` and ``reports_to_id``
attributes, usually ``models.User`` rows.
"""

import enum
from dataclasses import dataclass
from typing import Any, FrozenSet, Mapping, Optional

import pydantic

from staff_directory.core.exceptions import (
    InsufficientPrivilege,
    LastSuperAdminError,
    SelfDeactivationForbidden,
)
from staff_directory.core.roles import MANAGER_ROLES, Role

SUPER_ADMIN = Role.SUPER_ADMIN.value
LINE_MANAGER = Role.LINE_MANAGER.value
STAFF = Role.STAFF.value


class UpdateLevel(str, enum.Enum):
    SUPER_ADMIN = "super_admin"
    MANAGER = "manager"
    SELF = "self"
    DENIED = "denied"


BASE_FIELDS: FrozenSet[str] = frozenset({"email", "first_name", "last_name", "region", "branch"})

ALLOWED_FIELDS = {
    UpdateLevel.SELF: frozenset({"email", "first_name", "last_name", "password"}),
    UpdateLevel.MANAGER: BASE_FIELDS | {"department", "position", "is_active"},
    UpdateLevel.SUPER_ADMIN: BASE_FIELDS | {
        "id_card", "is_active", "department", "position", "role", "reports_to", "password",
    },
    UpdateLevel.DENIED: frozenset(),
}

# Levels that may set a password; checked separately from the field list.
PASSWORD_LEVELS = frozenset({UpdateLevel.SELF, UpdateLevel.SUPER_ADMIN})


class ScopeKind(str, enum.Enum):
    SELF = "self"
    DIRECT_REPORTS = "direct_reports"
    ALL = "all"


@dataclass(frozen=True)
class VisibilityScope:
    """Implicit read filter applied before any explicit query filter."""

    kind: ScopeKind
    user_id: int

    def includes(self, owner: Any) -> bool:
        if self.kind is ScopeKind.ALL:
            return True
        if self.kind is ScopeKind.SELF:
            return owner.id == self.user_id
        return owner.reports_to_id == self.user_id


def _is_direct_report(manager: Any, target: Any) -> bool:
    return target.reports_to_id is not None and target.reports_to_id == manager.id


# --- Update permissions ---

def resolve_update_level(actor: Any, target: Any) -> UpdateLevel:
    if actor.role == SUPER_ADMIN:
        return UpdateLevel.SUPER_ADMIN
    if actor.id == target.id:
        return UpdateLevel.SELF
    if actor.role == LINE_MANAGER and _is_direct_report(actor, target):
        return UpdateLevel.MANAGER
    return UpdateLevel.DENIED


def allowed_fields_for(level: UpdateLevel) -> FrozenSet[str]:
    return ALLOWED_FIELDS[level]


def can_set_password(level: UpdateLevel) -> bool:
    return level in PASSWORD_LEVELS


_BOOL = pydantic.TypeAdapter(bool)


def requests_deactivation(payload: Mapping[str, Any]) -> bool:
    value = payload.get("is_active")
    if value is None:
        return False
    try:
        return _BOOL.validate_python(value) is False
    except pydantic.ValidationError:
        return False


def check_deactivation(actor: Any, target: Any, payload: Mapping[str, Any],
                       other_active_super_admins: int) -> None:
    """Raise unless the payload's ``is_active`` change is permitted.

    ``other_active_super_admins`` counts active SUPER_ADMINs excluding the
    target. Any value that reads as false (``0``, ``"off"``)
    counts as a deactivation request.
    """
    if not requests_deactivation(payload):
        return
    if actor.id == target.id:
        raise SelfDeactivationForbidden("You cannot deactivate your own account")
    if target.role == SUPER_ADMIN and actor.role != SUPER_ADMIN:
        raise InsufficientPrivilege("Only SUPER_ADMIN can deactivate other SUPER_ADMIN accounts")
    if target.role == SUPER_ADMIN and other_active_super_admins == 0:
        raise LastSuperAdminError("Cannot deactivate the last active SUPER_ADMIN account")


def can_assign_manager(actor: Any, manager: Any) -> bool:
    """Only a SUPER_ADMIN may place someone under another SUPER_ADMIN."""
    if manager.role not in MANAGER_ROLES:
        return False
    return manager.role != SUPER_ADMIN or actor.role == SUPER_ADMIN


# --- Read / delete ---

def can_view(actor: Any, target: Any) -> bool:
    if actor.id == target.id or actor.role == SUPER_ADMIN:
        return True
    return actor.role == LINE_MANAGER and _is_direct_report(actor, target)


def can_delete(actor: Any, target: Any) -> bool:
    return actor.role == SUPER_ADMIN and actor.id != target.id and target.role != SUPER_ADMIN


def visibility_scope(actor: Any) -> VisibilityScope:
    if actor.role == SUPER_ADMIN:
        return VisibilityScope(ScopeKind.ALL, actor.id)
    if actor.role == LINE_MANAGER:
        return VisibilityScope(ScopeKind.DIRECT_REPORTS, actor.id)
    return VisibilityScope(ScopeKind.SELF, actor.id)


def can_filter_by_user(actor: Any, candidate: Any) -> bool:
    """Drill-down filter check; ``candidate`` must fall inside the actor's scope.

    A LINE_MANAGER's scope is their direct reports, so filtering on themselves
    is refused rather than answered with an empty page.
    """
    if actor.role == SUPER_ADMIN:
        return True
    return _is_direct_report(actor, candidate)


# --- Account management ---

def can_manage_account(actor: Any, target: Any) -> bool:
    """Whether ``actor`` may lock ``target``'s account."""
    if actor.role == SUPER_ADMIN:
        return True
    if actor.role == LINE_MANAGER:
        return target.role == STAFF and _is_direct_report(actor, target)
    return False


def can_unlock(actor: Any, target: Any) -> bool:
    if target.role == STAFF:
        return actor.role == SUPER_ADMIN or _is_direct_report(actor, target)
    if target.role == LINE_MANAGER:
        return actor.role == SUPER_ADMIN
    if target.role == SUPER_ADMIN:
        return actor.role == SUPER_ADMIN and actor.id != target.id
    return False


def can_checkin(actor: Any, target_id: int) -> bool:
    return target_id == actor.id or actor.role in MANAGER_ROLES


def can_see_locked_account(actor: Any, target: Any) -> bool:
    if actor.role == SUPER_ADMIN:
        return True
    return actor.role == LINE_MANAGER and target.role == STAFF and _is_direct_report(actor, target)


def unlock_denial_message(target_role: Optional[str]) -> str:
    if target_role == STAFF:
        return "Only the assigned line manager or a super admin can unlock this account"
    if target_role == LINE_MANAGER:
        return "Only super admin can unlock manager accounts"
    return "Only another super admin can unlock super admin accounts"

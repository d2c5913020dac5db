# staff_directory/services/directory.py
"""
User records: registration, the authorization-gated update, deletion,
scoped listings, check-ins and account lock/unlock.

Every public method takes the acting user first. Authorization is decided by
``core.permissions`` before anything is written; any ``DirectoryError``
raised part-way through a mutation rolls the session back, so an update is
applied completely or not at all.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

import pydantic
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from staff_directory.core import permissions
from staff_directory.core.clock import utcnow
from staff_directory.core.config import settings
from staff_directory.core.exceptions import (
    AuthorizationError,
    ConflictError,
    DirectoryError,
    InsufficientPrivilege,
    LastSuperAdminError,
    NotFoundError,
    PersistenceError,
    SelfActionForbidden,
    ValidationError,
)
from staff_directory.core.permissions import ScopeKind, UpdateLevel, VisibilityScope
from staff_directory.core.roles import (
    MANAGER_ROLES,
    REGION_BRANCHES,
    Role,
    can_assign_role,
    is_admin,
    validate_employee_code,
    validate_region_branch,
    validate_role,
)
from staff_directory.core.security import PasswordHasher, generate_numeric_code, password_hasher
from staff_directory.db import models
from staff_directory.schemas import user as user_schema
from staff_directory.services import account_security
from staff_directory.services.notifications import Notifier, deliver, get_notifier, recipients_for

logger = logging.getLogger(__name__)

SUPER_ADMIN = Role.SUPER_ADMIN.value
LINE_MANAGER = Role.LINE_MANAGER.value
STAFF = Role.STAFF.value


def scope_user_query(query: Query, scope: VisibilityScope) -> Query:
    """Restrict a query over ``models.User`` to what ``scope`` may see.

    The direct-reports case filters on the live ``reports_to_id`` column, so
    a reassignment is visible to the very next query.
    """
    if scope.kind is ScopeKind.ALL:
        return query
    if scope.kind is ScopeKind.SELF:
        return query.filter(models.User.id == scope.user_id)
    return query.filter(models.User.reports_to_id == scope.user_id)


def validation_error_from(exc: pydantic.ValidationError) -> ValidationError:
    errors = [
        {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return ValidationError("Validation error", errors=errors)


def commit(db: Session) -> None:
    """Commit; unique-key failures become ConflictError, other constraint failures ValidationError."""
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if "unique" in str(exc.orig).lower():
            raise ConflictError("Duplicate entry found", error_code="DUPLICATE_ENTRY") from exc
        logger.warning("Constraint violation on commit: %s", exc.orig)
        raise ValidationError("Record violates a data constraint", error_code="CONSTRAINT_VIOLATION") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Database commit failed")
        raise PersistenceError("An internal server error occurred") from exc


def get_user_or_404(db: Session, user_id: int) -> models.User:
    user = db.get(models.User, user_id)
    if user is None:
        raise NotFoundError("User not found", resource_type="user", resource_id=user_id)
    return user


class UserDirectory:
    def __init__(self, db: Session, hasher: Optional[PasswordHasher] = None,
                 notifier: Optional[Notifier] = None):
        self.db = db
        self.hasher = hasher or password_hasher
        self.notifier = notifier or get_notifier()

    # --- Lookups ---

    def get_by_id_card(self, id_card: str) -> models.User:
        user = self.db.query(models.User).filter(models.User.id_card == id_card).first()
        if user is None:
            raise NotFoundError("User not found", resource_type="user", resource_id=id_card)
        return user

    def active_super_admins(self) -> List[models.User]:
        return (
            self.db.query(models.User)
            .filter(models.User.role == SUPER_ADMIN, models.User.is_active.is_(True))
            .order_by(models.User.id)
            .all()
        )

    def _other_active_super_admins(self, user_id: int) -> int:
        return (
            self.db.query(func.count(models.User.id))
            .filter(models.User.role == SUPER_ADMIN, models.User.is_active.is_(True), models.User.id != user_id)
            .scalar()
        )

    def _direct_report_count(self, manager_id: int) -> int:
        return self.db.query(func.count(models.User.id)).filter(models.User.reports_to_id == manager_id).scalar()

    def _get_department(self, department_id: int, active_only: bool = False) -> models.Department:
        department = self.db.get(models.Department, department_id, populate_existing=True)
        if department is None or (active_only and not department.is_active):
            raise ValidationError("Invalid or inactive department", error_code="INVALID_DEPARTMENT")
        return department

    def _taken(self, column, value: str, exclude_id: Optional[int] = None) -> bool:
        query = self.db.query(models.User.id).filter(column == value)
        if exclude_id is not None:
            query = query.filter(models.User.id != exclude_id)
        return query.first() is not None

    # --- Reporting lines ---

    def _validate_manager(self, actor: models.User, manager_id: int,
                          target: Optional[models.User] = None) -> models.User:
        if target is not None and manager_id == target.id:
            raise ValidationError("A user cannot report to themselves")
        manager = self.db.get(models.User, manager_id)
        if manager is None:
            raise NotFoundError("Specified manager not found", resource_type="user", resource_id=manager_id)
        if not manager.is_active or manager.role not in MANAGER_ROLES:
            raise ValidationError("ReportsTo must be an active LINE_MANAGER or SUPER_ADMIN",
                                  error_code="INVALID_MANAGER")
        if not permissions.can_assign_manager(actor, manager):
            raise InsufficientPrivilege("Only SUPER_ADMIN can assign staff to SUPER_ADMIN")
        if target is not None:
            self._ensure_acyclic(target, manager)
        return manager

    @staticmethod
    def _ensure_acyclic(target: models.User, manager: models.User) -> None:
        seen = set()
        node = manager
        while node is not None:
            if node.id == target.id:
                raise ValidationError("Reporting line would form a cycle", error_code="REPORTING_CYCLE")
            if node.id in seen:
                break
            seen.add(node.id)
            node = node.manager

    def department_line_manager(self, department_id: int,
                                exclude_id: Optional[int] = None) -> Optional[models.User]:
        """Current manager for STAFF in a department, read at call time.

        The designated line manager if active and still a manager, otherwise
        the first active LINE_MANAGER belonging to the department.
        """
        department = self.db.get(models.Department, department_id, populate_existing=True)
        if department is None:
            return None
        if department.line_manager_id is not None and department.line_manager_id != exclude_id:
            designated = self.db.get(models.User, department.line_manager_id)
            if designated is not None and designated.is_active and designated.role in MANAGER_ROLES:
                return designated
            logger.warning("[AUTO-ASSIGN] Department %s line manager %s is not an active manager",
                           department.code or department.id, department.line_manager_id)
        return (
            self.db.query(models.User)
            .filter(
                models.User.department_id == department_id,
                models.User.role == LINE_MANAGER,
                models.User.is_active.is_(True),
                models.User.id != (exclude_id or 0),
            )
            .order_by(models.User.id)
            .first()
        )

    @staticmethod
    def _set_manager(target: models.User, manager: Optional[models.User]) -> None:
        target.manager = manager
        target.reports_to_id = manager.id if manager is not None else None

    # --- Registration ---

    def register(self, actor: models.User, payload: user_schema.UserCreate) -> models.User:
        if actor.role != SUPER_ADMIN:
            raise AuthorizationError("Only SUPER_ADMIN can register new users")

        id_card = validate_employee_code(payload.id_card)
        if self._taken(models.User.id_card, id_card) or self._taken(models.User.email, payload.email):
            raise ConflictError("User with same ID card or email already exists", error_code="USER_EXISTS")

        department = self._get_department(payload.department, active_only=True)
        validate_region_branch(payload.region, payload.branch)

        if not can_assign_role(actor.role, payload.role):
            raise InsufficientPrivilege(f"{actor.role} cannot assign role {payload.role}")

        manager = None
        if payload.role == STAFF:
            if payload.reports_to is None:
                raise ValidationError("Staff must be assigned to a line manager",
                                      error_code="STAFF_MANAGER_REQUIRED")
            manager = self._validate_manager(actor, payload.reports_to)

        code = generate_numeric_code()
        user = models.User(
            id_card=id_card,
            email=payload.email,
            password_hash=self.hasher.hash(payload.password),
            first_name=payload.first_name.strip(),
            last_name=payload.last_name.strip(),
            region=payload.region,
            branch=payload.branch,
            department=department,
            position=payload.position.strip(),
            role=payload.role,
            is_admin=is_admin(payload.role),
            is_verified=False,
            otp_code=code,
            otp_expires_at=utcnow() + timedelta(minutes=settings.OTP_EXPIRE_MINUTES),
        )
        self._set_manager(user, manager)
        self.db.add(user)
        commit(self.db)
        self.db.refresh(user)
        logger.info("[ADMIN] %s registered %s (%s)", actor.id_card, user.id_card, user.role)

        deliver(self.notifier.verification_code, user.email, user.first_name, code)
        return user

    # --- Read ---

    def get(self, actor: models.User, target_id: int) -> models.User:
        target = get_user_or_404(self.db, target_id)
        if not permissions.can_view(actor, target):
            raise AuthorizationError("Not authorized to view this user")
        return target

    def list(self, actor: models.User, filters: Optional[user_schema.UserFilters] = None) -> List[models.User]:
        query = scope_user_query(self.db.query(models.User), permissions.visibility_scope(actor))
        if filters is not None:
            if filters.role:
                query = query.filter(models.User.role == filters.role)
            if filters.department is not None:
                query = query.filter(models.User.department_id == filters.department)
            if filters.region:
                query = query.filter(models.User.region == filters.region)
            if filters.branch:
                query = query.filter(models.User.branch == filters.branch)
            if filters.is_active is not None:
                query = query.filter(models.User.is_active.is_(filters.is_active))
        return query.order_by(models.User.id).all()

    def list_by_location(self, actor: models.User, region: Optional[str] = None,
                         branch: Optional[str] = None) -> List[models.User]:
        if actor.role not in MANAGER_ROLES:
            raise AuthorizationError("Admin access required")
        if not region and not branch:
            raise ValidationError("At least one of region or branch must be provided")
        if region and region not in REGION_BRANCHES:
            raise ValidationError("Invalid region specified", valid_regions=list(REGION_BRANCHES))
        return self.list(actor, user_schema.UserFilters(region=region, branch=branch))

    def locked_accounts(self, actor: models.User) -> List[models.User]:
        if actor.role not in MANAGER_ROLES:
            raise AuthorizationError("Admin access required")
        locked = (
            self.db.query(models.User)
            .filter(models.User.is_locked.is_(True))
            .order_by(models.User.locked_at.desc())
            .all()
        )
        return [u for u in locked if permissions.can_see_locked_account(actor, u)]

    # --- Update ---

    def _decode_update(self, level: UpdateLevel, payload: Dict[str, Any]) -> user_schema.UserUpdate:
        allowed = permissions.allowed_fields_for(level)
        unauthorized = sorted(k for k in payload if k not in allowed and k != "password")
        if unauthorized:
            raise AuthorizationError(
                f"Not authorized to update fields: {', '.join(unauthorized)}",
                allowed_fields=sorted(allowed),
                unauthorized_fields=unauthorized,
            )
        if "password" in payload and not permissions.can_set_password(level):
            raise AuthorizationError(
                "Only users can update their own password or SUPER_ADMIN can update any password"
            )
        try:
            return user_schema.UPDATE_MODELS[level.value].model_validate(payload)
        except pydantic.ValidationError as exc:
            raise validation_error_from(exc) from exc

    def update(self, actor: models.User, target_id: int, payload: Dict[str, Any]) -> models.User:
        target = get_user_or_404(self.db, target_id)
        level = permissions.resolve_update_level(actor, target)
        if level is UpdateLevel.DENIED:
            raise AuthorizationError("Insufficient permissions to update this user")
        logger.info("[UPDATE] %s (%s) updating %s (%s) - level %s",
                    actor.id_card, actor.role, target.id_card, target.role, level.value)

        try:
            permissions.check_deactivation(actor, target, payload, self._other_active_super_admins(target.id))
            data = self._decode_update(level, payload).provided()
            self._apply_update(actor, target, data)
            commit(self.db)
        except DirectoryError:
            self.db.rollback()
            raise

        self.db.refresh(target)
        return target

    def _apply_update(self, actor: models.User, target: models.User, data: Dict[str, Any]) -> None:
        if "id_card" in data:
            id_card = validate_employee_code(data["id_card"])
            if self._taken(models.User.id_card, id_card, exclude_id=target.id):
                raise ConflictError("Id_card already exists", field="id_card")
            target.id_card = id_card

        department_changed = False
        if data.get("department") is not None:
            department = self._get_department(data["department"], active_only=True)
            if department.id != target.department_id:
                department_changed = True
                logger.info("[DEPARTMENT CHANGE] %s moving from %s to %s",
                            target.id_card, target.department_id, department.id)
            target.department = department
            target.department_id = department.id

        if data.get("role") is not None and data["role"] != target.role:
            self._change_role(actor, target, validate_role(data["role"]), data)

        if "reports_to" in data:
            self._change_reports_to(actor, target, data["reports_to"])

        if department_changed and target.role == STAFF:
            if "reports_to" in data:
                logger.info("[AUTO-ASSIGN] Explicit reports_to kept for %s", target.id_card)
            else:
                manager = self.department_line_manager(target.department_id, exclude_id=target.id)
                if manager is not None:
                    self._set_manager(target, manager)
                    logger.info("[AUTO-ASSIGN] %s now reports to %s", target.id_card, manager.id_card)
                else:
                    logger.warning("[AUTO-ASSIGN] No active line manager in department %s for %s",
                                   target.department_id, target.id_card)

        if data.get("password"):
            target.password_hash = self.hasher.hash(data["password"])

        if "email" in data and data["email"] != target.email:
            if self._taken(models.User.email, data["email"], exclude_id=target.id):
                raise ConflictError("Email already exists", field="email")
            target.email = data["email"]
        for field in ("first_name", "last_name", "position"):
            if data.get(field) is not None:
                setattr(target, field, data[field].strip())
        if data.get("is_active") is not None:
            target.is_active = data["is_active"]

        if data.get("region") or data.get("branch"):
            region = data.get("region") or target.region
            branch = data.get("branch") or target.branch
            validate_region_branch(region, branch)
            target.region, target.branch = region, branch

        if target.role == STAFF and target.reports_to_id is None:
            raise ValidationError("STAFF must have a line manager", error_code="STAFF_MANAGER_REQUIRED")

    def _change_role(self, actor: models.User, target: models.User, new_role: str, data: Dict[str, Any]) -> None:
        if not can_assign_role(actor.role, new_role):
            raise InsufficientPrivilege("Only SUPER_ADMIN can change user roles")
        if target.role == SUPER_ADMIN and target.is_active and self._other_active_super_admins(target.id) == 0:
            raise LastSuperAdminError("Cannot demote the last active SUPER_ADMIN account")
        if new_role == STAFF and target.role in MANAGER_ROLES:
            reports = self._direct_report_count(target.id)
            if reports:
                raise ConflictError(
                    f"Cannot demote manager. They still have {reports} direct reports. "
                    "Please reassign them first.",
                    error_code="HAS_DIRECT_REPORTS",
                )

        logger.info("[ROLE CHANGE] %s: %s -> %s by %s", target.id_card, target.role, new_role, actor.id_card)
        target.role = new_role
        target.is_admin = is_admin(new_role)

        if new_role != STAFF:
            self._set_manager(target, None)
        elif "reports_to" not in data and target.reports_to_id is None:
            manager = self.department_line_manager(target.department_id, exclude_id=target.id)
            if manager is not None:
                self._set_manager(target, manager)
                logger.info("[AUTO-ASSIGN] %s assigned to department line manager %s",
                            target.id_card, manager.id_card)

    def _change_reports_to(self, actor: models.User, target: models.User, manager_id: Optional[int]) -> None:
        if manager_id is None:
            if target.role == STAFF:
                raise ValidationError("STAFF must have a line manager", error_code="STAFF_MANAGER_REQUIRED")
            self._set_manager(target, None)
            return
        if target.role != STAFF:
            raise ValidationError(f"{target.role} cannot have a manager")
        self._set_manager(target, self._validate_manager(actor, manager_id, target))

    # --- Delete ---

    def delete(self, actor: models.User, target_id: int) -> models.User:
        if actor.role != SUPER_ADMIN:
            raise AuthorizationError("Only SUPER_ADMIN can delete users")
        target = get_user_or_404(self.db, target_id)
        if not permissions.can_delete(actor, target):
            if target.id == actor.id:
                raise SelfActionForbidden("Cannot delete your own account")
            raise InsufficientPrivilege("Cannot delete another SUPER_ADMIN account")

        reports = self._direct_report_count(target.id)
        if reports:
            raise ConflictError(
                f"Cannot delete manager. They still have {reports} direct reports. Please reassign them first.",
                error_code="HAS_DIRECT_REPORTS",
            )

        (
            self.db.query(models.Department)
            .filter(models.Department.line_manager_id == target.id)
            .update({models.Department.line_manager_id: None}, synchronize_session="fetch")
        )
        self.db.delete(target)
        commit(self.db)
        logger.info("[ADMIN] %s deleted user %s", actor.id_card, target.id_card)
        return target

    # --- Check-in ---

    def checkin(self, actor: models.User, target_id: int, region: str,
                branch: str) -> Tuple[models.User, Any]:
        if not permissions.can_checkin(actor, target_id):
            raise AuthorizationError("Not authorized to check in for this user")
        target = get_user_or_404(self.db, target_id)
        if not region or not branch:
            raise ValidationError("Region and branch are required for check-in")
        validate_region_branch(region, branch)

        now = utcnow()
        target.last_checkin_at = now
        target.last_checkin_region = region
        target.last_checkin_branch = branch
        commit(self.db)
        self.db.refresh(target)
        return target, now

    # --- Lock / unlock ---

    def lock_account(self, actor: models.User, id_card: str, reason: Optional[str] = None) -> models.User:
        if actor.role not in MANAGER_ROLES:
            raise AuthorizationError("Admin access required")
        target = self.get_by_id_card(id_card)
        account_security.lock(target, actor, reason)
        commit(self.db)
        self.db.refresh(target)

        recipients = recipients_for(target, self.active_super_admins())
        deliver(self.notifier.account_locked, target, recipients,
                f"{actor.full_name} ({actor.role})", target.locked_reason)
        return target

    def unlock_account(self, actor: models.User, id_card: str) -> models.User:
        if actor.role not in MANAGER_ROLES:
            raise AuthorizationError("Admin access required")
        target = self.get_by_id_card(id_card)
        account_security.unlock(target, actor)
        commit(self.db)
        self.db.refresh(target)

        recipients = recipients_for(target, self.active_super_admins())
        deliver(self.notifier.account_unlocked, target, recipients, f"{actor.full_name} ({actor.role})")
        return target

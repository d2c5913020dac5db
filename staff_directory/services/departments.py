# staff_directory/services/departments.py
import logging
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from staff_directory.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from staff_directory.core.roles import MANAGER_ROLES, Role
from staff_directory.db import models
from staff_directory.schemas import department as department_schema
from staff_directory.services.directory import commit

logger = logging.getLogger(__name__)

# Fields an update may explicitly clear; a null for any other field is ignored.
NULLABLE_FIELDS = frozenset({"code", "description", "line_manager_id"})


def _require_super_admin(actor: models.User) -> None:
    if actor.role != Role.SUPER_ADMIN.value:
        raise AuthorizationError("Requires SUPER_ADMIN role")


class Departments:
    def __init__(self, db: Session):
        self.db = db

    def get(self, department_id: int) -> models.Department:
        department = self.db.get(models.Department, department_id)
        if department is None:
            raise NotFoundError("Department not found", resource_type="department", resource_id=department_id)
        return department

    def list(self, active_only: bool = True) -> List[models.Department]:
        query = self.db.query(models.Department)
        if active_only:
            query = query.filter(models.Department.is_active.is_(True))
        return query.order_by(models.Department.name).all()

    def _active_user_count(self, department_id: int) -> int:
        return (
            self.db.query(func.count(models.User.id))
            .filter(models.User.department_id == department_id, models.User.is_active.is_(True))
            .scalar()
        )

    def _ensure_unique(self, name: Optional[str], code: Optional[str], exclude_id: Optional[int] = None) -> None:
        checks = [("name", models.Department.name, name), ("code", models.Department.code, code)]
        for field, column, value in checks:
            if not value:
                continue
            query = self.db.query(models.Department.id).filter(func.lower(column) == value.lower())
            if exclude_id is not None:
                query = query.filter(models.Department.id != exclude_id)
            if query.first() is not None:
                raise ConflictError(f"Department {field} already exists", error_code="DUPLICATE_ENTRY", field=field)

    def _ensure_line_manager(self, manager_id: int) -> None:
        manager = self.db.get(models.User, manager_id)
        if manager is None:
            raise NotFoundError("Specified manager not found", resource_type="user", resource_id=manager_id)
        if not manager.is_active or manager.role not in MANAGER_ROLES:
            raise ValidationError("Line manager must be an active LINE_MANAGER or SUPER_ADMIN",
                                  error_code="INVALID_MANAGER")

    def _ensure_can_deactivate(self, department: models.Department, verb: str) -> None:
        active = self._active_user_count(department.id)
        if active:
            raise ConflictError(
                f"Cannot {verb} department with {active} active user(s). Reassign users first.",
                error_code="DEPARTMENT_IN_USE",
            )

    def create(self, actor: models.User, payload: department_schema.DepartmentCreate) -> models.Department:
        _require_super_admin(actor)
        self._ensure_unique(payload.name, payload.code)
        if payload.line_manager_id is not None:
            self._ensure_line_manager(payload.line_manager_id)

        department = models.Department(**payload.model_dump())
        self.db.add(department)
        commit(self.db)
        self.db.refresh(department)
        logger.info("[DEPARTMENT] %s created %s (%s)", actor.id_card, department.name, department.code)
        return department

    def update(self, actor: models.User, department_id: int,
               payload: department_schema.DepartmentUpdate) -> models.Department:
        _require_super_admin(actor)
        department = self.get(department_id)
        changes = {
            field: value for field, value in payload.model_dump(exclude_unset=True).items()
            if value is not None or field in NULLABLE_FIELDS
        }
        if not changes:
            raise ValidationError("At least one field must be provided for update")

        self._ensure_unique(changes.get("name"), changes.get("code"), exclude_id=department.id)
        if changes.get("line_manager_id") is not None:
            self._ensure_line_manager(changes["line_manager_id"])
        if changes.get("is_active") is False and department.is_active:
            self._ensure_can_deactivate(department, "deactivate")
        if "name" in changes and not changes["name"]:
            raise ValidationError("Department name is required")

        for field, value in changes.items():
            setattr(department, field, value)
        commit(self.db)
        self.db.refresh(department)
        return department

    def delete(self, actor: models.User, department_id: int) -> models.Department:
        _require_super_admin(actor)
        department = self.get(department_id)
        self._ensure_can_deactivate(department, "delete")
        if self.db.query(models.User.id).filter(models.User.department_id == department.id).first():
            raise ConflictError("Cannot delete department that still has users assigned. Reassign users first.",
                                error_code="DEPARTMENT_IN_USE")

        self.db.delete(department)
        commit(self.db)
        logger.info("[DEPARTMENT] %s deleted %s", actor.id_card, department.name)
        return department

    def toggle_status(self, actor: models.User, department_id: int,
                      is_active: Optional[bool] = None) -> models.Department:
        if actor.role not in MANAGER_ROLES:
            raise AuthorizationError("Admin access required")
        department = self.get(department_id)
        new_state = (not department.is_active) if is_active is None else is_active

        if not new_state:
            if actor.role != Role.SUPER_ADMIN.value:
                raise AuthorizationError("Only SUPER_ADMIN can deactivate departments")
            self._ensure_can_deactivate(department, "deactivate")

        department.is_active = new_state
        commit(self.db)
        self.db.refresh(department)
        logger.info("[DEPARTMENT] %s %s %s", actor.id_card,
                    "activated" if new_state else "deactivated", department.name)
        return department

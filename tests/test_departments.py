"""
Tests for department management.
"""

import pydantic
import pytest

from staff_directory.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from staff_directory.db import models
from staff_directory.schemas.department import DepartmentCreate, DepartmentUpdate
from staff_directory.services.departments import Departments
from staff_directory.services.directory import commit


@pytest.fixture
def departments(db) -> Departments:
    return Departments(db)


class TestCreate:
    def test_create_normalises_input(self, departments, super_admin):
        created = departments.create(super_admin, DepartmentCreate(name="  Finance ", code=" fin "))
        assert (created.name, created.code, created.is_active) == ("Finance", "FIN", True)

    def test_blank_code_becomes_none(self):
        assert DepartmentCreate(name="Audit", code="   ").code is None

    def test_only_super_admin(self, departments, line_manager):
        with pytest.raises(AuthorizationError):
            departments.create(line_manager, DepartmentCreate(name="Finance"))

    def test_duplicates_are_case_insensitive(self, departments, super_admin, department):
        with pytest.raises(ConflictError) as exc:
            departments.create(super_admin, DepartmentCreate(name="operations"))
        assert exc.value.details["field"] == "name"
        with pytest.raises(ConflictError):
            departments.create(super_admin, DepartmentCreate(name="Ops Two", code="ops"))

    def test_line_manager_must_be_an_active_manager(self, departments, super_admin, staff, line_manager):
        with pytest.raises(ValidationError):
            departments.create(super_admin, DepartmentCreate(name="Finance", line_manager_id=staff.id))
        with pytest.raises(NotFoundError):
            departments.create(super_admin, DepartmentCreate(name="Finance", line_manager_id=9999))

        created = departments.create(super_admin, DepartmentCreate(name="Finance", line_manager_id=line_manager.id))
        assert created.line_manager_id == line_manager.id


class TestUpdate:
    def test_rename(self, departments, super_admin, make_department):
        finance = make_department(name="Finance", code="FIN")
        updated = departments.update(super_admin, finance.id, DepartmentUpdate(name="Treasury"))
        assert updated.name == "Treasury"
        assert updated.code == "FIN"

    def test_rename_to_existing_name(self, departments, super_admin, department, make_department):
        finance = make_department(name="Finance", code="FIN")
        with pytest.raises(ConflictError):
            departments.update(super_admin, finance.id, DepartmentUpdate(name="OPERATIONS"))

    def test_explicit_null_is_active_is_ignored(self, departments, super_admin, make_department):
        finance = make_department(name="Finance", code="FIN")
        with pytest.raises(ValidationError):
            departments.update(super_admin, finance.id, DepartmentUpdate(is_active=None))

        renamed = departments.update(super_admin, finance.id, DepartmentUpdate(name="Treasury", is_active=None))
        assert (renamed.name, renamed.is_active) == ("Treasury", True)

    def test_code_can_be_cleared(self, departments, super_admin, make_department):
        finance = make_department(name="Finance", code="FIN")
        assert departments.update(super_admin, finance.id, DepartmentUpdate(code=None)).code is None

    def test_unknown_fields_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            DepartmentUpdate(budget=10)

    def test_cannot_deactivate_with_active_users(self, departments, super_admin, department):
        with pytest.raises(ConflictError) as exc:
            departments.update(super_admin, department.id, DepartmentUpdate(is_active=False))
        assert exc.value.error_code == "DEPARTMENT_IN_USE"


class TestToggleAndDelete:
    def test_manager_may_activate_but_not_deactivate(self, departments, super_admin, line_manager,
                                                      make_department):
        dormant = make_department(name="Archive", code="ARC", is_active=False)

        assert departments.toggle_status(line_manager, dormant.id).is_active is True
        with pytest.raises(AuthorizationError):
            departments.toggle_status(line_manager, dormant.id)
        assert departments.toggle_status(super_admin, dormant.id).is_active is False

    def test_explicit_state(self, departments, super_admin, make_department):
        spare = make_department(name="Spare", code="SPR")
        assert departments.toggle_status(super_admin, spare.id, is_active=True).is_active is True

    def test_staff_cannot_toggle(self, departments, staff, department):
        with pytest.raises(AuthorizationError):
            departments.toggle_status(staff, department.id)

    def test_toggle_blocked_while_users_active(self, departments, super_admin, department):
        with pytest.raises(ConflictError):
            departments.toggle_status(super_admin, department.id)

    def test_delete(self, departments, super_admin, department, make_department):
        spare = make_department(name="Spare", code="SPR")
        departments.delete(super_admin, spare.id)
        with pytest.raises(NotFoundError):
            departments.get(spare.id)

        with pytest.raises(ConflictError):
            departments.delete(super_admin, department.id)

    def test_delete_blocked_by_inactive_members(self, db, departments, super_admin, make_department, make_user,
                                                line_manager):
        spare = make_department(name="Spare", code="SPR")
        make_user(manager=line_manager, department=spare, is_active=False)
        with pytest.raises(ConflictError):
            departments.delete(super_admin, spare.id)

    def test_list_filters_inactive(self, departments, department, make_department):
        make_department(name="Archive", code="ARC", is_active=False)
        assert [d.name for d in departments.list()] == ["Operations"]
        assert [d.name for d in departments.list(active_only=False)] == ["Archive", "Operations"]


class TestCommit:
    def test_unique_violation_is_conflict(self, db, department):
        db.add(models.Department(name="Operations"))
        with pytest.raises(ConflictError) as exc:
            commit(db)
        assert exc.value.error_code == "DUPLICATE_ENTRY"

    def test_other_constraint_violation_is_validation_error(self, db, department):
        department.is_active = None
        with pytest.raises(ValidationError) as exc:
            commit(db)
        assert exc.value.error_code == "CONSTRAINT_VIOLATION"

        db.refresh(department)
        assert department.is_active is True

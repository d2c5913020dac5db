"""
Tests for the user directory service: registration, the gated update,
deletion, listings, check-ins and account lock/unlock.
"""

import pytest

from staff_directory.core.clock import today
from staff_directory.core.exceptions import (
    AuthorizationError,
    ConflictError,
    InsufficientPrivilege,
    LastSuperAdminError,
    NotFoundError,
    SelfActionForbidden,
    SelfDeactivationForbidden,
    ValidationError,
)
from staff_directory.core.security import verify_password
from staff_directory.db import models
from staff_directory.schemas import user as user_schema
from staff_directory.services.directory import UserDirectory


@pytest.fixture
def directory(db, notifier) -> UserDirectory:
    return UserDirectory(db, notifier=notifier)


def new_user(department, **fields):
    values = dict(
        id_card="KE200",
        email="New.Person@Example.com",
        first_name="New",
        last_name="Person",
        password="password1",
        department=department.id,
        position="Analyst",
    )
    values.update(fields)
    return user_schema.UserCreate(**values)


class TestRegister:
    def test_registers_unverified_staff_and_sends_code(self, directory, notifier, super_admin,
                                                       line_manager, department):
        user = directory.register(super_admin, new_user(department, reports_to=line_manager.id))

        assert user.email == "new.person@example.com"
        assert user.role == "STAFF"
        assert user.reports_to_id == line_manager.id
        assert not user.is_verified
        assert not user.is_admin
        [(email, name, code)] = notifier.of_kind("verification_code")
        assert email == user.email and code == user.otp_code and len(code) == 6

    def test_manager_gets_no_reports_to(self, directory, super_admin, department):
        user = directory.register(super_admin, new_user(department, role="LINE_MANAGER"))
        assert user.reports_to_id is None
        assert user.is_admin

    def test_only_super_admin_registers(self, directory, line_manager, department):
        with pytest.raises(AuthorizationError):
            directory.register(line_manager, new_user(department, reports_to=line_manager.id))

    def test_staff_requires_manager(self, directory, super_admin, department):
        with pytest.raises(ValidationError):
            directory.register(super_admin, new_user(department))

    def test_reports_to_must_be_manager(self, directory, super_admin, staff, department):
        with pytest.raises(ValidationError):
            directory.register(super_admin, new_user(department, reports_to=staff.id))

    def test_rejects_bad_code_and_duplicates(self, directory, super_admin, line_manager, department):
        with pytest.raises(ValidationError) as exc:
            directory.register(super_admin, new_user(department, id_card="ke2", reports_to=line_manager.id))
        assert exc.value.error_code == "INVALID_ID_FORMAT"

        with pytest.raises(ConflictError):
            directory.register(super_admin, new_user(department, id_card=line_manager.id_card,
                                                     reports_to=line_manager.id))

    def test_rejects_inactive_department(self, directory, super_admin, line_manager, make_department):
        closed = make_department(is_active=False)
        with pytest.raises(ValidationError):
            directory.register(super_admin, new_user(closed, reports_to=line_manager.id))

    def test_rejects_branch_outside_region(self, directory, super_admin, line_manager, department):
        with pytest.raises(ValidationError):
            directory.register(super_admin, new_user(department, region="Delta", branch="HQ",
                                                     reports_to=line_manager.id))


class TestSelfUpdate:
    def test_own_profile_fields(self, db, directory, staff):
        updated = directory.update(staff, staff.id, {"first_name": "Bola", "email": "BOLA@example.com"})
        assert updated.first_name == "Bola"
        assert updated.email == "bola@example.com"

    def test_own_password_is_hashed(self, directory, staff):
        updated = directory.update(staff, staff.id, {"password": "newpass99"})
        assert verify_password("newpass99", updated.password_hash)

    @pytest.mark.parametrize(
        "payload",
        [
            {"first_name": "Bola", "role": "SUPER_ADMIN"},
            {"email": "bola@example.com", "id_card": "KE999"},
            {"last_name": "X", "reports_to": None},
            {"department": 1},
        ],
    )
    def test_privileged_fields_rejected_and_nothing_applied(self, db, directory, staff, payload):
        before = (staff.first_name, staff.last_name, staff.email, staff.role)
        with pytest.raises(AuthorizationError) as exc:
            directory.update(staff, staff.id, payload)

        assert exc.value.details["unauthorized_fields"]
        db.expire_all()
        stored = db.get(models.User, staff.id)
        assert (stored.first_name, stored.last_name, stored.email, stored.role) == before

    def test_self_deactivation_rejected_before_email_applied(self, db, directory, staff):
        with pytest.raises(SelfDeactivationForbidden):
            directory.update(staff, staff.id, {"email": "x@y.com", "is_active": False})

        db.expire_all()
        stored = db.get(models.User, staff.id)
        assert stored.email == "bo@example.com"
        assert stored.is_active

    @pytest.mark.parametrize("value", [0, "false", "0", "off"])
    def test_self_deactivation_with_falsy_values(self, db, directory, staff, value):
        with pytest.raises(SelfDeactivationForbidden):
            directory.update(staff, staff.id, {"email": "x@y.com", "is_active": value})

        db.expire_all()
        assert db.get(models.User, staff.id).is_active

    def test_unknown_field_rejected(self, directory, staff):
        with pytest.raises(AuthorizationError):
            directory.update(staff, staff.id, {"nickname": "B"})

    def test_invalid_value_is_validation_error(self, directory, staff):
        with pytest.raises(ValidationError):
            directory.update(staff, staff.id, {"email": "not-an-email"})


class TestManagerUpdate:
    def test_manager_updates_direct_report(self, directory, line_manager, staff):
        updated = directory.update(line_manager, staff.id, {"position": "Senior Officer",
                                                            "region": "Lagos", "branch": "Alimosho"})
        assert updated.position == "Senior Officer"
        assert updated.branch == "Alimosho"

    def test_manager_may_deactivate_direct_report(self, directory, line_manager, staff):
        assert directory.update(line_manager, staff.id, {"is_active": False}).is_active is False

    def test_non_boolean_is_active_rejected(self, db, directory, line_manager, staff):
        with pytest.raises(ValidationError):
            directory.update(line_manager, staff.id, {"is_active": "false"})

        db.expire_all()
        assert db.get(models.User, staff.id).is_active

    def test_manager_cannot_set_password(self, directory, line_manager, staff):
        with pytest.raises(AuthorizationError):
            directory.update(line_manager, staff.id, {"password": "whatever1"})

    def test_manager_cannot_change_role(self, directory, line_manager, staff):
        with pytest.raises(AuthorizationError):
            directory.update(line_manager, staff.id, {"role": "LINE_MANAGER"})

    def test_other_manager_denied(self, directory, other_manager, staff):
        with pytest.raises(AuthorizationError):
            directory.update(other_manager, staff.id, {"position": "X"})

    def test_email_must_be_unique(self, directory, line_manager, staff, other_manager):
        with pytest.raises(ConflictError):
            directory.update(line_manager, staff.id, {"email": other_manager.email})


class TestSuperAdminUpdate:
    def test_last_super_admin_cannot_be_deactivated(self, make_user, directory, super_admin):
        second = make_user(role="SUPER_ADMIN")
        directory.update(super_admin, second.id, {"is_active": False})
        with pytest.raises(SelfDeactivationForbidden):
            directory.update(super_admin, super_admin.id, {"is_active": False})

        with pytest.raises(LastSuperAdminError):
            directory.update(second, super_admin.id, {"is_active": False})

    @pytest.mark.parametrize("value", [0, "false", "0", "off"])
    def test_sole_super_admin_stays_active(self, db, directory, super_admin, value):
        with pytest.raises(SelfDeactivationForbidden):
            directory.update(super_admin, super_admin.id, {"is_active": value})

        db.expire_all()
        active = db.query(models.User).filter(models.User.role == "SUPER_ADMIN",
                                              models.User.is_active.is_(True)).count()
        assert active == 1

    @pytest.mark.parametrize("value", [0, "false"])
    def test_last_super_admin_guard_reads_falsy_values(self, make_user, directory, super_admin, value):
        second = make_user(role="SUPER_ADMIN")
        directory.update(super_admin, second.id, {"is_active": False})
        with pytest.raises(LastSuperAdminError):
            directory.update(second, super_admin.id, {"is_active": value})

    def test_last_super_admin_cannot_be_demoted(self, directory, super_admin):
        with pytest.raises(LastSuperAdminError):
            directory.update(super_admin, super_admin.id, {"role": "LINE_MANAGER"})

    def test_department_change_follows_designated_manager(self, db, directory, super_admin, staff,
                                                          other_manager, make_department):
        sales = make_department(name="Sales", code="SAL", line_manager_id=other_manager.id)

        updated = directory.update(super_admin, staff.id, {"department": sales.id})

        assert updated.department_id == sales.id
        assert updated.reports_to_id == other_manager.id

    def test_department_change_falls_back_to_department_manager(self, db, directory, super_admin, staff,
                                                                make_user, make_department):
        sales = make_department(name="Sales", code="SAL")
        sales_manager = make_user(role="LINE_MANAGER", department=sales)

        updated = directory.update(super_admin, staff.id, {"department": sales.id})
        assert updated.reports_to_id == sales_manager.id

    def test_explicit_reports_to_wins_over_department(self, directory, super_admin, staff, line_manager,
                                                      other_manager, make_department):
        sales = make_department(name="Sales", code="SAL", line_manager_id=other_manager.id)

        updated = directory.update(super_admin, staff.id,
                                   {"department": sales.id, "reports_to": line_manager.id})
        assert updated.reports_to_id == line_manager.id

    def test_promotion_clears_manager(self, directory, super_admin, staff):
        updated = directory.update(super_admin, staff.id, {"role": "LINE_MANAGER"})
        assert updated.reports_to_id is None
        assert updated.is_admin

    def test_demotion_assigns_department_manager(self, directory, super_admin, line_manager, make_user,
                                                 department):
        department.line_manager_id = line_manager.id
        lead = make_user(role="LINE_MANAGER")

        updated = directory.update(super_admin, lead.id, {"role": "STAFF"})
        assert updated.reports_to_id == line_manager.id
        assert not updated.is_admin

    def test_demoting_manager_with_reports_conflicts(self, directory, super_admin, line_manager, staff):
        with pytest.raises(ConflictError):
            directory.update(super_admin, line_manager.id, {"role": "STAFF"})

    def test_staff_cannot_lose_manager(self, directory, super_admin, staff):
        with pytest.raises(ValidationError):
            directory.update(super_admin, staff.id, {"reports_to": None})

    def test_reports_to_rejects_missing_and_cycles(self, directory, super_admin, line_manager, staff):
        with pytest.raises(NotFoundError):
            directory.update(super_admin, staff.id, {"reports_to": 9999})
        with pytest.raises(ValidationError):
            directory.update(super_admin, staff.id, {"reports_to": staff.id})
        with pytest.raises(ValidationError):
            directory.update(super_admin, line_manager.id, {"reports_to": super_admin.id})

    def test_id_card_change_validated(self, directory, super_admin, staff, line_manager):
        with pytest.raises(ValidationError):
            directory.update(super_admin, staff.id, {"id_card": "bad"})
        with pytest.raises(ConflictError):
            directory.update(super_admin, staff.id, {"id_card": line_manager.id_card})
        assert directory.update(super_admin, staff.id, {"id_card": "LA777"}).id_card == "LA777"


class TestDeleteAndRead:
    def test_delete_removes_user_and_activities(self, db, directory, super_admin, staff):
        db.add(models.DailyActivity(user_id=staff.id, date=today(),
                                    time_interval="09:00 - 10:00", description="Standup"))
        db.commit()
        staff_id = staff.id

        directory.delete(super_admin, staff_id)

        assert db.get(models.User, staff_id) is None
        assert db.query(models.DailyActivity).filter_by(user_id=staff_id).count() == 0

    def test_delete_refuses_manager_with_reports(self, directory, super_admin, line_manager, staff):
        with pytest.raises(ConflictError):
            directory.delete(super_admin, line_manager.id)

    def test_delete_clears_department_manager(self, db, directory, super_admin, other_manager, department):
        department.line_manager_id = other_manager.id
        db.commit()

        directory.delete(super_admin, other_manager.id)
        db.refresh(department)
        assert department.line_manager_id is None

    def test_delete_rules(self, make_user, directory, super_admin, line_manager, staff):
        with pytest.raises(AuthorizationError):
            directory.delete(line_manager, staff.id)
        with pytest.raises(SelfActionForbidden):
            directory.delete(super_admin, super_admin.id)
        with pytest.raises(InsufficientPrivilege):
            directory.delete(super_admin, make_user(role="SUPER_ADMIN").id)

    def test_get_respects_visibility(self, directory, line_manager, other_manager, staff):
        assert directory.get(line_manager, staff.id).id == staff.id
        with pytest.raises(AuthorizationError):
            directory.get(other_manager, staff.id)

    def test_list_is_scoped(self, directory, super_admin, line_manager, other_manager, staff, make_user):
        make_user(manager=other_manager)

        assert {u.id for u in directory.list(line_manager)} == {staff.id}
        assert {u.id for u in directory.list(staff)} == {staff.id}
        assert len(directory.list(super_admin)) == 5
        filtered = directory.list(super_admin, user_schema.UserFilters(role="LINE_MANAGER"))
        assert {u.id for u in filtered} == {line_manager.id, other_manager.id}

    def test_list_by_location(self, directory, super_admin, staff):
        assert staff.id in {u.id for u in directory.list_by_location(super_admin, region="Lagos")}
        assert directory.list_by_location(super_admin, region="Lagos", branch="Alimosho") == []
        with pytest.raises(ValidationError):
            directory.list_by_location(super_admin)
        with pytest.raises(ValidationError):
            directory.list_by_location(super_admin, region="Atlantis")
        with pytest.raises(AuthorizationError):
            directory.list_by_location(staff, region="Lagos")


class TestCheckin:
    def test_self_checkin(self, directory, staff):
        user, at = directory.checkin(staff, staff.id, "Delta", "Warri")
        assert user.last_checkin_region == "Delta"
        assert user.last_checkin_at == at

    def test_staff_cannot_check_in_others(self, directory, staff, line_manager):
        with pytest.raises(AuthorizationError):
            directory.checkin(staff, line_manager.id, "Lagos", "HQ")

    def test_manager_checkin_validates_pair(self, directory, line_manager, staff):
        with pytest.raises(ValidationError):
            directory.checkin(line_manager, staff.id, "Osun", "Warri")


class TestLocking:
    def test_lock_notifies_manager_and_super_admins(self, directory, notifier, super_admin, line_manager, staff):
        directory.lock_account(super_admin, staff.id_card, "Security review")

        [(id_card, recipients, locked_by, reason)] = notifier.of_kind("account_locked")
        assert id_card == staff.id_card
        assert {r.email for r in recipients} == {line_manager.email, super_admin.email}
        assert "Ada" in locked_by
        assert reason == "Security review"

    def test_unlock_by_current_manager_only(self, directory, notifier, super_admin, line_manager,
                                            other_manager, staff):
        directory.lock_account(line_manager, staff.id_card)

        with pytest.raises(InsufficientPrivilege):
            directory.unlock_account(other_manager, staff.id_card)

        user = directory.unlock_account(line_manager, staff.id_card)
        assert not user.is_locked
        assert len(notifier.of_kind("account_unlocked")) == 1

    def test_locked_accounts_are_filtered_for_managers(self, directory, super_admin, line_manager,
                                                       other_manager, staff, make_user):
        stranger = make_user(manager=other_manager)
        directory.lock_account(super_admin, staff.id_card)
        directory.lock_account(super_admin, stranger.id_card)
        directory.lock_account(super_admin, other_manager.id_card)

        assert [u.id for u in directory.locked_accounts(line_manager)] == [staff.id]
        assert len(directory.locked_accounts(super_admin)) == 3
        with pytest.raises(AuthorizationError):
            directory.locked_accounts(staff)

    def test_unknown_id_card(self, directory, super_admin):
        with pytest.raises(NotFoundError):
            directory.lock_account(super_admin, "ZZ999")

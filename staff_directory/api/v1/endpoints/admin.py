# staff_directory/api/v1/endpoints/admin.py
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from staff_directory.api.deps import get_directory
from staff_directory.core import security
from staff_directory.db import models
from staff_directory.schemas import user as user_schema
from staff_directory.services.directory import UserDirectory

router = APIRouter()


# --- Pydantic Schemas ---
class ActingAdmin(BaseModel):
    id_card: str
    name: str
    role: str


class AccountActionResult(BaseModel):
    message: str
    performed_by: ActingAdmin
    user: user_schema.User


def _result(message: str, admin: models.User, user: models.User) -> AccountActionResult:
    return AccountActionResult(
        message=message,
        performed_by=ActingAdmin(id_card=admin.id_card, name=admin.full_name, role=admin.role),
        user=user_schema.User.model_validate(user),
    )


# --- API Endpoints ---

@router.post("/lock-account", response_model=AccountActionResult)
def lock_account(
    body: user_schema.LockRequest,
    directory: UserDirectory = Depends(get_directory),
    admin: models.User = Depends(security.get_current_admin_user),
):
    """ Locks an account; the user's manager and every super admin are notified. """
    user = directory.lock_account(admin, body.id_card, body.reason)
    return _result("Account locked successfully", admin, user)


@router.post("/unlock-account", response_model=AccountActionResult)
def unlock_account(
    body: user_schema.UnlockRequest,
    directory: UserDirectory = Depends(get_directory),
    admin: models.User = Depends(security.get_current_admin_user),
):
    user = directory.unlock_account(admin, body.id_card)
    return _result("Account unlocked successfully", admin, user)


@router.get("/locked-accounts", response_model=List[user_schema.User])
def get_locked_accounts(
    directory: UserDirectory = Depends(get_directory),
    admin: models.User = Depends(security.get_current_admin_user),
):
    """ Locked accounts the caller may see, most recently locked first. """
    return directory.locked_accounts(admin)

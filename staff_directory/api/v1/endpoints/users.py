# staff_directory/api/v1/endpoints/users.py
from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query, status

from staff_directory.api.deps import get_authenticator, get_directory
from staff_directory.core import security
from staff_directory.core.roles import ASSIGNABLE_ROLES, ROLE_PERMISSIONS
from staff_directory.db import models
from staff_directory.schemas import user as user_schema
from staff_directory.services.auth import Authenticator
from staff_directory.services.directory import UserDirectory

router = APIRouter()


@router.get("/me", response_model=user_schema.User)
def read_user_me(current_user: models.User = Depends(security.get_current_user)):
    """
    Get the details for the currently logged-in user.
    """
    return current_user


@router.put("/me/password", status_code=status.HTTP_204_NO_CONTENT)
def update_user_password(
    passwords: user_schema.PasswordUpdate,
    auth: Authenticator = Depends(get_authenticator),
    current_user: models.User = Depends(security.get_current_user),
):
    """
    Allows a logged-in user to change their own password.
    """
    auth.change_password(current_user, passwords.current_password, passwords.new_password)


@router.get("/me/permissions", response_model=user_schema.RolePermissions)
def read_my_permissions(current_user: models.User = Depends(security.get_current_user)):
    matrix = ROLE_PERMISSIONS[current_user.role]
    return user_schema.RolePermissions(
        role=current_user.role,
        can=matrix["can"],
        cannot=matrix["cannot"],
        assignable_roles=sorted(ASSIGNABLE_ROLES[current_user.role]),
    )


@router.get("", response_model=List[user_schema.User])
def list_users(
    filters: Annotated[user_schema.UserFilters, Query()],
    directory: UserDirectory = Depends(get_directory),
    current_user: models.User = Depends(security.get_current_user),
):
    """ Users visible to the caller: everyone, direct reports, or just themselves. """
    return directory.list(current_user, filters)


@router.get("/by-location", response_model=List[user_schema.User])
def list_users_by_location(
    region: Optional[str] = None,
    branch: Optional[str] = None,
    directory: UserDirectory = Depends(get_directory),
    current_user: models.User = Depends(security.get_current_admin_user),
):
    return directory.list_by_location(current_user, region, branch)


@router.get("/{user_id}", response_model=user_schema.User)
def read_user(
    user_id: int,
    directory: UserDirectory = Depends(get_directory),
    current_user: models.User = Depends(security.get_current_user),
):
    return directory.get(current_user, user_id)


@router.put("/{user_id}", response_model=user_schema.User)
def update_user(
    user_id: int,
    payload: Dict[str, Any] = Body(...),
    directory: UserDirectory = Depends(get_directory),
    current_user: models.User = Depends(security.get_current_user),
):
    """ Field-level permissions depend on who the caller is relative to the target. """
    return directory.update(current_user, user_id, payload)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_user(
    user_id: int,
    directory: UserDirectory = Depends(get_directory),
    current_user: models.User = Depends(security.get_current_super_admin),
):
    """
    Deletes a user, but only if they have no direct reports.
    """
    directory.delete(current_user, user_id)


@router.post("/{user_id}/checkin", response_model=user_schema.CheckinResult)
def checkin(
    user_id: int,
    body: user_schema.CheckinRequest,
    directory: UserDirectory = Depends(get_directory),
    current_user: models.User = Depends(security.get_current_user),
):
    user, checked_in_at = directory.checkin(current_user, user_id, body.region, body.branch)
    return user_schema.CheckinResult(
        region=body.region,
        branch=body.branch,
        time=checked_in_at,
        user=user_schema.User.model_validate(user),
        checked_in_by=current_user.id,
        is_self=current_user.id == user.id,
    )

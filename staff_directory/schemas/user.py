# staff_directory/schemas/user.py
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StrictBool, field_validator

from staff_directory.core.roles import DEFAULT_BRANCH, DEFAULT_REGION

RoleName = Literal["SUPER_ADMIN", "LINE_MANAGER", "STAFF"]


def _normalise_email(value):
    return value.strip().lower() if isinstance(value, str) else value


class UserBase(BaseModel):
    email: EmailStr
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)

    normalise_email = field_validator("email", mode="before")(_normalise_email)


class UserCreate(UserBase):
    id_card: str
    password: str = Field(min_length=6)
    region: str = DEFAULT_REGION
    branch: str = DEFAULT_BRANCH
    department: int
    position: str = Field(min_length=1)
    role: RoleName = "STAFF"
    reports_to: Optional[int] = None


class ManagerSummary(BaseModel):
    id: int
    id_card: str
    first_name: str
    last_name: str
    email: str
    role: str

    model_config = ConfigDict(from_attributes=True)


class DepartmentSummary(BaseModel):
    id: int
    name: str
    code: Optional[str] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class User(BaseModel):
    id: int
    id_card: str
    email: str
    first_name: str
    last_name: str
    role: str
    position: str
    region: str
    branch: str
    department_id: int
    department: Optional[DepartmentSummary] = None
    reports_to_id: Optional[int] = None
    manager: Optional[ManagerSummary] = None
    is_admin: bool
    is_active: bool
    is_verified: bool
    is_locked: bool
    locked_at: Optional[datetime] = None
    locked_reason: Optional[str] = None
    last_checkin_at: Optional[datetime] = None
    last_checkin_region: Optional[str] = None
    last_checkin_branch: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# --- Update payloads, one per update level ---
# Unknown keys are rejected by extra="forbid"; the directory service also
# checks the raw keys against the level's allowed fields first so that the
# caller gets the list of offending fields.

class _StrictUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    def provided(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class SelfUpdate(_StrictUpdate):
    level: Literal["self"] = "self"
    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(default=None, min_length=1)
    last_name: Optional[str] = Field(default=None, min_length=1)
    password: Optional[str] = Field(default=None, min_length=6)

    normalise_email = field_validator("email", mode="before")(_normalise_email)


class ManagerUpdate(_StrictUpdate):
    level: Literal["manager"] = "manager"
    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(default=None, min_length=1)
    last_name: Optional[str] = Field(default=None, min_length=1)
    region: Optional[str] = None
    branch: Optional[str] = None
    department: Optional[int] = None
    position: Optional[str] = Field(default=None, min_length=1)
    is_active: Optional[StrictBool] = None
    # Accepted here only so the directory can refuse it with a specific error.
    password: Optional[str] = None

    normalise_email = field_validator("email", mode="before")(_normalise_email)


class SuperAdminUpdate(ManagerUpdate):
    level: Literal["super_admin"] = "super_admin"
    id_card: Optional[str] = None
    role: Optional[str] = None
    reports_to: Optional[int] = None
    password: Optional[str] = Field(default=None, min_length=6)


UserUpdate = Union[SelfUpdate, ManagerUpdate, SuperAdminUpdate]

UPDATE_MODELS = {
    "self": SelfUpdate,
    "manager": ManagerUpdate,
    "super_admin": SuperAdminUpdate,
}


class UserFilters(BaseModel):
    role: Optional[RoleName] = None
    department: Optional[int] = None
    region: Optional[str] = None
    branch: Optional[str] = None
    is_active: Optional[bool] = None


class CheckinRequest(BaseModel):
    region: str
    branch: str


class CheckinResult(BaseModel):
    region: str
    branch: str
    time: datetime
    user: User
    checked_in_by: int
    is_self: bool


class LockRequest(BaseModel):
    id_card: str
    reason: Optional[str] = None


class UnlockRequest(BaseModel):
    id_card: str


class PasswordUpdate(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6)


class RolePermissions(BaseModel):
    role: str
    can: List[str]
    cannot: List[str]
    assignable_roles: List[str]


# staff_directory/schemas/department.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _strip(value):
    return value.strip() if isinstance(value, str) else value


def _upper(value):
    return (value.strip().upper() or None) if isinstance(value, str) else value


class DepartmentCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    code: Optional[str] = Field(default=None, max_length=20)
    description: Optional[str] = None
    line_manager_id: Optional[int] = None

    strip_name = field_validator("name", mode="before")(_strip)
    upper_code = field_validator("code", mode="before")(_upper)


class DepartmentUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    code: Optional[str] = Field(default=None, max_length=20)
    description: Optional[str] = None
    is_active: Optional[bool] = None
    line_manager_id: Optional[int] = None

    model_config = ConfigDict(extra="forbid")

    strip_name = field_validator("name", mode="before")(_strip)
    upper_code = field_validator("code", mode="before")(_upper)


class DepartmentStatus(BaseModel):
    is_active: Optional[bool] = None


class Department(BaseModel):
    id: int
    name: str
    code: Optional[str] = None
    description: Optional[str] = None
    is_active: bool
    line_manager_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

# staff_directory/api/v1/endpoints/departments.py
from typing import List

from fastapi import APIRouter, Depends, status

from staff_directory.api.deps import get_departments
from staff_directory.core import security
from staff_directory.db import models
from staff_directory.schemas import department as department_schema
from staff_directory.services.departments import Departments

router = APIRouter()


@router.post("", response_model=department_schema.Department, status_code=status.HTTP_201_CREATED)
def create_department(
    department_in: department_schema.DepartmentCreate,
    departments: Departments = Depends(get_departments),
    admin: models.User = Depends(security.get_current_super_admin),
):
    return departments.create(admin, department_in)


@router.get("", response_model=List[department_schema.Department])
def list_departments(
    active_only: bool = True,
    departments: Departments = Depends(get_departments),
    current_user: models.User = Depends(security.get_current_user),
):
    return departments.list(active_only=active_only)


@router.get("/{department_id}", response_model=department_schema.Department)
def read_department(
    department_id: int,
    departments: Departments = Depends(get_departments),
    current_user: models.User = Depends(security.get_current_user),
):
    return departments.get(department_id)


@router.put("/{department_id}", response_model=department_schema.Department)
def update_department(
    department_id: int,
    updates: department_schema.DepartmentUpdate,
    departments: Departments = Depends(get_departments),
    admin: models.User = Depends(security.get_current_super_admin),
):
    return departments.update(admin, department_id, updates)


@router.patch("/{department_id}/status", response_model=department_schema.Department)
def toggle_department_status(
    department_id: int,
    body: department_schema.DepartmentStatus,
    departments: Departments = Depends(get_departments),
    admin: models.User = Depends(security.get_current_admin_user),
):
    """ Flips the active flag unless an explicit value is given. Deactivation is SUPER_ADMIN only. """
    return departments.toggle_status(admin, department_id, body.is_active)


@router.delete("/{department_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_department(
    department_id: int,
    departments: Departments = Depends(get_departments),
    admin: models.User = Depends(security.get_current_super_admin),
):
    departments.delete(admin, department_id)

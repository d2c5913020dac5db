# staff_directory/api/v1/endpoints/activity.py
from datetime import date
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, status

from staff_directory.api.deps import get_activity_log
from staff_directory.core import security
from staff_directory.db import models
from staff_directory.schemas import activity as activity_schema
from staff_directory.services.activity_log import ActivityLog

router = APIRouter()


@router.post("", response_model=activity_schema.Activity, status_code=status.HTTP_201_CREATED)
def create_activity(
    activity_in: activity_schema.ActivityCreate,
    log: ActivityLog = Depends(get_activity_log),
    current_user: models.User = Depends(security.get_current_user),
):
    return log.create(current_user, activity_in)


@router.get("/today", response_model=activity_schema.ActivityList)
def read_today(
    log: ActivityLog = Depends(get_activity_log),
    current_user: models.User = Depends(security.get_current_user),
):
    return log.list_today(current_user)


@router.get("/range", response_model=activity_schema.ActivityRange)
def read_date_range(
    start_date: date,
    end_date: date,
    status: Optional[activity_schema.ActivityStatus] = None,
    category: Optional[activity_schema.ActivityCategory] = None,
    log: ActivityLog = Depends(get_activity_log),
    current_user: models.User = Depends(security.get_current_user),
):
    """ The caller's own activities between two dates, inclusive. """
    return log.list_by_date_range(current_user, start_date, end_date, status, category)


@router.get("/all", response_model=activity_schema.ActivityPage)
def read_all_activities(
    filters: Annotated[activity_schema.ActivityFilters, Query()],
    log: ActivityLog = Depends(get_activity_log),
    admin: models.User = Depends(security.get_current_admin_user),
):
    """ Super admins see everyone; line managers see their current direct reports. """
    return log.list_all(admin, filters)


@router.get("/user/{user_id}", response_model=activity_schema.UserActivityPage)
def read_user_activities(
    user_id: int,
    filters: Annotated[activity_schema.ActivityFilters, Query()],
    log: ActivityLog = Depends(get_activity_log),
    current_user: models.User = Depends(security.get_current_user),
):
    return log.list_by_user(current_user, user_id, filters)


@router.put("/{activity_id}", response_model=activity_schema.Activity)
def update_activity(
    activity_id: int,
    updates: activity_schema.ActivityUpdate,
    log: ActivityLog = Depends(get_activity_log),
    current_user: models.User = Depends(security.get_current_user),
):
    return log.update(current_user, activity_id, updates)


@router.delete("/{activity_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_activity(
    activity_id: int,
    log: ActivityLog = Depends(get_activity_log),
    current_user: models.User = Depends(security.get_current_user),
):
    log.delete(current_user, activity_id)

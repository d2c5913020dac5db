# staff_directory/services/activity_log.py
"""
Daily activity entries.

Writes are always scoped to the acting user's own entries. Reads go through
the actor's visibility scope, applied as a join on the owner's current
``reports_to_id`` so that a reassigned STAFF member moves between managers'
views immediately.
"""
import logging
import math
from collections import Counter
from datetime import date
from typing import Mapping, Optional

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

from staff_directory.core import permissions
from staff_directory.core.clock import today
from staff_directory.core.config import settings
from staff_directory.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    StateError,
    ValidationError,
)
from staff_directory.core.roles import MANAGER_ROLES, REGION_BRANCHES
from staff_directory.db import models
from staff_directory.schemas import activity as activity_schema
from staff_directory.services.directory import commit, get_user_or_404, scope_user_query

logger = logging.getLogger(__name__)

COMPLETED = "completed"


def status_counts(counts: Mapping[str, int]) -> activity_schema.StatusCounts:
    return activity_schema.StatusCounts(
        total=sum(counts.values()),
        **{status: counts.get(status, 0) for status in activity_schema.STATUSES},
    )


def _paginate(query: Query, page: int, limit: int):
    total = query.count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    pagination = activity_schema.Pagination(
        page=page, limit=limit, total_pages=math.ceil(total / limit), total_items=total
    )
    return items, pagination


def _serialise(activities):
    return [activity_schema.Activity.model_validate(a) for a in activities]


class ActivityLog:
    def __init__(self, db: Session):
        self.db = db

    def _owned(self, actor: models.User, activity_id: int) -> models.DailyActivity:
        activity = (
            self.db.query(models.DailyActivity)
            .filter(models.DailyActivity.id == activity_id, models.DailyActivity.user_id == actor.id)
            .first()
        )
        if activity is None:
            raise NotFoundError("Activity not found", resource_type="activity", resource_id=activity_id)
        return activity

    @staticmethod
    def _grouped(query: Query, column) -> dict:
        return dict(query.with_entities(column, func.count()).group_by(column).all())

    # --- Own entries ---

    def create(self, actor: models.User, payload: activity_schema.ActivityCreate) -> models.DailyActivity:
        activity = models.DailyActivity(
            owner=actor,
            date=payload.date or today(),
            time_interval=payload.time_interval,
            description=payload.description,
            status=payload.status,
            category=payload.category,
            priority=payload.priority,
        )
        self.db.add(activity)
        commit(self.db)
        self.db.refresh(activity)
        logger.info("[ACTIVITY] %s logged %s (%s)", actor.id_card, activity.time_interval, activity.status)
        return activity

    def update(self, actor: models.User, activity_id: int,
               payload: activity_schema.ActivityUpdate) -> models.DailyActivity:
        changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
        if not changes:
            raise ValidationError("At least one field must be provided for update")

        activity = self._owned(actor, activity_id)
        if activity.status == COMPLETED and changes.get("status", COMPLETED) != COMPLETED:
            raise StateError("Cannot change status of a completed activity")

        for field, value in changes.items():
            setattr(activity, field, value)
        commit(self.db)
        self.db.refresh(activity)
        return activity

    def delete(self, actor: models.User, activity_id: int) -> None:
        activity = self._owned(actor, activity_id)
        self.db.delete(activity)
        commit(self.db)

    def list_today(self, actor: models.User) -> activity_schema.ActivityList:
        activities = (
            self.db.query(models.DailyActivity)
            .filter(models.DailyActivity.user_id == actor.id, models.DailyActivity.date == today())
            .order_by(models.DailyActivity.created_at, models.DailyActivity.id)
            .all()
        )
        return activity_schema.ActivityList(
            count=len(activities),
            stats=status_counts(Counter(a.status for a in activities)),
            data=_serialise(activities),
        )

    def list_by_date_range(self, actor: models.User, start: date, end: date,
                           status: Optional[str] = None,
                           category: Optional[str] = None) -> activity_schema.ActivityRange:
        if start > end:
            raise ValidationError("Start date cannot be after end date")
        max_days = settings.ACTIVITY_MAX_RANGE_DAYS
        if (end - start).days > max_days:
            raise ValidationError(f"Date range cannot exceed {max_days} days", error_code="DATE_RANGE_TOO_LARGE")

        query = self.db.query(models.DailyActivity).filter(
            models.DailyActivity.user_id == actor.id,
            models.DailyActivity.date >= start,
            models.DailyActivity.date <= end,
        )
        if status:
            query = query.filter(models.DailyActivity.status == status)
        if category:
            query = query.filter(models.DailyActivity.category == category)
        activities = query.order_by(models.DailyActivity.date, models.DailyActivity.created_at,
                                    models.DailyActivity.id).all()

        stats = activity_schema.RangeStats(
            total=len(activities),
            by_status=status_counts(Counter(a.status for a in activities)),
            by_category=dict(Counter(a.category for a in activities)),
            by_date=dict(Counter(a.date.isoformat() for a in activities)),
        )
        return activity_schema.ActivityRange(
            start=start, end=end, count=len(activities), stats=stats, data=_serialise(activities)
        )

    # --- Supervisory views ---

    def list_all(self, actor: models.User,
                 filters: Optional[activity_schema.ActivityFilters] = None) -> activity_schema.ActivityPage:
        if actor.role not in MANAGER_ROLES:
            raise AuthorizationError("Admin access required")
        filters = filters or activity_schema.ActivityFilters()

        query = self.db.query(models.DailyActivity).join(
            models.User, models.DailyActivity.user_id == models.User.id
        )
        query = scope_user_query(query, permissions.visibility_scope(actor))

        if filters.user_id is not None:
            candidate = get_user_or_404(self.db, filters.user_id)
            if not permissions.can_filter_by_user(actor, candidate):
                raise AuthorizationError("You can only view activities of your direct reports")
            query = query.filter(models.DailyActivity.user_id == candidate.id)
        if filters.date is not None:
            query = query.filter(models.DailyActivity.date == filters.date)
        if filters.status:
            query = query.filter(models.DailyActivity.status == filters.status)
        if filters.region:
            if filters.region not in REGION_BRANCHES:
                raise ValidationError("Invalid region specified", valid_regions=list(REGION_BRANCHES))
            query = query.filter(models.User.region == filters.region)
        if filters.branch:
            query = query.filter(models.User.branch == filters.branch)

        by_status = status_counts(self._grouped(query, models.DailyActivity.status))
        stats = activity_schema.AdminStats(
            total=by_status.total,
            by_status=by_status,
            by_region=self._grouped(query, models.User.region),
            by_branch=self._grouped(query, models.User.branch),
        )

        ordered = query.order_by(models.DailyActivity.date.desc(), models.DailyActivity.created_at,
                                 models.DailyActivity.id)
        activities, pagination = _paginate(ordered, filters.page, filters.limit)
        return activity_schema.ActivityPage(
            count=len(activities), stats=stats, pagination=pagination, data=_serialise(activities)
        )

    def list_by_user(self, actor: models.User, target_id: int,
                     filters: Optional[activity_schema.ActivityFilters] = None) -> activity_schema.UserActivityPage:
        filters = filters or activity_schema.ActivityFilters()
        target = get_user_or_404(self.db, target_id)
        if not permissions.can_view(actor, target):
            raise AuthorizationError("You can only view activities of your direct reports")

        query = self.db.query(models.DailyActivity).filter(models.DailyActivity.user_id == target.id)
        if filters.date is not None:
            query = query.filter(models.DailyActivity.date == filters.date)
        if filters.status:
            query = query.filter(models.DailyActivity.status == filters.status)

        stats = status_counts(self._grouped(query, models.DailyActivity.status))
        ordered = query.order_by(models.DailyActivity.date.desc(), models.DailyActivity.created_at,
                                 models.DailyActivity.id)
        activities, pagination = _paginate(ordered, filters.page, filters.limit)
        return activity_schema.UserActivityPage(
            user=activity_schema.ActivityOwner.model_validate(target),
            count=len(activities),
            stats=stats,
            pagination=pagination,
            data=_serialise(activities),
        )

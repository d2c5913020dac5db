# staff_directory/schemas/activity.py
import re
import datetime as dt
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from staff_directory.core.clock import today

ActivityStatus = Literal["pending", "ongoing", "completed"]
ActivityCategory = Literal["work", "meeting", "training", "break", "other"]
ActivityPriority = Literal["low", "medium", "high"]

STATUSES = ("pending", "ongoing", "completed")

INTERVAL_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)\s*-\s*([01]?\d|2[0-3]):([0-5]\d)$")


def normalise_interval(value: str) -> str:
    """Parse "H:MM - HH:MM", require start < end, return the zero-padded form."""
    match = INTERVAL_RE.match(value.strip()) if isinstance(value, str) else None
    if match is None:
        raise ValueError('Time interval must be in format "HH:MM - HH:MM"')
    start_h, start_m, end_h, end_m = (int(g) for g in match.groups())
    if dt.time(start_h, start_m) >= dt.time(end_h, end_m):
        raise ValueError("Time interval start must be before its end")
    return f"{start_h:02d}:{start_m:02d} - {end_h:02d}:{end_m:02d}"


def _not_in_future(value: Optional[dt.date]) -> Optional[dt.date]:
    if value is not None and value > today():
        raise ValueError("Activity date cannot be in the future")
    return value


def _strip(value):
    return value.strip() if isinstance(value, str) else value


class ActivityCreate(BaseModel):
    time_interval: str
    description: str = Field(min_length=3, max_length=500)
    date: Optional[dt.date] = None
    status: ActivityStatus = "pending"
    category: ActivityCategory = "work"
    priority: ActivityPriority = "medium"

    check_interval = field_validator("time_interval")(normalise_interval)
    check_date = field_validator("date")(_not_in_future)
    strip_description = field_validator("description", mode="before")(_strip)


class ActivityUpdate(BaseModel):
    time_interval: Optional[str] = None
    description: Optional[str] = Field(default=None, min_length=3, max_length=500)
    status: Optional[ActivityStatus] = None
    category: Optional[ActivityCategory] = None
    priority: Optional[ActivityPriority] = None

    model_config = ConfigDict(extra="forbid")

    strip_description = field_validator("description", mode="before")(_strip)

    @field_validator("time_interval")
    @classmethod
    def check_interval(cls, value):
        return None if value is None else normalise_interval(value)


class ActivityOwner(BaseModel):
    id: int
    id_card: str
    first_name: str
    last_name: str
    region: str
    branch: str
    department_id: int
    position: str

    model_config = ConfigDict(from_attributes=True)


class Activity(BaseModel):
    id: int
    user_id: int
    date: dt.date
    time_interval: str
    description: str
    status: str
    category: str
    priority: str
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None
    owner: Optional[ActivityOwner] = None

    model_config = ConfigDict(from_attributes=True)


class StatusCounts(BaseModel):
    total: int = 0
    pending: int = 0
    ongoing: int = 0
    completed: int = 0


class ActivityList(BaseModel):
    count: int
    stats: StatusCounts
    data: List[Activity]


class RangeStats(BaseModel):
    total: int = 0
    by_status: StatusCounts = Field(default_factory=StatusCounts)
    by_category: Dict[str, int] = Field(default_factory=dict)
    by_date: Dict[str, int] = Field(default_factory=dict)


class ActivityRange(BaseModel):
    start: dt.date
    end: dt.date
    count: int
    stats: RangeStats
    data: List[Activity]


class ActivityFilters(BaseModel):
    date: Optional[dt.date] = None
    status: Optional[ActivityStatus] = None
    region: Optional[str] = None
    branch: Optional[str] = None
    user_id: Optional[int] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)


class Pagination(BaseModel):
    page: int
    limit: int
    total_pages: int
    total_items: int


class AdminStats(BaseModel):
    total: int = 0
    by_status: StatusCounts = Field(default_factory=StatusCounts)
    by_region: Dict[str, int] = Field(default_factory=dict)
    by_branch: Dict[str, int] = Field(default_factory=dict)


class ActivityPage(BaseModel):
    count: int
    stats: AdminStats
    pagination: Pagination
    data: List[Activity]


class UserActivityPage(BaseModel):
    user: ActivityOwner
    count: int
    stats: StatusCounts
    pagination: Pagination
    data: List[Activity]

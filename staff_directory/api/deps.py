# staff_directory/api/deps.py
# Per-request service objects, all sharing the request's session.
from fastapi import Depends
from sqlalchemy.orm import Session

from staff_directory.db import session
from staff_directory.services.activity_log import ActivityLog
from staff_directory.services.auth import Authenticator
from staff_directory.services.departments import Departments
from staff_directory.services.directory import UserDirectory
from staff_directory.services.notifications import Notifier, get_notifier


def get_directory(db: Session = Depends(session.get_db),
                  notifier: Notifier = Depends(get_notifier)) -> UserDirectory:
    return UserDirectory(db, notifier=notifier)


def get_authenticator(db: Session = Depends(session.get_db),
                      notifier: Notifier = Depends(get_notifier)) -> Authenticator:
    return Authenticator(db, notifier=notifier)


def get_departments(db: Session = Depends(session.get_db)) -> Departments:
    return Departments(db)


def get_activity_log(db: Session = Depends(session.get_db)) -> ActivityLog:
    return ActivityLog(db)

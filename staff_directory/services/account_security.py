# staff_directory/services/account_security.py
"""
Failed-login counter and lockout state machine.

    UNLOCKED(n)  --bad password-->  UNLOCKED(n+1)      while n+1 < threshold
    UNLOCKED(n)  --bad password-->  LOCKED(reason)     when n+1 >= threshold, count reset to 0
    UNLOCKED(n)  --good password--> UNLOCKED(0)
    LOCKED       --unlock-->        UNLOCKED(0)

The transition functions only touch the user's security fields; persistence
and notification are the caller's job. ``register_failed_login`` is the one
exception: it owns the compare-and-set loop that keeps concurrent failures
from under-counting.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from staff_directory.core import permissions
from staff_directory.core.clock import utcnow
from staff_directory.core.config import settings
from staff_directory.core.exceptions import (
    AlreadyLocked,
    InsufficientPrivilege,
    NotFoundError,
    NotLocked,
    PersistenceError,
    SelfLockForbidden,
)
from staff_directory.core.roles import Role
from staff_directory.db import models

logger = logging.getLogger(__name__)

DEFAULT_MANUAL_LOCK_REASON = "Manually locked by administrator"


def auto_lock_reason(threshold: Optional[int] = None) -> str:
    return f"{threshold or settings.MAX_FAILED_LOGIN_ATTEMPTS} consecutive failed login attempts"


@dataclass
class FailedAttemptOutcome:
    user: models.User
    locked: bool
    attempts_remaining: int
    # True only for the attempt that tripped the lock.
    just_locked: bool = False


def _clear_lock(user: models.User) -> None:
    user.is_locked = False
    user.locked_at = None
    user.locked_reason = None
    user.locked_by_id = None
    user.failed_login_count = 0
    user.last_failed_login_at = None


def record_failed_attempt(user: models.User, now: Optional[datetime] = None,
                          threshold: Optional[int] = None) -> FailedAttemptOutcome:
    threshold = threshold or settings.MAX_FAILED_LOGIN_ATTEMPTS
    if user.is_locked:
        return FailedAttemptOutcome(user, locked=True, attempts_remaining=0)

    now = now or utcnow()
    user.failed_login_count = (user.failed_login_count or 0) + 1
    user.last_failed_login_at = now

    if user.failed_login_count >= threshold:
        user.is_locked = True
        user.locked_at = now
        user.locked_reason = auto_lock_reason(threshold)
        user.locked_by_id = None
        user.failed_login_count = 0
        logger.warning("[SECURITY] Account locked after %d failed attempts: %s", threshold, user.id_card)
        return FailedAttemptOutcome(user, locked=True, attempts_remaining=0, just_locked=True)

    return FailedAttemptOutcome(user, locked=False, attempts_remaining=threshold - user.failed_login_count)


def record_success(user: models.User) -> None:
    if user.is_locked:
        return
    user.failed_login_count = 0
    user.last_failed_login_at = None


def lock(target: models.User, actor: models.User, reason: Optional[str] = None,
         now: Optional[datetime] = None) -> models.User:
    if target.is_locked:
        raise AlreadyLocked("Account is already locked")
    if target.id == actor.id:
        raise SelfLockForbidden("You cannot lock your own account")
    if target.role == Role.SUPER_ADMIN.value and actor.role != Role.SUPER_ADMIN.value:
        raise InsufficientPrivilege("Only SUPER_ADMIN can lock other SUPER_ADMIN accounts")
    if not permissions.can_manage_account(actor, target):
        raise InsufficientPrivilege("Insufficient permissions to lock this account")

    target.is_locked = True
    target.locked_at = now or utcnow()
    target.locked_reason = reason or DEFAULT_MANUAL_LOCK_REASON
    target.locked_by_id = actor.id
    target.failed_login_count = 0
    target.last_failed_login_at = None
    logger.info("[ADMIN] Account locked by %s (%s): %s - %s",
                actor.id_card, actor.role, target.id_card, target.locked_reason)
    return target


def unlock(target: models.User, actor: models.User) -> models.User:
    if not target.is_locked:
        raise NotLocked("Account is not locked")
    if not permissions.can_unlock(actor, target):
        raise InsufficientPrivilege(permissions.unlock_denial_message(target.role))

    _clear_lock(target)
    logger.info("[ADMIN] Account unlocked by %s (%s): %s", actor.id_card, actor.role, target.id_card)
    return target


def register_failed_login(db: Session, user_id: int, now: Optional[datetime] = None,
                          retries: Optional[int] = None) -> FailedAttemptOutcome:
    """Apply one failed attempt to ``user_id`` atomically.

    The UPDATE is guarded by ``version_id``; a concurrent writer makes the
    flush raise ``StaleDataError`` and the attempt is replayed on fresh state.
    """
    retries = retries or settings.LOCKOUT_RETRY_LIMIT
    for attempt in range(1, retries + 1):
        user = db.get(models.User, user_id, populate_existing=True)
        if user is None:
            raise NotFoundError("User not found", resource_type="user", resource_id=user_id)
        outcome = record_failed_attempt(user, now)
        if outcome.locked and not db.is_modified(user):
            return outcome
        try:
            db.commit()
        except StaleDataError:
            db.rollback()
            logger.info("[SECURITY] Concurrent update on %s, retrying failed-login count (%d/%d)",
                        user.id_card, attempt, retries)
            continue
        db.refresh(user)
        return outcome
    raise PersistenceError("Could not record failed login attempt", resource_id=user_id)

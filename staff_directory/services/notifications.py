# staff_directory/services/notifications.py
"""
Outbound notifications: account lock/unlock alerts, verification codes and
password-reset mail.

Delivery is not this service's concern. ``Notifier`` is the contract; the
default ``LoggingNotifier`` writes each message to the log so that a mail
relay (or a test double) can be plugged in through ``get_notifier``.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, List, Protocol

from staff_directory.core.roles import Role
from staff_directory.db import models

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Recipient:
    email: str
    name: str
    role: str
    type: str  # "MANAGER" or "SUPER_ADMIN"


def recipients_for(locked_user: models.User, active_super_admins: Iterable[models.User]) -> List[Recipient]:
    """Who hears about a lock/unlock of ``locked_user``.

    The STAFF user's manager first, then every active SUPER_ADMIN, without
    duplicate addresses.
    """
    recipients: List[Recipient] = []
    manager = locked_user.manager
    if locked_user.role == Role.STAFF.value and manager is not None and manager.email:
        recipients.append(Recipient(manager.email, manager.full_name, manager.role, "MANAGER"))

    seen = {r.email for r in recipients}
    for admin in active_super_admins:
        if admin.email in seen:
            continue
        seen.add(admin.email)
        recipients.append(Recipient(admin.email, admin.full_name, Role.SUPER_ADMIN.value, "SUPER_ADMIN"))
    return recipients


class Notifier(Protocol):
    def account_locked(self, user: models.User, recipients: List[Recipient], locked_by: str, reason: str) -> None: ...

    def account_unlocked(self, user: models.User, recipients: List[Recipient], unlocked_by: str) -> None: ...

    def verification_code(self, email: str, name: str, code: str) -> None: ...

    def password_reset(self, email: str, name: str, token: str) -> None: ...

    def password_changed(self, email: str, name: str) -> None: ...


class LoggingNotifier:
    def account_locked(self, user, recipients, locked_by, reason):
        logger.warning(
            "[NOTIFICATION] Account locked: %s (%s) by %s, reason=%r, to=%s",
            user.id_card, user.full_name, locked_by, reason, [r.email for r in recipients],
        )

    def account_unlocked(self, user, recipients, unlocked_by):
        logger.info(
            "[NOTIFICATION] Account unlocked: %s by %s, to=%s",
            user.id_card, unlocked_by, [r.email for r in recipients],
        )

    def verification_code(self, email, name, code):
        # The code itself is never logged.
        logger.info("[NOTIFICATION] Verification code issued for %s <%s>", name, email)

    def password_reset(self, email, name, token):
        logger.info("[NOTIFICATION] Password reset token issued for %s <%s>", name, email)

    def password_changed(self, email, name):
        logger.info("[NOTIFICATION] Password change confirmation for %s <%s>", name, email)


_notifier: Notifier = LoggingNotifier()


def get_notifier() -> Notifier:
    return _notifier


def deliver(send, *args) -> bool:
    """Run one notifier call; a delivery failure never undoes the caller's commit."""
    try:
        send(*args)
    except Exception:
        logger.exception("[NOTIFICATION] Delivery via %s failed", getattr(send, "__name__", send))
        return False
    return True

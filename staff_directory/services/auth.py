# staff_directory/services/auth.py
"""
Login, email verification codes and password reset/change.

Failed logins feed the lockout state machine in ``account_security``; the
account that trips the lock gets its notification sent from here.
"""
import logging
import re
import secrets
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from staff_directory.core.clock import utcnow
from staff_directory.core.config import settings
from staff_directory.core.exceptions import (
    AccountLockedError,
    AuthenticationError,
    NotFoundError,
    ValidationError,
    VerificationRequiredError,
)
from staff_directory.core.roles import Role, validate_employee_code
from staff_directory.core.security import (
    PasswordHasher,
    create_user_token,
    digest_token,
    generate_numeric_code,
    password_hasher,
)
from staff_directory.db import models
from staff_directory.schemas import token as token_schema
from staff_directory.services import account_security
from staff_directory.services.directory import commit
from staff_directory.services.notifications import Notifier, deliver, get_notifier, recipients_for

logger = logging.getLogger(__name__)

CODE_RE = re.compile(r"^\d{6}$")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _locked_error(user: models.User, message: str) -> AccountLockedError:
    return AccountLockedError(message, locked_at=_iso(user.locked_at), reason=user.locked_reason)


class Authenticator:
    def __init__(self, db: Session, hasher: Optional[PasswordHasher] = None,
                 notifier: Optional[Notifier] = None):
        self.db = db
        self.hasher = hasher or password_hasher
        self.notifier = notifier or get_notifier()

    def _by_id_card(self, id_card: str) -> Optional[models.User]:
        return self.db.query(models.User).filter(models.User.id_card == id_card).first()

    def _by_email(self, email: str) -> Optional[models.User]:
        return self.db.query(models.User).filter(models.User.email == email.strip().lower()).first()

    def _issue_otp(self, user: models.User) -> str:
        code = generate_numeric_code()
        user.otp_code = code
        user.otp_expires_at = utcnow() + timedelta(minutes=settings.OTP_EXPIRE_MINUTES)
        return code

    def _active_super_admins(self):
        return (
            self.db.query(models.User)
            .filter(models.User.role == Role.SUPER_ADMIN.value, models.User.is_active.is_(True))
            .order_by(models.User.id)
            .all()
        )

    # --- Login ---

    def login(self, id_card: str, password: str) -> str:
        validate_employee_code(id_card)
        user = self._by_id_card(id_card)
        if user is None or not user.is_active:
            raise AuthenticationError("Invalid ID card or password")
        if user.is_locked:
            raise _locked_error(user, "Account is locked. Contact your line manager or an administrator.")

        if not self.hasher.verify(password, user.password_hash):
            outcome = account_security.register_failed_login(self.db, user.id)
            if outcome.locked:
                if outcome.just_locked:
                    deliver(self.notifier.account_locked, outcome.user,
                            recipients_for(outcome.user, self._active_super_admins()),
                            "System (failed login attempts)", outcome.user.locked_reason)
                raise _locked_error(outcome.user, "Account locked due to multiple failed login attempts")
            raise AuthenticationError(
                f"Invalid ID card or password. {outcome.attempts_remaining} attempt(s) remaining "
                "before account lock.",
                attempts_remaining=outcome.attempts_remaining,
            )

        if user.failed_login_count:
            account_security.record_success(user)
            commit(self.db)

        if not user.is_verified:
            code = self._issue_otp(user)
            commit(self.db)
            deliver(self.notifier.verification_code, user.email, user.first_name, code)
            raise VerificationRequiredError("Account not verified. OTP sent to email.", email=user.email)

        logger.info("[AUTH] %s (%s) logged in", user.id_card, user.role)
        return create_user_token(user)

    # --- Verification codes ---

    def _unverified_user(self, id_card: str) -> models.User:
        user = self._by_id_card(id_card)
        if user is None:
            raise NotFoundError("Invalid ID card", resource_type="user", resource_id=id_card)
        if user.is_locked:
            raise _locked_error(user, "Account is locked. Contact your line manager or an administrator.")
        if user.is_verified:
            raise ValidationError("Account is already verified", error_code="ALREADY_VERIFIED")
        return user

    def verify_otp(self, id_card: str, otp: str) -> models.User:
        user = self._unverified_user(id_card)
        if not CODE_RE.match(otp or ""):
            raise ValidationError("OTP must be 6 digits", error_code="INVALID_OTP_FORMAT")
        if (
            not user.otp_code
            or not secrets.compare_digest(user.otp_code, otp)
            or user.otp_expires_at is None
            or user.otp_expires_at < utcnow()
        ):
            raise ValidationError("Invalid or expired OTP", error_code="INVALID_OTP")

        user.is_verified = True
        user.otp_code = None
        user.otp_expires_at = None
        commit(self.db)
        self.db.refresh(user)
        logger.info("[AUTH] %s verified their account", user.id_card)
        return user

    def resend_otp(self, id_card: str) -> datetime:
        user = self._unverified_user(id_card)
        code = self._issue_otp(user)
        commit(self.db)
        deliver(self.notifier.verification_code, user.email, user.first_name, code)
        return user.otp_expires_at

    def otp_status(self, id_card: str) -> token_schema.OtpStatus:
        user = self._by_id_card(id_card)
        if user is None:
            raise NotFoundError("Invalid ID card", resource_type="user", resource_id=id_card)
        return token_schema.OtpStatus(
            is_verified=user.is_verified,
            has_otp=bool(user.otp_code),
            otp_expires_at=user.otp_expires_at,
            email=user.email,
            is_locked=user.is_locked,
            locked_at=user.locked_at,
            locked_reason=user.locked_reason,
        )

    # --- Passwords ---

    def request_password_reset(self, email: str) -> None:
        user = self._by_email(email)
        if user is None or not user.is_active:
            # Same response either way; unknown addresses are only logged.
            logger.info("[AUTH] Password reset requested for unknown address")
            return
        token = generate_numeric_code()
        user.reset_token_hash = digest_token(token)
        user.reset_token_expires_at = utcnow() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES)
        commit(self.db)
        deliver(self.notifier.password_reset, user.email, user.first_name, token)

    def _reset_target(self, email: str, token: str) -> models.User:
        user = self._by_email(email)
        if (
            user is None
            or not user.reset_token_hash
            or user.reset_token_expires_at is None
            or user.reset_token_expires_at < utcnow()
            or not secrets.compare_digest(user.reset_token_hash, digest_token(token or ""))
        ):
            raise ValidationError("Invalid or expired reset token", error_code="INVALID_RESET_TOKEN")
        return user

    def verify_reset_token(self, email: str, token: str) -> bool:
        self._reset_target(email, token)
        return True

    def reset_password(self, email: str, token: str, new_password: str) -> models.User:
        user = self._reset_target(email, token)
        if self.hasher.verify(new_password, user.password_hash):
            raise ValidationError("New password must be different from the current password")

        user.password_hash = self.hasher.hash(new_password)
        user.reset_token_hash = None
        user.reset_token_expires_at = None
        commit(self.db)
        logger.info("[AUTH] Password reset completed for %s", user.id_card)
        deliver(self.notifier.password_changed, user.email, user.first_name)
        return user

    def change_password(self, actor: models.User, current_password: str, new_password: str) -> None:
        if not self.hasher.verify(current_password, actor.password_hash):
            raise ValidationError("Incorrect current password")
        if current_password == new_password:
            raise ValidationError("New password must be different from the current password")

        actor.password_hash = self.hasher.hash(new_password)
        commit(self.db)
        deliver(self.notifier.password_changed, actor.email, actor.first_name)

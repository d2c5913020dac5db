"""
Error taxonomy for the staff directory.

Every service raises one of these; the API layer turns them into JSON
responses through ``register_exception_handlers``.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class DirectoryError(Exception):
    """Base class for every error the directory reports to a caller."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, error_code: Optional[str] = None, **details: Any):
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details: Dict[str, Any] = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body = {"success": False, "error": self.error_code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


# --- Malformed input ---
class ValidationError(DirectoryError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "VALIDATION_ERROR"


# --- Credentials ---
class AuthenticationError(DirectoryError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "INVALID_CREDENTIALS"


class AccountLockedError(DirectoryError):
    status_code = status.HTTP_423_LOCKED
    error_code = "ACCOUNT_LOCKED"


# --- Authorization ---
class AuthorizationError(DirectoryError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "FORBIDDEN"


Forbidden = AuthorizationError


class InsufficientPrivilege(AuthorizationError):
    error_code = "INSUFFICIENT_PRIVILEGES"


class SelfActionForbidden(AuthorizationError):
    error_code = "SELF_ACTION_NOT_ALLOWED"


class SelfLockForbidden(SelfActionForbidden):
    error_code = "SELF_LOCK_NOT_ALLOWED"


class SelfDeactivationForbidden(SelfActionForbidden):
    error_code = "SELF_DEACTIVATION_NOT_ALLOWED"


class VerificationRequiredError(AuthorizationError):
    error_code = "VERIFICATION_REQUIRED"


# --- Missing records ---
class NotFoundError(DirectoryError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"


# --- Conflicts and state ---
class ConflictError(DirectoryError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "CONFLICT"


class AlreadyLocked(ConflictError):
    error_code = "ACCOUNT_ALREADY_LOCKED"


class NotLocked(ConflictError):
    error_code = "ACCOUNT_NOT_LOCKED"


class LastSuperAdminError(ConflictError):
    error_code = "LAST_SUPER_ADMIN"


class StateError(DirectoryError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "INVALID_STATE"


# --- Persistence ---
class PersistenceError(DirectoryError):
    error_code = "PERSISTENCE_ERROR"


async def directory_error_handler(request: Request, exc: DirectoryError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.error_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies get the same envelope as ValidationError."""
    errors = [
        {"field": ".".join(str(p) for p in err["loc"] if p != "body"), "message": err["msg"]}
        for err in exc.errors()
    ]
    logger.info("%s %s rejected: %d validation errors", request.method, request.url.path, len(errors))
    return JSONResponse(
        status_code=ValidationError.status_code,
        content=ValidationError("Validation error", errors=errors).to_dict(),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DirectoryError, directory_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

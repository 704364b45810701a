"""
Domain error taxonomy
File: coursehub/core/errors.py

Service functions raise these; main.py maps them to JSON responses.
"""

import logging
from typing import List, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class CourseHubError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None, **payload):
        self.message = message or self.message
        self.payload = payload
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "error": type(self).__name__, **self.payload}


# ==================== VALIDATION / LOOKUP ====================

class ValidationError(CourseHubError):
    status_code = 422
    message = "Invalid input"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[dict]] = None):
        super().__init__(message, errors=errors or [])

    @property
    def errors(self) -> List[dict]:
        return self.payload["errors"]


class NotFoundError(CourseHubError):
    status_code = 404
    message = "Not found"


class PermissionDeniedError(CourseHubError):
    status_code = 403
    message = "Not authorized"


# ==================== CONFLICTS ("already done") ====================

class ConflictError(CourseHubError):
    status_code = 409
    message = "Already done"


class AlreadyEnrolledError(ConflictError):
    message = "Already enrolled in this course"


class AlreadyIssuedError(ConflictError):
    message = "Certificate already issued"


class AlreadyApprovedError(ConflictError):
    message = "Already approved"


class DuplicateUploadError(ConflictError):
    message = "You have already uploaded a certificate for this program"


class AlreadyUnlockedError(ConflictError):
    message = "Course already unlocked"


class DuplicateEmailError(ConflictError):
    message = "Email already registered"


# ==================== PRECONDITIONS (wrong order / state) ====================

class PreconditionError(CourseHubError):
    status_code = 400
    message = "Precondition failed"


class NotEnrolledError(PreconditionError):
    message = "Not enrolled in this course"


class NotCompletedError(PreconditionError):
    message = "Course not completed yet. Complete 100% of lessons first."


class RedirectRequiredError(PreconditionError):
    status_code = 403
    message = "You must visit the certificate program link before uploading"


class InsufficientPointsError(PreconditionError):

    def __init__(self, required: int, current: int):
        super().__init__(
            f"Insufficient points. Need {required}, you have {current}",
            required=required,
            current=current,
        )


class CourseNotApprovedError(PreconditionError):
    message = "This course is not available yet"


class NotGatedError(PreconditionError):
    message = "This course does not require points to unlock"


# ==================== STORAGE ====================

class StorageError(CourseHubError):
    status_code = 500
    message = "Storage failure"


async def coursehub_error_handler(request: Request, exc: CourseHubError) -> JSONResponse:
    if isinstance(exc, StorageError):
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc.message)
        # Never leak driver details
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

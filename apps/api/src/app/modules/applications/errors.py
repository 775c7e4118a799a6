"""
Application Service Errors

Service-level exceptions shared by the course and job tracks. Each carries
the error code and HTTP status the routers return as
``{"error": code, "message": message}``.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from fastapi import HTTPException, status

from app.core.config import settings
from app.core.retry import TRANSIENT_STORE_ERRORS
from app.modules.applications.eligibility import EligibilityResult, IneligibilityReason

logger = logging.getLogger(__name__)


class ApplicationServiceError(Exception):
    """Base exception for application service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class ApplicationLimitExceededError(ApplicationServiceError):
    """Raised when the student already holds the maximum live applications at an institution."""

    def __init__(self, message: str = "Application limit reached for this institution."):
        super().__init__(
            message=message,
            error_code="APPLICATION_LIMIT_EXCEEDED",
            status_code=409,
        )


class DuplicateApplicationError(ApplicationServiceError):
    """Raised when a live application for the same target already exists."""

    def __init__(self, message: str = "You have already applied."):
        super().__init__(
            message=message,
            error_code="DUPLICATE_APPLICATION",
            status_code=409,
        )


class CourseNotActiveError(ApplicationServiceError):
    """Raised when the course is not accepting applications."""

    def __init__(self, message: str = "This course is not accepting applications."):
        super().__init__(
            message=message,
            error_code="COURSE_NOT_ACTIVE",
            status_code=422,
        )


class JobNotActiveError(ApplicationServiceError):
    """Raised when the job is not accepting applications."""

    def __init__(self, message: str = "This job is not accepting applications."):
        super().__init__(
            message=message,
            error_code="JOB_NOT_ACTIVE",
            status_code=422,
        )


class DeadlinePassedError(ApplicationServiceError):
    """Raised when the application deadline has passed."""

    def __init__(self, message: str = "The application deadline has passed."):
        super().__init__(
            message=message,
            error_code="DEADLINE_PASSED",
            status_code=422,
        )


class InvalidTransitionError(ApplicationServiceError):
    """Raised when the requested status change is not an allowed edge."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="INVALID_TRANSITION",
            status_code=422,
        )


class UnauthorizedError(ApplicationServiceError):
    """
    Raised when the caller may not act on a record.

    The message is deliberately generic and never says whether the record
    exists.
    """

    def __init__(self):
        super().__init__(
            message="You are not allowed to perform this action.",
            error_code="UNAUTHORIZED",
            status_code=403,
        )


class ConflictError(ApplicationServiceError):
    """Raised when a concurrent update changed the record and the retry also lost."""

    def __init__(
        self,
        message: str = "The application was changed by someone else. Reload and try again.",
    ):
        super().__init__(
            message=message,
            error_code="CONFLICT",
            status_code=409,
        )


class OfferNotAvailableError(ApplicationServiceError):
    """Raised when an offer is accepted before it was admitted and published."""

    def __init__(self, message: str = "There is no published admission offer to accept."):
        super().__init__(
            message=message,
            error_code="OFFER_NOT_AVAILABLE",
            status_code=422,
        )


class OfferAlreadyAcceptedError(ApplicationServiceError):
    """Raised when the student already holds an accepted offer."""

    def __init__(self, message: str = "You have already accepted an admission offer."):
        super().__init__(
            message=message,
            error_code="OFFER_ALREADY_ACCEPTED",
            status_code=409,
        )


class ApplicationNotFoundError(ApplicationServiceError):
    """Raised when an application is not found."""

    def __init__(self, application_id: UUID | None = None):
        message = (
            f"Application {application_id} not found" if application_id else "Application not found"
        )
        super().__init__(
            message=message,
            error_code="NOT_FOUND",
            status_code=404,
        )


class CourseNotFoundError(ApplicationServiceError):
    """Raised when the referenced course does not exist."""

    def __init__(self, course_id: UUID | None = None):
        message = f"Course {course_id} not found" if course_id else "Course not found"
        super().__init__(
            message=message,
            error_code="NOT_FOUND",
            status_code=404,
        )


class JobNotFoundError(ApplicationServiceError):
    """Raised when the referenced job does not exist."""

    def __init__(self, job_id: UUID | None = None):
        message = f"Job {job_id} not found" if job_id else "Job not found"
        super().__init__(
            message=message,
            error_code="NOT_FOUND",
            status_code=404,
        )


class ApplicationValidationError(ApplicationServiceError):
    """Raised when input is well-formed but inconsistent (e.g. course/institution mismatch)."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            status_code=422,
        )


class StoreUnavailableError(ApplicationServiceError):
    """Raised when the store timed out or kept failing after retries."""

    def __init__(self, message: str = "The service is temporarily unavailable. Please try again."):
        super().__init__(
            message=message,
            error_code="STORE_UNAVAILABLE",
            status_code=503,
        )


_REASON_ERRORS: dict[IneligibilityReason, type[ApplicationServiceError]] = {
    IneligibilityReason.APPLICATION_LIMIT_EXCEEDED: ApplicationLimitExceededError,
    IneligibilityReason.DUPLICATE_APPLICATION: DuplicateApplicationError,
    IneligibilityReason.COURSE_NOT_ACTIVE: CourseNotActiveError,
    IneligibilityReason.JOB_NOT_ACTIVE: JobNotActiveError,
    IneligibilityReason.DEADLINE_PASSED: DeadlinePassedError,
}


def error_for_ineligibility(result: EligibilityResult) -> ApplicationServiceError:
    """Map a negative eligibility result to the matching service error."""
    if result.eligible or result.reason is None:
        raise ValueError("error_for_ineligibility called with an eligible result")
    return _REASON_ERRORS[result.reason](result.message)


@asynccontextmanager
async def store_operation(name: str) -> AsyncIterator[None]:
    """
    Bound a service operation by the store deadline.

    Timeouts and transient store errors that outlived their retries are
    surfaced as StoreUnavailableError. Service errors pass through.
    """
    try:
        async with asyncio.timeout(settings.store_operation_timeout_seconds):
            yield
    except TimeoutError as e:
        logger.error(f"{name} exceeded {settings.store_operation_timeout_seconds}s deadline")
        raise StoreUnavailableError() from e
    except TRANSIENT_STORE_ERRORS as e:
        logger.error(f"{name} failed after retries: {e}", exc_info=True)
        raise StoreUnavailableError() from e


def to_http_exception(error: ApplicationServiceError) -> HTTPException:
    """Convert a service error into the router's HTTPException shape."""
    return HTTPException(
        status_code=error.status_code,
        detail={
            "error": error.error_code,
            "message": error.message,
        },
    )


def internal_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again later.",
        },
    )

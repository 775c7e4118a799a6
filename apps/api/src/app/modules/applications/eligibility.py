"""
Application Eligibility Rules

Pure decision functions: given a student's existing applications and the
target course (or job), decide whether a new application may be created.
No I/O happens here; the service layer loads the inputs.

The read-then-decide check is advisory. The store's uniqueness index and
the locked re-count in ``repository.create`` are the final backstop.
"""

import enum
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from app.modules.applications.models import Application, ApplicationStatus
from app.modules.courses.models import Course, CourseStatus
from app.modules.job_applications.models import Job, JobApplication, JobApplicationStatus, JobStatus

# Statuses that count toward the per-institution cap.
# REJECTED and WITHDRAWN never count.
LIVE_STATUSES = frozenset(
    {
        ApplicationStatus.PENDING,
        ApplicationStatus.ACCEPTED,
        ApplicationStatus.WAITLISTED,
    }
)

DEFAULT_MAX_LIVE_APPLICATIONS = 2


class IneligibilityReason(str, enum.Enum):
    """Why a new application may not be created."""

    APPLICATION_LIMIT_EXCEEDED = "APPLICATION_LIMIT_EXCEEDED"
    DUPLICATE_APPLICATION = "DUPLICATE_APPLICATION"
    COURSE_NOT_ACTIVE = "COURSE_NOT_ACTIVE"
    JOB_NOT_ACTIVE = "JOB_NOT_ACTIVE"
    DEADLINE_PASSED = "DEADLINE_PASSED"


REASON_MESSAGES: dict[IneligibilityReason, str] = {
    IneligibilityReason.APPLICATION_LIMIT_EXCEEDED: (
        "You can only have {max_live} active applications per institution."
    ),
    IneligibilityReason.DUPLICATE_APPLICATION: "You have already applied to this course.",
    IneligibilityReason.COURSE_NOT_ACTIVE: "This course is not accepting applications.",
    IneligibilityReason.JOB_NOT_ACTIVE: "This job is not accepting applications.",
    IneligibilityReason.DEADLINE_PASSED: "The application deadline has passed.",
}


@dataclass(frozen=True)
class EligibilityResult:
    eligible: bool
    reason: IneligibilityReason | None = None
    message: str | None = None

    @classmethod
    def ok(cls) -> "EligibilityResult":
        return cls(eligible=True)

    @classmethod
    def rejected(cls, reason: IneligibilityReason, message: str | None = None) -> "EligibilityResult":
        return cls(eligible=False, reason=reason, message=message or REASON_MESSAGES[reason])


def live_applications(applications: Iterable[Application]) -> list[Application]:
    """Filter to the applications that count toward the cap."""
    return [a for a in applications if a.status in LIVE_STATUSES]


def deadline_passed(deadline: datetime | None, now: datetime) -> bool:
    """A deadline has passed when it is strictly before ``now``. No deadline never passes."""
    if deadline is None:
        return False
    return deadline < now


def evaluate_course_eligibility(
    applications: Iterable[Application],
    course: Course,
    course_id: UUID,
    now: datetime,
    max_live: int = DEFAULT_MAX_LIVE_APPLICATIONS,
) -> EligibilityResult:
    """
    Decide whether a student may apply to ``course``.

    Rules are evaluated in order and the first failing rule wins:
    1. live applications at the institution >= max_live
    2. a live application already targets this course
    3. the course is not active
    4. the application deadline is strictly before ``now``

    Args:
        applications: The student's applications at the course's institution
        course: The target course
        course_id: The target course id
        now: Caller-supplied current time (timezone-aware)
        max_live: Cap on live applications per institution

    Returns:
        EligibilityResult
    """
    live = live_applications(applications)

    if len(live) >= max_live:
        return EligibilityResult.rejected(
            IneligibilityReason.APPLICATION_LIMIT_EXCEEDED,
            REASON_MESSAGES[IneligibilityReason.APPLICATION_LIMIT_EXCEEDED].format(
                max_live=max_live
            ),
        )

    if any(a.course_id == course_id for a in live):
        return EligibilityResult.rejected(IneligibilityReason.DUPLICATE_APPLICATION)

    if course.status != CourseStatus.ACTIVE:
        return EligibilityResult.rejected(IneligibilityReason.COURSE_NOT_ACTIVE)

    if deadline_passed(course.application_deadline, now):
        return EligibilityResult.rejected(IneligibilityReason.DEADLINE_PASSED)

    return EligibilityResult.ok()


def evaluate_job_eligibility(
    applications: Iterable[JobApplication],
    job: Job,
    job_id: UUID,
    now: datetime,
) -> EligibilityResult:
    """
    Decide whether a student may apply to ``job``.

    There is no per-company cap. Any non-withdrawn application to the same
    job is a duplicate.
    """
    if any(
        a.job_id == job_id and a.status != JobApplicationStatus.WITHDRAWN for a in applications
    ):
        return EligibilityResult.rejected(
            IneligibilityReason.DUPLICATE_APPLICATION, "You have already applied to this job."
        )

    if job.status != JobStatus.ACTIVE:
        return EligibilityResult.rejected(IneligibilityReason.JOB_NOT_ACTIVE)

    if deadline_passed(job.application_deadline, now):
        return EligibilityResult.rejected(IneligibilityReason.DEADLINE_PASSED)

    return EligibilityResult.ok()

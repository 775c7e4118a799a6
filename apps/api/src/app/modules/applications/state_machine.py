"""
Application Status State Machine

The allowed-edge tables for both application tracks, and the side effects
each transition stamps on the record. Every status change in the system is
validated against these tables; nothing else decides legality.
"""

import enum
from datetime import datetime
from typing import Any
from uuid import UUID

from app.modules.applications.models import ApplicationStatus
from app.modules.job_applications.models import JobApplicationStatus

# Course track
COURSE_STATUS_TRANSITIONS: dict[ApplicationStatus, frozenset[ApplicationStatus]] = {
    ApplicationStatus.PENDING: frozenset(
        {
            ApplicationStatus.UNDER_REVIEW,
            ApplicationStatus.INTERVIEWED,
            ApplicationStatus.ACCEPTED,
            ApplicationStatus.WAITLISTED,
            ApplicationStatus.REJECTED,
            ApplicationStatus.HIRED,
            ApplicationStatus.WITHDRAWN,
        }
    ),
    ApplicationStatus.UNDER_REVIEW: frozenset(
        {
            ApplicationStatus.INTERVIEWED,
            ApplicationStatus.ACCEPTED,
            ApplicationStatus.WAITLISTED,
            ApplicationStatus.REJECTED,
            ApplicationStatus.WITHDRAWN,
        }
    ),
    ApplicationStatus.INTERVIEWED: frozenset(
        {
            ApplicationStatus.ACCEPTED,
            ApplicationStatus.WAITLISTED,
            ApplicationStatus.REJECTED,
            ApplicationStatus.WITHDRAWN,
        }
    ),
    ApplicationStatus.WAITLISTED: frozenset(
        {
            ApplicationStatus.ACCEPTED,
            ApplicationStatus.REJECTED,
            ApplicationStatus.WITHDRAWN,
        }
    ),
    ApplicationStatus.ACCEPTED: frozenset(
        {
            ApplicationStatus.HIRED,
            ApplicationStatus.WITHDRAWN,
        }
    ),
    # Terminal states - no transitions allowed
    ApplicationStatus.REJECTED: frozenset(),
    ApplicationStatus.HIRED: frozenset(),
    ApplicationStatus.WITHDRAWN: frozenset(),
}

# Job track
JOB_STATUS_TRANSITIONS: dict[JobApplicationStatus, frozenset[JobApplicationStatus]] = {
    JobApplicationStatus.PENDING: frozenset(
        {
            JobApplicationStatus.INTERVIEW,
            JobApplicationStatus.ACCEPTED,
            JobApplicationStatus.REJECTED,
            JobApplicationStatus.WITHDRAWN,
        }
    ),
    JobApplicationStatus.INTERVIEW: frozenset(
        {
            JobApplicationStatus.ACCEPTED,
            JobApplicationStatus.REJECTED,
            JobApplicationStatus.WITHDRAWN,
        }
    ),
    # Terminal states
    JobApplicationStatus.ACCEPTED: frozenset(),
    JobApplicationStatus.REJECTED: frozenset(),
    JobApplicationStatus.WITHDRAWN: frozenset(),
}


class InvalidStatusTransitionError(ValueError):
    """Raised when an invalid status transition is attempted."""

    def __init__(
        self,
        current_status: enum.Enum,
        new_status: enum.Enum,
        valid_transitions: frozenset = frozenset(),
    ):
        self.current_status = current_status
        self.new_status = new_status
        super().__init__(
            f"Invalid status transition: {current_status.value} -> {new_status.value}. "
            f"Valid transitions: {sorted(s.value for s in valid_transitions)}"
        )


def allowed_targets(table: dict, current: enum.Enum) -> frozenset:
    """Return the statuses reachable from ``current`` in one step."""
    return table.get(current, frozenset())


def is_terminal(table: dict, status: enum.Enum) -> bool:
    """A status is terminal when it has no outgoing edge."""
    return not allowed_targets(table, status)


def validate_transition(table: dict, current: enum.Enum, target: enum.Enum) -> None:
    """
    Check that ``current -> target`` is an edge of ``table``.

    A self-transition is not an edge and is rejected.

    Raises:
        InvalidStatusTransitionError: If the edge is not allowed
    """
    valid = allowed_targets(table, current)
    if target not in valid:
        raise InvalidStatusTransitionError(current, target, valid)


def course_transition_fields(
    target: ApplicationStatus,
    *,
    actor_id: UUID,
    actor_is_student: bool,
    now: datetime,
    notes: str | None = None,
) -> dict[str, Any]:
    """
    Fields to write alongside a course-track status change.

    - ACCEPTED stamps admitted_at
    - WITHDRAWN stamps withdrawn_at
    - any reviewer (non-student) action stamps reviewed_by / reviewed_at
    """
    fields: dict[str, Any] = {}

    if target == ApplicationStatus.ACCEPTED:
        fields["admitted_at"] = now
    if target == ApplicationStatus.WITHDRAWN:
        fields["withdrawn_at"] = now
    if not actor_is_student:
        fields["reviewed_by"] = actor_id
        fields["reviewed_at"] = now
    if notes is not None:
        fields["notes"] = notes

    return fields


def job_transition_fields(
    target: JobApplicationStatus,
    *,
    actor_id: UUID,
    actor_is_student: bool,
    now: datetime,
    notes: str | None = None,
    interview_at: datetime | None = None,
) -> dict[str, Any]:
    """Fields to write alongside a job-track status change."""
    fields: dict[str, Any] = {}

    if target == JobApplicationStatus.INTERVIEW and interview_at is not None:
        fields["interview_at"] = interview_at
    if target == JobApplicationStatus.ACCEPTED:
        fields["offered_at"] = now
    if target == JobApplicationStatus.WITHDRAWN:
        fields["withdrawn_at"] = now
    if not actor_is_student:
        fields["reviewed_by"] = actor_id
        fields["reviewed_at"] = now
    if notes is not None:
        fields["notes"] = notes

    return fields

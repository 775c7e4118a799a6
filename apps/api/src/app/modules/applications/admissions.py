"""
Admissions Publishing

An institution publishes the accepted cohort of one course in a single
all-or-nothing unit. Re-publishing is a no-op for rows already published.
Seat capacity is informational: exceeding it produces a warning and never
blocks publishing.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import Caller, UserRole
from app.core.retry import store_retry
from app.modules.applications import repository
from app.modules.applications.errors import (
    ApplicationValidationError,
    CourseNotFoundError,
    StoreUnavailableError,
    UnauthorizedError,
    store_operation,
)
from app.modules.applications.models import Application
from app.modules.applications.notifications import (
    EventType,
    LifecycleEvent,
    NotificationGateway,
    dispatch_events,
)
from app.modules.courses import repository as courses_repository
from app.modules.courses.models import Course

logger = logging.getLogger(__name__)


@dataclass
class PublishResult:
    published_count: int
    total_published: int
    seats: int | None = None
    over_capacity: bool = False
    warnings: list[str] = field(default_factory=list)


@store_retry
async def _load_cohort(
    db: AsyncSession, institution_id: UUID, course_id: UUID
) -> tuple[Course, list[Application]]:
    """Load the course and lock its accepted, unpublished applications."""
    course = await courses_repository.get_by_id(db, course_id)
    if course is None:
        raise CourseNotFoundError(course_id)
    if course.institution_id != institution_id:
        raise ApplicationValidationError("Course does not belong to the given institution.")

    return course, await repository.get_publishable(db, institution_id, course_id)


async def publish_admissions(
    db: AsyncSession,
    institution_id: UUID,
    course_id: UUID,
    caller: Caller,
    now: datetime | None = None,
    gateway: NotificationGateway | None = None,
) -> PublishResult:
    """
    Publish every accepted, unpublished application for a course.

    Flow:
    1. Check the caller owns the institution and the course belongs to it
    2. Lock the accepted, unpublished rows
    3. Flip ``published`` (and set ``admitted_at`` where missing) in one commit
    4. After commit, emit ADMISSIONS_PUBLISHED per published row (best effort)

    Raises:
        UnauthorizedError: If the caller is not the owning institution
        CourseNotFoundError: If the course does not exist
        StoreUnavailableError: If the batch failed; nothing was published
    """
    now = now or datetime.now(UTC)

    if caller.role != UserRole.INSTITUTION or caller.id != institution_id:
        logger.warning(f"{caller} denied publishing for institution {institution_id}")
        raise UnauthorizedError()

    async with store_operation("publish_admissions"):
        course, applications = await _load_cohort(db, institution_id, course_id)

        if applications:
            try:
                published_count = await repository.mark_published(db, applications, now=now)
            except Exception as e:
                logger.error(
                    f"Publishing course {course_id} failed, batch rolled back: {e}",
                    exc_info=True,
                )
                raise StoreUnavailableError(
                    "Admissions could not be published. No changes were made."
                ) from e
        else:
            published_count = 0

        seats = course.seats
        events = [
            LifecycleEvent(
                type=EventType.ADMISSIONS_PUBLISHED,
                application_id=application.id,
                recipient_id=application.student_id,
                payload={
                    "recipient_email": application.student_email,
                    "student_name": application.student_name,
                    "course_name": course.name,
                },
            )
            for application in applications
        ]

        total_published = await repository.count_published(db, institution_id, course_id)

    result = PublishResult(
        published_count=published_count,
        total_published=total_published,
        seats=seats,
    )
    if seats is not None and total_published > seats:
        result.over_capacity = True
        result.warnings.append(f"{total_published} admissions published for {seats} seats.")
        logger.warning(
            f"Course {course_id} over capacity: {total_published} published, {seats} seats"
        )

    logger.info(
        f"Published {published_count} admissions for course {course_id} "
        f"(institution {institution_id}, total {total_published})"
    )

    await dispatch_events(gateway, events)

    return result

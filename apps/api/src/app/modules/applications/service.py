"""
Course Applications Service Layer

Business logic for the course application lifecycle. Orchestrates the
eligibility rules, the repository, the status state machine, and the
notification gateway.

This module implements:
1. Eligibility & Submission:
   - Advisory eligibility check (limit, duplicate, course active, deadline)
   - Creation guarded by the store (locked re-count + unique index)

2. Status Transitions:
   - Ownership check (owning institution, or owning student for withdrawal)
   - Edge check against COURSE_STATUS_TRANSITIONS
   - Compare-and-swap write, retried once with fresh state, then Conflict

3. Documents:
   - Append-only document metadata for the owning student

4. Offer acceptance:
   - The owning student takes up one published admission, once

Every entry point runs under the store deadline. Notifications are
dispatched after commit and can never fail the operation.
"""

import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import Caller, UserRole
from app.core.config import settings
from app.core.retry import store_retry
from app.modules.applications import repository
from app.modules.applications.eligibility import EligibilityResult, evaluate_course_eligibility
from app.modules.applications.errors import (
    ApplicationLimitExceededError,
    ApplicationNotFoundError,
    ApplicationValidationError,
    ConflictError,
    CourseNotFoundError,
    DuplicateApplicationError,
    InvalidTransitionError,
    OfferAlreadyAcceptedError,
    OfferNotAvailableError,
    UnauthorizedError,
    error_for_ineligibility,
    store_operation,
)
from app.modules.applications.models import Application, ApplicationStatus
from app.modules.applications.notifications import (
    EventType,
    LifecycleEvent,
    NotificationGateway,
    dispatch_event,
)
from app.modules.applications.repository import (
    ApplicationLimitReachedError,
    DuplicateRecordError,
    StaleStatusError,
)
from app.modules.applications.schemas import DocumentIn, SubmitApplicationRequest
from app.modules.applications.state_machine import (
    COURSE_STATUS_TRANSITIONS,
    InvalidStatusTransitionError,
    course_transition_fields,
    is_terminal,
    validate_transition,
)
from app.modules.courses import repository as courses_repository
from app.modules.courses.models import Course

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _ensure_course(course: Course | None, course_id: UUID, institution_id: UUID) -> Course:
    if course is None:
        raise CourseNotFoundError(course_id)
    if course.institution_id != institution_id:
        raise ApplicationValidationError("Course does not belong to the given institution.")
    return course


def _is_owning_institution(caller: Caller, application: Application) -> bool:
    return caller.role == UserRole.INSTITUTION and caller.id == application.institution_id


def _is_owning_student(caller: Caller, application: Application) -> bool:
    return caller.is_student and caller.id == application.student_id


def _hidden(caller: Caller, application_id: UUID, action: str) -> ApplicationNotFoundError:
    """Same error as a missing record, so ids of other users' applications are not confirmed."""
    logger.warning(f"{caller} denied {action} on application {application_id}")
    return ApplicationNotFoundError(application_id)


# ============================================
# Eligibility & submission
# ============================================


@store_retry
async def _evaluate(
    db: AsyncSession,
    student_id: UUID,
    course_id: UUID,
    institution_id: UUID,
    now: datetime,
) -> tuple[EligibilityResult, Course]:
    course = _ensure_course(
        await courses_repository.get_by_id(db, course_id), course_id, institution_id
    )
    existing = await repository.get_by_student_and_institution(db, student_id, institution_id)
    result = evaluate_course_eligibility(
        existing,
        course,
        course_id,
        now,
        max_live=settings.max_live_applications_per_institution,
    )
    return result, course


async def check_eligibility(
    db: AsyncSession,
    student_id: UUID,
    course_id: UUID,
    institution_id: UUID,
    now: datetime | None = None,
) -> EligibilityResult:
    """
    Decide whether the student may apply to the course. Read-only.

    Raises:
        CourseNotFoundError: If the course does not exist
        ApplicationValidationError: If the course belongs to another institution
    """
    now = now or _utcnow()
    async with store_operation("check_eligibility"):
        result, _ = await _evaluate(db, student_id, course_id, institution_id, now)
    return result


async def submit_application(
    db: AsyncSession,
    caller: Caller,
    data: SubmitApplicationRequest,
    now: datetime | None = None,
    gateway: NotificationGateway | None = None,
) -> Application:
    """
    Submit a new course application as ``caller``.

    Flow:
    1. Run the eligibility rules (first failing rule wins)
    2. Create the record; the store re-checks the cap and uniqueness
    3. After commit, emit APPLICATION_SUBMITTED (best effort)

    Raises:
        ApplicationLimitExceededError, DuplicateApplicationError,
        CourseNotActiveError, DeadlinePassedError: Business rule failures
        CourseNotFoundError: If the course does not exist
        StoreUnavailableError: If the store timed out or is unreachable
    """
    now = now or _utcnow()

    async with store_operation("submit_application"):
        result, course = await _evaluate(db, caller.id, data.course_id, data.institution_id, now)
        if not result.eligible:
            logger.info(
                f"Submission rejected for student {caller.id} on course {data.course_id}: "
                f"{result.reason.value}"
            )
            raise error_for_ineligibility(result)

        try:
            application = await repository.create(
                db,
                data,
                student_id=caller.id,
                student_name=caller.name,
                student_email=caller.email,
                now=now,
                max_live_per_institution=settings.max_live_applications_per_institution,
            )
        except ApplicationLimitReachedError as e:
            logger.info(f"Store rejected submission for student {caller.id}: {e}")
            raise ApplicationLimitExceededError(
                f"You can only have {e.max_live} active applications per institution."
            ) from e
        except DuplicateRecordError as e:
            logger.info(f"Store rejected duplicate submission for student {caller.id}: {e}")
            raise DuplicateApplicationError("You have already applied to this course.") from e

    logger.info(
        f"Application {application.id} submitted by student {caller.id} for course {course.id}"
    )

    await dispatch_event(
        gateway,
        LifecycleEvent(
            type=EventType.APPLICATION_SUBMITTED,
            application_id=application.id,
            recipient_id=caller.id,
            payload={
                "recipient_email": application.student_email,
                "student_name": application.student_name,
                "course_name": course.name,
            },
        ),
    )

    return application


# ============================================
# Reads
# ============================================


async def get_application(db: AsyncSession, application_id: UUID, caller: Caller) -> Application:
    """
    Get one application visible to ``caller``.

    Visible to the owning student and the owning institution only. Anyone
    else gets the same ApplicationNotFoundError as for an unknown id.
    """
    async with store_operation("get_application"):
        application = await repository.get_by_id(db, application_id)

    if application is None:
        raise ApplicationNotFoundError(application_id)
    if not (_is_owning_student(caller, application) or _is_owning_institution(caller, application)):
        raise _hidden(caller, application_id, "read access")

    return application


async def list_student_applications(
    db: AsyncSession,
    caller: Caller,
    statuses: list[ApplicationStatus] | None = None,
) -> list[Application]:
    """Applications submitted by the calling student."""
    async with store_operation("list_student_applications"):
        return await repository.get_by_student(db, caller.id, statuses=statuses)


async def list_institution_applications(
    db: AsyncSession,
    caller: Caller,
    institution_id: UUID,
    *,
    course_id: UUID | None = None,
    statuses: list[ApplicationStatus] | None = None,
    sort_by: str = "applied_at",
    sort_order: str = "asc",
    skip: int = 0,
    limit: int = 20,
) -> tuple[list[Application], int]:
    """Applications received by the calling institution."""
    if caller.role != UserRole.INSTITUTION or caller.id != institution_id:
        logger.warning(f"{caller} denied listing for institution {institution_id}")
        raise UnauthorizedError()

    async with store_operation("list_institution_applications"):
        return await repository.get_by_institution(
            db,
            institution_id,
            course_id=course_id,
            statuses=statuses,
            sort_by=sort_by,
            sort_order=sort_order,
            skip=skip,
            limit=limit,
        )


# ============================================
# Transitions
# ============================================


def _authorize_transition(
    application: Application, target: ApplicationStatus, caller: Caller
) -> None:
    if _is_owning_institution(caller, application):
        return
    if not _is_owning_student(caller, application):
        raise _hidden(caller, application.id, f"transition to {target.value}")
    if target == ApplicationStatus.WITHDRAWN:
        return
    logger.warning(
        f"{caller} denied transition of application {application.id} to {target.value}"
    )
    raise UnauthorizedError()


async def _attempt_transition(
    db: AsyncSession,
    application_id: UUID,
    target: ApplicationStatus,
    caller: Caller,
    notes: str | None,
    now: datetime,
) -> tuple[Application, ApplicationStatus]:
    application = await repository.get_by_id(db, application_id)
    if application is None:
        raise ApplicationNotFoundError(application_id)

    _authorize_transition(application, target, caller)

    current = application.status
    try:
        validate_transition(COURSE_STATUS_TRANSITIONS, current, target)
    except InvalidStatusTransitionError as e:
        logger.info(f"Rejected transition on application {application_id}: {e}")
        raise InvalidTransitionError(str(e)) from e

    fields = course_transition_fields(
        target,
        actor_id=caller.id,
        actor_is_student=caller.is_student,
        now=now,
        notes=notes,
    )
    updated = await repository.update_status_if_current(
        db,
        application_id,
        expected=current,
        new_status=target,
        now=now,
        **fields,
    )
    return updated, current


async def _course_name(db: AsyncSession, course_id: UUID) -> str | None:
    """Best-effort course name lookup for notification payloads."""
    try:
        course = await courses_repository.get_by_id(db, course_id)
    except Exception as e:
        logger.warning(f"Could not load course {course_id} for notification: {e}")
        return None
    return course.name if course else None


async def transition_application(
    db: AsyncSession,
    application_id: UUID,
    target: ApplicationStatus,
    caller: Caller,
    notes: str | None = None,
    now: datetime | None = None,
    gateway: NotificationGateway | None = None,
) -> Application:
    """
    Move an application to ``target``.

    The status is read, checked against the edge table, and written back
    only if it is still the value that was read. When a concurrent change
    wins, the whole check is repeated once against fresh state; a second
    loss raises ConflictError.

    Raises:
        ApplicationNotFoundError: If the application does not exist or the
            caller is neither its student nor its institution
        UnauthorizedError: If the owning student asks for anything but withdrawal
        InvalidTransitionError: If the edge is not allowed
        ConflictError: If a concurrent change won twice
    """
    now = now or _utcnow()

    async with store_operation("transition_application"):
        try:
            application, previous = await _attempt_transition(
                db, application_id, target, caller, notes, now
            )
        except StaleStatusError:
            logger.info(f"Concurrent change on application {application_id}, retrying once")
            try:
                application, previous = await _attempt_transition(
                    db, application_id, target, caller, notes, now
                )
            except StaleStatusError as e:
                logger.warning(f"Transition on application {application_id} lost twice: {e}")
                raise ConflictError() from e

    logger.info(
        f"Application {application_id} moved {previous.value} -> {target.value} by {caller}"
    )

    await dispatch_event(
        gateway,
        LifecycleEvent(
            type=EventType.APPLICATION_STATUS_CHANGED,
            application_id=application.id,
            recipient_id=application.student_id,
            payload={
                "recipient_email": application.student_email,
                "student_name": application.student_name,
                "course_name": await _course_name(db, application.course_id),
                "status": target.value,
                "previous_status": previous.value,
                "notes": notes,
            },
        ),
    )

    return application


async def withdraw_application(
    db: AsyncSession,
    application_id: UUID,
    caller: Caller,
    notes: str | None = None,
    now: datetime | None = None,
    gateway: NotificationGateway | None = None,
) -> Application:
    """Withdraw an application. Allowed from any non-terminal status."""
    return await transition_application(
        db,
        application_id,
        ApplicationStatus.WITHDRAWN,
        caller,
        notes=notes,
        now=now,
        gateway=gateway,
    )


# ============================================
# Documents
# ============================================


async def attach_document(
    db: AsyncSession,
    application_id: UUID,
    caller: Caller,
    document: DocumentIn,
    now: datetime | None = None,
) -> Application:
    """
    Append document metadata to the calling student's application.

    Documents are append-only and cannot be added once the application
    reached a terminal status.
    """
    now = now or _utcnow()

    async with store_operation("attach_document"):
        application = await repository.get_by_id(db, application_id)
        if application is None:
            raise ApplicationNotFoundError(application_id)
        if not _is_owning_student(caller, application):
            raise _hidden(caller, application_id, "document upload")
        if is_terminal(COURSE_STATUS_TRANSITIONS, application.status):
            raise ApplicationValidationError(
                f"Documents cannot be added to a {application.status.value} application."
            )

        documents = [
            *(application.documents or []),
            {**document.model_dump(), "uploaded_at": now.isoformat()},
        ]
        application = await repository.update(db, application_id, now=now, documents=documents)

    logger.info(f"Document '{document.name}' attached to application {application_id}")
    return application


# ============================================
# Offer acceptance
# ============================================


async def accept_offer(
    db: AsyncSession,
    application_id: UUID,
    caller: Caller,
    now: datetime | None = None,
) -> Application:
    """
    Accept a published admission offer as the owning student.

    Acceptance is final. A student holds at most one accepted offer across
    all institutions; the offer is released once its application leaves
    accepted or hired (for example by withdrawal).

    Raises:
        ApplicationNotFoundError: If the application does not exist or
            belongs to another student
        OfferNotAvailableError: If the application is not a published admission
        OfferAlreadyAcceptedError: If this or another offer was already accepted
        ConflictError: If the application changed while accepting
    """
    now = now or _utcnow()

    async with store_operation("accept_offer"):
        application = await repository.get_by_id(db, application_id)
        if application is None:
            raise ApplicationNotFoundError(application_id)
        if not _is_owning_student(caller, application):
            raise _hidden(caller, application_id, "offer acceptance")
        if application.offer_accepted:
            raise OfferAlreadyAcceptedError("This offer has already been accepted.")
        if application.status != ApplicationStatus.ACCEPTED or not application.published:
            raise OfferNotAvailableError()

        try:
            application = await repository.accept_offer_if_open(db, application_id, now=now)
        except DuplicateRecordError as e:
            logger.info(f"Student {caller.id} already holds an accepted offer: {e}")
            raise OfferAlreadyAcceptedError() from e
        except StaleStatusError as e:
            logger.warning(f"Offer on application {application_id} changed while accepting: {e}")
            raise ConflictError() from e

    logger.info(f"Offer on application {application_id} accepted by student {caller.id}")
    return application

"""
Job Applications Service Layer

The job track mirrors the course track: advisory eligibility, store-backed
uniqueness, compare-and-swap transitions with one retry, and best-effort
notifications after commit. There is no per-company cap and no
publishing step.
"""

import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import Caller, UserRole
from app.core.retry import store_retry
from app.modules.applications.eligibility import EligibilityResult, evaluate_job_eligibility
from app.modules.applications.errors import (
    ApplicationNotFoundError,
    ApplicationValidationError,
    ConflictError,
    DuplicateApplicationError,
    InvalidTransitionError,
    JobNotFoundError,
    UnauthorizedError,
    error_for_ineligibility,
    store_operation,
)
from app.modules.applications.notifications import (
    EventType,
    LifecycleEvent,
    NotificationGateway,
    dispatch_event,
)
from app.modules.applications.repository import DuplicateRecordError, StaleStatusError
from app.modules.applications.state_machine import (
    JOB_STATUS_TRANSITIONS,
    InvalidStatusTransitionError,
    job_transition_fields,
    validate_transition,
)
from app.modules.job_applications import repository
from app.modules.job_applications.models import Job, JobApplication, JobApplicationStatus
from app.modules.job_applications.schemas import SubmitJobApplicationRequest

logger = logging.getLogger(__name__)


def _is_owning_company(caller: Caller, application: JobApplication) -> bool:
    return caller.role == UserRole.COMPANY and caller.id == application.company_id


def _is_owning_student(caller: Caller, application: JobApplication) -> bool:
    return caller.is_student and caller.id == application.student_id


@store_retry
async def _evaluate(
    db: AsyncSession, student_id: UUID, data: SubmitJobApplicationRequest, now: datetime
) -> tuple[EligibilityResult, Job]:
    job = await repository.get_job(db, data.job_id)
    if job is None:
        raise JobNotFoundError(data.job_id)
    if job.company_id != data.company_id:
        raise ApplicationValidationError("Job does not belong to the given company.")

    existing = await repository.get_by_student_and_job(db, student_id, data.job_id)
    return evaluate_job_eligibility(existing, job, data.job_id, now), job


async def submit_job_application(
    db: AsyncSession,
    caller: Caller,
    data: SubmitJobApplicationRequest,
    now: datetime | None = None,
    gateway: NotificationGateway | None = None,
) -> JobApplication:
    """
    Submit a job application as ``caller``.

    Raises:
        DuplicateApplicationError: If a live application to the job exists
        JobNotActiveError, DeadlinePassedError: Business rule failures
        JobNotFoundError: If the job does not exist
    """
    now = now or datetime.now(UTC)

    async with store_operation("submit_job_application"):
        result, job = await _evaluate(db, caller.id, data, now)
        if not result.eligible:
            logger.info(
                f"Job submission rejected for student {caller.id} on job {data.job_id}: "
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
            )
        except DuplicateRecordError as e:
            logger.info(f"Store rejected duplicate job application for student {caller.id}: {e}")
            raise DuplicateApplicationError("You have already applied to this job.") from e

    logger.info(f"Job application {application.id} submitted by student {caller.id}")

    await dispatch_event(
        gateway,
        LifecycleEvent(
            type=EventType.JOB_APPLICATION_SUBMITTED,
            application_id=application.id,
            recipient_id=caller.id,
            payload={
                "recipient_email": application.student_email,
                "student_name": application.student_name,
                "job_title": job.title,
            },
        ),
    )

    return application


async def list_student_job_applications(
    db: AsyncSession,
    caller: Caller,
    statuses: list[JobApplicationStatus] | None = None,
) -> list[JobApplication]:
    async with store_operation("list_student_job_applications"):
        return await repository.get_by_student(db, caller.id, statuses=statuses)


async def list_company_job_applications(
    db: AsyncSession,
    caller: Caller,
    company_id: UUID,
    *,
    job_id: UUID | None = None,
    statuses: list[JobApplicationStatus] | None = None,
    sort_order: str = "asc",
    skip: int = 0,
    limit: int = 20,
) -> tuple[list[JobApplication], int]:
    if caller.role != UserRole.COMPANY or caller.id != company_id:
        logger.warning(f"{caller} denied listing for company {company_id}")
        raise UnauthorizedError()

    async with store_operation("list_company_job_applications"):
        return await repository.get_by_company(
            db,
            company_id,
            job_id=job_id,
            statuses=statuses,
            sort_order=sort_order,
            skip=skip,
            limit=limit,
        )


async def _attempt_transition(
    db: AsyncSession,
    application_id: UUID,
    target: JobApplicationStatus,
    caller: Caller,
    notes: str | None,
    interview_at: datetime | None,
    now: datetime,
) -> tuple[JobApplication, JobApplicationStatus]:
    application = await repository.get_by_id(db, application_id)
    if application is None:
        raise ApplicationNotFoundError(application_id)

    is_company = _is_owning_company(caller, application)
    if not (is_company or _is_owning_student(caller, application)):
        logger.warning(
            f"{caller} denied transition of job application {application_id} to {target.value}"
        )
        raise ApplicationNotFoundError(application_id)
    if not is_company and target != JobApplicationStatus.WITHDRAWN:
        logger.warning(
            f"{caller} denied transition of job application {application_id} to {target.value}"
        )
        raise UnauthorizedError()

    current = application.status
    try:
        validate_transition(JOB_STATUS_TRANSITIONS, current, target)
    except InvalidStatusTransitionError as e:
        logger.info(f"Rejected transition on job application {application_id}: {e}")
        raise InvalidTransitionError(str(e)) from e

    fields = job_transition_fields(
        target,
        actor_id=caller.id,
        actor_is_student=caller.is_student,
        now=now,
        notes=notes,
        interview_at=interview_at,
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


async def _job_title(db: AsyncSession, job_id: UUID) -> str | None:
    """Best-effort job title lookup for notification payloads."""
    try:
        job = await repository.get_job(db, job_id)
    except Exception as e:
        logger.warning(f"Could not load job {job_id} for notification: {e}")
        return None
    return job.title if job else None


async def transition_job_application(
    db: AsyncSession,
    application_id: UUID,
    target: JobApplicationStatus,
    caller: Caller,
    notes: str | None = None,
    interview_at: datetime | None = None,
    now: datetime | None = None,
    gateway: NotificationGateway | None = None,
) -> JobApplication:
    """
    Move a job application to ``target``.

    Only the owning company may make decisions; the owning student may only
    withdraw. Anyone else gets the same ApplicationNotFoundError as for an
    unknown id. A concurrent change is retried once, then ConflictError.
    """
    now = now or datetime.now(UTC)

    async with store_operation("transition_job_application"):
        try:
            application, previous = await _attempt_transition(
                db, application_id, target, caller, notes, interview_at, now
            )
        except StaleStatusError:
            logger.info(f"Concurrent change on job application {application_id}, retrying once")
            try:
                application, previous = await _attempt_transition(
                    db, application_id, target, caller, notes, interview_at, now
                )
            except StaleStatusError as e:
                logger.warning(f"Transition on job application {application_id} lost twice: {e}")
                raise ConflictError() from e

    logger.info(
        f"Job application {application_id} moved {previous.value} -> {target.value} by {caller}"
    )

    await dispatch_event(
        gateway,
        LifecycleEvent(
            type=EventType.JOB_APPLICATION_STATUS_CHANGED,
            application_id=application.id,
            recipient_id=application.student_id,
            payload={
                "recipient_email": application.student_email,
                "student_name": application.student_name,
                "job_title": await _job_title(db, application.job_id),
                "status": target.value,
                "previous_status": previous.value,
                "notes": notes,
            },
        ),
    )

    return application


async def withdraw_job_application(
    db: AsyncSession,
    application_id: UUID,
    caller: Caller,
    notes: str | None = None,
    now: datetime | None = None,
    gateway: NotificationGateway | None = None,
) -> JobApplication:
    return await transition_job_application(
        db,
        application_id,
        JobApplicationStatus.WITHDRAWN,
        caller,
        notes=notes,
        now=now,
        gateway=gateway,
    )

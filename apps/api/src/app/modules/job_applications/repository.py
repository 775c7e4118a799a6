"""
Job Applications Repository

Database operations for job applications and read access to job postings.
Uniqueness per (student, job) is enforced by the partial unique index;
status writes are compare-and-swap, as on the course track.
"""

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy import asc, desc, func, select
from sqlalchemy import update as update_stmt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.retry import store_retry
from app.modules.applications.repository import DuplicateRecordError, StaleStatusError

from .models import Job, JobApplication, JobApplicationStatus
from .schemas import SubmitJobApplicationRequest


async def get_job(db: AsyncSession, id: UUID) -> Job | None:
    """Get job posting by ID."""
    return await db.get(Job, id)


async def create(
    db: AsyncSession,
    data: SubmitJobApplicationRequest,
    *,
    student_id: UUID,
    student_name: str | None,
    student_email: str | None,
    now: datetime,
) -> JobApplication:
    """
    Create a new job application in PENDING.

    Raises:
        DuplicateRecordError: If a live application for the job exists
    """
    new_application = JobApplication(
        student_id=student_id,
        job_id=data.job_id,
        company_id=data.company_id,
        student_name=student_name,
        student_email=student_email,
        cover_letter=data.cover_letter,
        resume_url=data.resume_url,
        status=JobApplicationStatus.PENDING,
        applied_at=now,
        updated_at=now,
    )

    db.add(new_application)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise DuplicateRecordError(
            f"Live application already exists for student {student_id} and job {data.job_id}"
        ) from e

    await db.refresh(new_application)
    return new_application


@store_retry
async def get_by_id(db: AsyncSession, id: UUID) -> JobApplication | None:
    """Get job application by ID."""
    return await db.get(JobApplication, id, populate_existing=True)


async def get_by_student_and_job(
    db: AsyncSession, student_id: UUID, job_id: UUID
) -> list[JobApplication]:
    result = await db.execute(
        select(JobApplication).where(
            JobApplication.student_id == student_id,
            JobApplication.job_id == job_id,
        )
    )
    return list(result.scalars().all())


@store_retry
async def get_by_student(
    db: AsyncSession,
    student_id: UUID,
    *,
    statuses: Iterable[JobApplicationStatus] | None = None,
) -> list[JobApplication]:
    """Get a student's job applications, newest first."""
    query = select(JobApplication).where(JobApplication.student_id == student_id)
    if statuses:
        query = query.where(JobApplication.status.in_(list(statuses)))

    result = await db.execute(query.order_by(desc(JobApplication.applied_at)))
    return list(result.scalars().all())


@store_retry
async def get_by_company(
    db: AsyncSession,
    company_id: UUID,
    *,
    job_id: UUID | None = None,
    statuses: Iterable[JobApplicationStatus] | None = None,
    sort_order: str = "asc",
    skip: int = 0,
    limit: int = 20,
) -> tuple[list[JobApplication], int]:
    """Get a company's received applications, paginated, oldest first by default."""
    query = select(JobApplication).where(JobApplication.company_id == company_id)

    if job_id:
        query = query.where(JobApplication.job_id == job_id)
    if statuses:
        query = query.where(JobApplication.status.in_(list(statuses)))

    total_result = await db.execute(select(func.count()).select_from(query.subquery()))
    total = total_result.scalar() or 0

    order = desc if sort_order.lower() == "desc" else asc
    query = query.order_by(order(JobApplication.applied_at)).offset(skip).limit(min(limit, 100))

    result = await db.execute(query)
    return list(result.scalars().all()), total


async def update_status_if_current(
    db: AsyncSession,
    id: UUID,
    *,
    expected: JobApplicationStatus,
    new_status: JobApplicationStatus,
    now: datetime,
    **fields,
) -> JobApplication:
    """
    Set a new status only if the stored status still equals ``expected``.

    Raises:
        StaleStatusError: If the status changed since it was read
    """
    result = await db.execute(
        update_stmt(JobApplication)
        .where(JobApplication.id == id, JobApplication.status == expected)
        .values(status=new_status, updated_at=now, **fields)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise StaleStatusError(id, expected)

    await db.commit()
    return await db.get(JobApplication, id, populate_existing=True)

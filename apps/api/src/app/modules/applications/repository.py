"""
Course Applications Repository

Database operations for course applications. All operations are async and
take the session as their first argument.

Design Principles:
- The store is the source of truth for uniqueness and the live-application cap
- Status writes are compare-and-swap on the previously read status
- Every write stamps updated_at; create also stamps applied_at
- Reads that open a unit of work are retried on transient connection
  errors; reads composed inside a larger unit leave the retry to it
"""

import hashlib
from collections.abc import Iterable, Sequence
from datetime import datetime
from uuid import UUID

from sqlalchemy import asc, desc, func, select
from sqlalchemy import update as update_stmt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.retry import store_retry

from .eligibility import LIVE_STATUSES
from .models import Application, ApplicationStatus
from .schemas import SubmitApplicationRequest

# Published admissions that occupy a seat; withdrawn or rejected ones do not
SEAT_HOLDING_STATUSES = (ApplicationStatus.ACCEPTED, ApplicationStatus.HIRED)


class RecordNotFoundError(ValueError):
    """Raised when the record to update does not exist."""

    def __init__(self, id: UUID):
        self.id = id
        super().__init__(f"Record {id} not found")


class DuplicateRecordError(ValueError):
    """Raised when the store's uniqueness constraint rejects an insert."""


class StaleStatusError(ValueError):
    """Raised when a compare-and-swap finds the status changed since it was read."""

    def __init__(self, id: UUID, expected: object):
        self.id = id
        self.expected = expected
        super().__init__(f"Record {id} is no longer in status {getattr(expected, 'value', expected)}")


class ApplicationLimitReachedError(ValueError):
    """Raised when the locked re-count finds the student at the live-application cap."""

    def __init__(self, live_count: int, max_live: int):
        self.live_count = live_count
        self.max_live = max_live
        super().__init__(f"Student holds {live_count} live applications (max {max_live})")


def _advisory_lock_key(student_id: UUID, institution_id: UUID) -> int:
    digest = hashlib.blake2b(f"{student_id}:{institution_id}".encode(), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


async def _lock_student_institution(
    db: AsyncSession, student_id: UUID, institution_id: UUID
) -> None:
    """
    Serialise submissions from one student to one institution.

    PostgreSQL only: a transaction-scoped advisory lock released on
    commit/rollback. Other dialects rely on the unique index alone.
    """
    if db.get_bind().dialect.name != "postgresql":
        return
    await db.execute(select(func.pg_advisory_xact_lock(_advisory_lock_key(student_id, institution_id))))


async def _count_live(db: AsyncSession, student_id: UUID, institution_id: UUID) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(Application)
        .where(
            Application.student_id == student_id,
            Application.institution_id == institution_id,
            Application.status.in_(LIVE_STATUSES),
        )
    )
    return result.scalar() or 0


async def create(
    db: AsyncSession,
    data: SubmitApplicationRequest,
    *,
    student_id: UUID,
    student_name: str | None,
    student_email: str | None,
    now: datetime,
    max_live_per_institution: int,
) -> Application:
    """
    Create a new application in PENDING.

    Runs in one transaction: lock (student, institution), re-count live
    applications, insert, commit. Nothing is written if any step fails.

    Raises:
        ApplicationLimitReachedError: If the student is already at the cap
        DuplicateRecordError: If a live application for the course exists
    """
    try:
        await _lock_student_institution(db, student_id, data.institution_id)

        live_count = await _count_live(db, student_id, data.institution_id)
        if live_count >= max_live_per_institution:
            raise ApplicationLimitReachedError(live_count, max_live_per_institution)

        new_application = Application(
            student_id=student_id,
            course_id=data.course_id,
            institution_id=data.institution_id,
            student_name=student_name,
            student_email=student_email,
            personal_statement=data.personal_statement,
            preferences=data.preferences.model_dump() if data.preferences else None,
            documents=[
                {**doc.model_dump(), "uploaded_at": now.isoformat()} for doc in data.documents
            ],
            status=ApplicationStatus.PENDING,
            published=False,
            applied_at=now,
            updated_at=now,
        )

        db.add(new_application)
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise DuplicateRecordError(
            f"Live application already exists for student {student_id} and course {data.course_id}"
        ) from e
    except Exception:
        await db.rollback()
        raise

    await db.refresh(new_application)
    return new_application


@store_retry
async def get_by_id(db: AsyncSession, id: UUID) -> Application | None:
    """Get application by ID."""
    return await db.get(Application, id, populate_existing=True)


async def update(db: AsyncSession, id: UUID, *, now: datetime, **fields) -> Application:
    """
    Update non-status fields of an application.

    Raises:
        RecordNotFoundError: If the application does not exist
    """
    application = await get_by_id(db, id)
    if not application:
        raise RecordNotFoundError(id)

    for key, value in fields.items():
        if hasattr(application, key):
            setattr(application, key, value)
    application.updated_at = now

    await db.commit()
    await db.refresh(application)

    return application


async def update_status_if_current(
    db: AsyncSession,
    id: UUID,
    *,
    expected: ApplicationStatus,
    new_status: ApplicationStatus,
    now: datetime,
    **fields,
) -> Application:
    """
    Set a new status only if the stored status still equals ``expected``.

    Edge legality is checked by the caller against the state machine; this
    function only guarantees that no concurrent decision is overwritten.

    Raises:
        StaleStatusError: If the status changed since it was read
    """
    result = await db.execute(
        update_stmt(Application)
        .where(Application.id == id, Application.status == expected)
        .values(status=new_status, updated_at=now, **fields)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise StaleStatusError(id, expected)

    await db.commit()
    return await db.get(Application, id, populate_existing=True)


@store_retry
async def get_by_student(
    db: AsyncSession,
    student_id: UUID,
    *,
    statuses: Iterable[ApplicationStatus] | None = None,
) -> list[Application]:
    """Get a student's applications, newest first."""
    query = select(Application).where(Application.student_id == student_id)
    if statuses:
        query = query.where(Application.status.in_(list(statuses)))

    result = await db.execute(query.order_by(desc(Application.applied_at)))
    return list(result.scalars().all())


async def get_by_student_and_institution(
    db: AsyncSession,
    student_id: UUID,
    institution_id: UUID,
    *,
    statuses: Iterable[ApplicationStatus] | None = None,
) -> list[Application]:
    """Get a student's applications at one institution."""
    query = select(Application).where(
        Application.student_id == student_id,
        Application.institution_id == institution_id,
    )
    if statuses:
        query = query.where(Application.status.in_(list(statuses)))

    result = await db.execute(query)
    return list(result.scalars().all())


@store_retry
async def get_by_institution(
    db: AsyncSession,
    institution_id: UUID,
    *,
    course_id: UUID | None = None,
    statuses: Iterable[ApplicationStatus] | None = None,
    sort_by: str = "applied_at",
    sort_order: str = "asc",
    skip: int = 0,
    limit: int = 20,
) -> tuple[list[Application], int]:
    """
    Get an institution's applications with filters, sorting, and pagination.

    Args:
        db: Database session
        institution_id: Owning institution
        course_id: Filter by course (optional)
        statuses: Filter by status (optional)
        sort_by: Column to sort by (applied_at, updated_at). Default: applied_at
        sort_order: Sort direction (asc, desc). Default: asc (oldest first for fairness)
        skip: Number of records to skip for pagination
        limit: Maximum records to return (capped at 100)

    Returns:
        Tuple of (list of applications, total count matching filters)
    """
    query = select(Application).where(Application.institution_id == institution_id)

    if course_id:
        query = query.where(Application.course_id == course_id)
    if statuses:
        query = query.where(Application.status.in_(list(statuses)))

    count_query = select(func.count()).select_from(query.subquery())
    total_result = await db.execute(count_query)
    total = total_result.scalar() or 0

    valid_sort_columns = {"applied_at", "updated_at"}
    if sort_by not in valid_sort_columns:
        sort_by = "applied_at"

    sort_column = getattr(Application, sort_by)
    if sort_order.lower() == "desc":
        query = query.order_by(desc(sort_column))
    else:
        query = query.order_by(asc(sort_column))

    query = query.offset(skip).limit(min(limit, 100))

    result = await db.execute(query)
    return list(result.scalars().all()), total


# ============================================
# Admissions publishing
# ============================================


async def get_publishable(
    db: AsyncSession, institution_id: UUID, course_id: UUID
) -> list[Application]:
    """
    Accepted, not yet published applications for one course.

    Rows are locked FOR UPDATE until the publishing transaction ends.
    """
    result = await db.execute(
        select(Application)
        .where(
            Application.institution_id == institution_id,
            Application.course_id == course_id,
            Application.status == ApplicationStatus.ACCEPTED,
            Application.published == False,  # noqa: E712
        )
        .order_by(asc(Application.applied_at))
        .with_for_update()
    )
    return list(result.scalars().all())


@store_retry
async def count_published(db: AsyncSession, institution_id: UUID, course_id: UUID) -> int:
    """Published admissions still holding a seat (accepted or hired)."""
    result = await db.execute(
        select(func.count())
        .select_from(Application)
        .where(
            Application.institution_id == institution_id,
            Application.course_id == course_id,
            Application.published == True,  # noqa: E712
            Application.status.in_(SEAT_HOLDING_STATUSES),
        )
    )
    return result.scalar() or 0


def _mark_published(application: Application, now: datetime) -> None:
    application.published = True
    if application.admitted_at is None:
        application.admitted_at = now
    application.updated_at = now


async def mark_published(
    db: AsyncSession, applications: Sequence[Application], *, now: datetime
) -> int:
    """
    Flip ``published`` on every application in one commit.

    ``admitted_at`` is only set where it is missing. On any failure the
    whole batch is rolled back and the error re-raised.

    Returns:
        Number of applications published
    """
    try:
        for application in applications:
            _mark_published(application, now)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    return len(applications)


# ============================================
# Offer acceptance
# ============================================


async def accept_offer_if_open(db: AsyncSession, id: UUID, *, now: datetime) -> Application:
    """
    Record the student's acceptance of a published admission offer.

    The write only applies while the application is accepted, published
    and not yet taken up.

    Raises:
        StaleStatusError: If the offer is no longer open
        DuplicateRecordError: If the student already holds an accepted offer
    """
    try:
        result = await db.execute(
            update_stmt(Application)
            .where(
                Application.id == id,
                Application.status == ApplicationStatus.ACCEPTED,
                Application.published == True,  # noqa: E712
                Application.offer_accepted == False,  # noqa: E712
            )
            .values(offer_accepted=True, offer_accepted_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.rollback()
            raise StaleStatusError(id, ApplicationStatus.ACCEPTED)
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise DuplicateRecordError(f"Student of application {id} already accepted an offer") from e

    return await db.get(Application, id, populate_existing=True)

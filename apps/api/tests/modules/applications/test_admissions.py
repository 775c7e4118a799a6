"""
Tests for admissions publishing against an in-memory SQLite database.

These tests cover:
- Publishing the accepted cohort of a course
- Idempotent re-publishing
- All-or-nothing batches
- Seat capacity warnings
- Authorization and course checks
- Students accepting published offers
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import patch
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from app.core.auth import Caller, UserRole
from app.modules.applications import repository
from app.modules.applications.admissions import publish_admissions
from app.modules.applications.errors import (
    ApplicationNotFoundError,
    ApplicationValidationError,
    CourseNotFoundError,
    OfferAlreadyAcceptedError,
    OfferNotAvailableError,
    StoreUnavailableError,
    UnauthorizedError,
)
from app.modules.applications.models import Application, ApplicationStatus
from app.modules.applications.notifications import EventType
from app.modules.applications.service import accept_offer, withdraw_application

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


async def _published_count(db, course_id) -> int:
    return await db.scalar(
        select(func.count())
        .select_from(Application)
        .where(Application.course_id == course_id, Application.published == True)  # noqa: E712
    )


@pytest_asyncio.fixture
async def course(db_session, make_course, institution_id):
    item = make_course(institution_id, seats=5)
    db_session.add(item)
    await db_session.commit()
    return item


@pytest_asyncio.fixture
async def cohort(db_session, make_application, course):
    """Three accepted applications, one pending and one rejected."""
    items = [
        make_application(uuid4(), course.id, course.institution_id, status=status)
        for status in (
            ApplicationStatus.ACCEPTED,
            ApplicationStatus.ACCEPTED,
            ApplicationStatus.ACCEPTED,
            ApplicationStatus.PENDING,
            ApplicationStatus.REJECTED,
        )
    ]
    db_session.add_all(items)
    await db_session.commit()
    return items


class TestPublishAdmissions:
    """Tests for publish_admissions."""

    @pytest.mark.asyncio
    async def test_publishes_accepted_only(
        self, db_session, mock_gateway, institution, course, cohort
    ):
        result = await publish_admissions(
            db_session, institution.id, course.id, institution, now=NOW, gateway=mock_gateway
        )

        assert result.published_count == 3
        assert result.total_published == 3
        assert result.over_capacity is False
        assert result.warnings == []

        rows = (
            await db_session.execute(
                select(Application.status, Application.published).where(
                    Application.course_id == course.id
                )
            )
        ).all()
        for status, published in rows:
            assert published is (status == ApplicationStatus.ACCEPTED)

        assert mock_gateway.notify.await_count == 3
        events = [call.args[0] for call in mock_gateway.notify.call_args_list]
        assert {e.type for e in events} == {EventType.ADMISSIONS_PUBLISHED}
        assert {e.recipient_id for e in events} == {a.student_id for a in cohort[:3]}

    @pytest.mark.asyncio
    async def test_sets_admitted_at_only_when_missing(
        self, db_session, make_application, institution, course
    ):
        earlier = NOW - timedelta(days=3)
        already_admitted = make_application(
            uuid4(),
            course.id,
            course.institution_id,
            status=ApplicationStatus.ACCEPTED,
            admitted_at=earlier,
        )
        not_stamped = make_application(
            uuid4(), course.id, course.institution_id, status=ApplicationStatus.ACCEPTED
        )
        db_session.add_all([already_admitted, not_stamped])
        await db_session.commit()

        await publish_admissions(db_session, institution.id, course.id, institution, now=NOW)

        assert (await repository.get_by_id(db_session, already_admitted.id)).admitted_at == earlier
        assert (await repository.get_by_id(db_session, not_stamped.id)).admitted_at == NOW

    @pytest.mark.asyncio
    async def test_republish_is_a_no_op(
        self, db_session, mock_gateway, institution, course, cohort
    ):
        await publish_admissions(db_session, institution.id, course.id, institution, now=NOW)
        later = NOW + timedelta(days=1)

        result = await publish_admissions(
            db_session, institution.id, course.id, institution, now=later, gateway=mock_gateway
        )

        assert result.published_count == 0
        assert result.total_published == 3
        mock_gateway.notify.assert_not_called()
        first = await repository.get_by_id(db_session, cohort[0].id)
        assert first.admitted_at == NOW

    @pytest.mark.asyncio
    async def test_later_acceptance_published_on_next_run(
        self, db_session, make_application, institution, course, cohort
    ):
        await publish_admissions(db_session, institution.id, course.id, institution, now=NOW)
        late = make_application(
            uuid4(), course.id, course.institution_id, status=ApplicationStatus.ACCEPTED
        )
        db_session.add(late)
        await db_session.commit()

        result = await publish_admissions(
            db_session, institution.id, course.id, institution, now=NOW
        )

        assert result.published_count == 1
        assert result.total_published == 4

    @pytest.mark.asyncio
    async def test_failure_mid_batch_publishes_nothing(
        self, db_session, mock_gateway, institution, course, cohort
    ):
        real_mark = repository._mark_published
        calls = []

        def failing_mark(application, now):
            calls.append(application)
            if len(calls) == 3:
                raise RuntimeError("write failed")
            real_mark(application, now)

        with patch(
            "app.modules.applications.repository._mark_published", side_effect=failing_mark
        ):
            with pytest.raises(StoreUnavailableError) as exc_info:
                await publish_admissions(
                    db_session,
                    institution.id,
                    course.id,
                    institution,
                    now=NOW,
                    gateway=mock_gateway,
                )

        assert "No changes were made" in exc_info.value.message
        assert await _published_count(db_session, course.id) == 0
        mock_gateway.notify.assert_not_called()

    @pytest.mark.asyncio
    async def test_over_capacity_is_a_warning(
        self, db_session, make_course, make_application, institution
    ):
        small = make_course(institution.id, seats=2)
        db_session.add(small)
        db_session.add_all(
            [
                make_application(
                    uuid4(), small.id, institution.id, status=ApplicationStatus.ACCEPTED
                )
                for _ in range(3)
            ]
        )
        await db_session.commit()

        result = await publish_admissions(db_session, institution.id, small.id, institution, now=NOW)

        assert result.published_count == 3
        assert result.seats == 2
        assert result.over_capacity is True
        assert len(result.warnings) == 1

    @pytest.mark.asyncio
    async def test_withdrawn_admission_frees_its_seat(
        self, db_session, make_course, make_application, institution
    ):
        small = make_course(institution.id, seats=2)
        db_session.add(small)
        first, second = (
            make_application(uuid4(), small.id, institution.id, status=ApplicationStatus.ACCEPTED)
            for _ in range(2)
        )
        db_session.add_all([first, second])
        await db_session.commit()
        await publish_admissions(db_session, institution.id, small.id, institution, now=NOW)

        await repository.update_status_if_current(
            db_session,
            first.id,
            expected=ApplicationStatus.ACCEPTED,
            new_status=ApplicationStatus.WITHDRAWN,
            now=NOW,
            withdrawn_at=NOW,
        )
        late = make_application(
            uuid4(), small.id, institution.id, status=ApplicationStatus.ACCEPTED
        )
        db_session.add(late)
        await db_session.commit()

        result = await publish_admissions(db_session, institution.id, small.id, institution, now=NOW)

        assert result.published_count == 1
        assert result.total_published == 2
        assert result.over_capacity is False
        assert result.warnings == []

    @pytest.mark.asyncio
    async def test_nothing_to_publish(self, db_session, institution, course):
        result = await publish_admissions(
            db_session, institution.id, course.id, institution, now=NOW
        )

        assert result.published_count == 0
        assert result.total_published == 0

    @pytest.mark.asyncio
    async def test_other_institution_unauthorized(
        self, db_session, other_institution, institution, course, cohort
    ):
        with pytest.raises(UnauthorizedError):
            await publish_admissions(
                db_session, institution.id, course.id, other_institution, now=NOW
            )

        assert await _published_count(db_session, course.id) == 0

    @pytest.mark.asyncio
    async def test_missing_course(self, db_session, institution):
        with pytest.raises(CourseNotFoundError):
            await publish_admissions(db_session, institution.id, uuid4(), institution, now=NOW)

    @pytest.mark.asyncio
    async def test_course_of_other_institution(self, db_session, make_course, institution):
        foreign = make_course(uuid4())
        db_session.add(foreign)
        await db_session.commit()

        with pytest.raises(ApplicationValidationError):
            await publish_admissions(db_session, institution.id, foreign.id, institution, now=NOW)


class TestAcceptOffer:
    """Tests for accept_offer on published admissions."""

    @pytest_asyncio.fixture
    async def admission(self, db_session, make_application, institution, course, student):
        item = make_application(
            student.id, course.id, institution.id, status=ApplicationStatus.ACCEPTED
        )
        db_session.add(item)
        await db_session.commit()
        await publish_admissions(db_session, institution.id, course.id, institution, now=NOW)
        return item

    @pytest_asyncio.fixture
    async def second_admission(self, db_session, make_course, make_application, student):
        elsewhere = uuid4()
        other_course = make_course(elsewhere)
        db_session.add(other_course)
        await db_session.commit()
        item = make_application(
            student.id,
            other_course.id,
            elsewhere,
            status=ApplicationStatus.ACCEPTED,
            published=True,
            admitted_at=NOW,
        )
        db_session.add(item)
        await db_session.commit()
        return item

    @pytest.mark.asyncio
    async def test_student_accepts_published_offer(self, db_session, student, admission):
        later = NOW + timedelta(days=2)

        result = await accept_offer(db_session, admission.id, student, now=later)

        assert result.offer_accepted is True
        assert result.offer_accepted_at == later
        assert result.updated_at == later
        assert result.status == ApplicationStatus.ACCEPTED

    @pytest.mark.asyncio
    async def test_offer_is_accepted_once(self, db_session, student, admission):
        await accept_offer(db_session, admission.id, student, now=NOW)

        with pytest.raises(OfferAlreadyAcceptedError) as exc_info:
            await accept_offer(db_session, admission.id, student, now=NOW)

        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_unpublished_admission_has_no_offer(
        self, db_session, make_application, institution, course, student
    ):
        unpublished = make_application(
            student.id, course.id, institution.id, status=ApplicationStatus.ACCEPTED
        )
        db_session.add(unpublished)
        await db_session.commit()
        application_id = unpublished.id

        with pytest.raises(OfferNotAvailableError):
            await accept_offer(db_session, application_id, student, now=NOW)

        stored = await repository.get_by_id(db_session, application_id)
        assert stored.offer_accepted is False

    @pytest.mark.asyncio
    async def test_pending_application_has_no_offer(
        self, db_session, make_application, institution, course, student
    ):
        pending = make_application(student.id, course.id, institution.id)
        db_session.add(pending)
        await db_session.commit()

        with pytest.raises(OfferNotAvailableError) as exc_info:
            await accept_offer(db_session, pending.id, student, now=NOW)

        assert exc_info.value.error_code == "OFFER_NOT_AVAILABLE"

    @pytest.mark.asyncio
    async def test_only_one_offer_per_student(
        self, db_session, student, admission, second_admission
    ):
        first_id, second_id = admission.id, second_admission.id
        await accept_offer(db_session, first_id, student, now=NOW)

        with pytest.raises(OfferAlreadyAcceptedError):
            await accept_offer(db_session, second_id, student, now=NOW)

        stored = await repository.get_by_id(db_session, second_id)
        assert stored.offer_accepted is False

    @pytest.mark.asyncio
    async def test_withdrawal_releases_the_offer(
        self, db_session, student, admission, second_admission
    ):
        first_id, second_id = admission.id, second_admission.id
        await accept_offer(db_session, first_id, student, now=NOW)
        await withdraw_application(db_session, first_id, student, now=NOW)

        result = await accept_offer(db_session, second_id, student, now=NOW)

        assert result.offer_accepted is True

    @pytest.mark.asyncio
    async def test_other_student_gets_not_found(self, db_session, admission):
        intruder = Caller(id=uuid4(), role=UserRole.STUDENT)
        application_id = admission.id

        with pytest.raises(ApplicationNotFoundError):
            await accept_offer(db_session, application_id, intruder, now=NOW)

        stored = await repository.get_by_id(db_session, application_id)
        assert stored.offer_accepted is False

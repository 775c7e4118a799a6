"""
Tests for the job applications service against an in-memory SQLite database.

These tests cover:
- Submission (success, duplicate, reapply after withdrawal, job checks)
- Company decisions and student withdrawal
- Ownership checks (strangers get the same answer as for unknown ids)
- Listing for the student and the company
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
import pytest_asyncio

from app.core.auth import Caller, UserRole
from app.modules.applications.errors import (
    ApplicationNotFoundError,
    ApplicationValidationError,
    DeadlinePassedError,
    DuplicateApplicationError,
    InvalidTransitionError,
    JobNotActiveError,
    JobNotFoundError,
    UnauthorizedError,
)
from app.modules.applications.notifications import EventType
from app.modules.applications.repository import DuplicateRecordError
from app.modules.job_applications.models import JobApplicationStatus, JobStatus
from app.modules.job_applications.schemas import SubmitJobApplicationRequest
from app.modules.job_applications.service import (
    list_company_job_applications,
    list_student_job_applications,
    submit_job_application,
    transition_job_application,
    withdraw_job_application,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def company():
    return Caller(id=uuid4(), role=UserRole.COMPANY, name="Kumasi Analytics")


@pytest_asyncio.fixture
async def job(db_session, make_job, company):
    item = make_job(company.id)
    db_session.add(item)
    await db_session.commit()
    return item


def _request(job):
    return SubmitJobApplicationRequest(
        job_id=job.id,
        company_id=job.company_id,
        cover_letter="I enjoy working with data.",
    )


class TestSubmitJobApplication:
    @pytest.mark.asyncio
    async def test_submit_succeeds(self, db_session, mock_gateway, student, job):
        application = await submit_job_application(
            db_session, student, _request(job), now=NOW, gateway=mock_gateway
        )

        assert application.status == JobApplicationStatus.PENDING
        assert application.student_id == student.id
        assert application.company_id == job.company_id
        assert application.applied_at == NOW

        event = mock_gateway.notify.call_args.args[0]
        assert event.type == EventType.JOB_APPLICATION_SUBMITTED
        assert event.payload["job_title"] == job.title

    @pytest.mark.asyncio
    async def test_second_application_is_duplicate(self, db_session, student, job):
        await submit_job_application(db_session, student, _request(job), now=NOW)

        with pytest.raises(DuplicateApplicationError):
            await submit_job_application(db_session, student, _request(job), now=NOW)

    @pytest.mark.asyncio
    async def test_reapply_after_withdrawal(self, db_session, student, job):
        first = await submit_job_application(db_session, student, _request(job), now=NOW)
        await withdraw_job_application(db_session, first.id, student, now=NOW)

        second = await submit_job_application(db_session, student, _request(job), now=NOW)

        assert second.id != first.id

    @pytest.mark.asyncio
    async def test_store_duplicate_translated(self, db_session, student, job):
        with patch(
            "app.modules.job_applications.service.repository.create",
            AsyncMock(side_effect=DuplicateRecordError("unique violation")),
        ):
            with pytest.raises(DuplicateApplicationError):
                await submit_job_application(db_session, student, _request(job), now=NOW)

    @pytest.mark.asyncio
    async def test_filled_job(self, db_session, make_job, company, student):
        filled = make_job(company.id, status=JobStatus.FILLED)
        db_session.add(filled)
        await db_session.commit()

        with pytest.raises(JobNotActiveError):
            await submit_job_application(db_session, student, _request(filled), now=NOW)

    @pytest.mark.asyncio
    async def test_deadline_passed(self, db_session, make_job, company, student):
        closed = make_job(company.id, deadline=NOW - timedelta(days=1))
        db_session.add(closed)
        await db_session.commit()

        with pytest.raises(DeadlinePassedError):
            await submit_job_application(db_session, student, _request(closed), now=NOW)

    @pytest.mark.asyncio
    async def test_missing_job(self, db_session, student):
        data = SubmitJobApplicationRequest(job_id=uuid4(), company_id=uuid4())

        with pytest.raises(JobNotFoundError):
            await submit_job_application(db_session, student, data, now=NOW)

    @pytest.mark.asyncio
    async def test_job_of_other_company(self, db_session, student, job):
        data = SubmitJobApplicationRequest(job_id=job.id, company_id=uuid4())

        with pytest.raises(ApplicationValidationError):
            await submit_job_application(db_session, student, data, now=NOW)


class TestTransitionJobApplication:
    @pytest_asyncio.fixture
    async def application(self, db_session, student, job):
        return await submit_job_application(db_session, student, _request(job), now=NOW)

    @pytest.mark.asyncio
    async def test_company_schedules_interview(
        self, db_session, mock_gateway, company, application
    ):
        interview_at = NOW + timedelta(days=5)

        updated = await transition_job_application(
            db_session,
            application.id,
            JobApplicationStatus.INTERVIEW,
            company,
            interview_at=interview_at,
            now=NOW,
            gateway=mock_gateway,
        )

        assert updated.status == JobApplicationStatus.INTERVIEW
        assert updated.interview_at == interview_at
        assert updated.reviewed_by == company.id

        event = mock_gateway.notify.call_args.args[0]
        assert event.type == EventType.JOB_APPLICATION_STATUS_CHANGED
        assert event.payload["status"] == "interview"
        assert event.payload["job_title"] == "Junior Data Analyst"

    @pytest.mark.asyncio
    async def test_offer_sets_offered_at(self, db_session, company, application):
        updated = await transition_job_application(
            db_session, application.id, JobApplicationStatus.ACCEPTED, company, now=NOW
        )

        assert updated.offered_at == NOW

    @pytest.mark.asyncio
    async def test_rejected_is_terminal(self, db_session, company, application):
        await transition_job_application(
            db_session, application.id, JobApplicationStatus.REJECTED, company, now=NOW
        )

        with pytest.raises(InvalidTransitionError):
            await transition_job_application(
                db_session, application.id, JobApplicationStatus.INTERVIEW, company, now=NOW
            )

    @pytest.mark.asyncio
    async def test_other_company_gets_not_found(self, db_session, application):
        stranger = Caller(id=uuid4(), role=UserRole.COMPANY)

        with pytest.raises(ApplicationNotFoundError):
            await transition_job_application(
                db_session, application.id, JobApplicationStatus.ACCEPTED, stranger, now=NOW
            )

    @pytest.mark.asyncio
    async def test_student_cannot_accept_own_application(
        self, db_session, student, application
    ):
        with pytest.raises(UnauthorizedError):
            await transition_job_application(
                db_session, application.id, JobApplicationStatus.ACCEPTED, student, now=NOW
            )

    @pytest.mark.asyncio
    async def test_foreign_and_unknown_ids_answer_alike(self, db_session, application):
        stranger = Caller(id=uuid4(), role=UserRole.STUDENT)

        with pytest.raises(ApplicationNotFoundError) as foreign_exc:
            await withdraw_job_application(db_session, application.id, stranger, now=NOW)
        with pytest.raises(ApplicationNotFoundError) as unknown_exc:
            await withdraw_job_application(db_session, uuid4(), stranger, now=NOW)

        assert foreign_exc.value.status_code == unknown_exc.value.status_code == 404
        assert foreign_exc.value.error_code == unknown_exc.value.error_code == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_student_withdraws(self, db_session, student, application):
        updated = await withdraw_job_application(db_session, application.id, student, now=NOW)

        assert updated.status == JobApplicationStatus.WITHDRAWN
        assert updated.withdrawn_at == NOW
        assert updated.reviewed_by is None


class TestListing:
    @pytest.mark.asyncio
    async def test_student_and_company_views(self, db_session, student, company, job):
        await submit_job_application(db_session, student, _request(job), now=NOW)

        mine = await list_student_job_applications(db_session, student)
        received, total = await list_company_job_applications(db_session, company, company.id)

        assert len(mine) == 1
        assert total == 1
        assert received[0].id == mine[0].id

    @pytest.mark.asyncio
    async def test_company_cannot_list_other_company(self, db_session, company):
        with pytest.raises(UnauthorizedError):
            await list_company_job_applications(db_session, company, uuid4())

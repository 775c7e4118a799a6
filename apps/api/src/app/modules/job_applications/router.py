"""
Job Applications Routers

Student endpoints (mounted at /job-applications):
- POST "" - Submit a job application
- GET /mine - List the student's job applications
- POST /{id}/withdraw - Withdraw a job application

Company endpoints (mounted at /companies):
- GET /{company_id}/job-applications - List received applications
- POST /{company_id}/job-applications/{id}/transition - Change status
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import Caller, UserRole, require_role
from app.core.config import settings
from app.core.database import get_db
from app.core.rate_limit import enforce_caller_rate_limit
from app.modules.applications.errors import (
    ApplicationServiceError,
    UnauthorizedError,
    internal_error,
    to_http_exception,
)
from app.modules.applications.notifications import (
    NotificationGateway,
    get_notification_gateway,
)
from app.modules.job_applications import service
from app.modules.job_applications.models import JobApplicationStatus
from app.modules.job_applications.schemas import (
    JobApplicationListResponse,
    JobApplicationResponse,
    JobTransitionRequest,
    SubmitJobApplicationRequest,
    SubmitJobApplicationResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()
company_router = APIRouter()

require_student = require_role(UserRole.STUDENT)
require_company = require_role(UserRole.COMPANY)


@router.post(
    "",
    response_model=SubmitJobApplicationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit Job Application",
)
async def submit_job_application(
    data: SubmitJobApplicationRequest,
    caller: Caller = Depends(require_student),
    db: AsyncSession = Depends(get_db),
    gateway: NotificationGateway = Depends(get_notification_gateway),
) -> SubmitJobApplicationResponse:
    await enforce_caller_rate_limit(caller, "submit_job_application", *settings.rate_limit_submit)

    try:
        application = await service.submit_job_application(db, caller, data, gateway=gateway)
        return SubmitJobApplicationResponse.model_validate(application)
    except ApplicationServiceError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error submitting job application: {e}")
        raise internal_error() from e


@router.get(
    "/mine",
    response_model=list[JobApplicationResponse],
    summary="List My Job Applications",
)
async def list_my_job_applications(
    status_filter: list[JobApplicationStatus] | None = Query(None, alias="status"),
    caller: Caller = Depends(require_student),
    db: AsyncSession = Depends(get_db),
) -> list[JobApplicationResponse]:
    try:
        applications = await service.list_student_job_applications(db, caller, status_filter)
        return [JobApplicationResponse.model_validate(a) for a in applications]
    except ApplicationServiceError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error listing job applications: {e}")
        raise internal_error() from e


@router.post(
    "/{application_id}/withdraw",
    response_model=JobApplicationResponse,
    summary="Withdraw Job Application",
)
async def withdraw_job_application(
    application_id: UUID,
    caller: Caller = Depends(require_student),
    db: AsyncSession = Depends(get_db),
    gateway: NotificationGateway = Depends(get_notification_gateway),
) -> JobApplicationResponse:
    try:
        application = await service.withdraw_job_application(
            db, application_id, caller, gateway=gateway
        )
        return JobApplicationResponse.model_validate(application)
    except ApplicationServiceError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error withdrawing job application {application_id}: {e}")
        raise internal_error() from e


@company_router.get(
    "/{company_id}/job-applications",
    response_model=JobApplicationListResponse,
    summary="List Company Job Applications",
)
async def list_company_job_applications(
    company_id: UUID,
    job_id: UUID | None = Query(None),
    status_filter: list[JobApplicationStatus] | None = Query(None, alias="status"),
    sort_order: str = Query("asc", pattern="^(asc|desc)$"),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    caller: Caller = Depends(require_company),
    db: AsyncSession = Depends(get_db),
) -> JobApplicationListResponse:
    try:
        applications, total = await service.list_company_job_applications(
            db,
            caller,
            company_id,
            job_id=job_id,
            statuses=status_filter,
            sort_order=sort_order,
            skip=skip,
            limit=limit,
        )
        return JobApplicationListResponse(
            applications=[JobApplicationResponse.model_validate(a) for a in applications],
            total=total,
            skip=skip,
            limit=limit,
        )
    except ApplicationServiceError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error listing job applications for {company_id}: {e}")
        raise internal_error() from e


@company_router.post(
    "/{company_id}/job-applications/{application_id}/transition",
    response_model=JobApplicationResponse,
    summary="Transition Job Application Status",
    description="""
Allowed edges:
- pending -> interview, accepted, rejected, withdrawn
- interview -> accepted, rejected, withdrawn
- accepted, rejected, withdrawn are terminal
""",
)
async def transition_job_application(
    company_id: UUID,
    application_id: UUID,
    data: JobTransitionRequest,
    caller: Caller = Depends(require_company),
    db: AsyncSession = Depends(get_db),
    gateway: NotificationGateway = Depends(get_notification_gateway),
) -> JobApplicationResponse:
    if caller.id != company_id:
        logger.warning(f"{caller} attempted to act for company {company_id}")
        raise to_http_exception(UnauthorizedError())

    await enforce_caller_rate_limit(
        caller, "transition_job_application", *settings.rate_limit_transition
    )

    try:
        application = await service.transition_job_application(
            db,
            application_id,
            data.status,
            caller,
            notes=data.notes,
            interview_at=data.interview_at,
            gateway=gateway,
        )
        return JobApplicationResponse.model_validate(application)
    except ApplicationServiceError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error transitioning job application {application_id}: {e}")
        raise internal_error() from e

"""
Course Applications Router (students)

Endpoints:
- POST /applications/eligibility - Check whether the student may apply
- POST /applications - Submit a new application
- GET /applications/mine - List the student's applications
- GET /applications/{id} - Get one application (owning student or institution)
- POST /applications/{id}/withdraw - Withdraw an application
- POST /applications/{id}/documents - Attach document metadata
- POST /applications/{id}/accept-offer - Accept a published admission offer

Security:
- Bearer token required; the caller is passed explicitly to the service
- Submission is rate limited per student
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import Caller, UserRole, get_current_caller, require_role
from app.core.config import settings
from app.core.database import get_db
from app.core.rate_limit import enforce_caller_rate_limit
from app.modules.applications import service
from app.modules.applications.errors import (
    ApplicationServiceError,
    internal_error,
    to_http_exception,
)
from app.modules.applications.models import ApplicationStatus
from app.modules.applications.notifications import (
    NotificationGateway,
    get_notification_gateway,
)
from app.modules.applications.schemas import (
    ApplicationResponse,
    DocumentIn,
    EligibilityRequest,
    EligibilityResponse,
    SubmitApplicationRequest,
    SubmitApplicationResponse,
    WithdrawRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()

require_student = require_role(UserRole.STUDENT)


@router.post(
    "/eligibility",
    response_model=EligibilityResponse,
    summary="Check Application Eligibility",
    description="""
Check whether the calling student may apply to a course.

Rules, first failing rule wins:
1. At most 2 live (pending, accepted, waitlisted) applications per institution
2. No live application to the same course
3. The course is active
4. The application deadline has not passed

The check is advisory; submission re-validates.
""",
)
async def check_eligibility(
    data: EligibilityRequest,
    caller: Caller = Depends(require_student),
    db: AsyncSession = Depends(get_db),
) -> EligibilityResponse:
    try:
        result = await service.check_eligibility(
            db, caller.id, data.course_id, data.institution_id
        )
        return EligibilityResponse(
            eligible=result.eligible,
            reason=result.reason.value if result.reason else None,
            message=result.message,
        )
    except ApplicationServiceError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error checking eligibility: {e}")
        raise internal_error() from e


@router.post(
    "",
    response_model=SubmitApplicationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit Course Application",
    responses={
        409: {
            "description": "Application limit reached or duplicate application",
            "content": {
                "application/json": {
                    "example": {
                        "detail": {
                            "error": "DUPLICATE_APPLICATION",
                            "message": "You have already applied to this course.",
                        }
                    }
                }
            },
        },
        422: {"description": "Course not active, deadline passed, or invalid input"},
        429: {"description": "Too many submissions"},
    },
)
async def submit_application(
    data: SubmitApplicationRequest,
    caller: Caller = Depends(require_student),
    db: AsyncSession = Depends(get_db),
    gateway: NotificationGateway = Depends(get_notification_gateway),
) -> SubmitApplicationResponse:
    """
    Submit a new course application.

    Returns the new application id with status ``pending``.
    """
    await enforce_caller_rate_limit(caller, "submit_application", *settings.rate_limit_submit)

    try:
        application = await service.submit_application(db, caller, data, gateway=gateway)
        return SubmitApplicationResponse.model_validate(application)
    except ApplicationServiceError as e:
        if e.status_code >= 500:
            logger.error(f"Application service error: {e.message}")
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error submitting application: {e}")
        raise internal_error() from e


@router.get(
    "/mine",
    response_model=list[ApplicationResponse],
    summary="List My Applications",
)
async def list_my_applications(
    status_filter: list[ApplicationStatus] | None = Query(None, alias="status"),
    caller: Caller = Depends(require_student),
    db: AsyncSession = Depends(get_db),
) -> list[ApplicationResponse]:
    try:
        applications = await service.list_student_applications(db, caller, status_filter)
        return [ApplicationResponse.model_validate(a) for a in applications]
    except ApplicationServiceError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error listing applications: {e}")
        raise internal_error() from e


@router.get(
    "/{application_id}",
    response_model=ApplicationResponse,
    summary="Get Application",
)
async def get_application(
    application_id: UUID,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
) -> ApplicationResponse:
    try:
        application = await service.get_application(db, application_id, caller)
        return ApplicationResponse.model_validate(application)
    except ApplicationServiceError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error getting application {application_id}: {e}")
        raise internal_error() from e


@router.post(
    "/{application_id}/withdraw",
    response_model=ApplicationResponse,
    summary="Withdraw Application",
)
async def withdraw_application(
    application_id: UUID,
    data: WithdrawRequest | None = Body(None),
    caller: Caller = Depends(require_student),
    db: AsyncSession = Depends(get_db),
    gateway: NotificationGateway = Depends(get_notification_gateway),
) -> ApplicationResponse:
    try:
        application = await service.withdraw_application(
            db,
            application_id,
            caller,
            notes=data.notes if data else None,
            gateway=gateway,
        )
        return ApplicationResponse.model_validate(application)
    except ApplicationServiceError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error withdrawing application {application_id}: {e}")
        raise internal_error() from e


@router.post(
    "/{application_id}/documents",
    response_model=ApplicationResponse,
    summary="Attach Document",
    description="Record metadata for a document already uploaded to file storage.",
)
async def attach_document(
    application_id: UUID,
    document: DocumentIn,
    caller: Caller = Depends(require_student),
    db: AsyncSession = Depends(get_db),
) -> ApplicationResponse:
    try:
        application = await service.attach_document(db, application_id, caller, document)
        return ApplicationResponse.model_validate(application)
    except ApplicationServiceError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error attaching document to {application_id}: {e}")
        raise internal_error() from e


@router.post(
    "/{application_id}/accept-offer",
    response_model=ApplicationResponse,
    summary="Accept Admission Offer",
    description="Take up a published admission. Only one offer can be accepted and it cannot be undone.",
)
async def accept_offer(
    application_id: UUID,
    caller: Caller = Depends(require_student),
    db: AsyncSession = Depends(get_db),
) -> ApplicationResponse:
    try:
        application = await service.accept_offer(db, application_id, caller)
        return ApplicationResponse.model_validate(application)
    except ApplicationServiceError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error accepting offer on {application_id}: {e}")
        raise internal_error() from e

"""
Course Applications Router (institutions)

Endpoints:
- GET /institutions/{institution_id}/applications - List received applications
- POST /institutions/{institution_id}/applications/{id}/transition - Change status
- POST /institutions/{institution_id}/courses/{course_id}/publish - Publish admissions

Only the institution itself (caller id == institution_id) may use these.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import Caller, UserRole, require_role
from app.core.config import settings
from app.core.database import get_db
from app.core.rate_limit import enforce_caller_rate_limit
from app.modules.applications import admissions, service
from app.modules.applications.errors import (
    ApplicationServiceError,
    UnauthorizedError,
    internal_error,
    to_http_exception,
)
from app.modules.applications.models import ApplicationStatus
from app.modules.applications.notifications import (
    NotificationGateway,
    get_notification_gateway,
)
from app.modules.applications.schemas import (
    ApplicationListResponse,
    ApplicationResponse,
    PublishResponse,
    TransitionRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()

require_institution = require_role(UserRole.INSTITUTION)


def _ensure_acting_for(caller: Caller, institution_id: UUID) -> None:
    if caller.id != institution_id:
        logger.warning(f"{caller} attempted to act for institution {institution_id}")
        raise to_http_exception(UnauthorizedError())


@router.get(
    "/{institution_id}/applications",
    response_model=ApplicationListResponse,
    summary="List Institution Applications",
    description="""
List applications received by the institution.

**Filters:** `course_id`, `status` (repeatable)

**Sorting:** `sort_by` = applied_at | updated_at, `sort_order` = asc | desc.
Default is oldest first.
""",
)
async def list_applications(
    institution_id: UUID,
    course_id: UUID | None = Query(None),
    status_filter: list[ApplicationStatus] | None = Query(None, alias="status"),
    sort_by: str = Query("applied_at", pattern="^(applied_at|updated_at)$"),
    sort_order: str = Query("asc", pattern="^(asc|desc)$"),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    caller: Caller = Depends(require_institution),
    db: AsyncSession = Depends(get_db),
) -> ApplicationListResponse:
    _ensure_acting_for(caller, institution_id)

    try:
        applications, total = await service.list_institution_applications(
            db,
            caller,
            institution_id,
            course_id=course_id,
            statuses=status_filter,
            sort_by=sort_by,
            sort_order=sort_order,
            skip=skip,
            limit=limit,
        )
        return ApplicationListResponse(
            applications=[ApplicationResponse.model_validate(a) for a in applications],
            total=total,
            skip=skip,
            limit=limit,
        )
    except ApplicationServiceError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error listing applications for {institution_id}: {e}")
        raise internal_error() from e


@router.post(
    "/{institution_id}/applications/{application_id}/transition",
    response_model=ApplicationResponse,
    summary="Transition Application Status",
    description="""
Move an application to a new status.

Allowed edges:
- pending -> under_review, interviewed, accepted, waitlisted, rejected, hired, withdrawn
- under_review -> interviewed, accepted, waitlisted, rejected, withdrawn
- interviewed -> accepted, waitlisted, rejected, withdrawn
- waitlisted -> accepted, rejected, withdrawn
- accepted -> hired, withdrawn
- rejected, hired, withdrawn are terminal

Returns 409 CONFLICT if another reviewer changed the status concurrently.
""",
)
async def transition_application(
    institution_id: UUID,
    application_id: UUID,
    data: TransitionRequest,
    caller: Caller = Depends(require_institution),
    db: AsyncSession = Depends(get_db),
    gateway: NotificationGateway = Depends(get_notification_gateway),
) -> ApplicationResponse:
    _ensure_acting_for(caller, institution_id)
    await enforce_caller_rate_limit(
        caller, "transition_application", *settings.rate_limit_transition
    )

    try:
        application = await service.transition_application(
            db,
            application_id,
            data.status,
            caller,
            notes=data.notes,
            gateway=gateway,
        )
        return ApplicationResponse.model_validate(application)
    except ApplicationServiceError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error transitioning application {application_id}: {e}")
        raise internal_error() from e


@router.post(
    "/{institution_id}/courses/{course_id}/publish",
    response_model=PublishResponse,
    summary="Publish Admissions",
    description="""
Publish all accepted, unpublished applications for a course in one atomic batch.

Calling again publishes nothing new and returns `published_count = 0`.
Exceeding the course's seats is reported in `warnings` but never blocks.
""",
)
async def publish_admissions(
    institution_id: UUID,
    course_id: UUID,
    caller: Caller = Depends(require_institution),
    db: AsyncSession = Depends(get_db),
    gateway: NotificationGateway = Depends(get_notification_gateway),
) -> PublishResponse:
    _ensure_acting_for(caller, institution_id)
    await enforce_caller_rate_limit(caller, "publish_admissions", *settings.rate_limit_publish)

    try:
        result = await admissions.publish_admissions(
            db, institution_id, course_id, caller, gateway=gateway
        )
        return PublishResponse(
            published_count=result.published_count,
            total_published=result.total_published,
            seats=result.seats,
            over_capacity=result.over_capacity,
            warnings=result.warnings,
        )
    except ApplicationServiceError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error publishing course {course_id}: {e}")
        raise internal_error() from e

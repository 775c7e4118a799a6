"""
Course Applications Schemas

Pydantic schemas for request validation and response serialization.
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.modules.applications.models import ApplicationStatus

# ============================================
# Shared
# ============================================


class DocumentIn(BaseModel):
    """Metadata for a document already uploaded to file storage."""

    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1, max_length=1000)
    size: int = Field(..., ge=0, description="Size in bytes")
    type: str = Field(..., min_length=1, max_length=100, description="MIME type")


class DocumentResponse(DocumentIn):
    uploaded_at: datetime


class ApplicationPreferences(BaseModel):
    intake_period: Literal["January", "May", "September"] | None = None
    study_mode: Literal["full-time", "part-time", "online"] | None = None


# ============================================
# Student requests
# ============================================


class EligibilityRequest(BaseModel):
    """Request body for POST /applications/eligibility."""

    course_id: UUID
    institution_id: UUID


class EligibilityResponse(BaseModel):
    eligible: bool
    reason: str | None = Field(None, description="Error code when not eligible")
    message: str | None = None


class SubmitApplicationRequest(BaseModel):
    """Request body for POST /applications."""

    course_id: UUID
    institution_id: UUID
    personal_statement: str | None = Field(None, max_length=2000)
    preferences: ApplicationPreferences | None = None
    documents: list[DocumentIn] = Field(default_factory=list, max_length=10)


class SubmitApplicationResponse(BaseModel):
    """Response for POST /applications."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: ApplicationStatus
    applied_at: datetime
    message: str = "Application submitted successfully."


# ============================================
# Reviewer requests
# ============================================


class TransitionRequest(BaseModel):
    """Request body for POST /institutions/{institution_id}/applications/{id}/transition."""

    status: ApplicationStatus
    notes: str | None = Field(None, max_length=2000)


class WithdrawRequest(BaseModel):
    notes: str | None = Field(None, max_length=2000)


# ============================================
# Responses
# ============================================


class ApplicationResponse(BaseModel):
    """Full read projection of an application."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    student_id: UUID
    course_id: UUID
    institution_id: UUID
    student_name: str | None = None
    personal_statement: str | None = None
    preferences: dict | None = None
    documents: list[DocumentResponse] = Field(default_factory=list)
    status: ApplicationStatus
    reviewed_by: UUID | None = None
    reviewed_at: datetime | None = None
    notes: str | None = None
    admitted_at: datetime | None = None
    published: bool = False
    offer_accepted: bool = False
    offer_accepted_at: datetime | None = None
    withdrawn_at: datetime | None = None
    applied_at: datetime
    updated_at: datetime


class ApplicationListResponse(BaseModel):
    """Paginated list of applications."""

    applications: list[ApplicationResponse]
    total: int = Field(..., ge=0, description="Total number of applications matching filters")
    skip: int = Field(..., ge=0, description="Number of records skipped")
    limit: int = Field(..., ge=1, le=100, description="Maximum records per page")


class PublishResponse(BaseModel):
    """Response for POST /institutions/{institution_id}/courses/{course_id}/publish."""

    published_count: int = Field(..., ge=0, description="Rows flipped to published by this call")
    total_published: int = Field(..., ge=0, description="Published admissions for the course")
    seats: int | None = None
    over_capacity: bool = False
    warnings: list[str] = Field(default_factory=list)

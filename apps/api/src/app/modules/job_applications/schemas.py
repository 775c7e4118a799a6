"""
Job Applications Schemas

Pydantic schemas for request validation and response serialization.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.modules.job_applications.models import JobApplicationStatus


class SubmitJobApplicationRequest(BaseModel):
    """Request body for POST /job-applications."""

    job_id: UUID
    company_id: UUID
    cover_letter: str | None = Field(None, max_length=5000)
    resume_url: str | None = Field(None, max_length=500)


class SubmitJobApplicationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: JobApplicationStatus
    applied_at: datetime
    message: str = "Application sent to the employer."


class JobTransitionRequest(BaseModel):
    """Request body for POST /companies/{company_id}/job-applications/{id}/transition."""

    status: JobApplicationStatus
    notes: str | None = Field(None, max_length=2000)
    interview_at: datetime | None = Field(
        None, description="Scheduled interview time (only used for 'interview')"
    )


class JobApplicationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    student_id: UUID
    job_id: UUID
    company_id: UUID
    student_name: str | None = None
    cover_letter: str | None = None
    resume_url: str | None = None
    status: JobApplicationStatus
    reviewed_by: UUID | None = None
    reviewed_at: datetime | None = None
    notes: str | None = None
    interview_at: datetime | None = None
    offered_at: datetime | None = None
    withdrawn_at: datetime | None = None
    applied_at: datetime
    updated_at: datetime


class JobApplicationListResponse(BaseModel):
    applications: list[JobApplicationResponse]
    total: int = Field(..., ge=0)
    skip: int = Field(..., ge=0)
    limit: int = Field(..., ge=1, le=100)

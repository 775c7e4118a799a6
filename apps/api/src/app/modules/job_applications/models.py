"""
Job Application Models

Jobs are posted by companies and read-only for the applications core.
A JobApplication follows its own status track, parallel to but distinct
from the course track.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, UTCDateTime


class JobStatus(str, enum.Enum):
    """Whether a job posting is open for applications."""

    ACTIVE = "active"
    CLOSED = "closed"
    DRAFT = "draft"
    FILLED = "filled"


class JobApplicationStatus(str, enum.Enum):
    """Status of a job application."""

    PENDING = "pending"
    INTERVIEW = "interview"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class Job(Base):
    """A job posted by a company (reference data)."""

    __tablename__ = "jobs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    vacancies: Mapped[int | None] = mapped_column(Integer, nullable=True)
    application_deadline: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus, name="job_status"),
        nullable=False,
        default=JobStatus.DRAFT,
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Job(id={self.id}, title={self.title}, status={self.status.value})>"


class JobApplication(Base):
    """A student's application to a job. Never hard-deleted."""

    __tablename__ = "job_applications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    job_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("jobs.id", ondelete="RESTRICT"), nullable=False
    )
    company_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    student_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    student_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    cover_letter: Mapped[str | None] = mapped_column(Text, nullable=True)
    resume_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    status: Mapped[JobApplicationStatus] = mapped_column(
        Enum(JobApplicationStatus, name="job_application_status"),
        nullable=False,
        default=JobApplicationStatus.PENDING,
    )
    reviewed_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Interview / offer metadata
    interview_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    offered_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    withdrawn_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    applied_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        Index(
            "uq_job_applications_student_job_live",
            "student_id",
            "job_id",
            unique=True,
            postgresql_where=text("status != 'WITHDRAWN'"),
            sqlite_where=text("status != 'WITHDRAWN'"),
        ),
        Index("ix_job_applications_company_job_status", "company_id", "job_id", "status"),
        Index("ix_job_applications_student_id", "student_id"),
    )

    def __repr__(self) -> str:
        return f"<JobApplication(id={self.id}, status={self.status.value})>"

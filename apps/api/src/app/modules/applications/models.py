"""
Course Application Models

Database model for a student's application to a course. Students and
institutions are referenced by id only; course rows are reference data.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, UTCDateTime


class ApplicationStatus(str, enum.Enum):
    """Status of a course application."""

    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    INTERVIEWED = "interviewed"
    ACCEPTED = "accepted"
    WAITLISTED = "waitlisted"
    REJECTED = "rejected"
    HIRED = "hired"
    WITHDRAWN = "withdrawn"


class Application(Base):
    """
    A student's application to a course.

    Never hard-deleted: a student leaves the process by moving the
    application to WITHDRAWN. Only one non-withdrawn application may exist
    per (student_id, course_id); the partial unique index below is the
    authoritative guard against concurrent duplicate submissions.
    """

    __tablename__ = "applications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # References
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    course_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("courses.id", ondelete="RESTRICT"), nullable=False
    )
    institution_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    # Contact snapshot given at submission (used for notifications only)
    student_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    student_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Submission content
    personal_statement: Mapped[str | None] = mapped_column(Text, nullable=True)
    preferences: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    # [{name, url, size, type, uploaded_at}, ...] - append-only
    documents: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # Status tracking
    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="application_status"),
        nullable=False,
        default=ApplicationStatus.PENDING,
    )
    reviewed_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Admission
    admitted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Set once by the student; one held offer (accepted or hired) per student
    offer_accepted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    offer_accepted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    withdrawn_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Audit timestamps (stamped explicitly by the repository)
    applied_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        Index(
            "uq_applications_student_course_live",
            "student_id",
            "course_id",
            unique=True,
            postgresql_where=text("status != 'WITHDRAWN'"),
            sqlite_where=text("status != 'WITHDRAWN'"),
        ),
        Index(
            "uq_applications_student_offer_accepted",
            "student_id",
            unique=True,
            postgresql_where=text("offer_accepted AND status IN ('ACCEPTED', 'HIRED')"),
            sqlite_where=text("offer_accepted = 1 AND status IN ('ACCEPTED', 'HIRED')"),
        ),
        Index("ix_applications_student_institution", "student_id", "institution_id"),
        Index("ix_applications_institution_course_status", "institution_id", "course_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Application(id={self.id}, status={self.status.value})>"

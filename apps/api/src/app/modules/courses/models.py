"""
Course Models

Courses are owned by institutions and maintained outside the applications
core. The core reads ``status``, ``application_deadline``, ``seats`` and
``institution_id`` and never writes to this table.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, Enum, Index, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, UTCDateTime


class CourseStatus(str, enum.Enum):
    """Whether a course is open for applications."""

    ACTIVE = "active"
    CLOSED = "closed"
    DRAFT = "draft"


class Course(Base):
    """A course offered by an institution."""

    __tablename__ = "courses"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # Institution is referenced by id only
    institution_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    seats: Mapped[int | None] = mapped_column(Integer, nullable=True)
    application_deadline: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    status: Mapped[CourseStatus] = mapped_column(
        Enum(CourseStatus, name="course_status"),
        nullable=False,
        default=CourseStatus.DRAFT,
    )
    requirements: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), nullable=False
    )

    __table_args__ = (Index("ix_courses_institution_id", "institution_id"),)

    def __repr__(self) -> str:
        return f"<Course(id={self.id}, name={self.name}, status={self.status.value})>"

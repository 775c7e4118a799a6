"""
Course Repository

Read-only access to course reference data. Lookups run inside a caller's
unit of work, which owns the retry.
"""

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.courses.models import Course


async def get_by_id(db: AsyncSession, id: UUID) -> Course | None:
    """Get course by ID."""
    return await db.get(Course, id)

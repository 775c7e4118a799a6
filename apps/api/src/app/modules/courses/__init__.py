"""
Courses module - Course reference data read by the applications core.
"""

from app.modules.courses.models import Course, CourseStatus

__all__ = ["Course", "CourseStatus"]

"""
Applications module - Course application lifecycle.

Eligibility, submission, status transitions and admissions publishing for
students applying to institution courses.
"""

from app.modules.applications.institution_router import router as institution_router
from app.modules.applications.router import router

__all__ = ["router", "institution_router"]

"""
Job Applications Module

The job track of the application lifecycle: students apply to jobs posted
by companies, companies move applications through
pending -> interview -> accepted / rejected, students may withdraw.

API Endpoints:
- POST /job-applications - Submit a job application
- GET /job-applications/mine - List the student's job applications
- POST /job-applications/{id}/withdraw - Withdraw a job application
- GET /companies/{company_id}/job-applications - List received applications
- POST /companies/{company_id}/job-applications/{id}/transition - Change status

The router lives in ``app.modules.job_applications.router``; this package
only re-exports the models, which the course track's state machine shares.
"""

from app.modules.job_applications.models import (
    Job,
    JobApplication,
    JobApplicationStatus,
    JobStatus,
)

__all__ = ["Job", "JobApplication", "JobApplicationStatus", "JobStatus"]

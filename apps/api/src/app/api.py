from fastapi import APIRouter

from app.modules.applications import institution_router
from app.modules.applications import router as applications_router
from app.modules.job_applications.router import company_router
from app.modules.job_applications.router import router as job_applications_router

api_router = APIRouter()

api_router.include_router(applications_router, prefix="/applications", tags=["Applications"])

api_router.include_router(
    institution_router,
    prefix="/institutions",
    tags=["Institution - Applications"],
)

api_router.include_router(
    job_applications_router, prefix="/job-applications", tags=["Job Applications"]
)

api_router.include_router(
    company_router,
    prefix="/companies",
    tags=["Company - Job Applications"],
)

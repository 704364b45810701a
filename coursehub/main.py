"""
Course Hub - Main Application
Courses, enrollments, certificates and points-based rewards
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from coursehub.core.config import LOG_LEVEL
from coursehub.core.database import create_indexes, db
from coursehub.core.errors import CourseHubError, coursehub_error_handler
from coursehub.courses.course_router import admin_router as course_admin_router
from coursehub.courses.course_router import router as course_router
from coursehub.enrollments.enrollment_router import router as enrollment_router
from coursehub.rewards.certificate_router import router as certificate_router
from coursehub.rewards.program_router import router as program_router
from coursehub.unlock.unlock_router import router as unlock_router
from coursehub.users.user_router import admin_router as user_admin_router
from coursehub.users.user_router import router as user_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def setup_routes(app: FastAPI):
    """
    Include all routers in main app

    Usage:
        app = FastAPI()
        setup_routes(app)
    """
    app.include_router(user_router, prefix="/api")
    app.include_router(user_admin_router, prefix="/api")
    app.include_router(course_router, prefix="/api")
    app.include_router(course_admin_router, prefix="/api")
    app.include_router(enrollment_router, prefix="/api")
    app.include_router(certificate_router, prefix="/api")
    app.include_router(program_router, prefix="/api")
    app.include_router(unlock_router, prefix="/api")


def create_app() -> FastAPI:
    app = FastAPI(title="Course Hub API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(CourseHubError, coursehub_error_handler)
    setup_routes(app)

    @app.on_event("startup")
    async def startup_event():
        await create_indexes(db)
        logger.info("Course Hub started")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()

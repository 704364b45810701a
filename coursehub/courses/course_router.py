"""
COURSE ROUTER
File: coursehub/courses/course_router.py

Public catalogue, instructor authoring, admin approval queue.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from coursehub.core.auth import (
    AccessPolicy, can_manage, get_access_policy, get_optional_user, require_admin, require_instructor
)
from coursehub.core.database import get_db
from coursehub.core.errors import NotFoundError
from coursehub.courses import database as courses_db
from coursehub.courses.models import (
    CourseCategory, CourseCreate, CourseLevel, CourseRejection, CourseStatus, CourseUpdate, Section
)

router = APIRouter(prefix="/courses", tags=["Courses"])
admin_router = APIRouter(prefix="/admin/courses", tags=["Admin"])

# ==================== PUBLIC ====================

@router.get("")
async def list_courses(
    category: Optional[CourseCategory] = None,
    level: Optional[CourseLevel] = None,
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """Active, approved courses only"""
    return await courses_db.list_public_courses(
        db,
        category=category.value if category else None,
        level=level.value if level else None,
    )


@router.get("/mine")
async def my_courses(
    status: Optional[CourseStatus] = None,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: dict = Depends(require_instructor),
):
    return await courses_db.list_instructor_courses(db, user["user_id"], status)


@router.get("/slug/{slug}")
async def get_course_by_slug(slug: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    course = await courses_db.get_course_by_slug(db, slug)
    if not courses_db.is_publicly_visible(course):
        raise NotFoundError("Course not found")
    return course


@router.get("/{course_id}")
async def get_course(
    course_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: Optional[dict] = Depends(get_optional_user),
    policy: AccessPolicy = Depends(get_access_policy),
):
    """Public once published; before that, only the instructor and admins see it"""
    course = await courses_db.get_public_course(db, course_id)
    if not courses_db.is_publicly_visible(course) and not (
        user and can_manage(user, course["instructor_id"], policy)
    ):
        raise NotFoundError("Course not found")
    return course

# ==================== INSTRUCTOR ====================

@router.post("", status_code=201)
async def create_course(
    data: CourseCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: dict = Depends(require_instructor),
):
    return await courses_db.create_course(db, data, user["user_id"])


@router.put("/{course_id}")
async def update_course(
    course_id: str,
    data: CourseUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: dict = Depends(require_instructor),
    policy: AccessPolicy = Depends(get_access_policy),
):
    await courses_db.require_course_manager(db, course_id, user, policy)
    return await courses_db.update_course(db, course_id, data)


@router.put("/{course_id}/sections")
async def replace_sections(
    course_id: str,
    sections: List[Section],
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: dict = Depends(require_instructor),
    policy: AccessPolicy = Depends(get_access_policy),
):
    await courses_db.require_course_manager(db, course_id, user, policy)
    return await courses_db.replace_course_sections(db, course_id, sections)


@router.delete("/{course_id}")
async def delete_course(
    course_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: dict = Depends(require_instructor),
    policy: AccessPolicy = Depends(get_access_policy),
):
    await courses_db.require_course_manager(db, course_id, user, policy)
    await courses_db.delete_course(db, course_id)
    return {"deleted": True, "course_id": course_id}

# ==================== ADMIN ====================

@admin_router.get("/pending")
async def pending_courses(
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    return await courses_db.list_pending_courses(db)


@admin_router.put("/{course_id}/approve")
async def approve_course(
    course_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    return await courses_db.approve_course(db, course_id, admin["user_id"])


@admin_router.put("/{course_id}/reject")
async def reject_course(
    course_id: str,
    data: CourseRejection,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    return await courses_db.reject_course(db, course_id, admin["user_id"], data.reason)

import logging
from datetime import datetime
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from coursehub.core.auth import AccessPolicy, can_manage
from coursehub.core.database import generate_id, storage_operation
from coursehub.core.errors import NotFoundError, PermissionDeniedError, StorageError, ValidationError
from coursehub.courses.curriculum import (
    replace_sections, replace_syllabus, slug_candidates, with_totals
)
from coursehub.courses.models import (
    ApprovalStatus, CourseCreate, CourseStatus, CourseUpdate
)

logger = logging.getLogger(__name__)

# Enrollment lists stay out of catalogue reads
PUBLIC_PROJECTION = {"_id": 0, "enrollments": 0}

MAX_SLUG_ATTEMPTS = 50

# ==================== SLUGS ====================

async def unique_slug(db: AsyncIOMotorDatabase, title: str, exclude_course_id: Optional[str] = None) -> str:
    """First free slug among base, base-2, base-3, ..."""
    for attempt, candidate in enumerate(slug_candidates(title)):
        if attempt >= MAX_SLUG_ATTEMPTS:
            break
        query = {"slug": candidate}
        if exclude_course_id:
            query["course_id"] = {"$ne": exclude_course_id}
        if not await db.courses.find_one(query, {"_id": 1}):
            return candidate
    raise StorageError(f"Could not find a free slug for '{title}'")


async def _slug_taken(db: AsyncIOMotorDatabase, slug: str, course_id: str) -> bool:
    return await db.courses.find_one(
        {"slug": slug, "course_id": {"$ne": course_id}}, {"_id": 1}
    ) is not None


async def _write_with_unique_slug(db: AsyncIOMotorDatabase, title: str, course_id: str, write):
    """
    Call write(slug) with the first free slug. Two writers can race for the
    same slug; the unique index decides and the loser retries.
    """
    for _ in range(MAX_SLUG_ATTEMPTS):
        slug = await unique_slug(db, title, exclude_course_id=course_id)
        try:
            return await write(slug)
        except DuplicateKeyError:
            if not await _slug_taken(db, slug, course_id):
                raise
            logger.debug("Slug %s taken concurrently, retrying", slug)
    raise StorageError("Could not claim a unique slug")


def _check_discount(price: float, discount_price: Optional[float]):
    if discount_price and discount_price > (price or 0):
        raise ValidationError(
            "Discount price should be less than regular price",
            errors=[{"loc": ["discount_price"], "msg": "exceeds price", "type": "value_error"}],
        )

# ==================== COURSE CRUD ====================

@storage_operation
async def create_course(db: AsyncIOMotorDatabase, data: CourseCreate, instructor_id: str) -> dict:
    """
    Create new course
    Starts as Draft and pending admin approval
    """
    now = datetime.utcnow()
    course = data.model_dump(mode="json", exclude={"sections", "syllabus"})
    course.update({
        "course_id": generate_id("COURSE"),
        "instructor_id": instructor_id,
        "title": data.title.strip(),
        "sections": replace_sections(data.sections),
        "syllabus": replace_syllabus(data.syllabus),
        "enrollments": [],
        "students_enrolled": 0,
        "rating": 0.0,
        "num_reviews": 0,
        "status": CourseStatus.DRAFT.value,
        "approval_status": ApprovalStatus.PENDING.value,
        "approved_at": None,
        "approved_by": None,
        "rejection_reason": None,
        "created_at": now,
        "updated_at": now,
    })

    async def insert(slug):
        course.pop("_id", None)
        course["slug"] = slug
        await db.courses.insert_one(course)

    await _write_with_unique_slug(db, course["title"], course["course_id"], insert)

    course.pop("_id", None)
    logger.info("Course %s created by %s (slug=%s)", course["course_id"], instructor_id, course["slug"])
    return with_totals(course)


async def get_course(db: AsyncIOMotorDatabase, course_id: str) -> Optional[dict]:
    """Get course by ID (full document, enrollments included)"""
    return await db.courses.find_one({"course_id": course_id}, {"_id": 0})


async def require_course(db: AsyncIOMotorDatabase, course_id: str) -> dict:
    course = await get_course(db, course_id)
    if not course:
        raise NotFoundError("Course not found")
    return course


async def get_public_course(db: AsyncIOMotorDatabase, course_id: str) -> dict:
    course = await db.courses.find_one({"course_id": course_id}, PUBLIC_PROJECTION)
    if not course:
        raise NotFoundError("Course not found")
    return with_totals(course)


async def get_course_by_slug(db: AsyncIOMotorDatabase, slug: str) -> dict:
    course = await db.courses.find_one({"slug": slug}, PUBLIC_PROJECTION)
    if not course:
        raise NotFoundError("Course not found")
    return with_totals(course)


def is_publicly_visible(course: dict) -> bool:
    return (
        course.get("status") == CourseStatus.ACTIVE.value
        and course.get("approval_status") == ApprovalStatus.APPROVED.value
    )


async def list_public_courses(
    db: AsyncIOMotorDatabase,
    category: Optional[str] = None,
    level: Optional[str] = None,
) -> List[dict]:
    """Catalogue: only Active AND approved courses"""
    query = {
        "status": CourseStatus.ACTIVE.value,
        "approval_status": ApprovalStatus.APPROVED.value,
    }
    if category:
        query["category"] = category
    if level:
        query["level"] = level

    cursor = db.courses.find(query, PUBLIC_PROJECTION).sort("created_at", -1)
    return [with_totals(c) for c in await cursor.to_list(length=None)]


async def list_instructor_courses(
    db: AsyncIOMotorDatabase,
    instructor_id: str,
    status: Optional[CourseStatus] = None,
) -> List[dict]:
    query = {"instructor_id": instructor_id}
    if status:
        query["status"] = status.value
    cursor = db.courses.find(query, {"_id": 0}).sort("updated_at", -1)
    return [with_totals(c) for c in await cursor.to_list(length=None)]


async def require_course_manager(
    db: AsyncIOMotorDatabase, course_id: str, user: dict, policy: AccessPolicy
) -> dict:
    """Owner or admin, otherwise 403"""
    course = await require_course(db, course_id)
    if not can_manage(user, course["instructor_id"], policy):
        raise PermissionDeniedError("Not authorized to modify this course")
    return course


@storage_operation
async def update_course(db: AsyncIOMotorDatabase, course_id: str, data: CourseUpdate) -> dict:
    """
    Instructor edit. Scalar fields are patched; sections and syllabus are
    replaced wholesale. Approval fields are never touched here.
    Enrollments are not part of the $set, so concurrent enrollments survive.
    """
    course = await require_course(db, course_id)
    updates = data.model_dump(mode="json", exclude_unset=True, exclude={"sections", "syllabus"})
    updates = {k: v for k, v in updates.items() if v is not None}

    if data.sections is not None:
        updates["sections"] = replace_sections(data.sections)
    if data.syllabus is not None:
        updates["syllabus"] = replace_syllabus(data.syllabus)

    if "price" in updates or "discount_price" in updates:
        _check_discount(
            updates.get("price", course.get("price")),
            updates.get("discount_price", course.get("discount_price")),
        )

    updates["updated_at"] = datetime.utcnow()

    async def save(slug=None):
        if slug is not None:
            updates["slug"] = slug
        return await db.courses.find_one_and_update(
            {"course_id": course_id},
            {"$set": updates},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )

    new_title = updates.get("title")
    if new_title is not None:
        updates["title"] = new_title.strip()
    if new_title is not None and updates["title"] != course["title"]:
        updated = await _write_with_unique_slug(db, updates["title"], course_id, save)
    else:
        updated = await save()
    if not updated:
        raise NotFoundError("Course not found")
    return with_totals(updated)


@storage_operation
async def replace_course_sections(db: AsyncIOMotorDatabase, course_id: str, sections: list) -> dict:
    """Full curriculum replace, no diffing"""
    validated = replace_sections(sections)
    updated = await db.courses.find_one_and_update(
        {"course_id": course_id},
        {"$set": {"sections": validated, "updated_at": datetime.utcnow()}},
        projection={"_id": 0},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise NotFoundError("Course not found")
    return with_totals(updated)


@storage_operation
async def delete_course(db: AsyncIOMotorDatabase, course_id: str) -> bool:
    result = await db.courses.delete_one({"course_id": course_id})
    if result.deleted_count == 0:
        raise NotFoundError("Course not found")
    logger.info("Course %s deleted", course_id)
    return True

# ==================== ADMIN APPROVAL ====================

async def list_pending_courses(db: AsyncIOMotorDatabase) -> List[dict]:
    cursor = db.courses.find(
        {"approval_status": ApprovalStatus.PENDING.value}, PUBLIC_PROJECTION
    ).sort("created_at", -1)
    return [with_totals(c) for c in await cursor.to_list(length=None)]


@storage_operation
async def approve_course(db: AsyncIOMotorDatabase, course_id: str, admin_id: str) -> dict:
    """Approve and publish: a Draft course becomes Active"""
    course = await require_course(db, course_id)
    updates = {
        "approval_status": ApprovalStatus.APPROVED.value,
        "approved_at": datetime.utcnow(),
        "approved_by": admin_id,
        "rejection_reason": None,
        "updated_at": datetime.utcnow(),
    }
    if course["status"] == CourseStatus.DRAFT.value:
        updates["status"] = CourseStatus.ACTIVE.value

    updated = await db.courses.find_one_and_update(
        {"course_id": course_id},
        {"$set": updates},
        projection=PUBLIC_PROJECTION,
        return_document=ReturnDocument.AFTER,
    )
    logger.info("Course %s approved by %s", course_id, admin_id)
    return with_totals(updated)


@storage_operation
async def reject_course(db: AsyncIOMotorDatabase, course_id: str, admin_id: str, reason: Optional[str] = None) -> dict:
    await require_course(db, course_id)
    updated = await db.courses.find_one_and_update(
        {"course_id": course_id},
        {"$set": {
            "approval_status": ApprovalStatus.REJECTED.value,
            "rejection_reason": reason or "Does not meet quality standards",
            "status": CourseStatus.INACTIVE.value,
            "updated_at": datetime.utcnow(),
        }},
        projection=PUBLIC_PROJECTION,
        return_document=ReturnDocument.AFTER,
    )
    logger.info("Course %s rejected by %s", course_id, admin_id)
    return with_totals(updated)

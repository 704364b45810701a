"""
Enrollment ledger
File: coursehub/enrollments/ledger.py

The only module that writes to a course's embedded `enrollments` list.
Every write is a single conditional update on the course document, so
concurrent requests for different students never overwrite each other.

State per (course, student):
    NotEnrolled -> Enrolled(progress=0) -> Completed(progress=100) -> CertificateIssued
"""

import logging
import math
from datetime import datetime
from numbers import Real
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from coursehub.core.database import storage_operation
from coursehub.core.errors import (
    AlreadyEnrolledError, CourseNotApprovedError, NotEnrolledError,
    NotFoundError, ValidationError
)
from coursehub.courses.models import ApprovalStatus

logger = logging.getLogger(__name__)


def new_enrollment(student_id: str) -> dict:
    return {
        "student_id": student_id,
        "enrolled_at": datetime.utcnow(),
        "progress": 0,
        "completed": False,
        "completed_at": None,
        "certificate_issued": False,
        "certificate_id": None,
    }


def find_enrollment(course: dict, student_id: str) -> Optional[dict]:
    for enrollment in course.get("enrollments") or []:
        if enrollment["student_id"] == student_id:
            return enrollment
    return None


def clamp_progress(value) -> int:
    """
    Reject anything that is not a finite number, then clamp to [0, 100].
    Fractions round down so 99.9 never counts as complete.
    """
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ValidationError(
            "Progress must be a number",
            errors=[{"loc": ["progress"], "msg": "must be a number", "type": "type_error"}],
        )
    if math.isnan(value):
        raise ValidationError(
            "Progress must be a number",
            errors=[{"loc": ["progress"], "msg": "NaN is not allowed", "type": "value_error"}],
        )
    if value <= 0:
        return 0
    if value >= 100:
        return 100
    return int(value)

# ==================== ENROLL ====================

@storage_operation
async def add_enrollment(db: AsyncIOMotorDatabase, course_id: str, student_id: str) -> bool:
    """
    Push an enrollment unless one exists. Returns False when the student was
    already enrolled. `students_enrolled` moves in the same write as the push,
    so it always equals len(enrollments). If the user-side write fails, the
    push made here is pulled again before the error propagates.
    """
    result = await db.courses.update_one(
        {"course_id": course_id, "enrollments.student_id": {"$ne": student_id}},
        {
            "$push": {"enrollments": new_enrollment(student_id)},
            "$inc": {"students_enrolled": 1},
        }
    )
    if result.modified_count == 0:
        return False

    try:
        await db.users.update_one(
            {"user_id": student_id},
            {"$addToSet": {"enrolled_courses": course_id}}
        )
    except PyMongoError:
        await db.courses.update_one(
            {"course_id": course_id, "enrollments.student_id": student_id},
            {
                "$pull": {"enrollments": {"student_id": student_id}},
                "$inc": {"students_enrolled": -1},
            }
        )
        logger.warning("Enrollment of %s in %s rolled back", student_id, course_id)
        raise
    return True


async def enroll(db: AsyncIOMotorDatabase, course_id: str, student_id: str) -> dict:
    """
    Enroll student in an approved course

    Raises:
        NotFoundError: unknown course
        CourseNotApprovedError: approval_status != approved
        AlreadyEnrolledError: enrollment for (course, student) exists
    """
    course = await db.courses.find_one(
        {"course_id": course_id}, {"_id": 0, "approval_status": 1, "enrollments": 1}
    )
    if not course:
        raise NotFoundError("Course not found")
    if course.get("approval_status") != ApprovalStatus.APPROVED.value:
        raise CourseNotApprovedError()
    if find_enrollment(course, student_id):
        raise AlreadyEnrolledError()

    if not await add_enrollment(db, course_id, student_id):
        # Lost a race with a parallel enroll for the same student
        raise AlreadyEnrolledError()

    logger.info("Student %s enrolled in %s", student_id, course_id)
    return {"enrolled": True, "course_id": course_id}

# ==================== PROGRESS ====================

@storage_operation
async def update_progress(db: AsyncIOMotorDatabase, course_id: str, student_id: str, value) -> dict:
    """
    Record progress. Stored progress never decreases ($max), and `completed`
    flips to True exactly once, the first time progress reaches 100.

    Raises:
        ValidationError: value is not a finite number
        NotFoundError: unknown course
        NotEnrolledError: no enrollment for this student
    """
    progress = clamp_progress(value)

    course = await db.courses.find_one_and_update(
        {"course_id": course_id, "enrollments.student_id": student_id},
        {"$max": {"enrollments.$.progress": progress}},
        projection={"_id": 0, "enrollments": 1},
        return_document=ReturnDocument.AFTER,
    )
    if not course:
        if not await db.courses.find_one({"course_id": course_id}, {"_id": 1}):
            raise NotFoundError("Course not found")
        raise NotEnrolledError()

    enrollment = find_enrollment(course, student_id)

    if enrollment["progress"] == 100 and not enrollment["completed"]:
        completed_at = datetime.utcnow()
        result = await db.courses.update_one(
            {
                "course_id": course_id,
                "enrollments": {"$elemMatch": {"student_id": student_id, "completed": False}},
            },
            {"$set": {
                "enrollments.$.completed": True,
                "enrollments.$.completed_at": completed_at,
            }}
        )
        if result.modified_count:
            logger.info("Student %s completed %s", student_id, course_id)
        enrollment["completed"] = True

    return {"progress": enrollment["progress"], "completed": enrollment["completed"]}

# ==================== LOOKUP ====================

async def get_enrollment(db: AsyncIOMotorDatabase, course_id: str, student_id: str) -> dict:
    """
    Read-only lookup for UI state.
    Absence is a normal answer ({"enrolled": False}), not an error.
    """
    course = await db.courses.find_one(
        {"course_id": course_id},
        {"_id": 0, "enrollments": 1}
    )
    if not course:
        raise NotFoundError("Course not found")

    enrollment = find_enrollment(course, student_id)
    if not enrollment:
        return {"enrolled": False}
    return {"enrolled": True, **enrollment}


async def get_student_enrollments(db: AsyncIOMotorDatabase, student_id: str) -> list[dict]:
    """All courses a student is enrolled in, each with that student's enrollment only"""
    cursor = db.courses.find(
        {"enrollments.student_id": student_id},
        {
            "_id": 0,
            "course_id": 1, "title": 1, "slug": 1, "thumbnail_url": 1,
            "category": 1, "level": 1, "price": 1, "students_enrolled": 1,
            "enrollments": 1,
        }
    )
    courses = await cursor.to_list(length=None)
    results = []
    for course in courses:
        enrollment = find_enrollment(course, student_id) or {}
        course.pop("enrollments", None)
        results.append({
            **course,
            "progress": enrollment.get("progress", 0),
            "completed": enrollment.get("completed", False),
            "completed_at": enrollment.get("completed_at"),
            "certificate_issued": enrollment.get("certificate_issued", False),
            "enrolled_at": enrollment.get("enrolled_at"),
        })
    return results

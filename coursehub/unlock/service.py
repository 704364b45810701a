"""
Points-gated unlock
File: coursehub/unlock/service.py

Deduct points and grant access as one logical step:
  1. conditional $inc on the user (balance >= cost, not yet unlocked)
  2. enroll if not already enrolled
If step 2 fails, step 1 is reversed before the error propagates.
"""

import logging

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from coursehub.core.database import storage_operation
from coursehub.core.errors import (
    AlreadyUnlockedError, CourseNotApprovedError, InsufficientPointsError, NotGatedError
)
from coursehub.courses.database import require_course
from coursehub.courses.models import ApprovalStatus
from coursehub.enrollments.ledger import add_enrollment, find_enrollment
from coursehub.users.database import require_user

logger = logging.getLogger(__name__)


def _check_unlockable(course: dict, user: dict):
    required = course.get("points_required") or 0
    if required == 0:
        raise NotGatedError()
    if course.get("approval_status") != ApprovalStatus.APPROVED.value:
        raise CourseNotApprovedError()
    if course["course_id"] in (user.get("unlocked_courses") or []):
        raise AlreadyUnlockedError()
    current = user.get("profile_points", 0)
    if current < required:
        raise InsufficientPointsError(required=required, current=current)


async def _refund(db: AsyncIOMotorDatabase, student_id: str, course_id: str, points: int):
    result = await db.users.update_one(
        {"user_id": student_id, "unlocked_courses": course_id},
        {
            "$inc": {"profile_points": points},
            "$pull": {"unlocked_courses": course_id},
        }
    )
    if result.modified_count:
        logger.warning("Unlock of %s for %s rolled back, %d points refunded", course_id, student_id, points)
    else:
        logger.error("Unlock rollback for %s/%s found nothing to refund", student_id, course_id)


@storage_operation
async def unlock_course(db: AsyncIOMotorDatabase, course_id: str, student_id: str) -> dict:
    """
    Spend points to unlock a gated course; enrolls the student if needed.

    Raises:
        NotFoundError: unknown course or user
        NotGatedError: course.points_required == 0
        CourseNotApprovedError: course not approved
        AlreadyUnlockedError: course already in user.unlocked_courses
        InsufficientPointsError: balance < points_required (carries required/current)
    """
    course = await require_course(db, course_id)
    user = await require_user(db, student_id)
    _check_unlockable(course, user)
    required = course["points_required"]

    updated = await db.users.find_one_and_update(
        {
            "user_id": student_id,
            "profile_points": {"$gte": required},
            "unlocked_courses": {"$ne": course_id},
        },
        {
            "$inc": {"profile_points": -required},
            "$addToSet": {"unlocked_courses": course_id},
        },
        projection={"_id": 0, "profile_points": 1},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        # Balance or unlocked set changed since the read; report the current reason
        _check_unlockable(course, await require_user(db, student_id))
        raise AlreadyUnlockedError()

    if not find_enrollment(course, student_id):
        try:
            await add_enrollment(db, course_id, student_id)
        except Exception:
            await _refund(db, student_id, course_id, required)
            raise

    logger.info("Student %s unlocked %s for %d points", student_id, course_id, required)
    return {"points_spent": required, "remaining_points": updated["profile_points"]}

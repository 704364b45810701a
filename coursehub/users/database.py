import logging
from datetime import datetime
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from coursehub.core.database import generate_id, storage_operation
from coursehub.core.errors import DuplicateEmailError, NotFoundError, PreconditionError
from coursehub.users.models import InstructorStatus, Role, UserRegister

logger = logging.getLogger(__name__)

# ==================== USER CRUD ====================

@storage_operation
async def create_user(db: AsyncIOMotorDatabase, data: UserRegister, policy) -> dict:
    """
    Register a user. The role is decided here, once, by the access policy;
    later saves never touch it.
    """
    if await db.users.find_one({"email": data.email}, {"_id": 1}):
        raise DuplicateEmailError()

    role, instructor_status = policy.assign_role(data.email, data.role)
    now = datetime.utcnow()
    user = {
        "user_id": generate_id("USR"),
        "name": data.name,
        "email": data.email,
        "role": role.value,
        "instructor_status": instructor_status.value if instructor_status else None,
        "profile_points": 0,
        "badges": [],
        "enrolled_courses": [],
        "completed_courses": [],
        "unlocked_courses": [],
        "earned_certificates": [],
        "redirected_certificates": [],
        "credited_uploads": [],
        "is_active": True,
        "created_at": now,
        "updated_at": now,
    }

    try:
        await db.users.insert_one(user)
    except DuplicateKeyError:
        raise DuplicateEmailError()

    user.pop("_id", None)
    logger.info("Registered %s as %s", user["user_id"], role.value)
    return user


async def get_user(db: AsyncIOMotorDatabase, user_id: str) -> Optional[dict]:
    """Get user by ID"""
    return await db.users.find_one({"user_id": user_id}, {"_id": 0})


async def require_user(db: AsyncIOMotorDatabase, user_id: str) -> dict:
    user = await get_user(db, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user

# ==================== INSTRUCTOR REVIEW ====================

async def list_instructors(db: AsyncIOMotorDatabase, status: Optional[InstructorStatus] = None) -> List[dict]:
    query = {"role": Role.INSTRUCTOR.value}
    if status:
        query["instructor_status"] = status.value
    cursor = db.users.find(query, {"_id": 0}).sort("created_at", -1)
    return await cursor.to_list(length=None)


@storage_operation
async def set_instructor_status(db: AsyncIOMotorDatabase, user_id: str, status: InstructorStatus) -> dict:
    user = await require_user(db, user_id)
    if user.get("role") != Role.INSTRUCTOR.value:
        raise PreconditionError("User is not an instructor")

    await db.users.update_one(
        {"user_id": user_id, "role": Role.INSTRUCTOR.value},
        {"$set": {"instructor_status": status.value, "updated_at": datetime.utcnow()}}
    )
    logger.info("Instructor %s marked %s", user_id, status.value)
    return await require_user(db, user_id)

# ==================== PLATFORM STATS ====================

async def get_platform_stats(db: AsyncIOMotorDatabase) -> dict:
    users = db.users
    courses = db.courses
    return {
        "users": {
            "total": await users.count_documents({}),
            "students": await users.count_documents({"role": Role.STUDENT.value}),
            "instructors": await users.count_documents({"role": Role.INSTRUCTOR.value}),
            "pending_instructors": await users.count_documents({
                "role": Role.INSTRUCTOR.value,
                "instructor_status": InstructorStatus.PENDING.value
            }),
        },
        "courses": {
            "total": await courses.count_documents({}),
            "pending": await courses.count_documents({"approval_status": "pending"}),
            "approved": await courses.count_documents({"approval_status": "approved"}),
        },
    }

from motor.motor_asyncio import AsyncIOMotorDatabase

from coursehub.enrollments.ledger import get_student_enrollments
from coursehub.rewards.programs import list_student_uploads
from coursehub.users.database import require_user


async def get_student_dashboard(db: AsyncIOMotorDatabase, user_id: str) -> dict:
    """Profile summary plus everything the student has enrolled in, earned or uploaded"""
    user = await require_user(db, user_id)

    unlocked_ids = user.get("unlocked_courses") or []
    unlocked = await db.courses.find(
        {"course_id": {"$in": unlocked_ids}},
        {"_id": 0, "course_id": 1, "title": 1, "thumbnail_url": 1, "category": 1, "price": 1}
    ).to_list(length=None)

    redirected = user.get("redirected_certificates") or []
    programs = await db.certificate_programs.find(
        {"program_id": {"$in": [r["program_id"] for r in redirected]}},
        {"_id": 0, "program_id": 1, "title": 1, "genre": 1, "thumbnail_url": 1, "points": 1}
    ).to_list(length=None)
    programs_by_id = {p["program_id"]: p for p in programs}

    return {
        "user": {
            "user_id": user["user_id"],
            "name": user["name"],
            "email": user["email"],
            "role": user["role"],
            "profile_points": user.get("profile_points", 0),
            "badges": user.get("badges") or [],
            "created_at": user.get("created_at"),
        },
        "enrolled_courses": await get_student_enrollments(db, user_id),
        "earned_certificates": user.get("earned_certificates") or [],
        "redirected_certificates": [
            {**r, "program": programs_by_id.get(r["program_id"])} for r in redirected
        ],
        "unlocked_courses": unlocked,
        "uploaded_certificates": await list_student_uploads(db, user_id),
    }

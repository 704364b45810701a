from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from coursehub.core.auth import get_current_user
from coursehub.core.database import get_db
from coursehub.unlock.service import unlock_course

router = APIRouter(tags=["Unlock"])


@router.post("/student/unlock-course/{course_id}")
async def unlock(
    course_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Spend profile points on a points-gated course"""
    return await unlock_course(db, course_id, user["user_id"])

from typing import Union

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, StrictFloat, StrictInt

from coursehub.core.auth import get_current_user
from coursehub.core.database import get_db
from coursehub.enrollments import ledger

router = APIRouter(prefix="/courses", tags=["Enrollments"])


class ProgressUpdate(BaseModel):
    # Strings like "50" are rejected rather than coerced
    progress: Union[StrictInt, StrictFloat]


@router.post("/{course_id}/enroll", status_code=201)
async def enroll(
    course_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return await ledger.enroll(db, course_id, user["user_id"])


@router.put("/{course_id}/progress")
async def update_progress(
    course_id: str,
    data: ProgressUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Values are clamped to 0..100; stored progress never goes down"""
    return await ledger.update_progress(db, course_id, user["user_id"], data.progress)


@router.get("/{course_id}/my-enrollment")
async def my_enrollment(
    course_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return await ledger.get_enrollment(db, course_id, user["user_id"])

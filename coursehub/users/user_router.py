from typing import List, Optional

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from coursehub.core.auth import AccessPolicy, get_access_policy, get_current_user, require_admin
from coursehub.core.database import get_db
from coursehub.users import database as users_db
from coursehub.users.dashboard import get_student_dashboard
from coursehub.users.models import InstructorStatus, UserPublic, UserRegister

router = APIRouter(prefix="/users", tags=["Users"])
admin_router = APIRouter(prefix="/admin", tags=["Admin"])

# ==================== USERS ====================

@router.post("/register", response_model=UserPublic, status_code=201)
async def register(
    data: UserRegister,
    db: AsyncIOMotorDatabase = Depends(get_db),
    policy: AccessPolicy = Depends(get_access_policy),
):
    """
    Create the user document.
    Role is decided here once (admin allowlist, instructor approval queue).
    """
    return await users_db.create_user(db, data, policy)


@router.get("/me", response_model=UserPublic)
async def get_me(user: dict = Depends(get_current_user)):
    return user


@router.get("/me/dashboard")
async def get_dashboard(
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return await get_student_dashboard(db, user["user_id"])

# ==================== ADMIN: INSTRUCTORS ====================

@admin_router.get("/instructors", response_model=List[UserPublic])
async def list_instructors(
    status: Optional[InstructorStatus] = None,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    return await users_db.list_instructors(db, status)


@admin_router.put("/instructors/{user_id}/approve", response_model=UserPublic)
async def approve_instructor(
    user_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    return await users_db.set_instructor_status(db, user_id, InstructorStatus.APPROVED)


@admin_router.put("/instructors/{user_id}/reject", response_model=UserPublic)
async def reject_instructor(
    user_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    return await users_db.set_instructor_status(db, user_id, InstructorStatus.REJECTED)


@admin_router.get("/stats")
async def platform_stats(
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    return await users_db.get_platform_stats(db)

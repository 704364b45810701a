"""
CERTIFICATE PROGRAM ROUTER
File: coursehub/rewards/program_router.py

Instructor-managed external programs, the student redirect/upload flow,
and the admin review queue for uploads.
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile
from motor.motor_asyncio import AsyncIOMotorDatabase

from coursehub.core.auth import (
    AccessPolicy, get_access_policy, get_current_user, require_admin, require_instructor
)
from coursehub.core.database import get_db
from coursehub.rewards import programs
from coursehub.rewards.models import (
    ProgramCreate, ProgramStatus, ProgramUpdate, RedirectResult, ReviewResult,
    StudentCertReview, StudentCertStatus, UploadResult
)
from coursehub.rewards.storage import save_upload

router = APIRouter(tags=["Certificate Programs"])

# ==================== PROGRAMS ====================

@router.get("/programs")
async def list_programs(db: AsyncIOMotorDatabase = Depends(get_db)):
    return await programs.list_active_programs(db)


@router.get("/programs/mine")
async def my_programs(
    status: Optional[ProgramStatus] = None,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: dict = Depends(require_instructor),
):
    return await programs.list_instructor_programs(db, user["user_id"], status)


@router.get("/programs/{program_id}")
async def get_program(program_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    return await programs.require_program(db, program_id)


@router.post("/programs", status_code=201)
async def create_program(
    data: ProgramCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: dict = Depends(require_instructor),
):
    return await programs.create_program(db, data, user["user_id"])


@router.put("/programs/{program_id}")
async def update_program(
    program_id: str,
    data: ProgramUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: dict = Depends(require_instructor),
    policy: AccessPolicy = Depends(get_access_policy),
):
    await programs.require_program_manager(db, program_id, user, policy)
    return await programs.update_program(db, program_id, data)


@router.delete("/programs/{program_id}")
async def delete_program(
    program_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: dict = Depends(require_instructor),
    policy: AccessPolicy = Depends(get_access_policy),
):
    await programs.require_program_manager(db, program_id, user, policy)
    await programs.delete_program(db, program_id)
    return {"deleted": True, "program_id": program_id}

# ==================== STUDENT FLOW ====================

@router.post("/student/cert-redirect/{program_id}", response_model=RedirectResult)
async def cert_redirect(
    program_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return await programs.track_redirect(db, user["user_id"], program_id)


@router.post("/student/upload-cert/{program_id}", response_model=UploadResult, status_code=201)
async def upload_cert(
    program_id: str,
    file: UploadFile = File(...),
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Gate is checked before anything is written to disk"""
    await programs.check_upload_allowed(db, user["user_id"], program_id)
    stored = await save_upload(file, user["user_id"])
    return await programs.upload_certificate(db, user["user_id"], program_id, stored)


@router.get("/student/my-certs")
async def my_uploads(
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return await programs.list_student_uploads(db, user["user_id"])

# ==================== ADMIN REVIEW ====================

@router.get("/admin/student-certs")
async def list_uploads(
    status: Optional[StudentCertStatus] = None,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    return await programs.list_all_uploads(db, status)


@router.put("/admin/student-certs/{student_cert_id}/approve", response_model=ReviewResult)
async def approve_upload(
    student_cert_id: str,
    data: Optional[StudentCertReview] = None,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    return await programs.approve_student_certificate(
        db, student_cert_id, admin["user_id"], data.note if data else None
    )


@router.put("/admin/student-certs/{student_cert_id}/reject", response_model=ReviewResult)
async def reject_upload(
    student_cert_id: str,
    data: Optional[StudentCertReview] = None,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    return await programs.reject_student_certificate(
        db, student_cert_id, admin["user_id"], data.note if data else None
    )

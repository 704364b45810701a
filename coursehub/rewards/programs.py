"""
External certificate programs
File: coursehub/rewards/programs.py

Three-step gate per (student, program):
  1. track_redirect      - student visits the external link (idempotent)
  2. upload_certificate  - only after 1, only once
  3. approve / reject    - admin review; approval credits points exactly once
"""

import logging
from datetime import datetime
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from coursehub.core.auth import AccessPolicy, can_manage
from coursehub.core.config import DEFAULT_PROGRAM_POINTS
from coursehub.core.database import generate_id, storage_operation
from coursehub.core.errors import (
    AlreadyApprovedError, DuplicateUploadError, NotFoundError,
    PermissionDeniedError, RedirectRequiredError
)
from coursehub.rewards.models import (
    CertificateFile, ProgramCreate, ProgramStatus, ProgramUpdate, StudentCertStatus
)
from coursehub.users.database import require_user

logger = logging.getLogger(__name__)

# ==================== PROGRAM CRUD ====================

@storage_operation
async def create_program(db: AsyncIOMotorDatabase, data: ProgramCreate, instructor_id: str) -> dict:
    now = datetime.utcnow()
    program = {
        "program_id": generate_id("PRG"),
        "instructor_id": instructor_id,
        **data.model_dump(mode="json"),
        "created_at": now,
        "updated_at": now,
    }
    await db.certificate_programs.insert_one(program)
    program.pop("_id", None)
    logger.info("Certificate program %s created by %s", program["program_id"], instructor_id)
    return program


async def get_program(db: AsyncIOMotorDatabase, program_id: str) -> Optional[dict]:
    return await db.certificate_programs.find_one({"program_id": program_id}, {"_id": 0})


async def require_program(db: AsyncIOMotorDatabase, program_id: str) -> dict:
    program = await get_program(db, program_id)
    if not program:
        raise NotFoundError("Certificate program not found")
    return program


async def list_active_programs(db: AsyncIOMotorDatabase) -> List[dict]:
    cursor = db.certificate_programs.find(
        {"status": ProgramStatus.ACTIVE.value}, {"_id": 0}
    ).sort("created_at", -1)
    return await cursor.to_list(length=None)


async def list_instructor_programs(
    db: AsyncIOMotorDatabase, instructor_id: str, status: Optional[ProgramStatus] = None
) -> List[dict]:
    query = {"instructor_id": instructor_id}
    if status:
        query["status"] = status.value
    cursor = db.certificate_programs.find(query, {"_id": 0}).sort("updated_at", -1)
    return await cursor.to_list(length=None)


async def require_program_manager(
    db: AsyncIOMotorDatabase, program_id: str, user: dict, policy: AccessPolicy
) -> dict:
    program = await require_program(db, program_id)
    if not can_manage(user, program["instructor_id"], policy):
        raise PermissionDeniedError("Not authorized to modify this certificate program")
    return program


@storage_operation
async def update_program(db: AsyncIOMotorDatabase, program_id: str, data: ProgramUpdate) -> dict:
    updates = {
        k: v for k, v in data.model_dump(mode="json", exclude_unset=True).items()
        if v is not None
    }
    updates["updated_at"] = datetime.utcnow()
    program = await db.certificate_programs.find_one_and_update(
        {"program_id": program_id},
        {"$set": updates},
        projection={"_id": 0},
        return_document=ReturnDocument.AFTER,
    )
    if not program:
        raise NotFoundError("Certificate program not found")
    return program


@storage_operation
async def delete_program(db: AsyncIOMotorDatabase, program_id: str) -> bool:
    result = await db.certificate_programs.delete_one({"program_id": program_id})
    if result.deleted_count == 0:
        raise NotFoundError("Certificate program not found")
    logger.info("Certificate program %s deleted", program_id)
    return True

# ==================== STEP 1: REDIRECT ====================

@storage_operation
async def track_redirect(db: AsyncIOMotorDatabase, student_id: str, program_id: str) -> dict:
    """
    Record the student's first visit to the program link.
    Repeat calls are a no-op and report already_tracked=True.
    """
    program = await require_program(db, program_id)
    await require_user(db, student_id)

    result = await db.users.update_one(
        {"user_id": student_id, "redirected_certificates.program_id": {"$ne": program_id}},
        {"$push": {"redirected_certificates": {
            "program_id": program_id,
            "redirected_at": datetime.utcnow(),
        }}}
    )
    already_tracked = result.modified_count == 0
    if not already_tracked:
        logger.info("Student %s redirected to program %s", student_id, program_id)

    return {"cert_link": program["link"], "already_tracked": already_tracked}

# ==================== STEP 2: UPLOAD ====================

async def has_redirected(db: AsyncIOMotorDatabase, student_id: str, program_id: str) -> bool:
    return await db.users.find_one(
        {"user_id": student_id, "redirected_certificates.program_id": program_id}, {"_id": 1}
    ) is not None


async def check_upload_allowed(db: AsyncIOMotorDatabase, student_id: str, program_id: str):
    """
    Gate checks, run before the file is stored

    Raises:
        RedirectRequiredError: step 1 never happened for this program
        DuplicateUploadError: an upload for (student, program) already exists
    """
    if not await has_redirected(db, student_id, program_id):
        raise RedirectRequiredError()
    if await db.student_certificates.find_one(
        {"student_id": student_id, "program_id": program_id}, {"_id": 1}
    ):
        raise DuplicateUploadError()
    await require_program(db, program_id)


@storage_operation
async def upload_certificate(
    db: AsyncIOMotorDatabase, student_id: str, program_id: str, file: CertificateFile
) -> dict:
    """Create the pending upload record for (student, program)"""
    await check_upload_allowed(db, student_id, program_id)

    now = datetime.utcnow()
    student_cert = {
        "student_cert_id": generate_id("SCERT"),
        "student_id": student_id,
        "program_id": program_id,
        "upload_url": file.upload_url,
        "file_name": file.file_name,
        "file_type": file.file_type.value,
        "status": StudentCertStatus.PENDING.value,
        "points_awarded": 0,
        "admin_note": "",
        "approved_by": None,
        "approved_at": None,
        "created_at": now,
        "updated_at": now,
    }
    try:
        await db.student_certificates.insert_one(student_cert)
    except DuplicateKeyError:
        # Parallel upload won; the unique (student_id, program_id) index decides
        raise DuplicateUploadError()

    logger.info("Student %s uploaded certificate for program %s", student_id, program_id)
    return {"status": StudentCertStatus.PENDING.value, "student_cert_id": student_cert["student_cert_id"]}


async def list_student_uploads(db: AsyncIOMotorDatabase, student_id: str) -> List[dict]:
    uploads = await db.student_certificates.find(
        {"student_id": student_id}, {"_id": 0}
    ).sort("created_at", -1).to_list(length=None)
    return await _attach_programs(db, uploads)


async def list_all_uploads(db: AsyncIOMotorDatabase, status: Optional[StudentCertStatus] = None) -> List[dict]:
    query = {"status": status.value} if status else {}
    uploads = await db.student_certificates.find(query, {"_id": 0}).sort("created_at", -1).to_list(length=None)
    return await _attach_programs(db, uploads)


async def _attach_programs(db: AsyncIOMotorDatabase, uploads: List[dict]) -> List[dict]:
    program_ids = list({u["program_id"] for u in uploads})
    programs = await db.certificate_programs.find(
        {"program_id": {"$in": program_ids}},
        {"_id": 0, "program_id": 1, "title": 1, "genre": 1, "thumbnail_url": 1, "points": 1}
    ).to_list(length=None)
    by_id = {p["program_id"]: p for p in programs}
    return [{**u, "program": by_id.get(u["program_id"])} for u in uploads]

# ==================== STEP 3: ADMIN REVIEW ====================

async def _require_upload(db: AsyncIOMotorDatabase, student_cert_id: str) -> dict:
    upload = await db.student_certificates.find_one({"student_cert_id": student_cert_id}, {"_id": 0})
    if not upload:
        raise NotFoundError("Certificate not found")
    return upload


@storage_operation
async def approve_student_certificate(
    db: AsyncIOMotorDatabase, student_cert_id: str, admin_id: str, note: Optional[str] = None
) -> dict:
    """
    Approve an upload and credit the program's points to the student.

    The status flip is conditional on "not approved yet", and the credit is
    keyed on student_cert_id in user.credited_uploads, so neither a repeat
    call nor a race can pay out twice. An upload left approved but uncredited
    by an interrupted call gets its credit on the next call.
    """
    upload = await _require_upload(db, student_cert_id)
    if upload["status"] == StudentCertStatus.APPROVED.value:
        if not await _credit_upload(db, upload["student_id"], student_cert_id, upload["points_awarded"]):
            raise AlreadyApprovedError()
        logger.warning("Upload %s was approved without credit, credit completed", student_cert_id)
        return _review_result(upload)

    program = await get_program(db, upload["program_id"])
    points = (program or {}).get("points")
    if points is None:
        points = DEFAULT_PROGRAM_POINTS

    approved = await db.student_certificates.find_one_and_update(
        {"student_cert_id": student_cert_id, "status": {"$ne": StudentCertStatus.APPROVED.value}},
        {"$set": {
            "status": StudentCertStatus.APPROVED.value,
            "points_awarded": points,
            "approved_by": admin_id,
            "approved_at": datetime.utcnow(),
            "admin_note": note or "",
            "updated_at": datetime.utcnow(),
        }},
        projection={"_id": 0},
        return_document=ReturnDocument.AFTER,
    )
    if not approved:
        raise AlreadyApprovedError()

    if not await _credit_upload(db, upload["student_id"], student_cert_id, points):
        logger.warning("Upload %s was already credited to %s", student_cert_id, upload["student_id"])
    logger.info(
        "Upload %s approved by %s, %d points to %s",
        student_cert_id, admin_id, points, upload["student_id"]
    )
    return _review_result(approved)


async def _credit_upload(db: AsyncIOMotorDatabase, student_id: str, student_cert_id: str, points: int) -> bool:
    """Pay the points for one upload. False when it was already paid."""
    result = await db.users.update_one(
        {"user_id": student_id, "credited_uploads": {"$ne": student_cert_id}},
        {
            "$inc": {"profile_points": points},
            "$push": {"credited_uploads": student_cert_id},
        }
    )
    return result.modified_count == 1


def _review_result(upload: dict) -> dict:
    return {
        "status": StudentCertStatus.APPROVED.value,
        "student_cert_id": upload["student_cert_id"],
        "points_awarded": upload["points_awarded"],
        "admin_note": upload["admin_note"],
    }


@storage_operation
async def reject_student_certificate(
    db: AsyncIOMotorDatabase, student_cert_id: str, admin_id: str, note: Optional[str] = None
) -> dict:
    """Reject with a note. Approved uploads are immutable."""
    await _require_upload(db, student_cert_id)
    admin_note = note or "Does not meet requirements"

    rejected = await db.student_certificates.find_one_and_update(
        {"student_cert_id": student_cert_id, "status": {"$ne": StudentCertStatus.APPROVED.value}},
        {"$set": {
            "status": StudentCertStatus.REJECTED.value,
            "admin_note": admin_note,
            "approved_by": admin_id,
            "updated_at": datetime.utcnow(),
        }},
        projection={"_id": 0},
        return_document=ReturnDocument.AFTER,
    )
    if not rejected:
        raise AlreadyApprovedError("Approved certificates cannot be rejected")

    logger.info("Upload %s rejected by %s", student_cert_id, admin_id)
    return {
        "status": StudentCertStatus.REJECTED.value,
        "student_cert_id": student_cert_id,
        "points_awarded": None,
        "admin_note": admin_note,
    }

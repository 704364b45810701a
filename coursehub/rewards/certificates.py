"""
Internal course certificates
File: coursehub/rewards/certificates.py

Issuance is two conditional writes:
  1. flip enrollment.certificate_issued on the course (guarded by $elemMatch)
  2. credit the user (guarded by the certificate id, so it applies once)
If step 2 never ran, calling issue again finishes it instead of failing.
"""

import io
import logging
import secrets
import time
from datetime import datetime
from typing import List, Optional

from fastapi.concurrency import run_in_threadpool
from motor.motor_asyncio import AsyncIOMotorDatabase
from PIL import Image, ImageDraw, ImageFont
from pymongo import ReturnDocument

from coursehub.core.config import CERTIFICATE_ID_PREFIX, CERTIFICATE_POINTS
from coursehub.core.database import storage_operation
from coursehub.core.errors import (
    AlreadyIssuedError, NotCompletedError, NotEnrolledError, NotFoundError
)
from coursehub.courses.database import require_course
from coursehub.enrollments.ledger import find_enrollment
from coursehub.rewards.badges import new_badges
from coursehub.users.database import require_user

logger = logging.getLogger(__name__)


def generate_certificate_id(prefix: str = CERTIFICATE_ID_PREFIX) -> str:
    """<prefix>-<epoch ms>-<4 random bytes as hex>"""
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(4).upper()}"


def certificate_url(certificate_id: str) -> str:
    return f"/certificates/{certificate_id}"

# ==================== ISSUANCE ====================

async def _grant_badges(db: AsyncIOMotorDatabase, student_id: str) -> List[str]:
    """
    Set-add every badge the current certificate count has earned.
    Safe to repeat: held badges are never added twice.
    """
    user = await db.users.find_one(
        {"user_id": student_id}, {"_id": 0, "earned_certificates": 1, "badges": 1}
    )
    missing = new_badges(len(user.get("earned_certificates") or []), user.get("badges") or [])
    if not missing:
        return []

    before = await db.users.find_one_and_update(
        {"user_id": student_id},
        {"$addToSet": {"badges": {"$each": missing}}},
        projection={"_id": 0, "badges": 1},
        return_document=ReturnDocument.BEFORE,
    )
    granted = [b for b in missing if b not in (before.get("badges") or [])]
    if granted:
        logger.info("Badges %s granted to %s", granted, student_id)
    return granted


async def _credit_certificate(
    db: AsyncIOMotorDatabase,
    course_id: str,
    student_id: str,
    certificate_id: str,
    issued_at: datetime,
) -> dict:
    record = {
        "certificate_id": certificate_id,
        "course_id": course_id,
        "issued_at": issued_at,
        "certificate_url": certificate_url(certificate_id),
    }
    user = await db.users.find_one_and_update(
        {"user_id": student_id, "earned_certificates.certificate_id": {"$ne": certificate_id}},
        {
            "$push": {"earned_certificates": record},
            "$addToSet": {"completed_courses": course_id},
            "$inc": {"profile_points": CERTIFICATE_POINTS},
        },
        projection={"_id": 0, "profile_points": 1},
        return_document=ReturnDocument.AFTER,
    )
    if user is None:
        raise AlreadyIssuedError()

    granted = await _grant_badges(db, student_id)
    logger.info(
        "Certificate %s issued to %s for %s (+%d points)",
        certificate_id, student_id, course_id, CERTIFICATE_POINTS
    )
    return {
        "certificate_id": certificate_id,
        "course_id": course_id,
        "issued_at": issued_at,
        "certificate_url": record["certificate_url"],
        "points_earned": CERTIFICATE_POINTS,
        "total_points": user["profile_points"],
        "new_badges": granted,
    }


@storage_operation
async def issue_certificate(db: AsyncIOMotorDatabase, course_id: str, student_id: str) -> dict:
    """
    Issue the completion certificate for (course, student)

    Effects (once per enrollment):
        enrollment.certificate_issued = True
        certificate appended to user.earned_certificates
        user.profile_points += CERTIFICATE_POINTS
        milestone badges granted

    Raises:
        NotFoundError, NotEnrolledError, NotCompletedError, AlreadyIssuedError
    """
    course = await require_course(db, course_id)
    await require_user(db, student_id)

    enrollment = find_enrollment(course, student_id)
    if not enrollment:
        raise NotEnrolledError()
    if not enrollment.get("completed"):
        raise NotCompletedError()

    if enrollment.get("certificate_issued"):
        pending_id = enrollment.get("certificate_id")
        if pending_id and not await db.users.find_one(
            {"user_id": student_id, "earned_certificates.certificate_id": pending_id}, {"_id": 1}
        ):
            logger.warning("Resuming interrupted issuance of %s for %s", pending_id, student_id)
            issued_at = enrollment.get("certificate_issued_at") or datetime.utcnow()
            return await _credit_certificate(db, course_id, student_id, pending_id, issued_at)
        raise AlreadyIssuedError()

    certificate_id = generate_certificate_id()
    issued_at = datetime.utcnow()
    result = await db.courses.update_one(
        {
            "course_id": course_id,
            "enrollments": {"$elemMatch": {
                "student_id": student_id,
                "completed": True,
                "certificate_issued": False,
            }},
        },
        {"$set": {
            "enrollments.$.certificate_issued": True,
            "enrollments.$.certificate_id": certificate_id,
            "enrollments.$.certificate_issued_at": issued_at,
        }}
    )
    if result.modified_count == 0:
        # A parallel request flipped it first
        raise AlreadyIssuedError()

    return await _credit_certificate(db, course_id, student_id, certificate_id, issued_at)

# ==================== LOOKUPS ====================

async def list_earned_certificates(db: AsyncIOMotorDatabase, student_id: str) -> List[dict]:
    user = await require_user(db, student_id)
    certificates = user.get("earned_certificates") or []
    course_ids = list({c["course_id"] for c in certificates})
    courses = await db.courses.find(
        {"course_id": {"$in": course_ids}},
        {"_id": 0, "course_id": 1, "title": 1, "thumbnail_url": 1, "category": 1, "instructor_id": 1}
    ).to_list(length=None)
    by_id = {c["course_id"]: c for c in courses}
    return [{**c, "course": by_id.get(c["course_id"])} for c in certificates]


async def find_certificate(db: AsyncIOMotorDatabase, certificate_id: str) -> Optional[dict]:
    """Returns {certificate, student, course} or None"""
    user = await db.users.find_one(
        {"earned_certificates.certificate_id": certificate_id},
        {"_id": 0, "user_id": 1, "name": 1, "earned_certificates": 1}
    )
    if not user:
        return None
    record = next(c for c in user["earned_certificates"] if c["certificate_id"] == certificate_id)
    course = await db.courses.find_one(
        {"course_id": record["course_id"]}, {"_id": 0, "course_id": 1, "title": 1}
    )
    return {"certificate": record, "student": user, "course": course}


async def verify_certificate(db: AsyncIOMotorDatabase, certificate_id: str) -> dict:
    found = await find_certificate(db, certificate_id)
    if not found:
        return {"valid": False, "message": "Certificate not found"}
    return {
        "valid": True,
        "certificate_id": certificate_id,
        "issued_to": found["student"].get("name"),
        "student_id": found["student"]["user_id"],
        "course_id": found["certificate"]["course_id"],
        "course_title": (found["course"] or {}).get("title"),
        "issued_at": found["certificate"]["issued_at"],
        "message": "Certificate is valid",
    }

# ==================== CERTIFICATE IMAGE ====================

def _load_font(path: str, size: int):
    try:
        return ImageFont.truetype(path, size)
    except OSError:
        return ImageFont.load_default()


def render_certificate_png(student_name: str, course_title: str, issued_at: datetime, certificate_id: str) -> bytes:
    width, height = 1920, 1080
    img = Image.new("RGB", (width, height), color="white")
    draw = ImageDraw.Draw(img)
    primary_color = (41, 128, 185)
    secondary_color = (52, 73, 94)
    gold_color = (241, 196, 15)
    draw.rectangle([50, 50, width - 50, height - 50], outline=primary_color, width=10)
    draw.rectangle([70, 70, width - 70, height - 70], outline=gold_color, width=3)

    title_font = _load_font("/usr/share/fonts/truetype/dejavu/DejaVuSerif-Bold.ttf", 80)
    subtitle_font = _load_font("/usr/share/fonts/truetype/dejavu/DejaVuSerif.ttf", 40)
    text_font = _load_font("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf", 36)
    small_font = _load_font("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf", 28)

    def centered(text, font, y, fill):
        bbox = draw.textbbox((0, 0), text, font=font)
        draw.text(((width - (bbox[2] - bbox[0])) / 2, y), text, fill=fill, font=font)

    centered("CERTIFICATE OF COMPLETION", title_font, 120, primary_color)
    centered("This is to certify that", subtitle_font, 260, secondary_color)
    centered(student_name, title_font, 340, gold_color)
    centered("has successfully completed the course", text_font, 480, secondary_color)
    centered(course_title, title_font, 560, primary_color)
    centered(f"Issued on: {issued_at.strftime('%B %d, %Y')}", small_font, 760, secondary_color)
    centered(f"Certificate ID: {certificate_id}", small_font, 850, secondary_color)
    draw.line([(width // 2 - 200, 950), (width // 2 + 200, 950)], fill=secondary_color, width=2)
    centered("Authorized Signature", small_font, 960, secondary_color)

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


async def certificate_image(db: AsyncIOMotorDatabase, certificate_id: str) -> bytes:
    found = await find_certificate(db, certificate_id)
    if not found:
        raise NotFoundError("Certificate not found")
    return await run_in_threadpool(
        render_certificate_png,
        student_name=found["student"].get("name", "Student"),
        course_title=(found["course"] or {}).get("title", "Course"),
        issued_at=found["certificate"]["issued_at"],
        certificate_id=certificate_id,
    )

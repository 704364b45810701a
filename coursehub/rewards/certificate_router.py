from fastapi import APIRouter, Depends, Response
from motor.motor_asyncio import AsyncIOMotorDatabase

from coursehub.core.auth import get_current_user
from coursehub.core.database import get_db
from coursehub.rewards import certificates
from coursehub.rewards.models import IssuedCertificate

router = APIRouter(tags=["Certificates"])


@router.post("/courses/{course_id}/certificate", response_model=IssuedCertificate, status_code=201)
async def issue_certificate(
    course_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Completed enrollments only; once per course"""
    return await certificates.issue_certificate(db, course_id, user["user_id"])


@router.get("/certificates/mine")
async def my_certificates(
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return await certificates.list_earned_certificates(db, user["user_id"])


@router.get("/certificates/verify/{certificate_id}")
async def verify_certificate(certificate_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    """Public endpoint, no token required"""
    return await certificates.verify_certificate(db, certificate_id)


@router.get("/certificates/{certificate_id}/image")
async def certificate_image(certificate_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    content = await certificates.certificate_image(db, certificate_id)
    return Response(
        content=content,
        media_type="image/png",
        headers={"Content-Disposition": f"inline; filename=certificate_{certificate_id}.png"},
    )

import re
from datetime import datetime

import pytest

from coursehub.core.errors import (
    AlreadyIssuedError, NotCompletedError, NotEnrolledError, NotFoundError
)
from coursehub.courses.database import get_course
from coursehub.enrollments.ledger import enroll, update_progress
from coursehub.rewards import certificates
from coursehub.rewards.badges import badges_for_count, new_badges
from coursehub.users.database import get_user


async def complete_course(db, course_id, student_id):
    await enroll(db, course_id, student_id)
    await update_progress(db, course_id, student_id, 100)


def test_certificate_id_format():
    certificate_id = certificates.generate_certificate_id()
    assert re.fullmatch(r"TG-\d{13}-[0-9A-F]{8}", certificate_id)
    assert certificates.certificate_url(certificate_id) == f"/certificates/{certificate_id}"


@pytest.mark.parametrize("count,expected", [
    (0, []),
    (1, ["First Certificate"]),
    (4, ["First Certificate"]),
    (5, ["First Certificate", "Knowledge Seeker"]),
    (10, ["First Certificate", "Knowledge Seeker", "Learning Champion"]),
])
def test_badges_for_count(count, expected):
    assert badges_for_count(count) == expected


def test_new_badges_skips_held():
    assert new_badges(5, ["First Certificate"]) == ["Knowledge Seeker"]
    assert new_badges(5, ["First Certificate", "Knowledge Seeker"]) == []


async def test_issue_certificate_credits_points_once(db, make_course, make_user):
    course = await make_course()
    student = await make_user()
    await complete_course(db, course["course_id"], student["user_id"])

    issued = await certificates.issue_certificate(db, course["course_id"], student["user_id"])
    assert issued["certificate_id"].startswith("TG-")
    assert issued["points_earned"] == 100
    assert issued["total_points"] == 100
    assert issued["new_badges"] == ["First Certificate"]

    with pytest.raises(AlreadyIssuedError):
        await certificates.issue_certificate(db, course["course_id"], student["user_id"])

    user = await get_user(db, student["user_id"])
    assert user["profile_points"] == 100
    assert user["badges"] == ["First Certificate"]
    assert user["completed_courses"] == [course["course_id"]]
    assert [c["certificate_id"] for c in user["earned_certificates"]] == [issued["certificate_id"]]

    stored = await get_course(db, course["course_id"])
    enrollment = stored["enrollments"][0]
    assert enrollment["certificate_issued"] is True
    assert enrollment["certificate_id"] == issued["certificate_id"]


async def test_issue_requires_enrollment_and_completion(db, make_course, make_user):
    course = await make_course()
    student = await make_user()

    with pytest.raises(NotEnrolledError):
        await certificates.issue_certificate(db, course["course_id"], student["user_id"])

    await enroll(db, course["course_id"], student["user_id"])
    await update_progress(db, course["course_id"], student["user_id"], 99)
    with pytest.raises(NotCompletedError):
        await certificates.issue_certificate(db, course["course_id"], student["user_id"])

    user = await get_user(db, student["user_id"])
    assert user["profile_points"] == 0


async def test_milestone_badges(db, make_course, make_user):
    student = await make_user()
    results = []
    for n in range(10):
        course = await make_course(title=f"Course {n}")
        await complete_course(db, course["course_id"], student["user_id"])
        results.append(await certificates.issue_certificate(db, course["course_id"], student["user_id"]))

    assert results[0]["new_badges"] == ["First Certificate"]
    assert results[1]["new_badges"] == []
    assert results[4]["new_badges"] == ["Knowledge Seeker"]
    assert results[9]["new_badges"] == ["Learning Champion"]
    assert results[9]["total_points"] == 1000

    user = await get_user(db, student["user_id"])
    assert user["badges"] == ["First Certificate", "Knowledge Seeker", "Learning Champion"]
    assert len(set(user["completed_courses"])) == 10


async def test_interrupted_issuance_resumes(db, make_course, make_user):
    course = await make_course()
    student = await make_user()
    await complete_course(db, course["course_id"], student["user_id"])

    # Enrollment flipped but the user was never credited
    await db.courses.update_one(
        {"course_id": course["course_id"], "enrollments.student_id": student["user_id"]},
        {"$set": {
            "enrollments.$.certificate_issued": True,
            "enrollments.$.certificate_id": "TG-1700000000000-ABCDEF12",
            "enrollments.$.certificate_issued_at": datetime(2024, 1, 1),
        }}
    )

    issued = await certificates.issue_certificate(db, course["course_id"], student["user_id"])
    assert issued["certificate_id"] == "TG-1700000000000-ABCDEF12"
    assert issued["total_points"] == 100

    with pytest.raises(AlreadyIssuedError):
        await certificates.issue_certificate(db, course["course_id"], student["user_id"])
    user = await get_user(db, student["user_id"])
    assert user["profile_points"] == 100
    assert len(user["earned_certificates"]) == 1


async def test_verify_and_list(db, make_course, make_user):
    course = await make_course()
    student = await make_user(name="Ada Lovelace")
    await complete_course(db, course["course_id"], student["user_id"])
    issued = await certificates.issue_certificate(db, course["course_id"], student["user_id"])

    verified = await certificates.verify_certificate(db, issued["certificate_id"])
    assert verified["valid"] is True
    assert verified["issued_to"] == "Ada Lovelace"
    assert verified["course_title"] == "Python Basics"

    assert (await certificates.verify_certificate(db, "TG-0-00000000"))["valid"] is False

    mine = await certificates.list_earned_certificates(db, student["user_id"])
    assert mine[0]["course"]["title"] == "Python Basics"


async def test_certificate_image_is_png(db, make_course, make_user):
    course = await make_course()
    student = await make_user()
    await complete_course(db, course["course_id"], student["user_id"])
    issued = await certificates.issue_certificate(db, course["course_id"], student["user_id"])

    content = await certificates.certificate_image(db, issued["certificate_id"])
    assert content[:8] == b"\x89PNG\r\n\x1a\n"

    with pytest.raises(NotFoundError):
        await certificates.certificate_image(db, "TG-0-00000000")

import asyncio
import math

import pytest

from coursehub.core.errors import (
    AlreadyEnrolledError, CourseNotApprovedError, NotEnrolledError, NotFoundError, ValidationError
)
from coursehub.courses.database import get_course
from coursehub.enrollments import ledger


@pytest.mark.parametrize("value,expected", [
    (150, 100),
    (100, 100),
    (99.9, 99),
    (42, 42),
    (0, 0),
    (-5, 0),
    (math.inf, 100),
])
def test_clamp_progress(value, expected):
    assert ledger.clamp_progress(value) == expected


@pytest.mark.parametrize("value", ["50", None, True, math.nan, [10]])
def test_clamp_progress_rejects_non_numbers(value):
    with pytest.raises(ValidationError):
        ledger.clamp_progress(value)


async def test_enroll_records_enrollment_and_counter(db, make_course, make_user):
    course = await make_course()
    student = await make_user()

    result = await ledger.enroll(db, course["course_id"], student["user_id"])
    assert result == {"enrolled": True, "course_id": course["course_id"]}

    stored = await get_course(db, course["course_id"])
    assert stored["students_enrolled"] == 1
    enrollment = stored["enrollments"][0]
    assert enrollment["student_id"] == student["user_id"]
    assert enrollment["progress"] == 0
    assert enrollment["completed"] is False
    assert enrollment["certificate_issued"] is False

    user = await db.users.find_one({"user_id": student["user_id"]})
    assert user["enrolled_courses"] == [course["course_id"]]


async def test_enroll_twice_is_rejected(db, make_course, make_user):
    course = await make_course()
    student = await make_user()
    await ledger.enroll(db, course["course_id"], student["user_id"])

    with pytest.raises(AlreadyEnrolledError):
        await ledger.enroll(db, course["course_id"], student["user_id"])

    stored = await get_course(db, course["course_id"])
    assert stored["students_enrolled"] == 1
    assert len(stored["enrollments"]) == 1


async def test_enroll_requires_approved_course(db, make_course, make_user):
    course = await make_course(approved=False)
    student = await make_user()
    with pytest.raises(CourseNotApprovedError):
        await ledger.enroll(db, course["course_id"], student["user_id"])
    with pytest.raises(NotFoundError):
        await ledger.enroll(db, "COURSE_MISSING", student["user_id"])


async def test_enroll_does_not_check_points_gate(db, make_course, make_user):
    course = await make_course(points_required=500)
    student = await make_user()
    assert (await ledger.enroll(db, course["course_id"], student["user_id"]))["enrolled"]


async def test_parallel_enrollments_for_different_students(db, make_course, make_user):
    course = await make_course()
    students = [await make_user() for _ in range(5)]

    await asyncio.gather(*[
        ledger.enroll(db, course["course_id"], s["user_id"]) for s in students
    ])

    stored = await get_course(db, course["course_id"])
    assert stored["students_enrolled"] == 5
    assert {e["student_id"] for e in stored["enrollments"]} == {s["user_id"] for s in students}


async def test_progress_clamps_and_completes(db, make_course, make_user):
    course = await make_course()
    student = await make_user()
    await ledger.enroll(db, course["course_id"], student["user_id"])

    result = await ledger.update_progress(db, course["course_id"], student["user_id"], 150)
    assert result == {"progress": 100, "completed": True}

    enrollment = await ledger.get_enrollment(db, course["course_id"], student["user_id"])
    assert enrollment["enrolled"] is True
    assert enrollment["completed_at"] is not None


async def test_progress_never_decreases(db, make_course, make_user):
    course = await make_course()
    student = await make_user()
    await ledger.enroll(db, course["course_id"], student["user_id"])

    await ledger.update_progress(db, course["course_id"], student["user_id"], 60)
    result = await ledger.update_progress(db, course["course_id"], student["user_id"], 30)
    assert result == {"progress": 60, "completed": False}


async def test_completion_is_sticky(db, make_course, make_user):
    course = await make_course()
    student = await make_user()
    await ledger.enroll(db, course["course_id"], student["user_id"])

    await ledger.update_progress(db, course["course_id"], student["user_id"], 100)
    first = await ledger.get_enrollment(db, course["course_id"], student["user_id"])

    result = await ledger.update_progress(db, course["course_id"], student["user_id"], 10)
    assert result == {"progress": 100, "completed": True}
    again = await ledger.get_enrollment(db, course["course_id"], student["user_id"])
    assert again["completed_at"] == first["completed_at"]


async def test_progress_without_enrollment(db, make_course, make_user):
    course = await make_course()
    student = await make_user()
    with pytest.raises(NotEnrolledError):
        await ledger.update_progress(db, course["course_id"], student["user_id"], 50)
    with pytest.raises(NotFoundError):
        await ledger.update_progress(db, "COURSE_MISSING", student["user_id"], 50)


async def test_progress_rejects_bad_value_before_any_write(db, make_course, make_user):
    course = await make_course()
    student = await make_user()
    await ledger.enroll(db, course["course_id"], student["user_id"])

    with pytest.raises(ValidationError):
        await ledger.update_progress(db, course["course_id"], student["user_id"], "80")
    enrollment = await ledger.get_enrollment(db, course["course_id"], student["user_id"])
    assert enrollment["progress"] == 0


async def test_progress_for_one_student_leaves_others_alone(db, make_course, make_user):
    course = await make_course()
    alice, bob = await make_user(), await make_user()
    await ledger.enroll(db, course["course_id"], alice["user_id"])
    await ledger.enroll(db, course["course_id"], bob["user_id"])

    await ledger.update_progress(db, course["course_id"], bob["user_id"], 70)

    assert (await ledger.get_enrollment(db, course["course_id"], alice["user_id"]))["progress"] == 0
    assert (await ledger.get_enrollment(db, course["course_id"], bob["user_id"]))["progress"] == 70


async def test_get_enrollment_absent_is_not_an_error(db, make_course, make_user):
    course = await make_course()
    student = await make_user()
    assert await ledger.get_enrollment(db, course["course_id"], student["user_id"]) == {"enrolled": False}


async def test_student_enrollments_listing(db, make_course, make_user):
    first = await make_course(title="First")
    second = await make_course(title="Second")
    student = await make_user()
    await ledger.enroll(db, first["course_id"], student["user_id"])
    await ledger.enroll(db, second["course_id"], student["user_id"])
    await ledger.update_progress(db, second["course_id"], student["user_id"], 100)

    listing = {c["course_id"]: c for c in await ledger.get_student_enrollments(db, student["user_id"])}
    assert set(listing) == {first["course_id"], second["course_id"]}
    assert listing[second["course_id"]]["completed"] is True
    assert "enrollments" not in listing[first["course_id"]]

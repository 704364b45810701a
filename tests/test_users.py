import pytest

from coursehub.core.auth import AccessPolicy, can_manage
from coursehub.core.errors import DuplicateEmailError, PreconditionError
from coursehub.enrollments.ledger import enroll
from coursehub.rewards.programs import track_redirect
from coursehub.users import database as users_db
from coursehub.users.dashboard import get_student_dashboard
from coursehub.users.models import InstructorStatus, Role, UserRegister


def test_assign_role():
    policy = AccessPolicy(["Boss@Example.com"])
    assert policy.assign_role("boss@example.com") == (Role.ADMIN, InstructorStatus.APPROVED)
    assert policy.assign_role("t@example.com", Role.INSTRUCTOR) == (Role.INSTRUCTOR, InstructorStatus.PENDING)
    assert policy.assign_role("s@example.com", Role.ADMIN) == (Role.STUDENT, None)
    assert policy.assign_role("s@example.com") == (Role.STUDENT, None)


def test_is_admin_by_role_or_allowlist():
    policy = AccessPolicy(["boss@example.com"])
    assert policy.is_admin({"role": "admin", "email": "x@example.com"})
    assert policy.is_admin({"role": "student", "email": " BOSS@example.com "})
    assert not policy.is_admin({"role": "instructor", "email": "x@example.com"})
    assert not policy.is_admin({"role": "student"})


def test_can_manage():
    policy = AccessPolicy()
    owner = {"user_id": "USR_1", "role": "instructor"}
    assert can_manage(owner, "USR_1", policy)
    assert not can_manage(owner, "USR_2", policy)
    assert can_manage({"user_id": "USR_3", "role": "admin"}, "USR_2", policy)


async def test_register_assigns_role_once(db, policy):
    admin = await users_db.create_user(
        db, UserRegister(name="Root", email="ADMIN@example.com"), policy
    )
    assert admin["role"] == "admin"
    assert admin["email"] == "admin@example.com"

    instructor = await users_db.create_user(
        db, UserRegister(name="Teach", email="teach@example.com", role=Role.INSTRUCTOR), policy
    )
    assert instructor["role"] == "instructor"
    assert instructor["instructor_status"] == "pending"
    assert instructor["profile_points"] == 0


async def test_duplicate_email(db, policy):
    await users_db.create_user(db, UserRegister(name="A", email="a@example.com"), policy)
    with pytest.raises(DuplicateEmailError):
        await users_db.create_user(db, UserRegister(name="B", email=" A@example.com"), policy)


async def test_instructor_review(db, make_user):
    pending = await users_db.create_user(
        db,
        UserRegister(name="New", email="new@example.com", role=Role.INSTRUCTOR),
        AccessPolicy(),
    )
    listed = await users_db.list_instructors(db, InstructorStatus.PENDING)
    assert [u["user_id"] for u in listed] == [pending["user_id"]]

    approved = await users_db.set_instructor_status(db, pending["user_id"], InstructorStatus.APPROVED)
    assert approved["instructor_status"] == "approved"

    student = await make_user()
    with pytest.raises(PreconditionError):
        await users_db.set_instructor_status(db, student["user_id"], InstructorStatus.APPROVED)


async def test_platform_stats(db, make_course, make_user):
    await make_course(approved=False)
    await make_user()
    stats = await users_db.get_platform_stats(db)
    assert stats["users"]["students"] == 1
    assert stats["users"]["instructors"] == 1
    assert stats["courses"]["pending"] == 1


async def test_dashboard_collects_student_state(db, make_course, make_program, make_user):
    course = await make_course()
    program = await make_program()
    student = await make_user()
    await enroll(db, course["course_id"], student["user_id"])
    await track_redirect(db, student["user_id"], program["program_id"])

    dashboard = await get_student_dashboard(db, student["user_id"])
    assert dashboard["user"]["user_id"] == student["user_id"]
    assert [c["course_id"] for c in dashboard["enrolled_courses"]] == [course["course_id"]]
    assert dashboard["redirected_certificates"][0]["program"]["title"] == "Cloud Practitioner"
    assert dashboard["earned_certificates"] == []
    assert dashboard["uploaded_certificates"] == []

import itertools

import mongomock
import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from pymongo import ReturnDocument

from coursehub.core.auth import AccessPolicy, get_access_policy
from coursehub.core.config import JWT_ALGORITHM, JWT_SECRET_KEY
from coursehub.core.database import create_indexes, get_db
from coursehub.courses.database import approve_course, create_course
from coursehub.courses.models import CourseCategory, CourseCreate
from coursehub.main import create_app
from coursehub.rewards.models import ProgramCreate, ProgramStatus
from coursehub.rewards.programs import create_program
from coursehub.users.database import create_user, set_instructor_status
from coursehub.users.models import InstructorStatus, Role, UserRegister

ADMIN_EMAIL = "admin@example.com"

VIDEO_SECTION = {
    "title": "Getting started",
    "lessons": [
        {"title": "Intro", "type": "video", "video_key": "intro.mp4", "video_duration": 120},
        {"title": "Setup", "type": "video", "video_key": "setup.mp4", "video_duration": 300},
        {"title": "Notes", "type": "text", "content": "# Notes"},
    ],
}

# ==================== AWAITABLE MONGOMOCK ====================
# Services await motor-style calls; mongomock answers synchronously.

class FakeCursor:
    def __init__(self, cursor):
        self._cursor = cursor

    def sort(self, *args, **kwargs):
        self._cursor = self._cursor.sort(*args, **kwargs)
        return self

    async def to_list(self, length=None):
        docs = list(self._cursor)
        return docs if length is None else docs[:length]


class FakeCollection:
    def __init__(self, collection):
        self._collection = collection

    def find(self, *args, **kwargs):
        return FakeCursor(self._collection.find(*args, **kwargs))

    async def find_one_and_update(
        self, filter, update, projection=None, return_document=ReturnDocument.BEFORE, **kwargs
    ):
        # mongomock re-reads with the original filter, which a guarded update
        # no longer matches; re-read by _id the way the server reports it
        match = self._collection.find_one(filter, {"_id": 1})
        if match is None:
            return None
        by_id = {"_id": match["_id"]}
        pre_image = self._collection.find_one(by_id, projection)
        self._collection.update_one(filter, update)
        if return_document == ReturnDocument.BEFORE:
            return pre_image
        return self._collection.find_one(by_id, projection)

    def __getattr__(self, name):
        method = getattr(self._collection, name)

        async def call(*args, **kwargs):
            return method(*args, **kwargs)

        return call


class FakeDatabase:
    def __init__(self, database):
        self._database = database

    def __getitem__(self, name):
        return FakeCollection(self._database[name])

    def __getattr__(self, name):
        return self[name]


# ==================== FIXTURES ====================

@pytest.fixture
def policy():
    return AccessPolicy([ADMIN_EMAIL])


@pytest.fixture
async def db():
    database = FakeDatabase(mongomock.MongoClient()["coursehub_test"])
    await create_indexes(database)
    return database


@pytest.fixture
def make_user(db, policy):
    counter = itertools.count(1)

    async def _make(role=Role.STUDENT, points=0, name=None, email=None):
        n = next(counter)
        user = await create_user(
            db,
            UserRegister(name=name or f"User {n}", email=email or f"user{n}@example.com", role=role),
            policy,
        )
        if role == Role.INSTRUCTOR:
            user = await set_instructor_status(db, user["user_id"], InstructorStatus.APPROVED)
        if points:
            await db.users.update_one({"user_id": user["user_id"]}, {"$set": {"profile_points": points}})
            user["profile_points"] = points
        return user

    return _make


@pytest.fixture
def make_course(db, make_user):
    async def _make(instructor=None, approved=True, points_required=0, title="Python Basics", sections=None):
        if instructor is None:
            instructor = await make_user(role=Role.INSTRUCTOR)
        data = CourseCreate(
            title=title,
            description="Learn the basics",
            category=CourseCategory.DEVELOPMENT,
            points_required=points_required,
            sections=sections if sections is not None else [VIDEO_SECTION],
        )
        course = await create_course(db, data, instructor["user_id"])
        if approved:
            course = await approve_course(db, course["course_id"], "USR_ADMIN")
        return course

    return _make


@pytest.fixture
def make_program(db, make_user):
    async def _make(points=None, instructor=None):
        if instructor is None:
            instructor = await make_user(role=Role.INSTRUCTOR)
        data = ProgramCreate(
            title="Cloud Practitioner",
            description="Vendor certification",
            genre="Cloud",
            link="https://example.com/cert",
            status=ProgramStatus.ACTIVE,
            points=points,
        )
        return await create_program(db, data, instructor["user_id"])

    return _make

# ==================== HTTP ====================

def token_for(user: dict) -> str:
    return jwt.encode({"sub": user["user_id"]}, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def auth_headers(user: dict) -> dict:
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture
def app(db, policy):
    application = create_app()

    async def override_db():
        return db

    application.dependency_overrides[get_db] = override_db
    application.dependency_overrides[get_access_policy] = lambda: policy
    return application


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def headers():
    return auth_headers

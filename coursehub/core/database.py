import functools
import logging
import secrets

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from coursehub.core.config import MONGO_URL, MONGO_DB_NAME
from coursehub.core.errors import StorageError

logger = logging.getLogger(__name__)

client = AsyncIOMotorClient(MONGO_URL)
db = client[MONGO_DB_NAME]


# ==================== DEPENDENCY FUNCTIONS ====================

async def get_db() -> AsyncIOMotorDatabase:
    """Database dependency"""
    return db


def generate_id(prefix: str) -> str:
    """Generate unique ID with prefix"""
    return f"{prefix}_{secrets.token_hex(8).upper()}"


def storage_operation(func):
    """Translate driver failures into StorageError. Domain errors pass through."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except PyMongoError as exc:
            logger.exception("Storage failure in %s", func.__qualname__)
            raise StorageError(f"{func.__name__} failed") from exc

    return wrapper


# ==================== DATABASE INDEXES ====================

async def create_indexes(database: AsyncIOMotorDatabase):
    """
    Create MongoDB indexes
    Called during application startup
    """
    # Courses (enrollments and curriculum are embedded)
    await database.courses.create_index("course_id", unique=True)
    await database.courses.create_index("slug", unique=True)
    await database.courses.create_index("instructor_id")
    await database.courses.create_index([("status", 1), ("approval_status", 1)])
    await database.courses.create_index("enrollments.student_id")

    # Users
    await database.users.create_index("user_id", unique=True)
    await database.users.create_index("email", unique=True)
    await database.users.create_index([("role", 1), ("instructor_status", 1)])
    await database.users.create_index("earned_certificates.certificate_id")

    # External certificate programs
    await database.certificate_programs.create_index("program_id", unique=True)
    await database.certificate_programs.create_index([("instructor_id", 1), ("status", 1)])

    # Student uploads: one per (student, program)
    await database.student_certificates.create_index("student_cert_id", unique=True)
    await database.student_certificates.create_index(
        [("student_id", 1), ("program_id", 1)], unique=True
    )
    await database.student_certificates.create_index("status")

    logger.info("Course hub indexes created")

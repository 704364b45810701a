from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

# ==================== ENUMS ====================

class Role(str, Enum):
    STUDENT = "student"
    INSTRUCTOR = "instructor"
    ADMIN = "admin"

class InstructorStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

# ==================== REQUEST MODELS ====================

EMAIL_PATTERN = r"^[\w.+-]+@[\w-]+(\.[\w-]+)*\.\w{2,}$"

class UserRegister(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    email: str = Field(..., pattern=EMAIL_PATTERN)
    role: Role = Role.STUDENT  # requested role, final role decided by AccessPolicy

    @field_validator("name")
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Please add a name")
        return v

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

# ==================== RESPONSE MODELS ====================

class UserPublic(BaseModel):
    user_id: str
    name: str
    email: str
    role: Role
    instructor_status: Optional[InstructorStatus] = None
    profile_points: int = 0
    badges: List[str] = []
    created_at: Optional[datetime] = None

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

# ==================== ENUMS ====================

class ProgramStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    DRAFT = "Draft"

class StudentCertStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

class FileType(str, Enum):
    IMAGE = "image"
    PDF = "pdf"

# ==================== EXTERNAL CERTIFICATE PROGRAMS ====================

LINK_PATTERN = r"^https?://[\w.-]+\.[a-zA-Z]{2,}(:\d+)?([/?#]\S*)?$"

class ProgramCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    genre: str = Field(..., min_length=1)
    link: str = Field(..., pattern=LINK_PATTERN)
    status: ProgramStatus = ProgramStatus.DRAFT
    thumbnail_url: Optional[str] = None
    points: Optional[int] = Field(None, ge=0)  # unset -> DEFAULT_PROGRAM_POINTS on approval

class ProgramUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    genre: Optional[str] = None
    link: Optional[str] = Field(None, pattern=LINK_PATTERN)
    status: Optional[ProgramStatus] = None
    thumbnail_url: Optional[str] = None
    points: Optional[int] = Field(None, ge=0)

# ==================== STUDENT UPLOADS ====================

class CertificateFile(BaseModel):
    """What the file store hands back after saving an upload"""
    upload_url: str
    file_name: str = ""
    file_type: FileType = FileType.IMAGE

class StudentCertReview(BaseModel):
    note: Optional[str] = None

# ==================== RESPONSES ====================

class RedirectResult(BaseModel):
    cert_link: str
    already_tracked: bool

class UploadResult(BaseModel):
    status: StudentCertStatus
    student_cert_id: str

class ReviewResult(BaseModel):
    status: StudentCertStatus
    student_cert_id: str
    points_awarded: Optional[int] = None
    admin_note: str = ""

class IssuedCertificate(BaseModel):
    certificate_id: str
    course_id: str
    issued_at: datetime
    certificate_url: str
    points_earned: int
    total_points: int
    new_badges: List[str] = []

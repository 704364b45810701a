from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

# ==================== ENUMS ====================

class CourseCategory(str, Enum):
    DEVELOPMENT = "Development"
    BUSINESS = "Business"
    DESIGN = "Design"
    MARKETING = "Marketing"
    LIFESTYLE = "Lifestyle"
    IT_SOFTWARE = "IT & Software"

class CourseLevel(str, Enum):
    ALL_LEVELS = "All Levels"
    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    EXPERT = "Expert"

class CourseStatus(str, Enum):
    DRAFT = "Draft"
    ACTIVE = "Active"
    INACTIVE = "Inactive"

class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

class LessonType(str, Enum):
    VIDEO = "video"
    TEXT = "text"
    QUIZ = "quiz"

# ==================== LESSON EXTRAS ====================

class Resource(BaseModel):
    title: str
    url: Optional[str] = None
    file_url: Optional[str] = None

    @model_validator(mode="after")
    def needs_location(self):
        if not (self.url or self.file_url):
            raise ValueError("Resource needs a url or a file_url")
        return self

class CodeSnippet(BaseModel):
    language: str
    code: str

class QuizOption(BaseModel):
    text: str
    is_correct: bool = False

class Quiz(BaseModel):
    question: str = Field(..., min_length=1)
    options: List[QuizOption] = Field(..., min_length=2)

    @field_validator("options")
    @classmethod
    def exactly_one_correct(cls, v):
        correct = sum(1 for option in v if option.is_correct)
        if correct != 1:
            raise ValueError(f"Quiz must have exactly one correct option, got {correct}")
        return v

# ==================== CURRICULUM TREE ====================
# Section -> Lesson -> SubPart -> SubSubPart. SubSubPart has no children,
# so depth is capped by the types themselves.

class ContentBlock(BaseModel):
    title: str
    video_key: Optional[str] = None
    video_duration: int = Field(0, ge=0)  # seconds
    description: str = ""
    is_free: bool = False  # preview without enrollment
    resources: List[Resource] = []
    code_snippets: List[CodeSnippet] = []
    quizzes: List[Quiz] = []

    @field_validator("title")
    @classmethod
    def title_required(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Title is required")
        return v

    @field_validator("description")
    @classmethod
    def strip_description(cls, v):
        return v.strip()

class SubSubPart(ContentBlock):
    pass

class SubPart(ContentBlock):
    sub_sub_parts: List[SubSubPart] = []

class Lesson(ContentBlock):
    type: LessonType = LessonType.VIDEO
    content: Optional[str] = None  # markdown for text lessons
    sub_parts: List[SubPart] = []

    @model_validator(mode="after")
    def video_needs_key(self):
        if self.type == LessonType.VIDEO and not self.video_key:
            raise ValueError("Video lessons require a video_key")
        return self

class Section(BaseModel):
    title: str
    lessons: List[Lesson] = []

    @field_validator("title")
    @classmethod
    def title_required(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Section title is required")
        return v

# ==================== SYLLABUS (display only) ====================

class SyllabusSubSubTopic(BaseModel):
    title: str
    description: str = ""
    duration: str = ""

class SyllabusSubTopic(SyllabusSubSubTopic):
    sub_topics: List[SyllabusSubSubTopic] = []

class SyllabusTopic(SyllabusSubSubTopic):
    sub_topics: List[SyllabusSubTopic] = []

# ==================== COURSE REQUESTS ====================

class CourseBase(BaseModel):
    subtitle: Optional[str] = Field(None, max_length=200)
    language: str = "English"
    discount_price: Optional[float] = Field(None, ge=0)
    thumbnail_url: Optional[str] = None
    learning_points: List[str] = Field([], max_length=15)
    requirements: List[str] = []
    tags: List[str] = []

class CourseCreate(CourseBase):
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1)
    category: CourseCategory
    level: CourseLevel = CourseLevel.ALL_LEVELS
    price: float = Field(0, ge=0)
    points_required: int = Field(0, ge=0)
    sections: List[Section] = []
    syllabus: List[SyllabusTopic] = []

    @model_validator(mode="after")
    def discount_below_price(self):
        if self.discount_price and self.discount_price > self.price:
            raise ValueError("Discount price should be less than regular price")
        return self

class CourseUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    subtitle: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    category: Optional[CourseCategory] = None
    level: Optional[CourseLevel] = None
    price: Optional[float] = Field(None, ge=0)
    discount_price: Optional[float] = Field(None, ge=0)
    points_required: Optional[int] = Field(None, ge=0)
    status: Optional[CourseStatus] = None
    thumbnail_url: Optional[str] = None
    learning_points: Optional[List[str]] = Field(None, max_length=15)
    requirements: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    sections: Optional[List[Section]] = None  # replaced wholesale
    syllabus: Optional[List[SyllabusTopic]] = None

class CourseRejection(BaseModel):
    reason: Optional[str] = None

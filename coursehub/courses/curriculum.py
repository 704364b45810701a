"""
Curriculum helpers
File: coursehub/courses/curriculum.py

Validation of the nested section tree, slugs, and totals derived on demand.
Nothing here touches the database.
"""

import re
from typing import Iterable, List, Union

from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from coursehub.core.errors import ValidationError
from coursehub.courses.models import LessonType, Section, SyllabusTopic

_SECTIONS = TypeAdapter(List[Section])
_SYLLABUS = TypeAdapter(List[SyllabusTopic])

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(title: str) -> str:
    """Lowercase, collapse every non-alphanumeric run to one hyphen, trim hyphens"""
    return _NON_ALNUM.sub("-", title.lower()).strip("-")


def slug_candidates(title: str) -> Iterable[str]:
    """
    base, base-2, base-3, ...
    Titles with no usable characters fall back to "course".
    """
    base = slugify(title) or "course"
    yield base
    n = 2
    while True:
        yield f"{base}-{n}"
        n += 1


def _field_errors(exc: PydanticValidationError) -> List[dict]:
    return [
        {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
        for err in exc.errors()
    ]


def replace_sections(sections: List[Union[Section, dict]]) -> List[dict]:
    """
    Validate a full replacement curriculum and return it as storable dicts.
    No diffing: the caller swaps the whole list.
    """
    raw = [s.model_dump() if isinstance(s, Section) else s for s in sections]
    try:
        parsed = _SECTIONS.validate_python(raw)
    except PydanticValidationError as exc:
        raise ValidationError("Invalid curriculum", errors=_field_errors(exc))
    return [section.model_dump(mode="json") for section in parsed]


def replace_syllabus(topics: List[Union[SyllabusTopic, dict]]) -> List[dict]:
    raw = [t.model_dump() if isinstance(t, SyllabusTopic) else t for t in topics]
    try:
        parsed = _SYLLABUS.validate_python(raw)
    except PydanticValidationError as exc:
        raise ValidationError("Invalid syllabus", errors=_field_errors(exc))
    return [topic.model_dump(mode="json") for topic in parsed]


def total_duration(course: dict) -> int:
    """Seconds of video across all video lessons"""
    total = 0
    for section in course.get("sections") or []:
        for lesson in section.get("lessons") or []:
            if lesson.get("type", LessonType.VIDEO.value) == LessonType.VIDEO.value:
                total += lesson.get("video_duration") or 0
    return total


def total_lessons(course: dict) -> int:
    return sum(len(section.get("lessons") or []) for section in course.get("sections") or [])


def with_totals(course: dict) -> dict:
    course["total_duration"] = total_duration(course)
    course["total_lessons"] = total_lessons(course)
    return course

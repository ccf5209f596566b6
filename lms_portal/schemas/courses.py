from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from datetime import datetime
from uuid import UUID

from lms_portal.schemas.common import RichContent


class LessonIn(BaseModel):
    type: Literal["lecture", "assignment", "quiz", "reading"] = "lecture"
    title: Optional[str] = None
    description: Optional[RichContent] = None
    scheduled_at: Optional[datetime] = None
    total_marks: Optional[float] = None
    min_pass_marks: Optional[float] = None
    attachment_required: bool = False


class SectionIn(BaseModel):
    title: Optional[str] = None
    lessons: List[LessonIn] = []


class CourseCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    teacher_id: Optional[UUID] = None
    category: Optional[str] = None
    level: Optional[str] = None
    what_students_will_learn: Optional[List[str]] = None
    cover_image: Optional[str] = None
    tenure_start: Optional[datetime] = None
    tenure_end: Optional[datetime] = None
    student_ids: Optional[List[UUID]] = None
    curriculum: Optional[List[SectionIn]] = None


class CourseUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    teacher_id: Optional[UUID] = None
    category: Optional[str] = None
    level: Optional[str] = None
    cover_image: Optional[str] = None
    tenure_start: Optional[datetime] = None
    tenure_end: Optional[datetime] = None


class EnrollmentAdd(BaseModel):
    student_id: UUID


class RosterStudent(BaseModel):
    id: str
    name: str = ""
    email: str = ""
    image_url: Optional[str] = None

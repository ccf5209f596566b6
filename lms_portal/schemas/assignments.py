from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from uuid import UUID

from lms_portal.schemas.common import AttachmentIn, RichContent


class AssignmentCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[RichContent] = None
    course_id: UUID
    due_at: Optional[datetime] = None
    total_marks: Optional[float] = None
    min_pass_marks: Optional[float] = None
    selected_students: Optional[List[UUID]] = None
    attachments: Optional[List[AttachmentIn]] = None


class AssignmentSubmit(BaseModel):
    content: Optional[RichContent] = None
    attachments: Optional[List[AttachmentIn]] = None


class GradeSubmission(BaseModel):
    grade: float = Field(..., ge=0)

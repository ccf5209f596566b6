from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime
from uuid import UUID


class QuestionIn(BaseModel):
    question_text: str = Field(..., min_length=1)
    question_type: str = "multiple_choice"
    options: Any = None
    correct_answer: Optional[str] = None
    points: float = 1
    sort_order: int = 0


class QuizCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    course_id: UUID
    due_at: Optional[datetime] = None
    total_marks: Optional[float] = None
    min_pass_marks: Optional[float] = None
    selected_students: Optional[List[UUID]] = None
    questions: Optional[List[QuestionIn]] = None


class QuizSubmit(BaseModel):
    answers: Dict[str, Any]  # question id -> answer


class QuizSubmitResponse(BaseModel):
    ok: bool = True
    id: str
    score: float


class ScoreUpdate(BaseModel):
    score: float = Field(..., ge=0)

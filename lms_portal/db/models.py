from pydantic import BaseModel
from typing import Any, Optional
from datetime import datetime

# User model (identity record)
class User(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    role: str  # 'admin', 'teacher', 'student'
    image_url: Optional[str] = None
    created_at: Optional[datetime] = None

# Issued auth session
class AuthSession(BaseModel):
    id: Optional[str] = None
    user_id: str
    session_token: str
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    expires_at: datetime
    created_at: Optional[datetime] = None

# Teacher profile (1:1 with users)
class TeacherProfile(BaseModel):
    id: str
    user_id: str
    phone: Optional[str] = None
    join_date: Optional[datetime] = None
    qualification: Optional[str] = None

# Student profile (1:1 with users)
class StudentProfile(BaseModel):
    id: str
    user_id: str
    student_id: Optional[str] = None
    fee_status: Optional[str] = None
    gender: Optional[str] = None
    join_date: Optional[datetime] = None
    phone: Optional[str] = None

# Course model
class Course(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    teacher_id: Optional[str] = None  # None means unassigned
    tenure_start: Optional[datetime] = None
    tenure_end: Optional[datetime] = None
    created_at: Optional[datetime] = None

# Scheduled live meeting of a course
class CourseSession(BaseModel):
    id: str
    course_id: str
    teacher_id: Optional[str] = None
    title: Optional[str] = None
    scheduled_at: datetime
    duration_minutes: int = 60
    status: str = "upcoming"  # 'upcoming', 'completed', 'cancelled'
    daily_room_id: Optional[str] = None
    daily_room_url: Optional[str] = None

# Assignment model
class Assignment(BaseModel):
    id: str
    course_id: str
    title: str
    description_richjson: Any = None
    due_at: Optional[datetime] = None
    total_marks: Optional[float] = None
    min_pass_marks: Optional[float] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

# Quiz model
class Quiz(BaseModel):
    id: str
    course_id: str
    title: str
    description: Optional[str] = None
    due_at: Optional[datetime] = None
    total_marks: Optional[float] = None
    min_pass_marks: Optional[float] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

# Assignment submission, unique per (assignment_id, student_id)
class AssignmentSubmission(BaseModel):
    id: str
    assignment_id: str
    student_id: str
    content_richjson: Any = None
    submitted_at: Optional[datetime] = None
    grade: Optional[float] = None
    status: Optional[str] = None

# Quiz submission, unique per (quiz_id, student_id)
class QuizSubmission(BaseModel):
    id: str
    quiz_id: str
    student_id: str
    answers: Any = None
    score: Optional[float] = None
    submitted_at: Optional[datetime] = None

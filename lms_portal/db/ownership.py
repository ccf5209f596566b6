"""
Ownership store: the secondary lookups that decide whether a resource
belongs to, or is visible to, the acting user.

Nothing here is cached; every call reads the current rows.
"""
from typing import List, Optional

from supabase import Client

from lms_portal.db.identity import first_row
from lms_portal.db.models import (
    Assignment,
    AssignmentSubmission,
    Course,
    CourseSession,
    Quiz,
    QuizSubmission,
    StudentProfile,
    TeacherProfile,
)


class OwnershipStore:
    def __init__(self, client: Client):
        self.client = client

    def _one(self, table: str, **filters) -> Optional[dict]:
        query = self.client.table(table).select("*")
        for column, value in filters.items():
            query = query.eq(column, value)
        return first_row(query.limit(1).execute())

    # -------------------------
    # PROFILES
    # -------------------------
    def teacher_profile_for_user(self, user_id: str) -> Optional[TeacherProfile]:
        row = self._one("teachers", user_id=user_id)
        return TeacherProfile(**row) if row else None

    def student_profile_for_user(self, user_id: str) -> Optional[StudentProfile]:
        row = self._one("students", user_id=user_id)
        return StudentProfile(**row) if row else None

    # -------------------------
    # RESOURCES
    # -------------------------
    def get_course(self, course_id: str) -> Optional[Course]:
        row = self._one("courses", id=course_id)
        return Course(**row) if row else None

    def get_session(self, session_id: str) -> Optional[CourseSession]:
        row = self._one("course_sessions", id=session_id)
        return CourseSession(**row) if row else None

    def get_assignment(self, assignment_id: str) -> Optional[Assignment]:
        row = self._one("assignments", id=assignment_id)
        return Assignment(**row) if row else None

    def get_quiz(self, quiz_id: str) -> Optional[Quiz]:
        row = self._one("quizzes", id=quiz_id)
        return Quiz(**row) if row else None

    def get_assignment_submission(self, submission_id: str) -> Optional[AssignmentSubmission]:
        row = self._one("assignment_submissions", id=submission_id)
        return AssignmentSubmission(**row) if row else None

    def get_quiz_submission(self, submission_id: str) -> Optional[QuizSubmission]:
        row = self._one("quiz_submissions", id=submission_id)
        return QuizSubmission(**row) if row else None

    def get_conversation(self, conversation_id: str) -> Optional[dict]:
        return self._one("conversations", id=conversation_id)

    # -------------------------
    # RELATIONS
    # -------------------------
    def is_enrolled(self, course_id: str, student_id: str) -> bool:
        return self._one("course_students", course_id=course_id, student_id=student_id) is not None

    def is_assigned_to_session(self, session_id: str, student_id: str) -> bool:
        return self._one("session_students", session_id=session_id, student_id=student_id) is not None

    def is_assigned_to_assignment(self, assignment_id: str, student_id: str) -> bool:
        return self._one("assignment_students", assignment_id=assignment_id, student_id=student_id) is not None

    def is_assigned_to_quiz(self, quiz_id: str, student_id: str) -> bool:
        return self._one("quiz_students", quiz_id=quiz_id, student_id=student_id) is not None

    def is_participant(self, conversation_id: str, user_id: str) -> bool:
        return self._one("conversation_participants", conversation_id=conversation_id, user_id=user_id) is not None

    # -------------------------
    # VISIBILITY
    # -------------------------
    def visible_course_ids(self, role: str, user_id: str) -> List[str]:
        """Course ids visible to a user: all for admins, owned for teachers, enrolled for students."""
        if role == "admin":
            rows = self.client.table("courses").select("id").execute().data
            return [row["id"] for row in rows]
        if role == "teacher":
            teacher = self.teacher_profile_for_user(user_id)
            if not teacher:
                return []
            rows = self.client.table("courses").select("id").eq("teacher_id", teacher.id).execute().data
            return [row["id"] for row in rows]
        if role == "student":
            student = self.student_profile_for_user(user_id)
            if not student:
                return []
            rows = self.client.table("course_students").select("course_id").eq("student_id", student.id).execute().data
            return [row["course_id"] for row in rows]
        return []

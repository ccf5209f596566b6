"""
Route guard.

Every API route takes an ``Authorizer`` (or at least an ``Identity``) as a
dependency. ``require_identity`` turns the cookie or bearer token into an
Identity or raises Unauthenticated; ``Authorizer.require`` evaluates the
policy table for one (resource, action, resource reference) triple, doing
the ownership lookups against current data, and raises Forbidden or
NotFound before the handler touches anything else.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import Depends, Request
from supabase import Client

from lms_portal.core.config import settings
from lms_portal.core.errors import AppError, Forbidden, NotFound, Unauthenticated
from lms_portal.core.policy import (
    Action,
    Decision,
    NO_OWNERSHIP,
    Ownership,
    Resource,
    Role,
    can_access,
    requires_ownership,
)
from lms_portal.core.security import Identity, resolve_session
from lms_portal.db.identity import IdentityStore
from lms_portal.db.models import StudentProfile, TeacherProfile
from lms_portal.db.ownership import OwnershipStore
from lms_portal.db.supabase import get_supabase

logger = logging.getLogger(__name__)

# Denials on these pairs look exactly like a missing resource
CONCEALED = {
    (Resource.COURSE, Action.READ),
    (Resource.COURSE_ROSTER, Action.READ),
    (Resource.COURSE_FILE, Action.READ),
    (Resource.COURSE_FILE, Action.CREATE),
    (Resource.COURSE_FILE, Action.DELETE),
}


@dataclass(frozen=True)
class ResourceRef:
    """Points at the row whose ownership decides a request."""
    kind: str  # 'course', 'session', 'assignment', 'quiz', 'assignment_submission', 'quiz_submission', 'conversation'
    id: str


def course_ref(course_id: str) -> ResourceRef:
    return ResourceRef("course", course_id)


def session_ref(session_id: str) -> ResourceRef:
    return ResourceRef("session", session_id)


def assignment_ref(assignment_id: str) -> ResourceRef:
    return ResourceRef("assignment", assignment_id)


def quiz_ref(quiz_id: str) -> ResourceRef:
    return ResourceRef("quiz", quiz_id)


def conversation_ref(conversation_id: str) -> ResourceRef:
    return ResourceRef("conversation", conversation_id)


def get_identity_store(client: Client = Depends(get_supabase)) -> IdentityStore:
    return IdentityStore(client)


def get_ownership_store(client: Client = Depends(get_supabase)) -> OwnershipStore:
    return OwnershipStore(client)


def extract_token(request: Request) -> Optional[str]:
    """Session token from the cookie, falling back to an Authorization bearer header."""
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if token:
        return token
    authorization = request.headers.get("Authorization")
    if authorization and authorization.lower().startswith("bearer "):
        return authorization.split(" ", 1)[1].strip() or None
    return None


def require_identity(request: Request, store: IdentityStore = Depends(get_identity_store)) -> Identity:
    """Resolve the caller or fail with Unauthenticated."""
    identity = resolve_session(store, extract_token(request))
    if identity is None:
        raise Unauthenticated()
    return identity


class Authorizer:
    """Per-request authorization bound to one identity."""

    def __init__(self, identity: Identity, store: OwnershipStore):
        self.identity = identity
        self.store = store
        self.role = Role.parse(identity.role)
        self._teacher: Optional[TeacherProfile] = None
        self._student: Optional[StudentProfile] = None

    # -------------------------
    # PROFILES
    # -------------------------
    def teacher_profile(self) -> Optional[TeacherProfile]:
        if self._teacher is None and self.role is Role.TEACHER:
            self._teacher = self.store.teacher_profile_for_user(self.identity.user_id)
        return self._teacher

    def student_profile(self) -> Optional[StudentProfile]:
        if self._student is None and self.role is Role.STUDENT:
            self._student = self.store.student_profile_for_user(self.identity.user_id)
        return self._student

    def require_teacher_profile(self) -> TeacherProfile:
        teacher = self.teacher_profile()
        if teacher is None:
            raise Forbidden("Teacher profile not found")
        return teacher

    def require_student_profile(self) -> StudentProfile:
        student = self.student_profile()
        if student is None:
            raise Forbidden("Student profile not found")
        return student

    # -------------------------
    # OWNERSHIP
    # -------------------------
    def _owns_course(self, course_id: Optional[str]) -> bool:
        if not course_id:
            return False
        course = self.store.get_course(course_id)
        return course is not None and course.teacher_id is not None \
            and course.teacher_id == self.require_teacher_profile().id

    def _load(self, ref: ResourceRef) -> Any:
        loaders = {
            "course": (self.store.get_course, "Course not found"),
            "session": (self.store.get_session, "Session not found"),
            "assignment": (self.store.get_assignment, "Assignment not found"),
            "quiz": (self.store.get_quiz, "Quiz not found"),
            "assignment_submission": (self.store.get_assignment_submission, "Submission not found"),
            "quiz_submission": (self.store.get_quiz_submission, "Submission not found"),
            "conversation": (self.store.get_conversation, "Conversation not found"),
        }
        if ref.kind not in loaders:
            raise Forbidden()
        loader, missing = loaders[ref.kind]
        obj = loader(ref.id)
        if obj is None:
            raise NotFound(missing)
        return obj

    def _ownership(self, ref: ResourceRef, obj: Any) -> Ownership:
        user_id = self.identity.user_id

        if ref.kind == "conversation":
            participant = self.store.is_participant(obj["id"], user_id)
            if not participant and obj.get("type") == "group" and obj.get("course_id"):
                participant = obj["course_id"] in self.store.visible_course_ids(self.identity.role, user_id)
            return Ownership(participant=participant)

        if self.role is Role.TEACHER:
            if ref.kind == "course":
                return Ownership(owner=obj.teacher_id is not None and obj.teacher_id == self.require_teacher_profile().id)
            if ref.kind == "session":
                return Ownership(owner=obj.teacher_id is not None and obj.teacher_id == self.require_teacher_profile().id)
            if ref.kind in ("assignment", "quiz"):
                return Ownership(owner=self._owns_course(obj.course_id))
            if ref.kind == "assignment_submission":
                assignment = self.store.get_assignment(obj.assignment_id)
                return Ownership(owner=assignment is not None and self._owns_course(assignment.course_id))
            if ref.kind == "quiz_submission":
                quiz = self.store.get_quiz(obj.quiz_id)
                return Ownership(owner=quiz is not None and self._owns_course(quiz.course_id))

        if self.role is Role.STUDENT:
            student = self.require_student_profile()
            if ref.kind == "course":
                return Ownership(enrolled=self.store.is_enrolled(obj.id, student.id))
            if ref.kind == "session":
                return Ownership(assigned=self.store.is_assigned_to_session(obj.id, student.id))
            if ref.kind == "assignment":
                return Ownership(assigned=self.store.is_assigned_to_assignment(obj.id, student.id))
            if ref.kind == "quiz":
                return Ownership(assigned=self.store.is_assigned_to_quiz(obj.id, student.id))

        return NO_OWNERSHIP

    # -------------------------
    # GUARD
    # -------------------------
    def require(self, resource: Resource, action: Action, ref: Optional[ResourceRef] = None) -> Any:
        """
        Allow or raise.

        Returns the loaded row named by ``ref`` (None when no ref is given).
        Lookup failures deny; they are never read as permission.
        """
        obj = None
        ownership = NO_OWNERSHIP
        try:
            if ref is not None:
                obj = self._load(ref)
                if requires_ownership(self.role, resource, action):
                    ownership = self._ownership(ref, obj)
        except AppError as exc:
            if isinstance(exc, Forbidden) and (resource, action) in CONCEALED:
                raise NotFound(exc.message) from exc
            raise
        except Exception:
            logger.exception("Ownership lookup failed for %s %s; denying", resource.value, action.value)
            raise Forbidden()

        if can_access(self.role, resource, action, ownership) is Decision.DENY:
            logger.info(
                "Denied %s on %s for user %s (role %s)",
                action.value, resource.value, self.identity.user_id, self.identity.role,
            )
            if (resource, action) in CONCEALED:
                raise NotFound(f"{resource.value.split('_')[0].capitalize()} not found")
            raise Forbidden()
        return obj


def get_authorizer(identity: Identity = Depends(require_identity),
                   store: OwnershipStore = Depends(get_ownership_store)) -> Authorizer:
    return Authorizer(identity, store)

from fastapi import APIRouter, Depends
from typing import List, Optional
import logging

from lms_portal.core.clock import to_iso, utcnow
from lms_portal.core.dependencies import Authorizer, course_ref, get_authorizer
from lms_portal.core.errors import InvalidRequest, NotFound
from lms_portal.core.policy import Action, Resource, Role
from lms_portal.db.identity import first_row
from lms_portal.db.queries import index_by, insert_links, link_rows, profiles_with_users, rows_by_ids
from lms_portal.schemas.common import OkResponse
from lms_portal.schemas.courses import CourseCreate, CourseUpdate, EnrollmentAdd, RosterStudent, SectionIn

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Courses"])

# Room references stay off this listing; enrolled students may not be assigned
COURSE_SESSION_COLUMNS = "id, title, scheduled_at, duration_minutes, status"


def _roster(authz: Authorizer, course_id: str) -> List[RosterStudent]:
    student_ids = link_rows(authz.store.client, "course_students", "course_id", course_id, "student_id")
    students = profiles_with_users(authz.store.client, "students", student_ids)
    return [
        RosterStudent(
            id=student["id"],
            name=(student["user"] or {}).get("name") or "",
            email=(student["user"] or {}).get("email") or "",
            image_url=(student["user"] or {}).get("image_url"),
        )
        for student in students
    ]


def _with_teachers(authz: Authorizer, courses: List[dict]) -> List[dict]:
    teachers = index_by(profiles_with_users(
        authz.store.client, "teachers", [course.get("teacher_id") for course in courses]
    ))
    return [{**course, "teacher": teachers.get(course.get("teacher_id"))} for course in courses]


def _create_curriculum(authz: Authorizer, course_id: str, teacher_id: Optional[str],
                       sections: List[SectionIn], student_ids: List[str]) -> None:
    """
    Create sessions, assignments and quizzes for each curriculum lesson.

    Lessons without a date are scheduled now. Every item is assigned to the
    students enrolled at creation time. A failing lesson is logged and skipped.
    """
    client = authz.store.client
    now = utcnow()
    for section in sections:
        fallback = section.title or "Untitled Section"
        for lesson in section.lessons:
            scheduled_at = to_iso(lesson.scheduled_at or now)
            try:
                if lesson.type == "lecture":
                    row = client.table("course_sessions").insert({
                        "course_id": course_id,
                        "title": lesson.title or f"Session from {fallback}",
                        "teacher_id": teacher_id,
                        "scheduled_at": scheduled_at,
                        "duration_minutes": 60,
                        "status": "upcoming",
                    }).execute().data[0]
                    insert_links(client, "session_students", "session_id", row["id"], "student_id", student_ids)
                elif lesson.type == "assignment":
                    row = client.table("assignments").insert({
                        "course_id": course_id,
                        "title": lesson.title or f"Assignment from {fallback}",
                        "description_richjson": lesson.description,
                        "due_at": scheduled_at,
                        "total_marks": lesson.total_marks,
                        "min_pass_marks": lesson.min_pass_marks,
                        "created_by": teacher_id,
                    }).execute().data[0]
                    insert_links(client, "assignment_students", "assignment_id", row["id"], "student_id", student_ids)
                elif lesson.type == "quiz":
                    row = client.table("quizzes").insert({
                        "course_id": course_id,
                        "title": lesson.title or f"Quiz from {fallback}",
                        "description": lesson.description if isinstance(lesson.description, str) else None,
                        "due_at": scheduled_at,
                        "total_marks": lesson.total_marks,
                        "created_by": teacher_id,
                        "attachment_required": lesson.attachment_required,
                    }).execute().data[0]
                    insert_links(client, "quiz_students", "quiz_id", row["id"], "student_id", student_ids)
            except Exception as e:
                logger.error("Failed to create %s lesson for course %s: %s", lesson.type, course_id, e)


# -------------------------
# COURSES
# -------------------------
@router.get("/")
def list_courses(authz: Authorizer = Depends(get_authorizer)):
    """
    List courses visible to the caller: all for admins, owned for teachers,
    enrolled for students. Each carries its teacher and a student count.
    """
    authz.require(Resource.COURSE, Action.LIST)
    client = authz.store.client

    course_ids = authz.store.visible_course_ids(authz.identity.role, authz.identity.user_id)
    courses = rows_by_ids(client, "courses", course_ids)
    courses.sort(key=lambda course: course.get("created_at") or "", reverse=True)

    enrollments = rows_by_ids(client, "course_students", course_ids, column="course_id", columns="course_id")
    counts = {}
    for row in enrollments:
        counts[row["course_id"]] = counts.get(row["course_id"], 0) + 1

    return {"courses": [
        {**course, "student_count": counts.get(course["id"], 0)}
        for course in _with_teachers(authz, courses)
    ]}


@router.post("/", response_model=OkResponse)
def create_course(payload: CourseCreate, authz: Authorizer = Depends(get_authorizer)):
    """
    Create a course.

    Admins may assign any teacher or leave it unassigned; a teacher always
    becomes the owner of the course they create. Optional ``student_ids``
    are enrolled and an optional ``curriculum`` is expanded into sessions,
    assignments and quizzes.
    """
    authz.require(Resource.COURSE, Action.CREATE)
    client = authz.store.client

    teacher_id = str(payload.teacher_id) if payload.teacher_id else None
    if authz.role is Role.TEACHER:
        teacher_id = authz.require_teacher_profile().id
    elif teacher_id and not first_row(client.table("teachers").select("id").eq("id", teacher_id).limit(1).execute()):
        raise InvalidRequest("Teacher not found")

    course = client.table("courses").insert({
        "title": payload.title,
        "description": payload.description,
        "teacher_id": teacher_id,
        "category": payload.category,
        "level": payload.level,
        "what_students_will_learn": payload.what_students_will_learn,
        "cover_image": payload.cover_image,
        "tenure_start": to_iso(payload.tenure_start),
        "tenure_end": to_iso(payload.tenure_end),
        "created_at": utcnow().isoformat(),
    }).execute().data[0]

    student_ids = list(dict.fromkeys(str(student_id) for student_id in payload.student_ids or []))
    try:
        insert_links(client, "course_students", "course_id", course["id"], "student_id", student_ids)
    except Exception as e:
        logger.error("Failed to enrol students in course %s: %s", course["id"], e)

    if payload.curriculum:
        _create_curriculum(authz, course["id"], teacher_id, payload.curriculum, student_ids)

    logger.info("Course %s created by user %s", course["id"], authz.identity.user_id)
    return OkResponse(id=course["id"])


@router.get("/{course_id}")
def get_course(course_id: str, authz: Authorizer = Depends(get_authorizer)):
    """Get one course; the roster is included for admins and the owning teacher."""
    authz.require(Resource.COURSE, Action.READ, course_ref(course_id))
    client = authz.store.client

    row = first_row(client.table("courses").select("*").eq("id", course_id).limit(1).execute())
    if row is None:
        raise NotFound("Course not found")
    course = _with_teachers(authz, [row])[0]

    if authz.role is not Role.STUDENT:
        course["students"] = [student.model_dump() for student in _roster(authz, course_id)]
    return {"course": course}


@router.patch("/{course_id}", response_model=OkResponse)
def update_course(course_id: str, payload: CourseUpdate, authz: Authorizer = Depends(get_authorizer)):
    """Update course fields (admin only)."""
    authz.require(Resource.COURSE, Action.UPDATE, course_ref(course_id))

    updates = payload.model_dump(exclude_unset=True)
    if not updates:
        raise InvalidRequest("No fields to update")
    for key in ("tenure_start", "tenure_end"):
        if key in updates:
            updates[key] = to_iso(updates[key])
    if updates.get("teacher_id") is not None:
        updates["teacher_id"] = str(updates["teacher_id"])

    authz.store.client.table("courses").update(updates).eq("id", course_id).execute()
    return OkResponse(id=course_id)


@router.delete("/{course_id}", response_model=OkResponse)
def delete_course(course_id: str, authz: Authorizer = Depends(get_authorizer)):
    """Delete a course (admin only)."""
    authz.require(Resource.COURSE, Action.DELETE, course_ref(course_id))
    authz.store.client.table("courses").delete().eq("id", course_id).execute()
    logger.info("Course %s deleted by user %s", course_id, authz.identity.user_id)
    return OkResponse(id=course_id)


# -------------------------
# ROSTER
# -------------------------
@router.get("/{course_id}/students")
def list_course_students(course_id: str, authz: Authorizer = Depends(get_authorizer)):
    """Students enrolled in a course (admin or owning teacher)."""
    authz.require(Resource.COURSE_ROSTER, Action.READ, course_ref(course_id))
    return {"students": [student.model_dump() for student in _roster(authz, course_id)]}


@router.post("/{course_id}/students", response_model=OkResponse)
def enrol_student(course_id: str, payload: EnrollmentAdd, authz: Authorizer = Depends(get_authorizer)):
    """Enrol a student in a course (admin only)."""
    authz.require(Resource.COURSE_ROSTER, Action.UPDATE, course_ref(course_id))
    client = authz.store.client
    student_id = str(payload.student_id)

    if not first_row(client.table("students").select("id").eq("id", student_id).limit(1).execute()):
        raise NotFound("Student not found")
    if authz.store.is_enrolled(course_id, student_id):
        raise InvalidRequest("Student is already enrolled in this course")

    client.table("course_students").insert({"course_id": course_id, "student_id": student_id}).execute()
    return OkResponse(id=student_id)


@router.delete("/{course_id}/students/{student_id}", response_model=OkResponse)
def unenrol_student(course_id: str, student_id: str, authz: Authorizer = Depends(get_authorizer)):
    """Remove a student from a course (admin only)."""
    authz.require(Resource.COURSE_ROSTER, Action.UPDATE, course_ref(course_id))
    deleted = (
        authz.store.client.table("course_students")
        .delete()
        .eq("course_id", course_id)
        .eq("student_id", student_id)
        .execute()
    )
    if not deleted.data:
        raise NotFound("Enrollment not found")
    return OkResponse(id=student_id)


# -------------------------
# COURSE SESSIONS
# -------------------------
@router.get("/{course_id}/sessions")
def list_course_sessions(course_id: str, authz: Authorizer = Depends(get_authorizer)):
    """Sessions of a course, earliest first (admin, owning teacher or enrolled student)."""
    authz.require(Resource.COURSE, Action.READ, course_ref(course_id))
    sessions = (
        authz.store.client.table("course_sessions")
        .select(COURSE_SESSION_COLUMNS)
        .eq("course_id", course_id)
        .order("scheduled_at")
        .execute()
        .data
    )
    return {"sessions": sessions}

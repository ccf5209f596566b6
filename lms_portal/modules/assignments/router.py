from fastapi import APIRouter, Depends
from typing import List, Optional
import logging

from lms_portal.core.clock import to_iso, utcnow
from lms_portal.core.dependencies import Authorizer, ResourceRef, assignment_ref, course_ref, get_authorizer
from lms_portal.core.policy import Action, Resource, Role
from lms_portal.db.queries import index_by, insert_links, link_rows, profiles_with_users, rows_by_ids
from lms_portal.schemas.assignments import AssignmentCreate, AssignmentSubmit, GradeSubmission
from lms_portal.schemas.common import AttachmentIn, OkResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Assignments"])


def _attachment_rows(key: str, value: str, attachments: Optional[List[AttachmentIn]]) -> List[dict]:
    return [
        {key: value, "file_path": a.file_path, "file_name": a.file_name, "mime": a.mime}
        for a in attachments or []
    ]


def _visible_assignment_ids(authz: Authorizer) -> Optional[List[str]]:
    """None means every assignment."""
    if authz.role is Role.ADMIN:
        return None
    client = authz.store.client
    if authz.role is Role.TEACHER:
        course_ids = authz.store.visible_course_ids(authz.identity.role, authz.identity.user_id)
        return [row["id"] for row in rows_by_ids(client, "assignments", course_ids, column="course_id", columns="id")]
    student = authz.student_profile()
    if student is None:
        return []
    return link_rows(client, "assignment_students", "student_id", student.id, "assignment_id")


@router.get("/assignments")
def list_assignments(authz: Authorizer = Depends(get_authorizer)):
    """
    List assignments with course, attachments and submissions.

    Admins see all, teachers those of their courses (with the assigned
    students), students only those assigned to them and only their own
    submissions.
    """
    authz.require(Resource.ASSIGNMENT, Action.LIST)
    client = authz.store.client

    visible = _visible_assignment_ids(authz)
    if visible is None:
        assignments = client.table("assignments").select("*").execute().data
    else:
        assignments = rows_by_ids(client, "assignments", visible)
    assignments.sort(key=lambda a: a.get("created_at") or "", reverse=True)

    ids = [a["id"] for a in assignments]
    courses = index_by(rows_by_ids(client, "courses", [a["course_id"] for a in assignments], columns="id, title"))
    attachments = rows_by_ids(client, "assignment_attachments", ids, column="assignment_id")
    submissions = rows_by_ids(client, "assignment_submissions", ids, column="assignment_id")
    if authz.role is Role.STUDENT:
        student = authz.student_profile()
        submissions = [s for s in submissions if student and s["student_id"] == student.id]
    submission_files = rows_by_ids(client, "submission_attachments", [s["id"] for s in submissions], column="submission_id")

    result = []
    for assignment in assignments:
        item = {
            **assignment,
            "course": courses.get(assignment["course_id"]),
            "attachments": [a for a in attachments if a["assignment_id"] == assignment["id"]],
            "submissions": [
                {**s, "attachments": [f for f in submission_files if f["submission_id"] == s["id"]]}
                for s in submissions if s["assignment_id"] == assignment["id"]
            ],
        }
        if authz.role is not Role.STUDENT:
            student_ids = link_rows(client, "assignment_students", "assignment_id", assignment["id"], "student_id")
            item["students"] = profiles_with_users(client, "students", student_ids)
        result.append(item)
    return {"assignments": result}


@router.post("/assignments", response_model=OkResponse)
def create_assignment(payload: AssignmentCreate, authz: Authorizer = Depends(get_authorizer)):
    """Create an assignment for a course (admin or owning teacher)."""
    course = authz.require(Resource.ASSIGNMENT, Action.CREATE, course_ref(str(payload.course_id)))
    client = authz.store.client

    teacher = authz.require_teacher_profile() if authz.role is Role.TEACHER else None
    assignment = client.table("assignments").insert({
        "course_id": course.id,
        "title": payload.title,
        "description_richjson": payload.description,
        "due_at": to_iso(payload.due_at),
        "total_marks": payload.total_marks,
        "min_pass_marks": payload.min_pass_marks,
        "created_by": teacher.id if teacher else course.teacher_id,
        "created_at": utcnow().isoformat(),
    }).execute().data[0]

    insert_links(client, "assignment_students", "assignment_id", assignment["id"], "student_id",
                 payload.selected_students or [])
    rows = _attachment_rows("assignment_id", assignment["id"], payload.attachments)
    if rows:
        client.table("assignment_attachments").insert(rows).execute()

    logger.info("Assignment %s created for course %s", assignment["id"], course.id)
    return OkResponse(id=assignment["id"])


@router.post("/assignments/{assignment_id}/submit", response_model=OkResponse)
def submit_assignment(assignment_id: str, payload: AssignmentSubmit, authz: Authorizer = Depends(get_authorizer)):
    """
    Submit (or re-submit) an assignment as the assigned student.

    There is one submission per student and assignment; re-submitting
    replaces the content and, when attachments are given, the attachments.
    """
    authz.require(Resource.ASSIGNMENT, Action.SUBMIT, assignment_ref(assignment_id))
    client = authz.store.client
    student = authz.require_student_profile()

    submission = client.table("assignment_submissions").upsert({
        "assignment_id": assignment_id,
        "student_id": student.id,
        "content_richjson": payload.content,
        "submitted_at": utcnow().isoformat(),
        "status": "submitted",
    }, on_conflict="assignment_id,student_id").execute().data[0]

    rows = _attachment_rows("submission_id", submission["id"], payload.attachments)
    if rows:
        client.table("submission_attachments").delete().eq("submission_id", submission["id"]).execute()
        client.table("submission_attachments").insert(rows).execute()

    return OkResponse(id=submission["id"])


@router.post("/submissions/{submission_id}/grade", response_model=OkResponse)
def grade_submission(submission_id: str, payload: GradeSubmission, authz: Authorizer = Depends(get_authorizer)):
    """Grade an assignment submission (admin or the teacher owning the course)."""
    authz.require(Resource.ASSIGNMENT, Action.GRADE, ResourceRef("assignment_submission", submission_id))
    authz.store.client.table("assignment_submissions").update({
        "grade": payload.grade,
        "status": "graded",
    }).eq("id", submission_id).execute()
    logger.info("Submission %s graded by user %s", submission_id, authz.identity.user_id)
    return OkResponse(id=submission_id)

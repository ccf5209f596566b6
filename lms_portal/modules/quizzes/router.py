from fastapi import APIRouter, Depends
from typing import List, Optional
import logging

from lms_portal.core.clock import to_iso, utcnow
from lms_portal.core.dependencies import Authorizer, ResourceRef, course_ref, get_authorizer, quiz_ref
from lms_portal.core.policy import Action, Resource, Role
from lms_portal.db.queries import index_by, insert_links, link_rows, profiles_with_users, rows_by_ids
from lms_portal.modules.quizzes.scoring import score_quiz
from lms_portal.schemas.common import OkResponse
from lms_portal.schemas.quizzes import QuizCreate, QuizSubmit, QuizSubmitResponse, ScoreUpdate

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Quizzes"])


def _visible_quiz_ids(authz: Authorizer) -> Optional[List[str]]:
    """None means every quiz."""
    if authz.role is Role.ADMIN:
        return None
    client = authz.store.client
    if authz.role is Role.TEACHER:
        course_ids = authz.store.visible_course_ids(authz.identity.role, authz.identity.user_id)
        return [row["id"] for row in rows_by_ids(client, "quizzes", course_ids, column="course_id", columns="id")]
    student = authz.student_profile()
    if student is None:
        return []
    return link_rows(client, "quiz_students", "student_id", student.id, "quiz_id")


@router.get("/")
def list_quizzes(authz: Authorizer = Depends(get_authorizer)):
    """
    List quizzes with course, questions and submissions.

    Students only see quizzes assigned to them, without the correct
    answers, and only their own submissions.
    """
    authz.require(Resource.QUIZ, Action.LIST)
    client = authz.store.client

    visible = _visible_quiz_ids(authz)
    if visible is None:
        quizzes = client.table("quizzes").select("*").execute().data
    else:
        quizzes = rows_by_ids(client, "quizzes", visible)
    quizzes.sort(key=lambda q: q.get("created_at") or "", reverse=True)

    ids = [q["id"] for q in quizzes]
    courses = index_by(rows_by_ids(client, "courses", [q["course_id"] for q in quizzes], columns="id, title"))
    questions = rows_by_ids(client, "quiz_questions", ids, column="quiz_id")
    questions.sort(key=lambda q: q.get("sort_order") or 0)
    submissions = rows_by_ids(client, "quiz_submissions", ids, column="quiz_id")

    is_student = authz.role is Role.STUDENT
    if is_student:
        student = authz.student_profile()
        submissions = [s for s in submissions if student and s["student_id"] == student.id]
        questions = [{k: v for k, v in q.items() if k != "correct_answer"} for q in questions]

    result = []
    for quiz in quizzes:
        item = {
            **quiz,
            "course": courses.get(quiz["course_id"]),
            "questions": [q for q in questions if q["quiz_id"] == quiz["id"]],
            "submissions": [s for s in submissions if s["quiz_id"] == quiz["id"]],
        }
        if not is_student:
            student_ids = link_rows(client, "quiz_students", "quiz_id", quiz["id"], "student_id")
            item["students"] = profiles_with_users(client, "students", student_ids)
        result.append(item)
    return {"quizzes": result}


@router.post("/", response_model=OkResponse)
def create_quiz(payload: QuizCreate, authz: Authorizer = Depends(get_authorizer)):
    """Create a quiz with its questions (admin or owning teacher)."""
    course = authz.require(Resource.QUIZ, Action.CREATE, course_ref(str(payload.course_id)))
    client = authz.store.client

    teacher = authz.require_teacher_profile() if authz.role is Role.TEACHER else None
    quiz = client.table("quizzes").insert({
        "course_id": course.id,
        "title": payload.title,
        "description": payload.description,
        "due_at": to_iso(payload.due_at),
        "total_marks": payload.total_marks,
        "min_pass_marks": payload.min_pass_marks,
        "created_by": teacher.id if teacher else course.teacher_id,
        "created_at": utcnow().isoformat(),
    }).execute().data[0]

    insert_links(client, "quiz_students", "quiz_id", quiz["id"], "student_id", payload.selected_students or [])
    questions = [
        {"quiz_id": quiz["id"], **question.model_dump()}
        for question in payload.questions or []
    ]
    if questions:
        client.table("quiz_questions").insert(questions).execute()

    logger.info("Quiz %s created for course %s with %d questions", quiz["id"], course.id, len(questions))
    return OkResponse(id=quiz["id"])


@router.post("/{quiz_id}/submit", response_model=QuizSubmitResponse)
def submit_quiz(quiz_id: str, payload: QuizSubmit, authz: Authorizer = Depends(get_authorizer)):
    """Submit answers as the assigned student; the score is computed on the spot."""
    authz.require(Resource.QUIZ, Action.SUBMIT, quiz_ref(quiz_id))
    client = authz.store.client
    student = authz.require_student_profile()

    questions = client.table("quiz_questions").select("*").eq("quiz_id", quiz_id).execute().data
    score = score_quiz(questions, payload.answers)

    submission = client.table("quiz_submissions").upsert({
        "quiz_id": quiz_id,
        "student_id": student.id,
        "answers": payload.answers,
        "score": score,
        "submitted_at": utcnow().isoformat(),
    }, on_conflict="quiz_id,student_id").execute().data[0]

    return QuizSubmitResponse(id=submission["id"], score=score)


@router.patch("/submissions/{submission_id}", response_model=OkResponse)
def update_quiz_score(submission_id: str, payload: ScoreUpdate, authz: Authorizer = Depends(get_authorizer)):
    """Override the score of a quiz submission (admin or owning teacher)."""
    authz.require(Resource.QUIZ, Action.GRADE, ResourceRef("quiz_submission", submission_id))
    authz.store.client.table("quiz_submissions").update({"score": payload.score}).eq("id", submission_id).execute()
    return OkResponse(id=submission_id)

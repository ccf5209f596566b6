from fastapi import APIRouter, Depends
from datetime import timedelta
from typing import List, Optional
import logging

from lms_portal.core import clock
from lms_portal.core.config import settings
from lms_portal.core.dependencies import Authorizer, course_ref, get_authorizer, session_ref
from lms_portal.core.errors import AppError, InvalidRequest
from lms_portal.core.join import authorize_join
from lms_portal.core.policy import Action, Resource, Role
from lms_portal.db.queries import index_by, insert_links, link_rows, profiles_with_users, rows_by_ids
from lms_portal.integrations.daily import DailyClient, get_room_provider
from lms_portal.schemas.common import OkResponse
from lms_portal.schemas.sessions import JoinRequest, JoinResponse, RoomResponse, RoomSetup, SessionCreate, SessionUpdate

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Sessions"])

SESSION_COLUMNS = "id, course_id, teacher_id, title, scheduled_at, duration_minutes, status, daily_room_url"


def _decorate(authz: Authorizer, sessions: List[dict], with_students: bool) -> List[dict]:
    client = authz.store.client
    courses = index_by(rows_by_ids(client, "courses", [s["course_id"] for s in sessions], columns="id, title"))
    decorated = []
    for session in sessions:
        item = {**session, "course": courses.get(session["course_id"])}
        if with_students:
            student_ids = link_rows(client, "session_students", "session_id", session["id"], "student_id")
            item["assigned_students"] = [
                {"id": s["id"], "name": (s["user"] or {}).get("name"), "email": (s["user"] or {}).get("email")}
                for s in profiles_with_users(client, "students", student_ids)
            ]
        decorated.append(item)
    return decorated


@router.get("/")
def list_sessions(authz: Authorizer = Depends(get_authorizer)):
    """
    List sessions, latest first.

    Admins see every session and teachers the sessions they teach, both with
    the assigned students. Students see only sessions they are assigned to.
    """
    authz.require(Resource.COURSE_SESSION, Action.LIST)
    client = authz.store.client

    if authz.role is Role.ADMIN:
        sessions = client.table("course_sessions").select(SESSION_COLUMNS).execute().data
    elif authz.role is Role.TEACHER:
        teacher = authz.teacher_profile()
        if teacher is None:
            return {"sessions": []}
        sessions = client.table("course_sessions").select(SESSION_COLUMNS).eq("teacher_id", teacher.id).execute().data
    else:
        student = authz.student_profile()
        if student is None:
            return {"sessions": []}
        session_ids = link_rows(client, "session_students", "student_id", student.id, "session_id")
        sessions = rows_by_ids(client, "course_sessions", session_ids, columns=SESSION_COLUMNS)

    sessions.sort(key=lambda session: session.get("scheduled_at") or "", reverse=True)
    return {"sessions": _decorate(authz, sessions, with_students=authz.role is not Role.STUDENT)}


@router.post("/", response_model=OkResponse)
def create_session(payload: SessionCreate, authz: Authorizer = Depends(get_authorizer)):
    """
    Schedule a session for a course and assign students to it.

    Teachers may only schedule sessions for courses they own. The session's
    teacher is the course's teacher. The video room is set up separately.
    """
    course = authz.require(Resource.COURSE_SESSION, Action.CREATE, course_ref(str(payload.course_id)))
    client = authz.store.client

    teacher_id = authz.require_teacher_profile().id if authz.role is Role.TEACHER else course.teacher_id
    created = client.table("course_sessions").insert({
        "title": payload.title or None,
        "course_id": course.id,
        "teacher_id": teacher_id,
        "scheduled_at": clock.to_iso(payload.scheduled_at),
        "duration_minutes": payload.duration_minutes,
        "status": "upcoming",
    }).execute().data[0]

    insert_links(client, "session_students", "session_id", created["id"], "student_id", payload.selected_students)
    logger.info("Session %s scheduled for course %s", created["id"], course.id)
    return OkResponse(id=created["id"])


@router.patch("/{session_id}", response_model=OkResponse)
def update_session(session_id: str, payload: SessionUpdate, authz: Authorizer = Depends(get_authorizer)):
    """Reschedule or rename a session (admin or owning teacher)."""
    authz.require(Resource.COURSE_SESSION, Action.UPDATE, session_ref(session_id))

    updates = payload.model_dump(exclude_unset=True)
    if not updates:
        raise InvalidRequest("No fields to update")
    if "scheduled_at" in updates:
        if updates["scheduled_at"] is None:
            raise InvalidRequest("scheduled_at cannot be cleared")
        updates["scheduled_at"] = clock.to_iso(updates["scheduled_at"])

    authz.store.client.table("course_sessions").update(updates).eq("id", session_id).execute()
    return OkResponse(id=session_id)


@router.delete("/{session_id}", response_model=OkResponse)
def delete_session(session_id: str, authz: Authorizer = Depends(get_authorizer),
                   rooms: DailyClient = Depends(get_room_provider)):
    """
    Delete a session.

    Its video room is removed on a best-effort basis; a failure there is
    logged and does not undo the deletion.
    """
    session = authz.require(Resource.COURSE_SESSION, Action.DELETE, session_ref(session_id))
    authz.store.client.table("course_sessions").delete().eq("id", session_id).execute()

    if session.daily_room_id:
        try:
            rooms.deprovision_room(session.daily_room_id)
        except AppError as e:
            logger.warning("Room cleanup failed for deleted session %s: %s", session_id, e.message)
    logger.info("Session %s deleted by user %s", session_id, authz.identity.user_id)
    return OkResponse(id=session_id)


@router.post("/{session_id}/room", response_model=RoomResponse)
def setup_room(session_id: str, payload: Optional[RoomSetup] = None, authz: Authorizer = Depends(get_authorizer),
               rooms: DailyClient = Depends(get_room_provider)):
    """
    Provision the video room for a session.

    Idempotent: a session that already has a room keeps it.
    """
    session = authz.require(Resource.COURSE_SESSION, Action.UPDATE, session_ref(session_id))
    if session.daily_room_id and session.daily_room_url:
        return RoomResponse(room_id=session.daily_room_id, url=session.daily_room_url)

    room = rooms.provision_room(session.title or f"Session {session_id}", payload.properties if payload else None)
    try:
        authz.store.client.table("course_sessions").update({
            "daily_room_id": room.room_id,
            "daily_room_url": room.url,
        }).eq("id", session_id).execute()
    except Exception:
        logger.error("Failed to store room %s for session %s; releasing it", room.room_id, session_id)
        try:
            rooms.deprovision_room(room.room_id)
        except AppError as e:
            logger.warning("Room cleanup failed for %s: %s", room.room_id, e.message)
        raise
    return RoomResponse(room_id=room.room_id, url=room.url)


@router.post("/join", response_model=JoinResponse)
def join_session(payload: JoinRequest, authz: Authorizer = Depends(get_authorizer),
                 rooms: DailyClient = Depends(get_room_provider)):
    """
    Get a tokenized join URL for a live session.

    Fails with too_early before the scheduled start, room_unavailable when no
    room was set up, and forbidden for callers not allowed into the session.
    """
    grant = authorize_join(
        authz,
        str(payload.session_id),
        rooms,
        now=clock.utcnow(),
        token_ttl=timedelta(hours=settings.MEETING_TOKEN_TTL_HOURS),
    )
    return JoinResponse(url=grant.url, is_owner=grant.is_owner, expires_at=grant.expires_at)

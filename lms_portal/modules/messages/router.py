from fastapi import APIRouter, Depends
from typing import Dict, List
import logging

from lms_portal.core.clock import utcnow
from lms_portal.core.dependencies import Authorizer, conversation_ref, get_authorizer
from lms_portal.core.errors import Forbidden
from lms_portal.core.policy import Action, Resource, Role
from lms_portal.db.identity import first_row
from lms_portal.db.queries import index_by, link_rows, rows_by_ids, users_by_id
from lms_portal.schemas.common import OkResponse
from lms_portal.schemas.messages import DirectConversationCreate, MessageCreate, MessageResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Messages"])

EPOCH = "1970-01-01T00:00:00+00:00"
USER_COLUMNS = "id, name, role, email"


def _partner_ids(authz: Authorizer) -> List[str]:
    """
    Users the caller may start a direct conversation with.

    Admins may talk to everyone; teachers to the students of their courses
    and to admins; students to the teachers of their courses and to admins.
    """
    client = authz.store.client
    me = authz.identity.user_id
    if authz.role is Role.ADMIN:
        return [row["id"] for row in client.table("users").select("id").neq("id", me).execute().data]

    course_ids = authz.store.visible_course_ids(authz.identity.role, me)
    targets = []
    if authz.role is Role.TEACHER:
        enrolments = rows_by_ids(client, "course_students", course_ids, column="course_id", columns="student_id")
        students = rows_by_ids(client, "students", [row["student_id"] for row in enrolments], columns="user_id")
        targets.extend(row["user_id"] for row in students)
    elif authz.role is Role.STUDENT:
        courses = rows_by_ids(client, "courses", course_ids, columns="teacher_id")
        teachers = rows_by_ids(client, "teachers", [row["teacher_id"] for row in courses], columns="user_id")
        targets.extend(row["user_id"] for row in teachers)
    else:
        return []

    admins = client.table("users").select("id").eq("role", "admin").execute().data
    targets.extend(row["id"] for row in admins)
    return sorted({target for target in targets if target and target != me})


def _last_read_at(authz: Authorizer, conversation_id: str) -> str:
    row = first_row(
        authz.store.client.table("conversation_participants")
        .select("last_read_at")
        .eq("conversation_id", conversation_id)
        .eq("user_id", authz.identity.user_id)
        .limit(1)
        .execute()
    )
    return (row or {}).get("last_read_at") or EPOCH


def _my_conversations(authz: Authorizer) -> List[dict]:
    """Direct conversations I take part in plus group conversations of my courses."""
    client = authz.store.client
    me = authz.identity.user_id

    mine = link_rows(client, "conversation_participants", "user_id", me, "conversation_id")
    direct = [c for c in rows_by_ids(client, "conversations", mine) if c.get("type") == "direct"]

    course_ids = authz.store.visible_course_ids(authz.identity.role, me)
    groups = [c for c in rows_by_ids(client, "conversations", course_ids, column="course_id") if c.get("type") == "group"]
    courses = index_by(rows_by_ids(client, "courses", course_ids, columns="id, title"))

    conversations = []
    for conversation in direct:
        member_ids = link_rows(client, "conversation_participants", "conversation_id", conversation["id"], "user_id")
        others = users_by_id(client, [uid for uid in member_ids if uid != me])
        conversations.append({**conversation, "participants": list(others.values())})
    for conversation in groups:
        course = courses.get(conversation["course_id"])
        conversations.append({**conversation, "course": {"title": course["title"]} if course else None})
    return conversations


def _with_activity(authz: Authorizer, conversations: List[dict]) -> List[dict]:
    client = authz.store.client
    for conversation in conversations:
        last = first_row(
            client.table("messages")
            .select("*")
            .eq("conversation_id", conversation["id"])
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        unread = (
            client.table("messages")
            .select("id")
            .eq("conversation_id", conversation["id"])
            .gt("created_at", _last_read_at(authz, conversation["id"]))
            .neq("sender_id", authz.identity.user_id)
            .execute()
            .data
        )
        conversation["last_message"] = last
        conversation["unread_count"] = len(unread)
    conversations.sort(
        key=lambda c: (c["last_message"] or {}).get("created_at") or c.get("updated_at") or "",
        reverse=True,
    )
    return conversations


def _mark_read(authz: Authorizer, conversation_id: str) -> None:
    authz.store.client.table("conversation_participants").upsert({
        "conversation_id": conversation_id,
        "user_id": authz.identity.user_id,
        "last_read_at": utcnow().isoformat(),
    }, on_conflict="conversation_id,user_id").execute()


@router.get("/conversations")
def list_conversations(authz: Authorizer = Depends(get_authorizer)):
    """My conversations with last message and unread count, most recent first."""
    authz.require(Resource.CONVERSATION, Action.LIST)
    return {"conversations": _with_activity(authz, _my_conversations(authz))}


@router.get("/conversations/partners")
def list_partners(authz: Authorizer = Depends(get_authorizer)):
    """Users I can start a direct conversation with"""
    authz.require(Resource.CONVERSATION, Action.LIST)
    partners = users_by_id(authz.store.client, _partner_ids(authz))
    return {"partners": [{key: user.get(key) for key in ("id", "name", "role", "email")} for user in partners.values()]}


@router.get("/conversations/unread")
def unread_count(authz: Authorizer = Depends(get_authorizer)):
    """Total unread messages across my conversations"""
    authz.require(Resource.CONVERSATION, Action.LIST)
    conversations = _with_activity(authz, _my_conversations(authz))
    return {"unread": sum(c["unread_count"] for c in conversations)}


@router.post("/conversations/direct", response_model=OkResponse)
def open_direct_conversation(payload: DirectConversationCreate, authz: Authorizer = Depends(get_authorizer)):
    """
    Open the direct conversation with another user, creating it if needed.

    Only users returned by the partners endpoint can be targeted.
    """
    authz.require(Resource.CONVERSATION, Action.CREATE)
    client = authz.store.client
    me = authz.identity.user_id

    if payload.user_id not in _partner_ids(authz):
        raise Forbidden("You cannot message this user")

    mine = set(link_rows(client, "conversation_participants", "user_id", me, "conversation_id"))
    theirs = set(link_rows(client, "conversation_participants", "user_id", payload.user_id, "conversation_id"))
    for conversation in rows_by_ids(client, "conversations", mine & theirs):
        if conversation.get("type") == "direct":
            return OkResponse(id=conversation["id"])

    now = utcnow().isoformat()
    conversation = client.table("conversations").insert({
        "type": "direct",
        "created_at": now,
        "updated_at": now,
    }).execute().data[0]
    client.table("conversation_participants").insert([
        {"conversation_id": conversation["id"], "user_id": me},
        {"conversation_id": conversation["id"], "user_id": payload.user_id},
    ]).execute()
    return OkResponse(id=conversation["id"])


@router.get("/conversations/{conversation_id}/messages", response_model=List[MessageResponse])
def list_messages(conversation_id: str, authz: Authorizer = Depends(get_authorizer)):
    """Messages of a conversation, oldest first"""
    authz.require(Resource.CONVERSATION, Action.READ, conversation_ref(conversation_id))
    client = authz.store.client
    messages = (
        client.table("messages")
        .select("*")
        .eq("conversation_id", conversation_id)
        .order("created_at")
        .execute()
        .data
    )
    senders: Dict[str, dict] = users_by_id(client, [m["sender_id"] for m in messages])
    return [
        MessageResponse(
            **{key: message[key] for key in ("id", "conversation_id", "sender_id", "content", "created_at")},
            sender_name=(senders.get(message["sender_id"]) or {}).get("name"),
            sender_role=(senders.get(message["sender_id"]) or {}).get("role"),
        )
        for message in messages
    ]


@router.post("/conversations/{conversation_id}/messages", response_model=OkResponse)
def send_message(conversation_id: str, payload: MessageCreate, authz: Authorizer = Depends(get_authorizer)):
    """Post a message; the conversation is marked read for the sender."""
    authz.require(Resource.CONVERSATION, Action.UPDATE, conversation_ref(conversation_id))
    client = authz.store.client
    now = utcnow().isoformat()

    message = client.table("messages").insert({
        "conversation_id": conversation_id,
        "sender_id": authz.identity.user_id,
        "content": payload.content,
        "created_at": now,
    }).execute().data[0]
    client.table("conversations").update({"updated_at": now}).eq("id", conversation_id).execute()
    _mark_read(authz, conversation_id)
    return OkResponse(id=message["id"])


@router.post("/conversations/{conversation_id}/read", response_model=OkResponse)
def mark_read(conversation_id: str, authz: Authorizer = Depends(get_authorizer)):
    authz.require(Resource.CONVERSATION, Action.READ, conversation_ref(conversation_id))
    _mark_read(authz, conversation_id)
    return OkResponse(id=conversation_id)

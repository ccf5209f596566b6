from fastapi import APIRouter, Depends
from typing import Dict, Tuple
import logging

from lms_portal.core.clock import to_iso
from lms_portal.core.dependencies import Authorizer, get_authorizer
from lms_portal.core.errors import AppError, InvalidRequest, NotFound, UpstreamFailure
from lms_portal.core.policy import Action, Resource
from lms_portal.core.security import get_password_hash
from lms_portal.db.identity import IdentityStore, first_row
from lms_portal.db.queries import users_by_id
from lms_portal.schemas.common import OkResponse
from lms_portal.schemas.directory import StudentCreate, StudentUpdate, TeacherCreate, TeacherUpdate

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Directory"])

# role -> (profile table, profile columns editable through the directory)
DIRECTORY = {
    "student": ("students", ("student_id", "fee_status", "gender", "join_date", "phone")),
    "teacher": ("teachers", ("phone", "join_date", "qualification")),
}


def _split_update(role: str, updates: Dict) -> Tuple[Dict, Dict]:
    """Separate users-table fields from profile fields."""
    _, profile_columns = DIRECTORY[role]
    user_fields = {key: updates[key] for key in ("name", "email", "image_url") if key in updates}
    if "profile_pic" in updates:
        user_fields["image_url"] = updates["profile_pic"]
    if user_fields.get("email"):
        user_fields["email"] = user_fields["email"].strip().lower()
    profile_fields = {key: updates[key] for key in profile_columns if key in updates}
    if "join_date" in profile_fields:
        profile_fields["join_date"] = to_iso(profile_fields["join_date"])
    return user_fields, profile_fields


def _list(authz: Authorizer, role: str):
    authz.require(Resource.DIRECTORY, Action.READ)
    table, _ = DIRECTORY[role]
    profiles = authz.store.client.table(table).select("*").execute().data
    users = users_by_id(authz.store.client, [profile["user_id"] for profile in profiles])
    return [{**profile, "user": users.get(profile["user_id"])} for profile in profiles]


def _get(authz: Authorizer, role: str, profile_id: str) -> dict:
    authz.require(Resource.DIRECTORY, Action.READ)
    table, _ = DIRECTORY[role]
    profile = first_row(authz.store.client.table(table).select("*").eq("id", profile_id).limit(1).execute())
    if profile is None:
        raise NotFound(f"{role.capitalize()} not found")
    users = users_by_id(authz.store.client, [profile["user_id"]])
    return {**profile, "user": users.get(profile["user_id"])}


def _create(authz: Authorizer, role: str, payload) -> str:
    authz.require(Resource.DIRECTORY, Action.MANAGE)
    store = IdentityStore(authz.store.client)
    email = payload.email.strip().lower()
    if store.find_user_by_email(email):
        raise InvalidRequest("User with this email already exists")

    values = payload.model_dump(exclude={"name", "email", "password"})
    user_fields, profile_fields = _split_update(role, values)
    try:
        _, profile = store.create_account(
            email=email,
            password_hash=get_password_hash(payload.password),
            name=payload.name.strip(),
            role=role,
            user_fields={key: value for key, value in user_fields.items() if key == "image_url"},
            profile_fields=profile_fields,
        )
    except AppError:
        raise
    except Exception as e:
        logger.error("Creating %s account failed: %s", role, e)
        raise UpstreamFailure(f"Could not create {role}")

    logger.info("Admin %s created %s %s", authz.identity.user_id, role, profile["id"])
    return profile["id"]


def _update(authz: Authorizer, role: str, profile_id: str, payload) -> None:
    authz.require(Resource.DIRECTORY, Action.MANAGE)
    client = authz.store.client
    table, _ = DIRECTORY[role]
    profile = first_row(client.table(table).select("id, user_id").eq("id", profile_id).limit(1).execute())
    if profile is None:
        raise NotFound(f"{role.capitalize()} not found")

    user_fields, profile_fields = _split_update(role, payload.model_dump(exclude_unset=True))
    if not user_fields and not profile_fields:
        raise InvalidRequest("No fields to update")

    if user_fields.get("email"):
        existing = IdentityStore(client).find_user_by_email(user_fields["email"])
        if existing and existing.id != profile["user_id"]:
            raise InvalidRequest("User with this email already exists")

    if user_fields:
        client.table("users").update(user_fields).eq("id", profile["user_id"]).execute()
    if profile_fields:
        client.table(table).update(profile_fields).eq("id", profile_id).execute()


def _delete(authz: Authorizer, role: str, profile_id: str) -> None:
    authz.require(Resource.DIRECTORY, Action.MANAGE)
    table, _ = DIRECTORY[role]
    profile = first_row(authz.store.client.table(table).select("id, user_id").eq("id", profile_id).limit(1).execute())
    if profile is None:
        raise NotFound(f"{role.capitalize()} not found")
    IdentityStore(authz.store.client).delete_account(profile["user_id"], role)
    logger.info("Admin %s deleted %s %s", authz.identity.user_id, role, profile_id)


# -------------------------
# STUDENTS
# -------------------------
@router.get("/students")
def list_students(authz: Authorizer = Depends(get_authorizer)):
    """List all students (admin only)"""
    return {"students": _list(authz, "student")}


@router.post("/students", response_model=OkResponse)
def create_student(payload: StudentCreate, authz: Authorizer = Depends(get_authorizer)):
    """Create a student login and profile (admin only)"""
    return OkResponse(id=_create(authz, "student", payload))


@router.get("/students/{student_id}")
def get_student(student_id: str, authz: Authorizer = Depends(get_authorizer)):
    return {"student": _get(authz, "student", student_id)}


@router.patch("/students/{student_id}", response_model=OkResponse)
def update_student(student_id: str, payload: StudentUpdate, authz: Authorizer = Depends(get_authorizer)):
    _update(authz, "student", student_id, payload)
    return OkResponse(id=student_id)


@router.delete("/students/{student_id}", response_model=OkResponse)
def delete_student(student_id: str, authz: Authorizer = Depends(get_authorizer)):
    """Delete a student together with their login"""
    _delete(authz, "student", student_id)
    return OkResponse(id=student_id)


# -------------------------
# TEACHERS
# -------------------------
@router.get("/teachers")
def list_teachers(authz: Authorizer = Depends(get_authorizer)):
    """List all teachers (admin only)"""
    return {"teachers": _list(authz, "teacher")}


@router.post("/teachers", response_model=OkResponse)
def create_teacher(payload: TeacherCreate, authz: Authorizer = Depends(get_authorizer)):
    """Create a teacher login and profile (admin only)"""
    return OkResponse(id=_create(authz, "teacher", payload))


@router.get("/teachers/{teacher_id}")
def get_teacher(teacher_id: str, authz: Authorizer = Depends(get_authorizer)):
    return {"teacher": _get(authz, "teacher", teacher_id)}


@router.patch("/teachers/{teacher_id}", response_model=OkResponse)
def update_teacher(teacher_id: str, payload: TeacherUpdate, authz: Authorizer = Depends(get_authorizer)):
    _update(authz, "teacher", teacher_id, payload)
    return OkResponse(id=teacher_id)


@router.delete("/teachers/{teacher_id}", response_model=OkResponse)
def delete_teacher(teacher_id: str, authz: Authorizer = Depends(get_authorizer)):
    """Delete a teacher together with their login"""
    _delete(authz, "teacher", teacher_id)
    return OkResponse(id=teacher_id)

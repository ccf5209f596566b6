from fastapi import APIRouter, Depends, File, UploadFile
import logging
import os
import re
import secrets

from lms_portal.core.clock import utcnow
from lms_portal.core.config import settings
from lms_portal.core.dependencies import Authorizer, course_ref, get_authorizer
from lms_portal.core.errors import InvalidRequest, NotFound, UpstreamFailure
from lms_portal.core.policy import Action, Resource
from lms_portal.db.identity import first_row
from lms_portal.schemas.common import OkResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Course Files"])

_STORAGE_PATH = re.compile(r"courses/[^/]+/([^/?#]+)")


def storage_path(course_id: str, filename: str) -> str:
    """Random object name under ``courses/<course_id>/`` keeping the extension."""
    ext = os.path.splitext(filename or "")[1].lstrip(".")
    name = secrets.token_hex(8)
    return f"courses/{course_id}/{name}.{ext}" if ext else f"courses/{course_id}/{name}"


def object_path(course_id: str, stored: str) -> str:
    """Recover the bucket object path from a stored public URL."""
    match = _STORAGE_PATH.search(stored)
    return f"courses/{course_id}/{match.group(1)}" if match else stored


@router.get("/{course_id}/files")
def list_course_files(course_id: str, authz: Authorizer = Depends(get_authorizer)):
    """List files attached to a course, newest first."""
    authz.require(Resource.COURSE_FILE, Action.READ, course_ref(course_id))
    files = (
        authz.store.client.table("course_files")
        .select("id, file_name, file_path, mime, created_at")
        .eq("course_id", course_id)
        .order("created_at", desc=True)
        .execute()
        .data
    )
    return {"files": files}


@router.post("/{course_id}/files")
def upload_course_file(course_id: str, file: UploadFile = File(...),
                       authz: Authorizer = Depends(get_authorizer)):
    """
    Upload a file to a course.

    The bytes go to the storage bucket; a ``course_files`` row keeps the
    public URL, original name and content type.
    """
    authz.require(Resource.COURSE_FILE, Action.CREATE, course_ref(course_id))
    if not file.filename:
        raise InvalidRequest("No file provided")

    client = authz.store.client
    path = storage_path(course_id, file.filename)
    bucket = client.storage.from_(settings.SUPABASE_STORAGE_BUCKET)
    try:
        bucket.upload(path, file.file.read(), {"content-type": file.content_type or "application/octet-stream"})
        public_url = bucket.get_public_url(path)
    except Exception as e:
        logger.error("Storage upload failed for course %s: %s", course_id, e)
        raise UpstreamFailure("File upload failed")

    record = client.table("course_files").insert({
        "course_id": course_id,
        "file_name": file.filename,
        "file_path": public_url,
        "mime": file.content_type,
        "created_at": utcnow().isoformat(),
    }).execute().data[0]
    logger.info("Uploaded file %s to course %s", record["id"], course_id)
    return {"file": record}


@router.delete("/{course_id}/files/{file_id}", response_model=OkResponse)
def delete_course_file(course_id: str, file_id: str, authz: Authorizer = Depends(get_authorizer)):
    """Delete a course file from storage and its metadata row."""
    authz.require(Resource.COURSE_FILE, Action.DELETE, course_ref(course_id))
    client = authz.store.client

    record = first_row(
        client.table("course_files").select("id, file_path").eq("id", file_id).eq("course_id", course_id).limit(1).execute()
    )
    if record is None:
        raise NotFound("File not found")

    if record.get("file_path"):
        try:
            client.storage.from_(settings.SUPABASE_STORAGE_BUCKET).remove([object_path(course_id, record["file_path"])])
        except Exception as e:
            logger.warning("Could not remove stored object for file %s: %s", file_id, e)

    client.table("course_files").delete().eq("id", file_id).execute()
    return OkResponse(id=file_id)

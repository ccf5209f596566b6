"""
Error taxonomy shared by the guard, the join flow and every router.

Each error carries a stable ``kind`` and a human readable message. The
exception handlers registered in ``main.py`` render them as
``{"error": {"kind": ..., "message": ...}}`` with the matching status.
"""
from typing import Any, Optional

from fastapi import status


class AppError(Exception):
    kind = "internal_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"kind": self.kind, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return {"error": body}


class Unauthenticated(AppError):
    kind = "unauthenticated"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class Forbidden(AppError):
    kind = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class NotFound(AppError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class TooEarly(AppError):
    # same status the portal always used for the time gate; the kind tells it apart
    kind = "too_early"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Session not started yet"


class RoomUnavailable(AppError):
    kind = "room_unavailable"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Video room has not been set up for this session"


class InvalidRequest(AppError):
    kind = "invalid_request"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class UpstreamFailure(AppError):
    kind = "upstream_failure"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Upstream service error"

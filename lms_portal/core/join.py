"""
Join flow for live course sessions.

A session is NOT_YET_STARTED until its scheduled time, then JOINABLE as
long as a room was provisioned for it. Checks run in a fixed order:
existence, time gate, room reference, then role and ownership. Only after
all of them pass is a meeting token minted.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Protocol
from urllib.parse import urlsplit

from lms_portal.core.clock import parse_timestamp
from lms_portal.core.dependencies import Authorizer, session_ref
from lms_portal.core.errors import AppError, Forbidden, NotFound, RoomUnavailable, TooEarly
from lms_portal.core.policy import Action, Resource, Role

logger = logging.getLogger(__name__)


class RoomTokenProvider(Protocol):
    def mint_join_token(self, room_id: str, user_name: Optional[str], is_owner: bool,
                        expires_at_unix: int) -> str:
        ...


@dataclass(frozen=True)
class JoinGrant:
    session_id: str
    url: str
    token: str
    is_owner: bool
    expires_at: datetime


def append_token(url: str, token: str) -> str:
    """Add ``t=<token>`` to a room URL, keeping any existing query string."""
    separator = "&" if urlsplit(url).query else "?"
    return f"{url}{separator}t={token}"


def authorize_join(authz: Authorizer, session_id: str, rooms: RoomTokenProvider,
                   now: datetime, token_ttl: timedelta) -> JoinGrant:
    try:
        session = authz.store.get_session(session_id)
    except Exception:
        logger.exception("Session lookup failed for join of %s; denying", session_id)
        raise Forbidden()
    if session is None:
        raise NotFound("Session not found")

    if now < parse_timestamp(session.scheduled_at):
        raise TooEarly()

    if not session.daily_room_id or not session.daily_room_url:
        raise RoomUnavailable()

    authz.require(Resource.COURSE_SESSION, Action.JOIN, session_ref(session_id))

    # admins and the owning teacher get host privileges; require() already
    # rejected teachers who do not own the session
    is_owner = authz.role in (Role.ADMIN, Role.TEACHER)
    expires_at = now + token_ttl
    identity = authz.identity

    try:
        token = rooms.mint_join_token(
            room_id=session.daily_room_id,
            user_name=identity.name or identity.email,
            is_owner=is_owner,
            expires_at_unix=int(expires_at.timestamp()),
        )
    except AppError:
        logger.warning("Meeting token mint failed for session %s", session_id)
        raise

    return JoinGrant(
        session_id=session.id,
        url=append_token(session.daily_room_url, token),
        token=token,
        is_owner=is_owner,
        expires_at=expires_at,
    )

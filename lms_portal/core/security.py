import logging
import re
from datetime import datetime
from typing import Optional

from passlib.context import CryptContext
from pydantic import BaseModel

from lms_portal.core import clock
from lms_portal.db.identity import IdentityStore

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# token_urlsafe(32) output; anything else is treated as absent without a lookup
_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_-]{16,128}$")


class Identity(BaseModel):
    """The resolved caller, threaded explicitly through every guarded handler."""
    user_id: str
    email: str
    name: Optional[str] = None
    role: str


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        return False


def resolve_session(store: IdentityStore, token: Optional[str],
                    now: Optional[datetime] = None) -> Optional[Identity]:
    """
    Map an opaque session token to the identity that owns it.

    Returns None for a missing, malformed or expired token and for any
    backend error. Expired rows are left in place; cleanup happens elsewhere.
    This function never writes.
    """
    if not token or not _TOKEN_PATTERN.match(token):
        return None

    now = now or clock.utcnow()
    try:
        session = store.find_session_by_token(token)
        if session is None:
            return None

        if clock.parse_timestamp(session.expires_at) <= now:
            return None

        user = store.find_user_by_id(session.user_id)
    except Exception:
        logger.exception("Session lookup failed; treating caller as signed out")
        return None

    if user is None:
        return None

    return Identity(user_id=user.id, email=user.email, name=user.name, role=user.role)

"""
Page-level redirects by role.

This is a navigation convenience for the portal pages only; API routes
never depend on it having run.
"""
import logging
from typing import Optional

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import RedirectResponse

from lms_portal.core.config import settings
from lms_portal.core.errors import AppError
from lms_portal.core.policy import Role
from lms_portal.core.security import resolve_session
from lms_portal.db import supabase as supabase_db
from lms_portal.db.identity import IdentityStore

logger = logging.getLogger(__name__)

SIGN_IN_PATH = "/sign-in"
AUTH_PAGES = ("/sign-in", "/sign-up")
PROTECTED_PREFIXES = ("/admin", "/teacher", "/student", "/courses", "/sessions", "/teachers", "/students")

# Single-role areas; "/teachers" and "/students" are not role areas
ROLE_AREAS = {
    "/admin": Role.ADMIN,
    "/teacher": Role.TEACHER,
    "/student": Role.STUDENT,
}

ROLE_HOME = {
    Role.ADMIN: "/",
    Role.TEACHER: "/",
    Role.STUDENT: "/",
}


def _under(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def role_home_path(role: Role) -> str:
    return ROLE_HOME[role]


def is_page_path(path: str) -> bool:
    return path == "/" or path in AUTH_PAGES or any(_under(path, prefix) for prefix in PROTECTED_PREFIXES)


def is_protected(path: str) -> bool:
    return path == "/" or any(_under(path, prefix) for prefix in PROTECTED_PREFIXES)


def required_role(path: str) -> Optional[Role]:
    for prefix, role in ROLE_AREAS.items():
        if _under(path, prefix):
            return role
    return None


def page_redirect(path: str, role: Optional[str]) -> Optional[str]:
    """
    Decide where a page request should go.

    Args:
        path: Request path
        role: Role of the signed-in caller, or None when signed out

    Returns:
        The redirect target, or None to let the request through
    """
    if role is None:
        return SIGN_IN_PATH if is_protected(path) else None

    parsed = Role.parse(role)
    if parsed is None:
        return SIGN_IN_PATH if is_protected(path) else None

    if path in AUTH_PAGES:
        return role_home_path(parsed)

    needed = required_role(path)
    if needed is not None and needed is not parsed:
        home = role_home_path(parsed)
        return home if home != path else None

    return None


def _resolve(token: str):
    return resolve_session(IdentityStore(supabase_db.get_supabase()), token)


class RoleRedirectMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if not is_page_path(path):
            return await call_next(request)

        role = None
        token = request.cookies.get(settings.SESSION_COOKIE_NAME)
        if token:
            try:
                identity = await run_in_threadpool(_resolve, token)
            except AppError:
                logger.warning("Backend unavailable while resolving page session")
                identity = None
            role = identity.role if identity else None

        target = page_redirect(path, role)
        if target is not None and target != path:
            return RedirectResponse(url=target, status_code=307)
        return await call_next(request)

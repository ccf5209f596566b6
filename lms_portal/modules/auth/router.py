from fastapi import APIRouter, Depends, Request, Response
from typing import Optional
import logging

from lms_portal.core.config import settings
from lms_portal.core.dependencies import extract_token, get_identity_store, require_identity
from lms_portal.core.errors import AppError, InvalidRequest, Unauthenticated, UpstreamFailure
from lms_portal.core.security import Identity, get_password_hash, verify_password
from lms_portal.db.identity import IdentityStore
from lms_portal.schemas.auth import AuthResponse, SignInRequest, SignUpRequest, UserResponse

# Setup logging
logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"])


def client_ip(request: Request) -> Optional[str]:
    """First hop of X-Forwarded-For, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.SESSION_TTL_DAYS * 24 * 60 * 60,
        httponly=True,
        samesite="lax",
        secure=settings.COOKIE_SECURE,
        path="/",
    )


@router.post("/sign-up", response_model=AuthResponse)
def sign_up(
    payload: SignUpRequest,
    request: Request,
    response: Response,
    store: IdentityStore = Depends(get_identity_store)
):
    """
    Register a new account and sign it in.

    Creates the user row, its password credential and the role profile
    (teacher or student), then issues a session. If any step after the user
    row fails, everything written so far is removed again.

    Args:
    - email: Login email, stored lowercased
    - password: 8 to 128 characters
    - name: Display name
    - role: 'admin', 'teacher' or 'student' (default 'student')
    """
    email = payload.email.strip().lower()
    if store.find_user_by_email(email):
        raise InvalidRequest("An account with this email already exists. Please sign in instead.")

    if payload.role == "admin":
        logger.warning("Sign-up requested admin role for %s", email)

    try:
        user, _ = store.create_account(
            email=email,
            password_hash=get_password_hash(payload.password),
            name=payload.name.strip(),
            role=payload.role,
        )
    except AppError:
        raise
    except Exception as e:
        logger.error("Sign-up failed: %s", e)
        raise UpstreamFailure("Sign-up failed. Please try again.")

    try:
        session = store.create_session(
            user.id,
            settings.SESSION_TTL_DAYS,
            user_agent=request.headers.get("user-agent"),
            ip_address=client_ip(request),
        )
    except Exception as e:
        logger.error("Session creation failed for new user %s, rolling back: %s", user.id, e)
        store.delete_account(user.id, user.role)
        raise UpstreamFailure("Sign-up failed. Please try again.")

    logger.info("User %s signed up as %s", user.id, user.role)
    set_session_cookie(response, session.session_token)
    return AuthResponse(
        user=UserResponse(id=user.id, email=user.email, name=user.name, role=user.role),
        token=session.session_token,
    )


@router.post("/sign-in", response_model=AuthResponse)
def sign_in(
    payload: SignInRequest,
    request: Request,
    response: Response,
    store: IdentityStore = Depends(get_identity_store)
):
    """
    Sign in with email and password.

    Unknown email, missing credential and wrong password all give the same
    401 so the response does not reveal which accounts exist.
    """
    user = store.find_user_by_email(payload.email)
    password_hash = store.get_password_hash(user.id) if user else None
    if not user or not password_hash or not verify_password(payload.password, password_hash):
        logger.info("Failed sign-in attempt")
        raise Unauthenticated("Invalid credentials")

    session = store.create_session(
        user.id,
        settings.SESSION_TTL_DAYS,
        user_agent=request.headers.get("user-agent"),
        ip_address=client_ip(request),
    )
    logger.info("User %s signed in", user.id)
    set_session_cookie(response, session.session_token)
    return AuthResponse(
        user=UserResponse(id=user.id, email=user.email, name=user.name, role=user.role),
        token=session.session_token,
    )


@router.post("/sign-out")
def sign_out(
    request: Request,
    response: Response,
    store: IdentityStore = Depends(get_identity_store)
):
    """End the current session. Always succeeds."""
    token = extract_token(request)
    if token:
        try:
            store.delete_session(token)
        except Exception as e:
            logger.warning("Could not delete session row on sign-out: %s", e)
    response.delete_cookie(settings.SESSION_COOKIE_NAME, path="/")
    return {"ok": True}


@router.get("/me", response_model=UserResponse)
def me(identity: Identity = Depends(require_identity)):
    """Get the signed-in user"""
    return UserResponse(id=identity.user_id, email=identity.email, name=identity.name, role=identity.role)

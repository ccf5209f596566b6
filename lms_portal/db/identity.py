"""
Identity store: users, password credentials, auth sessions and the
teacher/student profile rows created alongside a user.
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

from supabase import Client

from lms_portal.db.models import AuthSession, User

logger = logging.getLogger(__name__)

PROFILE_TABLES = {"teacher": "teachers", "student": "students"}


def first_row(response) -> Optional[dict]:
    """Return the first row of a Supabase response, or None."""
    if not response.data:
        return None
    return response.data[0]


class IdentityStore:
    def __init__(self, client: Client):
        self.client = client

    # -------------------------
    # USERS
    # -------------------------
    def find_user_by_email(self, email: str) -> Optional[User]:
        response = self.client.table("users").select("*").eq("email", email.strip().lower()).limit(1).execute()
        row = first_row(response)
        return User(**row) if row else None

    def find_user_by_id(self, user_id: str) -> Optional[User]:
        response = self.client.table("users").select("*").eq("id", user_id).limit(1).execute()
        row = first_row(response)
        return User(**row) if row else None

    def create_user(self, email: str, name: str, role: str, **extra) -> User:
        user_data = {
            "id": str(uuid4()),
            "email": email.strip().lower(),
            "name": name,
            "role": role,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        user_data.update({key: value for key, value in extra.items() if value is not None})
        response = self.client.table("users").insert(user_data).execute()
        return User(**response.data[0])

    def delete_user(self, user_id: str) -> None:
        self.client.table("users").delete().eq("id", user_id).execute()

    # -------------------------
    # CREDENTIALS
    # -------------------------
    def get_password_hash(self, user_id: str) -> Optional[str]:
        response = (
            self.client.table("password_credentials")
            .select("password_hash")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        row = first_row(response)
        return row["password_hash"] if row else None

    def create_credential(self, user_id: str, password_hash: str) -> None:
        self.client.table("password_credentials").insert(
            {"user_id": user_id, "password_hash": password_hash}
        ).execute()

    def delete_credential(self, user_id: str) -> None:
        self.client.table("password_credentials").delete().eq("user_id", user_id).execute()

    # -------------------------
    # PROFILES
    # -------------------------
    def create_profile(self, role: str, user_id: str, **fields) -> Optional[dict]:
        table = PROFILE_TABLES.get(role)
        if table is None:
            return None
        profile_data = {
            "id": str(uuid4()),
            "user_id": user_id,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        profile_data.update({key: value for key, value in fields.items() if value is not None})
        response = self.client.table(table).insert(profile_data).execute()
        return response.data[0]

    def delete_profile(self, role: str, user_id: str) -> None:
        table = PROFILE_TABLES.get(role)
        if table is not None:
            self.client.table(table).delete().eq("user_id", user_id).execute()

    def create_account(self, email: str, password_hash: str, name: str, role: str,
                       user_fields: Optional[dict] = None, profile_fields: Optional[dict] = None):
        """
        Create user, credential and role profile as one unit.

        Anything already written is removed again when a later step fails,
        so a failed registration never leaves an orphan user or credential.

        Returns:
            tuple: (User, profile row or None for admins)
        """
        user = self.create_user(email, name, role, **(user_fields or {}))
        credential_created = False
        try:
            self.create_credential(user.id, password_hash)
            credential_created = True
            profile = self.create_profile(role, user.id, **(profile_fields or {}))
        except Exception:
            logger.warning("Rolling back partially created user %s", user.id)
            if credential_created:
                self.delete_credential(user.id)
            self.delete_user(user.id)
            raise
        return user, profile

    def delete_account(self, user_id: str, role: str) -> None:
        """Remove sessions, profile, credential and user, in that order."""
        self.client.table("sessions").delete().eq("user_id", user_id).execute()
        self.delete_profile(role, user_id)
        self.delete_credential(user_id)
        self.delete_user(user_id)

    # -------------------------
    # SESSIONS
    # -------------------------
    def find_session_by_token(self, token: str) -> Optional[AuthSession]:
        response = (
            self.client.table("sessions")
            .select("*")
            .eq("session_token", token)
            .limit(1)
            .execute()
        )
        row = first_row(response)
        return AuthSession(**row) if row else None

    def create_session(self, user_id: str, ttl_days: int,
                       user_agent: Optional[str] = None, ip_address: Optional[str] = None) -> AuthSession:
        now = datetime.now(timezone.utc)
        session_data = {
            "id": str(uuid4()),
            "user_id": user_id,
            "session_token": secrets.token_urlsafe(32),
            "user_agent": user_agent,
            "ip_address": ip_address,
            "expires_at": (now + timedelta(days=ttl_days)).isoformat(),
            "created_at": now.isoformat(),
        }
        response = self.client.table("sessions").insert(session_data).execute()
        return AuthSession(**response.data[0])

    def delete_session(self, token: str) -> None:
        self.client.table("sessions").delete().eq("session_token", token).execute()

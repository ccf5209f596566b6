"""
Daily.co integration for video rooms and meeting tokens.

Rooms API:
  - POST /rooms with body { name, privacy, properties }
  - DELETE /rooms/:name
  - POST /meeting-tokens with body { properties }

Participants of a private room join with ``<room url>?t=<token>``.
"""
import logging
import random
import string
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from lms_portal.core.config import settings
from lms_portal.core.errors import UpstreamFailure

logger = logging.getLogger(__name__)

DEFAULT_ROOM_PROPERTIES: Dict[str, Any] = {
    "max_participants": 100,
    "enable_chat": True,
    "enable_screenshare": True,
    "enable_recording": False,
    "enable_transcription": False,
    "start_video_off": False,
    "start_audio_off": False,
    "enable_prejoin_ui": True,
    "enable_knocking": False,
}


class RoomProviderError(UpstreamFailure):
    kind = "room_provider_failure"
    default_message = "Video provider request failed"


@dataclass(frozen=True)
class Room:
    room_id: str  # Daily room name, used for deletes and tokens
    url: str


def generate_room_name() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=7))
    return f"session-{int(time.time() * 1000)}-{suffix}"


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.reason_phrase or "Unknown error"
    if isinstance(payload, dict):
        return str(payload.get("error") or payload.get("info") or response.reason_phrase)
    return response.reason_phrase or "Unknown error"


def _field(response: httpx.Response, key: str) -> Any:
    """Required field of a successful response body; anything unreadable is a provider failure."""
    try:
        value = response.json()[key]
    except (ValueError, KeyError, TypeError) as exc:
        raise RoomProviderError(f"Daily.co returned an unreadable response: {response.status_code}") from exc
    if not value:
        raise RoomProviderError(f"Daily.co response missing {key}")
    return value


class DailyClient:
    def __init__(self, api_key: Optional[str], base_url: str = "https://api.daily.co/v1",
                 timeout: float = 10.0, transport: Optional[httpx.BaseTransport] = None):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.Client:
        if not self.api_key:
            raise RoomProviderError("DAILY_API_KEY environment variable is not set")
        return httpx.Client(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
            transport=self.transport,
        )

    def provision_room(self, title: str, properties: Optional[Dict[str, Any]] = None) -> Room:
        """
        Create a private room for a session.

        Args:
            title: Session title, logged alongside the generated room name
            properties: Overrides merged over DEFAULT_ROOM_PROPERTIES; a
                ``privacy`` key selects 'public' or 'private'

        Returns:
            Room: name and joinable URL
        """
        overrides = dict(properties or {})
        privacy = overrides.pop("privacy", "private")
        room_properties = {**DEFAULT_ROOM_PROPERTIES, **overrides}
        name = generate_room_name()

        try:
            with self._client() as client:
                response = client.post("/rooms", json={
                    "name": name,
                    "privacy": privacy,
                    "properties": room_properties,
                })
        except httpx.HTTPError as exc:
            raise RoomProviderError(f"Failed to create Daily.co room: {exc}") from exc

        if response.is_error:
            raise RoomProviderError(f"Daily.co API error: {response.status_code} - {_error_detail(response)}")

        url = _field(response, "url")
        logger.info("Provisioned Daily room %s for '%s'", name, title)
        return Room(room_id=name, url=url)

    def deprovision_room(self, room_id: str) -> None:
        """Delete a room; a 404 means it is already gone."""
        try:
            with self._client() as client:
                response = client.delete(f"/rooms/{room_id}")
        except httpx.HTTPError as exc:
            raise RoomProviderError(f"Failed to delete Daily.co room: {exc}") from exc

        if response.is_error and response.status_code != 404:
            raise RoomProviderError(f"Daily.co API error: {response.status_code} - {_error_detail(response)}")
        logger.info("Deprovisioned Daily room %s", room_id)

    def mint_join_token(self, room_id: str, user_name: Optional[str], is_owner: bool,
                        expires_at_unix: int) -> str:
        token_properties: Dict[str, Any] = {
            "room_name": room_id,
            "is_owner": is_owner,
            "exp": expires_at_unix,
        }
        if user_name:
            token_properties["user_name"] = user_name

        try:
            with self._client() as client:
                response = client.post("/meeting-tokens", json={"properties": token_properties})
        except httpx.HTTPError as exc:
            raise RoomProviderError(f"Failed to create Daily.co meeting token: {exc}") from exc

        if response.is_error:
            raise RoomProviderError(f"Daily.co API error: {response.status_code} - {_error_detail(response)}")

        return _field(response, "token")


def get_room_provider() -> DailyClient:
    return DailyClient(
        api_key=settings.DAILY_API_KEY,
        base_url=settings.DAILY_API_BASE,
        timeout=settings.DAILY_TIMEOUT_SECONDS,
    )

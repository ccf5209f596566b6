from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime
from uuid import UUID


class SessionCreate(BaseModel):
    title: Optional[str] = None
    course_id: UUID
    scheduled_at: datetime
    duration_minutes: int = Field(..., ge=1)
    selected_students: List[UUID] = Field(..., min_length=1)


class SessionUpdate(BaseModel):
    title: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(None, ge=1)


class RoomSetup(BaseModel):
    properties: Optional[Dict[str, Any]] = None


class RoomResponse(BaseModel):
    room_id: str
    url: str


class JoinRequest(BaseModel):
    session_id: UUID


class JoinResponse(BaseModel):
    ok: bool = True
    url: str
    is_owner: bool
    expires_at: datetime

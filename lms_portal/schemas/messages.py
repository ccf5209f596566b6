from pydantic import BaseModel, Field
from typing import Optional


class DirectConversationCreate(BaseModel):
    user_id: str


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)


class MessageResponse(BaseModel):
    id: str
    conversation_id: str
    sender_id: str
    content: str
    created_at: str
    sender_name: Optional[str] = None
    sender_role: Optional[str] = None

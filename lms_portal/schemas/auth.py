from pydantic import BaseModel, EmailStr, Field
from typing import Literal, Optional


class SignUpRequest(BaseModel):
    email: EmailStr = Field(..., max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=1, max_length=120)
    role: Literal["admin", "teacher", "student"] = "student"


class SignInRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)


class UserResponse(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    role: str


class AuthResponse(BaseModel):
    ok: bool = True
    user: UserResponse
    token: Optional[str] = None

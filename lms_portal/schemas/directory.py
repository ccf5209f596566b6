from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from datetime import datetime


class StudentCreate(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=8)
    student_id: Optional[str] = None
    fee_status: Optional[str] = None
    gender: Optional[str] = None
    join_date: Optional[datetime] = None
    phone: Optional[str] = None
    image_url: Optional[str] = None


class StudentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    student_id: Optional[str] = None
    fee_status: Optional[str] = None
    gender: Optional[str] = None
    join_date: Optional[datetime] = None
    phone: Optional[str] = None
    image_url: Optional[str] = None


class TeacherCreate(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=8)
    phone: Optional[str] = None
    join_date: Optional[datetime] = None
    qualification: Optional[str] = None
    profile_pic: Optional[str] = None


class TeacherUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    join_date: Optional[datetime] = None
    qualification: Optional[str] = None
    profile_pic: Optional[str] = None

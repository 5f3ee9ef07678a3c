from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class MessageCreate(BaseModel):
    content: str


class AuthorProfile(BaseModel):
    name: Optional[str] = None
    avatar: Optional[str] = None


class MessageResponse(BaseModel):
    id: str
    group_id: str
    user_id: str
    content: str
    created_at: datetime
    profile: Optional[AuthorProfile] = None

    class Config:
        from_attributes = True

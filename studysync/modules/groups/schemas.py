from pydantic import BaseModel, model_validator
from typing import Optional, List
from datetime import datetime


class GroupCreate(BaseModel):
    name: str
    subject: str
    description: Optional[str] = None
    capacity: Optional[int] = None  # falls back to settings.default_group_capacity
    is_public: bool = True
    subject_tags: List[str] = []

    @model_validator(mode="after")
    def check_fields(self):
        if not self.name.strip():
            raise ValueError("Group name is required")
        if not self.subject.strip():
            raise ValueError("Subject is required")
        if self.capacity is not None and self.capacity < 1:
            raise ValueError("Capacity must be at least 1")
        return self


class GroupResponse(BaseModel):
    id: str
    name: str
    subject: str
    description: Optional[str] = None
    capacity: Optional[int] = None
    is_public: Optional[bool] = True
    subject_tags: List[str] = []
    member_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MemberProfile(BaseModel):
    name: Optional[str] = None
    avatar: Optional[str] = None


class GroupMemberResponse(BaseModel):
    id: str
    group_id: str
    user_id: str
    role: str = "member"
    joined_at: Optional[datetime] = None
    profile: Optional[MemberProfile] = None

    class Config:
        from_attributes = True

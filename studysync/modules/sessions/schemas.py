from enum import Enum
from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime


class AttendanceStatus(str, Enum):
    CONFIRMED = "confirmed"
    TENTATIVE = "tentative"
    DECLINED = "declined"


class SessionCreate(BaseModel):
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    location: str


class RSVPRequest(BaseModel):
    status: AttendanceStatus


class AttendeeProfile(BaseModel):
    name: Optional[str] = None
    avatar: Optional[str] = None


class AttendeeResponse(BaseModel):
    id: Optional[str] = None
    session_id: str
    user_id: str
    status: AttendanceStatus
    created_at: Optional[datetime] = None
    profile: Optional[AttendeeProfile] = None

    class Config:
        from_attributes = True


class SessionResponse(BaseModel):
    id: str
    group_id: str
    host_id: str
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    location: Optional[str] = None
    created_at: Optional[datetime] = None
    attendees: List[AttendeeResponse] = []
    confirmed_count: int = 0

    class Config:
        from_attributes = True

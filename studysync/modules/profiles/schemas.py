from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime


class StudyPreferences(BaseModel):
    time_of_day: str = "any"
    group_size: int = 5


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    avatar: Optional[str] = None
    academic_level: Optional[str] = None
    bio: Optional[str] = None
    subject_interests: Optional[List[str]] = None
    study_preferences: Optional[StudyPreferences] = None


class ProfileResponse(BaseModel):
    id: str
    name: str
    email: str
    avatar: Optional[str] = None
    academic_level: Optional[str] = None
    bio: Optional[str] = None
    subject_interests: List[str] = []
    study_preferences: StudyPreferences = StudyPreferences()
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

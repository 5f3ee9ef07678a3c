from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime


class UploaderProfile(BaseModel):
    name: Optional[str] = None
    avatar: Optional[str] = None


class ResourceResponse(BaseModel):
    id: str
    group_id: str
    user_id: str
    title: str
    description: Optional[str] = None
    file_url: str
    file_type: str
    tags: List[str] = []
    created_at: Optional[datetime] = None
    profile: Optional[UploaderProfile] = None

    class Config:
        from_attributes = True


class ResourceDeleteResponse(BaseModel):
    id: str
    deleted: bool = True
    storage_deleted: bool = True
    detail: Optional[str] = None

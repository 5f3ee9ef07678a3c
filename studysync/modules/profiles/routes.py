from fastapi import APIRouter, Depends
from studysync.core.dependencies import get_current_session, get_user_backend
from studysync.core.session import AuthSession
from studysync.database.backend import Backend
from studysync.modules.profiles.schemas import ProfileResponse, ProfileUpdate
from studysync.modules.profiles.service import ProfileService

router = APIRouter(prefix="/profiles", tags=["profiles"])


def get_profile_service(backend: Backend = Depends(get_user_backend)) -> ProfileService:
    return ProfileService(backend)


@router.get("/me", response_model=ProfileResponse)
async def get_my_profile(
    session: AuthSession = Depends(get_current_session),
    service: ProfileService = Depends(get_profile_service)
):
    """Get the caller's profile (created with defaults on first access)"""
    return await service.get_or_create_profile(session)


@router.put("/me", response_model=ProfileResponse)
async def update_my_profile(
    profile_data: ProfileUpdate,
    session: AuthSession = Depends(get_current_session),
    service: ProfileService = Depends(get_profile_service)
):
    """Update the caller's profile"""
    return await service.update_profile(session.user_id, profile_data)


@router.get("/{user_id}", response_model=ProfileResponse)
async def get_profile(
    user_id: str,
    session: AuthSession = Depends(get_current_session),
    service: ProfileService = Depends(get_profile_service)
):
    """Get another user's profile"""
    return await service.get_profile(user_id)

from fastapi import APIRouter, Depends
from studysync.core.dependencies import check_group_member, get_current_session, get_user_backend
from studysync.core.session import AuthSession
from studysync.database.backend import Backend
from studysync.modules.groups.schemas import GroupCreate, GroupResponse, GroupMemberResponse
from studysync.modules.groups.service import GroupService
from typing import List, Optional

router = APIRouter(prefix="/groups", tags=["groups"])


def get_group_service(backend: Backend = Depends(get_user_backend)) -> GroupService:
    return GroupService(backend)


@router.post("", response_model=GroupResponse, status_code=201)
async def create_group(
    group_data: GroupCreate,
    session: AuthSession = Depends(get_current_session),
    service: GroupService = Depends(get_group_service)
):
    """Create a new group; the caller becomes its admin"""
    return await service.create_group(group_data, session)


@router.get("", response_model=List[GroupResponse])
async def list_groups(
    subject: Optional[str] = None,
    q: Optional[str] = None,
    mine: bool = False,
    session: AuthSession = Depends(get_current_session),
    service: GroupService = Depends(get_group_service)
):
    """List public groups, or only the caller's groups with mine=true"""
    member_of = session.user_id if mine else None
    return await service.list_groups(subject=subject, query=q, member_of_user_id=member_of)


@router.get("/{group_id}", response_model=GroupResponse)
async def get_group(
    group_id: str,
    session: AuthSession = Depends(get_current_session),
    service: GroupService = Depends(get_group_service)
):
    """Get group by ID"""
    return await service.get_group(group_id)


@router.get("/{group_id}/members", response_model=List[GroupMemberResponse])
async def list_members(
    group_id: str,
    session: AuthSession = Depends(get_current_session),
    service: GroupService = Depends(get_group_service),
    backend: Backend = Depends(get_user_backend)
):
    """List all members of a group (members only)"""
    await check_group_member(group_id, session, backend)
    return await service.list_members(group_id)


@router.post("/{group_id}/join", response_model=GroupMemberResponse, status_code=201)
async def join_group(
    group_id: str,
    session: AuthSession = Depends(get_current_session),
    service: GroupService = Depends(get_group_service)
):
    """Join a group"""
    return await service.join_group(group_id, session)


@router.delete("/{group_id}/members/me", status_code=204)
async def leave_group(
    group_id: str,
    session: AuthSession = Depends(get_current_session),
    service: GroupService = Depends(get_group_service)
):
    """Leave a group"""
    await service.leave_group(group_id, session.user_id)
    return None

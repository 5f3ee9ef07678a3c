from fastapi import APIRouter, Depends, File, Form, UploadFile, WebSocket, WebSocketException, status
from studysync.core.dependencies import (
    check_group_member, get_current_session, get_user_backend, get_ws_backend, get_ws_session
)
from studysync.core.errors import PermissionDeniedError
from studysync.core.session import AuthSession
from studysync.database.backend import Backend
from studysync.modules.resources.schemas import ResourceResponse, ResourceDeleteResponse
from studysync.modules.resources.service import ResourceService
from studysync.modules.resources.storage import validate_upload
from studysync.config import settings
from studysync.realtime.websocket import serve_view
from typing import List, Optional

router = APIRouter(tags=["resources"])
live_router = APIRouter(prefix="/ws/groups/{group_id}/resources", tags=["live"])


def get_resource_service(backend: Backend = Depends(get_user_backend)) -> ResourceService:
    return ResourceService(backend)


@router.get("/groups/{group_id}/resources", response_model=List[ResourceResponse])
async def list_group_resources(
    group_id: str,
    limit: Optional[int] = None,
    session: AuthSession = Depends(get_current_session),
    service: ResourceService = Depends(get_resource_service),
    backend: Backend = Depends(get_user_backend)
):
    """Resources shared in a group, newest first (members only)"""
    await check_group_member(group_id, session, backend)
    return await service.list_resources(group_id, limit=limit)


@router.post("/groups/{group_id}/resources", response_model=ResourceResponse, status_code=201)
async def upload_resource(
    group_id: str,
    file: UploadFile = File(...),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    session: AuthSession = Depends(get_current_session),
    service: ResourceService = Depends(get_resource_service),
    backend: Backend = Depends(get_user_backend)
):
    """Upload a file and register it as a group resource (members only). tags is comma separated."""
    await check_group_member(group_id, session, backend)
    filename = file.filename or ""
    content_type = file.content_type or "application/octet-stream"
    if file.size is not None:
        validate_upload(filename, content_type, file.size)
    # Never buffer more than one byte past the limit; the service rejects the overflow.
    data = await file.read(settings.max_upload_bytes + 1)
    tag_list = [t.strip() for t in tags.split(",") if t.strip()] if tags else []
    return await service.upload_resource(
        group_id,
        session,
        filename=filename,
        content_type=content_type,
        data=data,
        title=title,
        description=description,
        tags=tag_list,
    )


@router.get("/resources/mine", response_model=List[ResourceResponse])
async def list_my_resources(
    session: AuthSession = Depends(get_current_session),
    service: ResourceService = Depends(get_resource_service)
):
    """Resources across all of the caller's groups"""
    return await service.list_user_resources(session.user_id)


@router.delete("/resources/{resource_id}", response_model=ResourceDeleteResponse)
async def delete_resource(
    resource_id: str,
    session: AuthSession = Depends(get_current_session),
    service: ResourceService = Depends(get_resource_service)
):
    """Delete a resource and its stored file (uploader or group admin)"""
    return await service.delete_resource(resource_id, session)


@live_router.websocket("")
async def live_resources(
    websocket: WebSocket,
    group_id: str,
    limit: Optional[int] = None,
    session: AuthSession = Depends(get_ws_session),
    backend: Backend = Depends(get_ws_backend)
):
    """Live resource list for a group"""
    try:
        await check_group_member(group_id, session, backend)
    except PermissionDeniedError as e:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason=e.message)
    service = ResourceService(backend)
    await serve_view(websocket, service.live_view(group_id, session, limit=limit))

from fastapi import APIRouter, Depends, WebSocket, WebSocketException, status
from studysync.core.dependencies import (
    check_group_member, get_current_session, get_user_backend, get_ws_backend, get_ws_session
)
from studysync.core.errors import NotFoundError, PermissionDeniedError
from studysync.core.session import AuthSession
from studysync.database.backend import Backend
from studysync.modules.sessions.schemas import AttendeeResponse, RSVPRequest, SessionCreate, SessionResponse
from studysync.modules.sessions.service import SessionService
from studysync.realtime.websocket import serve_view
from typing import List

router = APIRouter(tags=["sessions"])
live_router = APIRouter(prefix="/ws", tags=["live"])


def get_session_service(backend: Backend = Depends(get_user_backend)) -> SessionService:
    return SessionService(backend)


@router.post("/groups/{group_id}/sessions", response_model=SessionResponse, status_code=201)
async def create_session(
    group_id: str,
    session_data: SessionCreate,
    session: AuthSession = Depends(get_current_session),
    service: SessionService = Depends(get_session_service),
    backend: Backend = Depends(get_user_backend)
):
    """Schedule a study session (members only)"""
    await check_group_member(group_id, session, backend)
    return await service.create_session(group_id, session, session_data)


@router.get("/groups/{group_id}/sessions", response_model=List[SessionResponse])
async def list_group_sessions(
    group_id: str,
    upcoming: bool = False,
    session: AuthSession = Depends(get_current_session),
    service: SessionService = Depends(get_session_service),
    backend: Backend = Depends(get_user_backend)
):
    """Sessions of a group ordered by start time (members only)"""
    await check_group_member(group_id, session, backend)
    return await service.list_sessions(group_id, upcoming=upcoming)


@router.get("/sessions/mine", response_model=List[SessionResponse])
async def list_my_sessions(
    upcoming: bool = True,
    session: AuthSession = Depends(get_current_session),
    service: SessionService = Depends(get_session_service)
):
    """Sessions across all of the caller's groups"""
    return await service.list_user_sessions(session.user_id, upcoming=upcoming)


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    session: AuthSession = Depends(get_current_session),
    service: SessionService = Depends(get_session_service),
    backend: Backend = Depends(get_user_backend)
):
    """Get one session with its attendees (members of its group only)"""
    row = await service.get_session_row(session_id)
    await check_group_member(row["group_id"], session, backend)
    return await service.get_session(session_id)


@router.put("/sessions/{session_id}/rsvp", response_model=AttendeeResponse)
async def rsvp(
    session_id: str,
    rsvp_data: RSVPRequest,
    session: AuthSession = Depends(get_current_session),
    service: SessionService = Depends(get_session_service),
    backend: Backend = Depends(get_user_backend)
):
    """Set the caller's attendance status (members of the session's group only)"""
    row = await service.get_session_row(session_id)
    await check_group_member(row["group_id"], session, backend)
    return await service.rsvp(session_id, session.user_id, rsvp_data.status)


@live_router.websocket("/groups/{group_id}/sessions")
async def live_group_sessions(
    websocket: WebSocket,
    group_id: str,
    session: AuthSession = Depends(get_ws_session),
    backend: Backend = Depends(get_ws_backend)
):
    """Live session calendar for a group"""
    service = SessionService(backend)
    try:
        await check_group_member(group_id, session, backend)
    except PermissionDeniedError as e:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason=e.message)
    await serve_view(websocket, service.sessions_view(group_id, session))


@live_router.websocket("/sessions/{session_id}/attendees")
async def live_attendees(
    websocket: WebSocket,
    session_id: str,
    session: AuthSession = Depends(get_ws_session),
    backend: Backend = Depends(get_ws_backend)
):
    """Live attendance for one session. Accepts {"action": "rsvp", "status": ...}"""
    service = SessionService(backend)
    try:
        row = await service.get_session_row(session_id)
        await check_group_member(row["group_id"], session, backend)
    except (NotFoundError, PermissionDeniedError) as e:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason=e.message)
    view = service.attendance_view(session_id, session)
    await serve_view(websocket, view, view.handle_action)

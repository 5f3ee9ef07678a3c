from fastapi import APIRouter, Depends, WebSocket, WebSocketException, status
from studysync.core.dependencies import (
    check_group_member, get_current_session, get_user_backend, get_ws_backend, get_ws_session
)
from studysync.core.errors import PermissionDeniedError
from studysync.core.session import AuthSession
from studysync.database.backend import Backend
from studysync.modules.messages.schemas import MessageCreate, MessageResponse
from studysync.modules.messages.service import MessageService
from studysync.realtime.websocket import serve_view
from typing import List

router = APIRouter(prefix="/groups/{group_id}/messages", tags=["messages"])
live_router = APIRouter(prefix="/ws/groups/{group_id}/messages", tags=["live"])


def get_message_service(backend: Backend = Depends(get_user_backend)) -> MessageService:
    return MessageService(backend)


@router.get("", response_model=List[MessageResponse])
async def list_messages(
    group_id: str,
    session: AuthSession = Depends(get_current_session),
    service: MessageService = Depends(get_message_service),
    backend: Backend = Depends(get_user_backend)
):
    """Chat history (members only)"""
    await check_group_member(group_id, session, backend)
    return await service.list_messages(group_id)


@router.post("", response_model=MessageResponse, status_code=201)
async def send_message(
    group_id: str,
    message: MessageCreate,
    session: AuthSession = Depends(get_current_session),
    service: MessageService = Depends(get_message_service),
    backend: Backend = Depends(get_user_backend)
):
    """Send a chat message (members only)"""
    await check_group_member(group_id, session, backend)
    return await service.send_message(group_id, session, message.content)


@live_router.websocket("")
async def live_messages(
    websocket: WebSocket,
    group_id: str,
    session: AuthSession = Depends(get_ws_session),
    backend: Backend = Depends(get_ws_backend)
):
    """Live chat: snapshot, then new messages as they are posted. Accepts {"action": "send", "content": ...}"""
    try:
        await check_group_member(group_id, session, backend)
    except PermissionDeniedError as e:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason=e.message)
    service = MessageService(backend)

    async def on_action(message: dict):
        return await service.handle_action(group_id, session, message)

    await serve_view(websocket, service.live_view(group_id, session), on_action)

import logging
from typing import Any, Dict, List, Optional

from studysync.core.errors import BackendError, ValidationFailure, WriteFailure
from studysync.core.session import AuthSession
from studysync.database.backend import Backend
from studysync.modules.messages.schemas import MessageResponse
from studysync.realtime.hydration import ProfileHydrator
from studysync.realtime.loader import load_snapshot
from studysync.realtime.scope import Scope
from studysync.realtime.view import LiveView

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4000


def message_scope(group_id: str) -> Scope:
    return Scope.of("messages", "group_id", group_id, order_by="created_at")


class MessageService:
    def __init__(self, backend: Backend):
        self.backend = backend

    async def list_messages(self, group_id: str) -> List[MessageResponse]:
        """Chat history for a group, oldest first"""
        rows = await load_snapshot(self.backend, message_scope(group_id), ProfileHydrator(self.backend))
        return [MessageResponse(**row) for row in rows]

    async def send_message(self, group_id: str, session: AuthSession, content: str) -> MessageResponse:
        """Post a message; it reaches live views through the change feed"""
        content = (content or "").strip()
        if not content:
            raise ValidationFailure("Message cannot be empty")
        if len(content) > MAX_MESSAGE_LENGTH:
            raise ValidationFailure(f"Message is longer than {MAX_MESSAGE_LENGTH} characters")
        try:
            row = await self.backend.insert("messages", {
                "group_id": group_id,
                "user_id": session.user_id,
                "content": content,
            })
        except BackendError as e:
            logger.error(f"Failed to send message to group {group_id}: [{e.code}] {e.message}")
            raise WriteFailure("Failed to send message", cause=e) from e
        row = await ProfileHydrator(self.backend).hydrate_one(row)
        return MessageResponse(**row)

    def live_view(self, group_id: str, session: AuthSession) -> LiveView:
        return LiveView(
            self.backend,
            message_scope(group_id),
            session,
            hydrator=ProfileHydrator(self.backend),
            events=("INSERT",),
        )

    async def handle_action(self, group_id: str, session: AuthSession, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if message.get("action") != "send":
            raise ValidationFailure(f"Unsupported action: {message.get('action')}")
        sent = await self.send_message(group_id, session, message.get("content", ""))
        return {"type": "ack", "action": "send", "id": sent.id}

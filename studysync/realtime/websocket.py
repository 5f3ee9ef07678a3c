import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect

from studysync.core.errors import LoadFailure, StudySyncError
from studysync.realtime.view import LiveView

logger = logging.getLogger(__name__)

ActionHandler = Callable[[Dict[str, Any]], Awaitable[Optional[Dict[str, Any]]]]


def _error(exc: StudySyncError) -> Dict[str, Any]:
    return {"type": "error", "code": exc.code, "detail": exc.message}


async def serve_view(websocket: WebSocket, view: LiveView, on_action: Optional[ActionHandler] = None) -> None:
    """
    Bridge a live view onto an accepted-on-entry WebSocket.

    The view lives exactly as long as the connection: it is mounted after
    accept and unmounted in the ``finally`` block, so its subscriptions are
    closed before the handler returns. Clients may send ``{"action":
    "reload"}`` to retry a failed load; any other action is passed to
    `on_action`.
    """
    await websocket.accept()
    view.add_listener(websocket.send_json)
    try:
        try:
            await view.mount()
        except LoadFailure as e:
            await websocket.send_json(_error(e))

        while True:
            try:
                message = await websocket.receive_json()
            except (json.JSONDecodeError, UnicodeDecodeError):
                await websocket.send_json({"type": "error", "code": "bad_message", "detail": "Expected a JSON object"})
                continue
            if not isinstance(message, dict):
                await websocket.send_json({"type": "error", "code": "bad_message", "detail": "Expected a JSON object"})
                continue

            action = message.get("action")
            try:
                if action == "reload":
                    await view.reload()
                elif on_action is not None:
                    reply = await on_action(message)
                    if reply is not None:
                        await websocket.send_json(reply)
                else:
                    await websocket.send_json({"type": "error", "code": "unsupported", "detail": f"Unsupported action: {action}"})
            except StudySyncError as e:
                await websocket.send_json(_error(e))
    except WebSocketDisconnect:
        logger.debug(f"Client left {view.scope.table} view for {view.scope.filter or 'all'}")
    finally:
        await view.unmount()

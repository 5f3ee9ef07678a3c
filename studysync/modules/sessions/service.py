import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from studysync.core.errors import BackendError, LoadFailure, NotFoundError, ValidationFailure, WriteFailure
from studysync.core.session import AuthSession
from studysync.database.backend import Backend
from studysync.modules.sessions.schemas import AttendanceStatus, SessionCreate, SessionResponse
from studysync.realtime.hydration import AttendeesHydrator, ProfileHydrator
from studysync.realtime.loader import load_snapshot
from studysync.realtime.scope import Scope
from studysync.realtime.view import LiveView

logger = logging.getLogger(__name__)


def session_scope(group_id: str) -> Scope:
    return Scope.of("sessions", "group_id", group_id, order_by="start_time")


def attendance_scope(session_id: str) -> Scope:
    return Scope.of(
        "session_attendees", "session_id", session_id,
        order_by="created_at",
        key=("session_id", "user_id"),
    )


def validate_session(session_data: SessionCreate) -> None:
    if not session_data.title.strip():
        raise ValidationFailure("Please fill out all required fields: title is missing")
    if not session_data.location.strip():
        raise ValidationFailure("Please fill out all required fields: location is missing")
    if session_data.end_time <= session_data.start_time:
        raise ValidationFailure("End time must be after start time", code="invalid_time_range")


def _to_response(row: Dict[str, Any]) -> SessionResponse:
    attendees = row.get("attendees") or []
    confirmed = sum(1 for a in attendees if a.get("status") == AttendanceStatus.CONFIRMED.value)
    return SessionResponse(**{**row, "attendees": attendees, "confirmed_count": confirmed})


class SessionService:
    def __init__(self, backend: Backend):
        self.backend = backend

    async def create_session(self, group_id: str, auth: AuthSession, session_data: SessionCreate) -> SessionResponse:
        """Schedule a session; the host is added as a confirmed attendee"""
        validate_session(session_data)
        try:
            row = await self.backend.insert("sessions", {
                "group_id": group_id,
                "host_id": auth.user_id,
                "title": session_data.title.strip(),
                "description": (session_data.description or "").strip() or None,
                "start_time": session_data.start_time.isoformat(),
                "end_time": session_data.end_time.isoformat(),
                "location": session_data.location.strip(),
            })
        except BackendError as e:
            logger.error(f"Error creating session in group {group_id}: [{e.code}] {e.message}")
            raise WriteFailure("Failed to create session", cause=e) from e

        attendees = []
        try:
            host = await self.backend.insert("session_attendees", {
                "session_id": row["id"],
                "user_id": auth.user_id,
                "status": AttendanceStatus.CONFIRMED.value,
            })
            attendees.append(await ProfileHydrator(self.backend).hydrate_one(host))
        except BackendError as e:
            # The session itself was created; the host can still RSVP later.
            logger.error(f"Failed to add host {auth.user_id} as attendee of session {row['id']}: [{e.code}] {e.message}")

        logger.info(f"Session {row['id']} created in group {group_id} by {auth.user_id}")
        return _to_response({**row, "attendees": attendees})

    async def list_sessions(self, group_id: str, upcoming: bool = False) -> List[SessionResponse]:
        """Sessions of a group ordered by start time, each with its attendees"""
        gte = {"start_time": datetime.now(timezone.utc).isoformat()} if upcoming else None
        rows = await load_snapshot(self.backend, session_scope(group_id), AttendeesHydrator(self.backend), gte=gte)
        return [_to_response(row) for row in rows]

    async def list_user_sessions(self, user_id: str, upcoming: bool = True) -> List[SessionResponse]:
        """Sessions across every group the user belongs to"""
        try:
            memberships = await self.backend.select("group_members", eq={"user_id": user_id}, columns="group_id")
            group_ids = [m["group_id"] for m in memberships]
            if not group_ids:
                return []
            gte = {"start_time": datetime.now(timezone.utc).isoformat()} if upcoming else None
            rows = await self.backend.select(
                "sessions", in_={"group_id": group_ids}, gte=gte, order="start_time"
            )
            rows = await AttendeesHydrator(self.backend).hydrate(rows)
        except BackendError as e:
            raise LoadFailure("Failed to load sessions", cause=e) from e
        return [_to_response(row) for row in rows]

    async def get_session_row(self, session_id: str) -> Dict[str, Any]:
        try:
            row = await self.backend.select_one("sessions", {"id": session_id})
        except BackendError as e:
            raise LoadFailure("Failed to load session", cause=e) from e
        if not row:
            raise NotFoundError("Session not found")
        return row

    async def get_session(self, session_id: str) -> SessionResponse:
        row = await self.get_session_row(session_id)
        try:
            rows = await AttendeesHydrator(self.backend).hydrate([row])
        except BackendError as e:
            raise LoadFailure("Failed to load session attendees", cause=e) from e
        return _to_response(rows[0])

    async def rsvp(
        self,
        session_id: str,
        user_id: str,
        status: Union[AttendanceStatus, str],
    ) -> Dict[str, Any]:
        """
        Set a user's attendance status for a session.

        Looks up the (session, user) row and updates it, or inserts one when
        there is none. Re-selecting the current status makes no remote write.
        An insert that loses a race against a concurrent insert for the same
        pair is retried as an update.
        """
        status = AttendanceStatus(status)
        match = {"session_id": session_id, "user_id": user_id}
        try:
            existing = await self.backend.select_one("session_attendees", match)
        except BackendError as e:
            raise WriteFailure("Failed to update RSVP", cause=e) from e

        if existing and existing.get("status") == status.value:
            return existing

        try:
            if existing:
                rows = await self.backend.update("session_attendees", {"id": existing["id"]}, {"status": status.value})
                return rows[0] if rows else {**existing, "status": status.value}
            try:
                return await self.backend.insert("session_attendees", {**match, "status": status.value})
            except BackendError as e:
                if not e.is_unique_violation:
                    raise
                logger.info(f"Concurrent RSVP insert for session {session_id} user {user_id}; updating instead")
                rows = await self.backend.update("session_attendees", match, {"status": status.value})
                if not rows:
                    raise
                return rows[0]
        except BackendError as e:
            logger.error(f"Failed to update RSVP status for session {session_id}: [{e.code}] {e.message}")
            raise WriteFailure("Failed to update RSVP", cause=e) from e

    def sessions_view(self, group_id: str, auth: AuthSession) -> LiveView:
        return LiveView(
            self.backend,
            session_scope(group_id),
            auth,
            hydrator=AttendeesHydrator(self.backend),
        )

    def attendance_view(self, session_id: str, auth: AuthSession) -> "AttendanceView":
        return AttendanceView(self, session_id, auth)


class AttendanceView(LiveView):
    """Attendance of one session, with optimistic RSVP for the viewing user."""

    def __init__(self, service: SessionService, session_id: str, auth: AuthSession):
        super().__init__(
            service.backend,
            attendance_scope(session_id),
            auth,
            hydrator=ProfileHydrator(service.backend),
        )
        self.service = service
        self.session_id = session_id

    @property
    def my_status(self) -> Optional[str]:
        row = self.collection.get((self.session_id, self.session.user_id))
        return row.get("status") if row else None

    async def rsvp(self, status: Union[AttendanceStatus, str]) -> Dict[str, Any]:
        status = AttendanceStatus(status)
        key = (self.session_id, self.session.user_id)
        current = self.collection.get(key) or {}
        optimistic = {
            **current,
            "session_id": self.session_id,
            "user_id": self.session.user_id,
            "status": status.value,
        }

        async def write():
            return await self.service.rsvp(self.session_id, self.session.user_id, status)

        return await self.mutate(key, optimistic, write)

    async def handle_action(self, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if message.get("action") != "rsvp":
            raise ValidationFailure(f"Unsupported action: {message.get('action')}")
        try:
            status = AttendanceStatus(message.get("status"))
        except ValueError:
            raise ValidationFailure("status must be one of confirmed, tentative, declined")
        row = await self.rsvp(status)
        return {"type": "ack", "action": "rsvp", "status": row.get("status") if row else status.value}

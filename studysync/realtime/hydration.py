import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

from studysync.core.errors import BackendError
from studysync.database.backend import Backend

logger = logging.getLogger(__name__)

UNKNOWN_PROFILE = {"name": "Unknown User", "avatar": None}


class Hydrator(Protocol):
    async def hydrate(self, records: List[Dict[str, Any]]) -> List[Dict[str, Any]]: ...

    async def hydrate_one(self, record: Dict[str, Any]) -> Dict[str, Any]: ...


class ProfileHydrator:
    """Resolves a user foreign key into ``{name, avatar}`` display data."""

    def __init__(self, backend: Backend, field: str = "user_id", target: str = "profile"):
        self.backend = backend
        self.field = field
        self.target = target
        self._cache: Dict[str, Dict[str, Any]] = {}

    async def _fetch_many(self, user_ids: Sequence[str]) -> None:
        missing = [u for u in user_ids if u not in self._cache]
        if not missing:
            return
        rows = await self.backend.select(
            "profiles",
            in_={"id": missing},
            columns="id, name, avatar",
        )
        for row in rows:
            self._cache[row["id"]] = {"name": row.get("name"), "avatar": row.get("avatar")}

    async def hydrate(self, records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        user_ids = list({r[self.field] for r in records if r.get(self.field)})
        try:
            await self._fetch_many(user_ids)
        except BackendError as e:
            logger.error(f"Error fetching profiles for {len(user_ids)} user(s): {e.message}")
        return [self._attach(record) for record in records]

    async def hydrate_one(self, record: Dict[str, Any]) -> Dict[str, Any]:
        user_id = record.get(self.field)
        if user_id and user_id not in self._cache:
            try:
                profile = await self.backend.select_one(
                    "profiles", {"id": user_id}, columns="id, name, avatar"
                )
            except BackendError as e:
                logger.error(f"Error fetching profile {user_id}: {e.message}")
                profile = None
            if profile:
                self._cache[user_id] = {"name": profile.get("name"), "avatar": profile.get("avatar")}
        return self._attach(record)

    def _attach(self, record: Dict[str, Any]) -> Dict[str, Any]:
        profile = self._cache.get(record.get(self.field)) or UNKNOWN_PROFILE
        return {**record, self.target: dict(profile)}


class AttendeesHydrator:
    """Attaches the attendance rows of each session as ``attendees``."""

    def __init__(self, backend: Backend, profiles: Optional[ProfileHydrator] = None):
        self.backend = backend
        self.profiles = profiles or ProfileHydrator(backend)

    async def _attendees(self, session_ids: List[str]) -> Dict[str, List[Dict[str, Any]]]:
        by_session: Dict[str, List[Dict[str, Any]]] = {sid: [] for sid in session_ids}
        if not session_ids:
            return by_session
        rows = await self.backend.select(
            "session_attendees",
            in_={"session_id": session_ids},
            order="created_at",
        )
        rows = await self.profiles.hydrate(rows)
        for row in rows:
            by_session.setdefault(row["session_id"], []).append(row)
        return by_session

    async def hydrate(self, records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        by_session = await self._attendees([r["id"] for r in records])
        return [{**r, "attendees": by_session.get(r["id"], [])} for r in records]

    async def hydrate_one(self, record: Dict[str, Any]) -> Dict[str, Any]:
        # A freshly inserted session has no attendees until the host row lands.
        if "attendees" in record:
            return record
        try:
            by_session = await self._attendees([record["id"]])
        except BackendError as e:
            logger.error(f"Error fetching attendees for session {record.get('id')}: {e.message}")
            by_session = {}
        return {**record, "attendees": by_session.get(record["id"], [])}

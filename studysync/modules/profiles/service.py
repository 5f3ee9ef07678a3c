import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from studysync.core.errors import BackendError, LoadFailure, NotFoundError, WriteFailure
from studysync.core.session import AuthSession
from studysync.database.backend import Backend
from studysync.modules.profiles.schemas import ProfileResponse, ProfileUpdate, StudyPreferences

logger = logging.getLogger(__name__)


def parse_study_preferences(raw: Any) -> StudyPreferences:
    """Accepts both snake_case and the camelCase keys older clients stored."""
    if not isinstance(raw, dict):
        return StudyPreferences()
    time_of_day = raw.get("time_of_day", raw.get("timeOfDay")) or "any"
    group_size = raw.get("group_size", raw.get("groupSize"))
    if not isinstance(group_size, int) or isinstance(group_size, bool):
        group_size = 5
    return StudyPreferences(time_of_day=time_of_day, group_size=group_size)


def _to_response(row: Dict[str, Any]) -> ProfileResponse:
    return ProfileResponse(
        **{
            **row,
            "subject_interests": row.get("subject_interests") or [],
            "study_preferences": parse_study_preferences(row.get("study_preferences")),
        }
    )


class ProfileService:
    def __init__(self, backend: Backend):
        self.backend = backend

    async def _fetch(self, user_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await self.backend.select_one("profiles", {"id": user_id})
        except BackendError as e:
            raise LoadFailure("Unable to fetch user profile", cause=e) from e

    async def get_profile(self, user_id: str) -> ProfileResponse:
        """Get profile by user ID"""
        row = await self._fetch(user_id)
        if not row:
            raise NotFoundError("Profile not found")
        return _to_response(row)

    async def get_or_create_profile(self, session: AuthSession) -> ProfileResponse:
        """Get the caller's profile, creating a default one on first access"""
        row = await self._fetch(session.user_id)
        if row:
            return _to_response(row)
        logger.info(f"Profile not found for {session.user_id}, creating default profile")
        now = datetime.now(timezone.utc).isoformat()
        try:
            row = await self.backend.insert("profiles", {
                "id": session.user_id,
                "name": session.display_name,
                "email": session.email or "",
                "created_at": now,
                "updated_at": now,
            })
        except BackendError as e:
            if not e.is_unique_violation:
                raise WriteFailure("Unable to create user profile", cause=e) from e
            # Created concurrently by another request
            row = await self._fetch(session.user_id)
            if not row:
                raise WriteFailure("Unable to create user profile", cause=e) from e
        return _to_response(row)

    async def update_profile(self, user_id: str, profile_data: ProfileUpdate) -> ProfileResponse:
        """Update profile; only fields that were set are written"""
        update_data = profile_data.model_dump(exclude_none=True)
        update_data["updated_at"] = datetime.now(timezone.utc).isoformat()
        try:
            rows = await self.backend.update("profiles", {"id": user_id}, update_data)
        except BackendError as e:
            logger.error(f"Profile update failed for {user_id}: [{e.code}] {e.message}")
            raise WriteFailure("Failed to update profile", cause=e) from e
        if not rows:
            raise NotFoundError("Profile not found")
        return _to_response(rows[0])

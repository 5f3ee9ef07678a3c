import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from studysync.config import settings
from studysync.core.errors import (
    AlreadyMemberError, BackendError, GroupFullError, LoadFailure, NotFoundError,
    PartialFailure, WriteFailure
)
from studysync.core.session import AuthSession
from studysync.database.backend import Backend
from studysync.modules.groups.schemas import GroupCreate, GroupResponse, GroupMemberResponse
from studysync.realtime.hydration import ProfileHydrator

logger = logging.getLogger(__name__)


def _matches_query(group: Dict[str, Any], query: str) -> bool:
    needle = query.lower()
    haystack = [group.get("name") or "", group.get("description") or ""] + list(group.get("subject_tags") or [])
    return any(needle in text.lower() for text in haystack)


class GroupService:
    def __init__(self, backend: Backend):
        self.backend = backend

    async def _member_counts(self, group_ids: List[str]) -> Counter:
        if not group_ids:
            return Counter()
        rows = await self.backend.select(
            "group_members",
            in_={"group_id": group_ids},
            columns="group_id",
        )
        return Counter(row["group_id"] for row in rows)

    def _to_response(self, group: Dict[str, Any], member_count: int) -> GroupResponse:
        return GroupResponse(**{
            **group,
            "subject_tags": group.get("subject_tags") or [],
            "member_count": member_count,
        })

    async def create_group(self, group_data: GroupCreate, session: AuthSession) -> GroupResponse:
        """Create a group and make the creator its admin"""
        now = datetime.now(timezone.utc).isoformat()
        try:
            group = await self.backend.insert("groups", {
                "name": group_data.name.strip(),
                "subject": group_data.subject.strip(),
                "description": group_data.description,
                "capacity": group_data.capacity or settings.default_group_capacity,
                "is_public": group_data.is_public,
                "subject_tags": group_data.subject_tags,
                "created_at": now,
                "updated_at": now,
            })
        except BackendError as e:
            logger.error(f"Error creating group: [{e.code}] {e.message}")
            raise WriteFailure("Failed to create group", cause=e) from e

        try:
            await self.backend.insert("group_members", {
                "group_id": group["id"],
                "user_id": session.user_id,
                "role": "admin",
                "joined_at": now,
            })
        except BackendError as e:
            logger.error(f"Group {group['id']} created but adding admin {session.user_id} failed: [{e.code}] {e.message}")
            raise PartialFailure(
                "Group created but you could not be added as its admin",
                completed="group",
                failed="membership",
                cause=e,
            ) from e

        logger.info(f"Group {group['id']} created by {session.user_id}")
        return self._to_response(group, 1)

    async def get_group(self, group_id: str) -> GroupResponse:
        """Get group by ID with its member count"""
        try:
            group = await self.backend.select_one("groups", {"id": group_id})
            if not group:
                raise NotFoundError("Group not found")
            count = await self.backend.count("group_members", {"group_id": group_id})
        except BackendError as e:
            raise LoadFailure("Failed to load group details", cause=e) from e
        return self._to_response(group, count)

    async def list_groups(
        self,
        subject: Optional[str] = None,
        query: Optional[str] = None,
        member_of_user_id: Optional[str] = None,
    ) -> List[GroupResponse]:
        """
        List public groups, or the groups a user belongs to. Member counts
        come from a single membership query for the whole page.
        """
        try:
            if member_of_user_id is not None:
                memberships = await self.backend.select(
                    "group_members",
                    eq={"user_id": member_of_user_id},
                    columns="group_id",
                )
                group_ids = [m["group_id"] for m in memberships]
                if not group_ids:
                    return []
                groups = await self.backend.select("groups", in_={"id": group_ids}, order="created_at", desc=True)
            else:
                groups = await self.backend.select("groups", eq={"is_public": True}, order="created_at", desc=True)
            if subject:
                groups = [g for g in groups if g.get("subject") == subject]
            if query:
                groups = [g for g in groups if _matches_query(g, query)]
            counts = await self._member_counts([g["id"] for g in groups])
        except BackendError as e:
            logger.error(f"Failed to fetch groups: [{e.code}] {e.message}")
            raise LoadFailure("Failed to load study groups", cause=e) from e
        return [self._to_response(g, counts.get(g["id"], 0)) for g in groups]

    async def list_members(self, group_id: str) -> List[GroupMemberResponse]:
        """List members of a group with their display profile"""
        try:
            rows = await self.backend.select(
                "group_members",
                eq={"group_id": group_id},
                order="joined_at",
            )
            rows = await ProfileHydrator(self.backend).hydrate(rows)
        except BackendError as e:
            raise LoadFailure("Failed to load group members", cause=e) from e
        return [GroupMemberResponse(**row) for row in rows]

    async def join_group(self, group_id: str, session: AuthSession) -> GroupMemberResponse:
        """Join a group as a regular member"""
        try:
            group = await self.backend.select_one("groups", {"id": group_id})
            if not group:
                raise NotFoundError("Group not found")
            existing = await self.backend.select_one(
                "group_members", {"group_id": group_id, "user_id": session.user_id}
            )
            member_count = await self.backend.count("group_members", {"group_id": group_id})
        except BackendError as e:
            raise LoadFailure("Failed to load group details", cause=e) from e

        if existing:
            raise AlreadyMemberError("You are already a member of this group")
        capacity = group.get("capacity")
        if capacity is not None and member_count >= capacity:
            if settings.enforce_group_capacity:
                raise GroupFullError(f"This group is full ({member_count}/{capacity} members)")
            logger.warning(f"Group {group_id} over capacity: {member_count + 1}/{capacity}")

        try:
            row = await self.backend.insert("group_members", {
                "group_id": group_id,
                "user_id": session.user_id,
                "role": "member",
                "joined_at": datetime.now(timezone.utc).isoformat(),
            })
        except BackendError as e:
            if e.is_unique_violation:
                raise AlreadyMemberError("You are already a member of this group") from e
            logger.error(f"Failed to join group {group_id}: [{e.code}] {e.message}")
            raise WriteFailure("Failed to join the group", cause=e) from e

        logger.info(f"User {session.user_id} joined group {group_id}")
        row = await ProfileHydrator(self.backend).hydrate_one(row)
        return GroupMemberResponse(**row)

    async def leave_group(self, group_id: str, user_id: str) -> None:
        """Remove a user's membership"""
        try:
            rows = await self.backend.delete("group_members", {"group_id": group_id, "user_id": user_id})
        except BackendError as e:
            raise WriteFailure("Failed to leave the group", cause=e) from e
        if not rows:
            raise NotFoundError("You are not a member of this group")
        logger.info(f"User {user_id} left group {group_id}")

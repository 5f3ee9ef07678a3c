"""
Resources are stored in two legs with no atomicity between them: the object
in storage, then the metadata row. Upload aborts if storage fails; if the row
insert fails the stored object is left behind and logged as a leak. Delete
removes the row first, then the object, attempting both regardless of the
other's errors. A row delete that matches nothing leaves the object alone,
since the row still points at it.
"""

import logging
from typing import List, Optional

from studysync.config import settings
from studysync.core.errors import BackendError, LoadFailure, NotFoundError, PermissionDeniedError, WriteFailure
from studysync.core.dependencies import get_membership
from studysync.core.session import AuthSession
from studysync.database.backend import Backend
from studysync.modules.resources.schemas import ResourceResponse, ResourceDeleteResponse
from studysync.modules.resources.storage import key_from_public_url, object_key, validate_upload
from studysync.realtime.hydration import ProfileHydrator
from studysync.realtime.loader import load_snapshot
from studysync.realtime.scope import Scope
from studysync.realtime.view import LiveView

logger = logging.getLogger(__name__)


def resource_scope(group_id: str, limit: Optional[int] = None) -> Scope:
    return Scope.of("resources", "group_id", group_id, order_by="created_at", descending=True, limit=limit)


class ResourceService:
    def __init__(self, backend: Backend, bucket: Optional[str] = None):
        self.backend = backend
        self.bucket = bucket or settings.storage_bucket

    async def list_resources(self, group_id: str, limit: Optional[int] = None) -> List[ResourceResponse]:
        """Resources shared in a group, newest first"""
        rows = await load_snapshot(self.backend, resource_scope(group_id, limit), ProfileHydrator(self.backend))
        return [ResourceResponse(**row) for row in rows]

    async def list_user_resources(self, user_id: str) -> List[ResourceResponse]:
        """Resources across every group the user belongs to"""
        try:
            memberships = await self.backend.select("group_members", eq={"user_id": user_id}, columns="group_id")
            group_ids = [m["group_id"] for m in memberships]
            if not group_ids:
                return []
            rows = await self.backend.select(
                "resources", in_={"group_id": group_ids}, order="created_at", desc=True
            )
            rows = await ProfileHydrator(self.backend).hydrate(rows)
        except BackendError as e:
            raise LoadFailure("Failed to load resources", cause=e) from e
        return [ResourceResponse(**row) for row in rows]

    async def upload_resource(
        self,
        group_id: str,
        session: AuthSession,
        filename: str,
        content_type: str,
        data: bytes,
        title: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> ResourceResponse:
        validate_upload(filename, content_type, len(data))
        key = object_key(group_id, filename)

        try:
            await self.backend.put_object(
                self.bucket,
                key,
                data,
                content_type=content_type,
                cache_control=settings.storage_cache_control,
                no_overwrite=True,
            )
        except BackendError as e:
            logger.error(f"Upload of {filename} to {self.bucket}/{key} failed: [{e.code}] {e.message}")
            raise WriteFailure("There was an error uploading your file. Please try again.", cause=e) from e

        try:
            file_url = await self.backend.public_url(self.bucket, key)
            row = await self.backend.insert("resources", {
                "group_id": group_id,
                "user_id": session.user_id,
                "title": (title or "").strip() or filename,
                "description": description,
                "file_url": file_url,
                "file_type": content_type,
                "tags": tags or [],
            })
        except BackendError as e:
            # Known gap: the stored object is not cleaned up.
            logger.warning(
                f"Orphaned object {self.bucket}/{key}: stored but resource row failed: [{e.code}] {e.message}"
            )
            raise WriteFailure("File was stored but could not be registered. Please try again.", cause=e) from e

        logger.info(f"Resource {row['id']} uploaded to group {group_id} by {session.user_id}")
        row = await ProfileHydrator(self.backend).hydrate_one(row)
        return ResourceResponse(**row)

    async def delete_resource(self, resource_id: str, session: AuthSession) -> ResourceDeleteResponse:
        """Delete the metadata row, then the stored object"""
        try:
            resource = await self.backend.select_one("resources", {"id": resource_id})
        except BackendError as e:
            raise LoadFailure("Failed to load resource", cause=e) from e
        if not resource:
            raise NotFoundError("Resource not found")
        if resource["user_id"] != session.user_id:
            membership = await get_membership(resource["group_id"], session.user_id, self.backend)
            if not membership or membership.get("role") != "admin":
                raise PermissionDeniedError("Only the uploader or a group admin can delete this file")

        row_error: Optional[BackendError] = None
        try:
            deleted = await self.backend.delete("resources", {"id": resource_id})
        except BackendError as e:
            row_error = e
            logger.error(f"Failed to delete resource row {resource_id}: [{e.code}] {e.message}")
        else:
            if not deleted:
                # Row-level security filters the row out rather than raising.
                logger.warning(f"Delete of resource row {resource_id} matched no rows; keeping stored file")
                raise WriteFailure("File could not be deleted. You may not have permission to remove it.")

        storage_deleted = False
        storage_detail = None
        key = key_from_public_url(resource["file_url"], self.bucket)
        if key is None:
            storage_detail = "Stored file location could not be determined"
            logger.warning(f"Resource {resource_id} has no recognisable storage key: {resource['file_url']}")
        else:
            try:
                await self.backend.delete_object(self.bucket, key)
                storage_deleted = True
            except BackendError as e:
                storage_detail = f"Stored file could not be deleted: {e.message}"
                logger.error(f"Error deleting file {self.bucket}/{key} from storage: [{e.code}] {e.message}")

        if row_error is not None:
            detail = "Failed to delete file"
            if storage_detail:
                detail = f"{detail}; {storage_detail}"
            raise WriteFailure(detail, cause=row_error) from row_error

        logger.info(f"Resource {resource_id} deleted by {session.user_id}")
        return ResourceDeleteResponse(id=resource_id, storage_deleted=storage_deleted, detail=storage_detail)

    def live_view(self, group_id: str, session: AuthSession, limit: Optional[int] = None) -> LiveView:
        return LiveView(
            self.backend,
            resource_scope(group_id, limit),
            session,
            hydrator=ProfileHydrator(self.backend),
        )

"""
Backend service facade.

Services and live views never touch the Supabase SDK directly; they talk to
the `Backend` protocol below. `SupabaseBackend` is the production
implementation over the async Supabase client. Every failure surfaces as a
BackendError carrying the backend's machine code and message.

The shared client never holds a user session. Record and storage calls made
for a caller go through `for_session`, which scopes them to the caller's
access token, and password sign-in and sign-up run on a throwaway client.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Protocol

from postgrest import AsyncPostgrestClient
from postgrest.exceptions import APIError
from realtime import RealtimeSubscribeStates
from storage3 import AsyncStorageClient
from supabase import AsyncClient

from studysync.config import settings
from studysync.core.errors import BackendError
from studysync.core.session import AuthSession

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[Dict[str, Any]], None]
StatusCallback = Callable[[str, Optional[Exception]], None]
ClientFactory = Callable[[], Awaitable[AsyncClient]]


@dataclass
class SubscriptionHandle:
    channel_name: str
    table: str
    event: str
    filter: Optional[str]
    channel: Any = None


class Backend(Protocol):
    def for_session(self, session: AuthSession) -> "Backend": ...

    async def aclose(self) -> None: ...

    # Records
    async def select(
        self,
        table: str,
        eq: Optional[Dict[str, Any]] = None,
        gte: Optional[Dict[str, Any]] = None,
        in_: Optional[Dict[str, Iterable[Any]]] = None,
        order: Optional[str] = None,
        desc: bool = False,
        limit: Optional[int] = None,
        columns: str = "*",
    ) -> List[Dict[str, Any]]: ...

    async def select_one(self, table: str, eq: Dict[str, Any], columns: str = "*") -> Optional[Dict[str, Any]]: ...

    async def count(self, table: str, eq: Optional[Dict[str, Any]] = None) -> int: ...

    async def insert(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]: ...

    async def update(self, table: str, eq: Dict[str, Any], patch: Dict[str, Any]) -> List[Dict[str, Any]]: ...

    async def delete(self, table: str, eq: Dict[str, Any]) -> List[Dict[str, Any]]: ...

    async def upsert(self, table: str, record: Dict[str, Any], on_conflict: List[str]) -> Dict[str, Any]: ...

    # Change feed
    async def subscribe(
        self,
        channel_name: str,
        table: str,
        event: str,
        filter: Optional[str],
        callback: ChangeCallback,
        on_status: Optional[StatusCallback] = None,
    ) -> SubscriptionHandle: ...

    async def unsubscribe(self, handle: SubscriptionHandle) -> None: ...

    # Object storage
    async def put_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str,
        cache_control: str = "3600",
        no_overwrite: bool = True,
    ) -> None: ...

    async def public_url(self, bucket: str, key: str) -> str: ...

    async def delete_object(self, bucket: str, key: str) -> None: ...

    # Auth
    async def get_current_session(self) -> Optional[Dict[str, Any]]: ...

    async def get_user(self, token: str) -> Optional[Dict[str, Any]]: ...

    def on_auth_state_change(self, callback: Callable[[str, Optional[Dict[str, Any]]], None]) -> Any: ...

    async def sign_in(self, email: str, password: str) -> Dict[str, Any]: ...

    async def sign_up(self, email: str, password: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]: ...

    async def sign_out(self, access_token: str) -> None: ...


def to_backend_error(exc: Exception) -> BackendError:
    """Normalise SDK exceptions into a BackendError."""
    if isinstance(exc, BackendError):
        return exc
    if isinstance(exc, APIError):
        return BackendError(exc.message or str(exc), code=str(exc.code or "api_error"))
    # Storage and auth errors carry either a dict payload or code/status attributes.
    detail = exc.args[0] if exc.args else None
    if isinstance(detail, dict):
        code = str(detail.get("statusCode") or detail.get("error") or detail.get("code") or "unknown")
        return BackendError(str(detail.get("message") or detail), code=code)
    code = getattr(exc, "code", None) or getattr(exc, "status", None) or "unknown"
    message = getattr(exc, "message", None) or str(exc) or exc.__class__.__name__
    return BackendError(str(message), code=str(code))


def _user_dict(user: Any) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "user_metadata": user.user_metadata or {},
        "app_metadata": user.app_metadata or {},
    }


def _session_dict(session: Any) -> Dict[str, Any]:
    return {
        "user_id": session.user.id,
        "email": session.user.email,
        "access_token": session.access_token,
        "user": _user_dict(session.user),
    }


class SupabaseBackend:
    def __init__(
        self,
        client: AsyncClient,
        schema: Optional[str] = None,
        access_token: Optional[str] = None,
        client_factory: Optional[ClientFactory] = None,
    ):
        self.client = client
        self.schema = schema or settings.realtime_schema
        self.access_token = access_token
        self.client_factory = client_factory
        self._rest: Any = None
        self._storage: Any = None
        if access_token:
            base_url = str(client.supabase_url).rstrip("/")
            self.headers = {
                **client.options.headers,
                "apikey": client.supabase_key,
                "Authorization": f"Bearer {access_token}",
            }
            self._rest = AsyncPostgrestClient(f"{base_url}/rest/v1", headers=self.headers)
            self._storage = AsyncStorageClient(f"{base_url}/storage/v1", self.headers)
        else:
            self.headers = {}

    def for_session(self, session: AuthSession) -> "SupabaseBackend":
        """A backend whose record and storage calls run as the session's user."""
        if not session.access_token:
            return self
        return SupabaseBackend(self.client, self.schema, session.access_token, self.client_factory)

    async def aclose(self) -> None:
        if self.access_token is None:
            return
        await self._rest.aclose()
        await self._storage.aclose()

    def _table(self, table: str):
        rest = self._rest if self._rest is not None else self.client.postgrest
        return rest.from_(table)

    def _bucket(self, bucket: str):
        storage = self._storage if self._storage is not None else self.client.storage
        return storage.from_(bucket)

    async def _isolated_client(self) -> AsyncClient:
        if self.client_factory is None:
            raise BackendError("No client factory configured for sign-in", code="not_configured")
        return await self.client_factory()

    async def select(
        self,
        table: str,
        eq: Optional[Dict[str, Any]] = None,
        gte: Optional[Dict[str, Any]] = None,
        in_: Optional[Dict[str, Iterable[Any]]] = None,
        order: Optional[str] = None,
        desc: bool = False,
        limit: Optional[int] = None,
        columns: str = "*",
    ) -> List[Dict[str, Any]]:
        try:
            query = self._table(table).select(columns)
            for column, value in (eq or {}).items():
                query = query.eq(column, value)
            for column, value in (gte or {}).items():
                query = query.gte(column, value)
            for column, values in (in_ or {}).items():
                query = query.in_(column, list(values))
            if order:
                query = query.order(order, desc=desc)
            if limit is not None:
                query = query.limit(limit)
            result = await query.execute()
            return result.data or []
        except Exception as e:
            raise to_backend_error(e) from e

    async def select_one(self, table: str, eq: Dict[str, Any], columns: str = "*") -> Optional[Dict[str, Any]]:
        rows = await self.select(table, eq=eq, limit=1, columns=columns)
        return rows[0] if rows else None

    async def count(self, table: str, eq: Optional[Dict[str, Any]] = None) -> int:
        try:
            query = self._table(table).select("id", count="exact")
            for column, value in (eq or {}).items():
                query = query.eq(column, value)
            result = await query.execute()
            return result.count or 0
        except Exception as e:
            raise to_backend_error(e) from e

    async def insert(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        try:
            result = await self._table(table).insert(record).execute()
        except Exception as e:
            raise to_backend_error(e) from e
        if not result.data:
            raise BackendError(f"Insert into {table} returned no row", code="empty_result")
        return result.data[0]

    async def update(self, table: str, eq: Dict[str, Any], patch: Dict[str, Any]) -> List[Dict[str, Any]]:
        try:
            query = self._table(table).update(patch)
            for column, value in eq.items():
                query = query.eq(column, value)
            result = await query.execute()
            return result.data or []
        except Exception as e:
            raise to_backend_error(e) from e

    async def delete(self, table: str, eq: Dict[str, Any]) -> List[Dict[str, Any]]:
        try:
            query = self._table(table).delete()
            for column, value in eq.items():
                query = query.eq(column, value)
            result = await query.execute()
            return result.data or []
        except Exception as e:
            raise to_backend_error(e) from e

    async def upsert(self, table: str, record: Dict[str, Any], on_conflict: List[str]) -> Dict[str, Any]:
        try:
            result = await self._table(table)\
                .upsert(record, on_conflict=",".join(on_conflict))\
                .execute()
        except Exception as e:
            raise to_backend_error(e) from e
        if not result.data:
            raise BackendError(f"Upsert into {table} returned no row", code="empty_result")
        return result.data[0]

    async def subscribe(
        self,
        channel_name: str,
        table: str,
        event: str,
        filter: Optional[str],
        callback: ChangeCallback,
        on_status: Optional[StatusCallback] = None,
    ) -> SubscriptionHandle:
        """Open a postgres_changes channel and wait until it is SUBSCRIBED."""
        loop = asyncio.get_running_loop()
        ready: asyncio.Future = loop.create_future()

        def _status(state: RealtimeSubscribeStates, err: Optional[Exception] = None):
            name = getattr(state, "value", str(state))
            if not ready.done():
                if state == RealtimeSubscribeStates.SUBSCRIBED:
                    ready.set_result(True)
                else:
                    ready.set_exception(BackendError(
                        f"Channel {channel_name} failed to open: {err or name}",
                        code=str(name).lower(),
                    ))
                return
            if on_status is not None:
                on_status(str(name).upper(), err)

        channel = self.client.channel(channel_name)
        channel.on_postgres_changes(
            event,
            callback=callback,
            table=table,
            schema=self.schema,
            filter=filter,
        )
        handle = SubscriptionHandle(channel_name, table, event, filter, channel)
        try:
            await channel.subscribe(_status)
            await asyncio.wait_for(ready, timeout=settings.realtime_subscribe_timeout)
        except Exception as e:
            await self._remove_channel(channel)
            if isinstance(e, asyncio.TimeoutError):
                raise BackendError(f"Timed out subscribing to {channel_name}", code="timed_out") from e
            raise to_backend_error(e) from e
        logger.debug(f"Subscribed to {channel_name}")
        return handle

    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        await self._remove_channel(handle.channel)
        logger.debug(f"Unsubscribed from {handle.channel_name}")

    async def _remove_channel(self, channel: Any) -> None:
        try:
            await self.client.remove_channel(channel)
        except Exception as e:
            raise to_backend_error(e) from e

    async def put_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str,
        cache_control: str = "3600",
        no_overwrite: bool = True,
    ) -> None:
        try:
            await self._bucket(bucket).upload(
                path=key,
                file=data,
                file_options={
                    "content-type": content_type,
                    "cache-control": cache_control,
                    "upsert": "false" if no_overwrite else "true",
                },
            )
        except Exception as e:
            raise to_backend_error(e) from e

    async def public_url(self, bucket: str, key: str) -> str:
        try:
            return await self._bucket(bucket).get_public_url(key)
        except Exception as e:
            raise to_backend_error(e) from e

    async def delete_object(self, bucket: str, key: str) -> None:
        try:
            await self._bucket(bucket).remove([key])
        except Exception as e:
            raise to_backend_error(e) from e

    async def get_current_session(self) -> Optional[Dict[str, Any]]:
        try:
            session = await self.client.auth.get_session()
        except Exception as e:
            raise to_backend_error(e) from e
        return _session_dict(session) if session else None

    async def get_user(self, token: str) -> Optional[Dict[str, Any]]:
        try:
            response = await self.client.auth.get_user(jwt=token)
        except Exception as e:
            raise to_backend_error(e) from e
        if not response or not response.user:
            return None
        return _user_dict(response.user)

    def on_auth_state_change(self, callback: Callable[[str, Optional[Dict[str, Any]]], None]) -> Any:
        def _forward(event, session):
            callback(str(getattr(event, "value", event)), _session_dict(session) if session else None)

        return self.client.auth.on_auth_state_change(_forward)

    async def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        # A signed-in client re-keys its data clients, so sign in on a throwaway one.
        client = await self._isolated_client()
        try:
            response = await client.auth.sign_in_with_password({
                "email": email,
                "password": password,
            })
        except Exception as e:
            raise to_backend_error(e) from e
        if not response.user or not response.session:
            raise BackendError("Invalid credentials", code="invalid_credentials")
        return _session_dict(response.session)

    async def sign_up(self, email: str, password: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        client = await self._isolated_client()
        try:
            response = await client.auth.sign_up({
                "email": email,
                "password": password,
                "options": {"data": metadata or {}},
            })
        except Exception as e:
            raise to_backend_error(e) from e
        if not response.user:
            raise BackendError("Failed to register user", code="sign_up_failed")
        return _user_dict(response.user)

    async def sign_out(self, access_token: str) -> None:
        """Revoke one user's session server-side without touching the shared client."""
        try:
            await self.client.auth.admin.sign_out(access_token)
        except Exception as e:
            raise to_backend_error(e) from e

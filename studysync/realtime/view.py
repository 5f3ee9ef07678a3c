"""
Live views: a snapshot of one scope kept current by the change feed.

A view is mounted when its consumer attaches (a WebSocket connects) and
unmounted when it goes away. Mounting loads the snapshot first and then opens
the subscriptions; unmounting closes them before returning. Local writes go
through `mutate`, which applies them optimistically and rolls them back when
the backend rejects them.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from studysync.core.errors import LoadFailure, StudySyncError, SubscriptionFailure, WriteFailure
from studysync.core.session import AuthSession
from studysync.database.backend import Backend
from studysync.realtime.collection import Key, LocalCollection
from studysync.realtime.events import ChangeEvent, EventType
from studysync.realtime.hydration import Hydrator
from studysync.realtime.loader import load_snapshot
from studysync.realtime.scope import Scope
from studysync.realtime.subscriber import ChangeFeedSubscriber

logger = logging.getLogger(__name__)

Listener = Callable[[Dict[str, Any]], Awaitable[None]]


class ViewState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LIVE = "live"
    DEGRADED = "degraded"
    FAILED = "failed"
    CLOSED = "closed"


class LiveView:
    def __init__(
        self,
        backend: Backend,
        scope: Scope,
        session: AuthSession,
        hydrator: Optional[Hydrator] = None,
        events: Sequence[str] = ("*",),
        gte: Optional[Dict[str, Any]] = None,
    ):
        self.backend = backend
        self.scope = scope
        self.session = session
        self.hydrator = hydrator
        self.events = tuple(events)
        self.gte = gte
        self.collection = LocalCollection(scope)
        self.subscriber = ChangeFeedSubscriber(backend)
        self.state = ViewState.IDLE
        self.load_error: Optional[LoadFailure] = None
        self.warning: Optional[SubscriptionFailure] = None
        self._listeners: List[Listener] = []
        self._tasks: set = set()

    @property
    def mounted(self) -> bool:
        return self.state in (ViewState.LIVE, ViewState.DEGRADED)

    @property
    def records(self) -> List[Dict[str, Any]]:
        return self.collection.records

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    async def _notify(self, message: Dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                await listener(message)
            except Exception as e:
                logger.warning(f"Dropping listener on {self.scope.table} view: {e}")
                self._listeners.remove(listener)

    def snapshot_message(self) -> Dict[str, Any]:
        return {
            "type": "snapshot",
            "table": self.scope.table,
            "live": self.state == ViewState.LIVE,
            "records": self.records,
        }

    async def mount(self) -> "LiveView":
        self.state = ViewState.LOADING
        self.load_error = None
        self.warning = None
        try:
            records = await load_snapshot(self.backend, self.scope, self.hydrator, gte=self.gte)
        except LoadFailure as e:
            if self.state != ViewState.CLOSED:
                self.state = ViewState.FAILED
            self.load_error = e
            raise
        if self.state == ViewState.CLOSED:
            return self
        self.collection.replace(records)

        try:
            for event in self.events:
                await self.subscriber.subscribe(
                    self.scope, event, self._on_event, self.hydrator, self._on_drop
                )
        except SubscriptionFailure as e:
            self.warning = e
            await self.subscriber.close_all()

        if self.state == ViewState.CLOSED:
            await self.subscriber.close_all()
            return self
        self.state = ViewState.DEGRADED if self.warning else ViewState.LIVE
        await self._notify(self.snapshot_message())
        if self.warning:
            await self._notify(self._warning_message(self.warning))
        return self

    async def reload(self) -> "LiveView":
        """Retry a failed or degraded mount."""
        await self.subscriber.close_all()
        return await self.mount()

    async def unmount(self) -> None:
        if self.state == ViewState.CLOSED:
            return
        self.state = ViewState.CLOSED
        self._listeners.clear()
        await self.subscriber.close_all()
        for task in list(self._tasks):
            task.cancel()
        logger.debug(f"Unmounted {self.scope.table} view for {self.scope.filter or 'all'}")

    def _warning_message(self, failure: SubscriptionFailure) -> Dict[str, Any]:
        return {"type": "warning", "code": failure.code, "detail": failure.message}

    def _on_drop(self, failure: SubscriptionFailure) -> None:
        if not self.mounted:
            return
        self.warning = failure
        self.state = ViewState.DEGRADED
        task = asyncio.get_running_loop().create_task(self._notify(self._warning_message(failure)))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _on_event(self, event: ChangeEvent) -> None:
        if not self.mounted:
            return
        if not self.collection.apply(event):
            return
        if event.event_type == EventType.DELETE:
            change, record = EventType.DELETE, event.old
        elif not self.scope.matches(event.new):
            # The update moved the row out of scope; listeners see a removal.
            change, record = EventType.DELETE, event.new
        else:
            change = event.event_type
            record = self.collection.get(self.scope.key_of(event.new)) or event.new
        await self._notify({
            "type": "change",
            "table": self.scope.table,
            "event": change.value,
            "record": record,
        })

    async def mutate(
        self,
        key: Key,
        optimistic: Dict[str, Any],
        write: Callable[[], Awaitable[Optional[Dict[str, Any]]]],
    ) -> Optional[Dict[str, Any]]:
        """
        Apply `optimistic` locally, then run `write`. On success the returned
        row is hydrated like a feed record and replaces the optimistic
        version; on failure the optimistic version is discarded and
        WriteFailure is raised. Local state is left alone if the view was
        unmounted while the write was in flight.
        """
        if not self.mounted:
            raise WriteFailure(f"{self.scope.table} view is not mounted")
        token = self.collection.stage(key, optimistic)
        await self._notify(self.snapshot_message())
        try:
            row = await write()
        except StudySyncError as e:
            if self.mounted:
                self.collection.discard(token)
                await self._notify(self.snapshot_message())
            logger.warning(f"Rolled back optimistic write on {self.scope.table} {key}: {e.message}")
            if isinstance(e, WriteFailure):
                raise
            raise WriteFailure(f"Could not save change to {self.scope.table}: {e.message}", cause=e) from e
        if row is not None and self.hydrator is not None and self.mounted:
            row = await self.hydrator.hydrate_one(row)
        if not self.mounted:
            return row
        self.collection.settle(token, row)
        await self._notify(self.snapshot_message())
        return row

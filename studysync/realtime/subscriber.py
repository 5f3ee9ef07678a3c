import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from studysync.core.errors import BackendError, SubscriptionFailure
from studysync.database.backend import Backend, SubscriptionHandle
from studysync.realtime.events import ChangeEvent, EventType
from studysync.realtime.hydration import Hydrator
from studysync.realtime.scope import Scope

logger = logging.getLogger(__name__)

EventHandler = Callable[[ChangeEvent], Awaitable[None]]
DropHandler = Callable[[SubscriptionFailure], None]

_DROP_STATES = {"CHANNEL_ERROR", "CLOSED", "TIMED_OUT"}


class SubscriptionState(str, Enum):
    PENDING = "pending"
    LIVE = "live"
    FAILED = "failed"
    DROPPED = "dropped"
    CLOSED = "closed"


class Subscription:
    """
    One change-feed subscription for a (table, event, filter) identity.

    The SDK callback only parses and enqueues; a single consumer task hydrates
    and hands events to the handler one at a time, so events reach the handler
    in commit order even when INSERT hydration has to wait on the backend.
    """

    def __init__(
        self,
        backend: Backend,
        scope: Scope,
        event: str,
        handler: EventHandler,
        hydrator: Optional[Hydrator] = None,
        on_drop: Optional[DropHandler] = None,
    ):
        self.backend = backend
        self.scope = scope
        self.event = event
        self.identity = scope.identity(event)
        self.handler = handler
        self.hydrator = hydrator
        self.on_drop = on_drop
        self.state = SubscriptionState.PENDING
        self._queue: asyncio.Queue = asyncio.Queue()
        self._consumer: Optional[asyncio.Task] = None
        self._handle: Optional[SubscriptionHandle] = None
        self._torn_down = False

    @property
    def closed(self) -> bool:
        return self.state == SubscriptionState.CLOSED

    @property
    def live(self) -> bool:
        return self.state == SubscriptionState.LIVE

    async def open(self) -> "Subscription":
        self._consumer = asyncio.create_task(self._consume())
        try:
            self._handle = await self.backend.subscribe(
                self.scope.channel_name(self.event),
                self.scope.table,
                self.event,
                self.scope.filter,
                self._receive,
                self._on_status,
            )
        except BackendError as e:
            self.state = SubscriptionState.FAILED
            self._consumer.cancel()
            logger.warning(f"Failed to subscribe to {self.scope.channel_name(self.event)}: [{e.code}] {e.message}")
            raise SubscriptionFailure(f"Live updates for {self.scope.table} are unavailable", code=e.code) from e
        if self.closed:
            # Torn down while the channel was opening.
            await self._release()
            return self
        self.state = SubscriptionState.LIVE
        logger.info(f"Subscribed to {self.scope.channel_name(self.event)}")
        return self

    def _receive(self, payload: dict) -> None:
        if self.closed:
            return
        try:
            event = ChangeEvent.from_payload(payload)
        except ValueError as e:
            logger.warning(f"Ignoring malformed change payload on {self.scope.table}: {e}")
            return
        self._queue.put_nowait(event)

    def _on_status(self, status: str, error: Optional[Exception]) -> None:
        if self.closed or status not in _DROP_STATES:
            return
        self.state = SubscriptionState.DROPPED
        logger.warning(f"Change feed {self.scope.channel_name(self.event)} dropped: {status} {error or ''}")
        if self.on_drop is not None:
            self.on_drop(SubscriptionFailure(
                f"Live updates for {self.scope.table} were interrupted",
                code=status.lower(),
            ))

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            if self.closed:
                return
            try:
                if event.event_type == EventType.INSERT and self.hydrator is not None and event.new:
                    event = event.with_new(await self.hydrator.hydrate_one(event.new))
                if self.closed:
                    return
                await self.handler(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Error handling {event.event_type.value} on {self.scope.table}: {e}")

    def stop(self) -> None:
        """Stop delivery without waiting on the backend."""
        self.state = SubscriptionState.CLOSED
        while not self._queue.empty():
            self._queue.get_nowait()

    async def close(self) -> None:
        """Stop delivery immediately, then release the channel."""
        if self._torn_down:
            return
        self._torn_down = True
        self.stop()
        consumer = self._consumer
        if consumer is not None and consumer is not asyncio.current_task():
            consumer.cancel()
            try:
                await consumer
            except asyncio.CancelledError:
                pass
        await self._release()

    async def _release(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            await self.backend.unsubscribe(handle)
        except BackendError as e:
            logger.warning(f"Failed to unsubscribe from {handle.channel_name}: [{e.code}] {e.message}")


class ChangeFeedSubscriber:
    """Owns the subscriptions of one view; at most one per identity."""

    def __init__(self, backend: Backend):
        self.backend = backend
        self._active: Dict[Tuple, Subscription] = {}

    @property
    def subscriptions(self) -> List[Subscription]:
        return list(self._active.values())

    async def subscribe(
        self,
        scope: Scope,
        event: str,
        handler: EventHandler,
        hydrator: Optional[Hydrator] = None,
        on_drop: Optional[DropHandler] = None,
    ) -> Subscription:
        identity = scope.identity(event)
        previous = self._active.pop(identity, None)
        if previous is not None:
            logger.debug(f"Replacing subscription {scope.channel_name(event)}")
            await previous.close()
        subscription = Subscription(self.backend, scope, event, handler, hydrator, on_drop)
        self._active[identity] = subscription
        try:
            return await subscription.open()
        except SubscriptionFailure:
            if self._active.get(identity) is subscription:
                del self._active[identity]
            raise

    async def unsubscribe(self, scope: Scope, event: str) -> None:
        subscription = self._active.pop(scope.identity(event), None)
        if subscription is not None:
            await subscription.close()

    async def close_all(self) -> None:
        subscriptions, self._active = list(self._active.values()), {}
        for subscription in subscriptions:
            subscription.stop()
        for subscription in subscriptions:
            await subscription.close()

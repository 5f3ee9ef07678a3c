from studysync.realtime.collection import LocalCollection
from studysync.realtime.events import ChangeEvent, EventType
from studysync.realtime.hydration import AttendeesHydrator, ProfileHydrator
from studysync.realtime.loader import load_snapshot
from studysync.realtime.scope import Scope
from studysync.realtime.subscriber import ChangeFeedSubscriber, Subscription, SubscriptionState
from studysync.realtime.view import LiveView, ViewState

__all__ = [
    "AttendeesHydrator",
    "ChangeEvent",
    "ChangeFeedSubscriber",
    "EventType",
    "LiveView",
    "LocalCollection",
    "ProfileHydrator",
    "Scope",
    "Subscription",
    "SubscriptionState",
    "ViewState",
    "load_snapshot",
]

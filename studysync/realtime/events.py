from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class EventType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


def parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


@dataclass(frozen=True)
class ChangeEvent:
    event_type: EventType
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None
    commit_timestamp: Optional[datetime] = None

    @property
    def record(self) -> Optional[Dict[str, Any]]:
        """The row the event is about: ``new`` unless the row was deleted."""
        if self.event_type == EventType.DELETE:
            return self.old
        return self.new

    def with_new(self, new: Dict[str, Any]) -> "ChangeEvent":
        return ChangeEvent(self.event_type, new, self.old, self.commit_timestamp)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ChangeEvent":
        """
        Build an event from a realtime postgres_changes payload.

        Accepts the nested server shape (``{"data": {"type", "record",
        "old_record", "commit_timestamp"}}``) as well as the flat client shape
        (``{"eventType", "new", "old", "commit_timestamp"}``).
        """
        data = payload.get("data", payload)
        raw_type = data.get("type") or data.get("eventType") or payload.get("eventType")
        if raw_type is None:
            raise ValueError("Change payload has no event type")
        new = data.get("record", data.get("new"))
        old = data.get("old_record", data.get("old"))
        return cls(
            event_type=EventType(str(raw_type).upper()),
            new=new or None,
            old=old or None,
            commit_timestamp=parse_timestamp(data.get("commit_timestamp")),
        )

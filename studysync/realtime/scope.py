from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from studysync.config import settings

EVENTS = ("INSERT", "UPDATE", "DELETE", "*")


@dataclass(frozen=True)
class Scope:
    """Which records a view cares about: one table narrowed by an equality predicate."""
    table: str
    column: Optional[str] = None
    value: Optional[str] = None
    order_by: str = "created_at"
    descending: bool = False
    limit: Optional[int] = None
    key: Tuple[str, ...] = ("id",)
    schema: str = settings.realtime_schema

    @classmethod
    def of(cls, table: str, column: str, value: Any, **kwargs) -> "Scope":
        return cls(table=table, column=column, value=str(value), **kwargs)

    @property
    def filter(self) -> Optional[str]:
        """Realtime filter string, e.g. ``group_id=eq.<id>``."""
        if self.column is None:
            return None
        return f"{self.column}=eq.{self.value}"

    @property
    def eq(self) -> Dict[str, Any]:
        return {self.column: self.value} if self.column is not None else {}

    def matches(self, record: Optional[Dict[str, Any]]) -> bool:
        if not record:
            return False
        if self.column is None:
            return True
        return str(record.get(self.column)) == self.value

    def key_of(self, record: Dict[str, Any]) -> Optional[Tuple[Any, ...]]:
        """Primary key tuple of a record, or None when any key column is missing."""
        values = tuple(record.get(column) for column in self.key)
        if any(v is None for v in values):
            return None
        return values

    def identity(self, event: str) -> Tuple[str, str, str, Optional[str]]:
        if event not in EVENTS:
            raise ValueError(f"Unknown change event: {event}")
        return (self.schema, self.table, event, self.filter)

    def channel_name(self, event: str) -> str:
        schema, table, event, flt = self.identity(event)
        suffix = flt.replace("=", ":") if flt else "all"
        return f"{schema}:{table}:{event.replace('*', 'all').lower()}:{suffix}"

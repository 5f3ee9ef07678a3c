"""
Ordered local state for one scope.

The collection holds two layers: the base records, which only ever change
through the snapshot or change events, and an optimistic overlay keyed by
record key. Readers see the base with the overlay applied. Rolling back an
optimistic write means discarding its overlay entry; the base underneath has
kept following the feed the whole time.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from studysync.realtime.events import ChangeEvent, EventType
from studysync.realtime.scope import Scope

logger = logging.getLogger(__name__)

Key = Tuple[Any, ...]


class LocalCollection:
    def __init__(self, scope: Scope):
        self.scope = scope
        self._order: List[Key] = []
        self._rows: Dict[Key, Dict[str, Any]] = {}
        self._stamps: Dict[Key, datetime] = {}
        self._versions: Dict[Key, int] = {}
        self._pending: Dict[Key, Tuple[int, Dict[str, Any], int]] = {}
        self._tokens: Dict[int, Key] = {}
        self._next_token = 0

    def __len__(self) -> int:
        return len(self.records)

    def __contains__(self, key: Key) -> bool:
        return key in self._rows or key in self._pending

    @property
    def records(self) -> List[Dict[str, Any]]:
        visible = []
        for key in self._order:
            row = self._rows[key]
            if key in self._pending:
                row = {**row, **self._pending[key][1]}
            visible.append(row)
        staged_only = [entry[1] for key, entry in self._pending.items() if key not in self._rows]
        if self.scope.descending:
            return staged_only[::-1] + visible
        return visible + staged_only

    @property
    def base_records(self) -> List[Dict[str, Any]]:
        return [self._rows[key] for key in self._order]

    def get(self, key: Key) -> Optional[Dict[str, Any]]:
        row = self._rows.get(key)
        if key in self._pending:
            return {**(row or {}), **self._pending[key][1]}
        return row

    def replace(self, records: Iterable[Dict[str, Any]]) -> None:
        """Install a fresh snapshot. Optimistic overlays survive."""
        self._order = []
        self._rows = {}
        self._stamps = {}
        self._versions = {}
        for record in records:
            key = self.scope.key_of(record)
            if key is None:
                logger.warning(f"Dropping {self.scope.table} record without key columns {self.scope.key}")
                continue
            if key not in self._rows:
                self._order.append(key)
            self._rows[key] = dict(record)

    def _locate(self, record: Optional[Dict[str, Any]]) -> Optional[Key]:
        if not record:
            return None
        key = self.scope.key_of(record)
        if key is not None:
            return key
        # DELETE payloads may only carry the primary id.
        row_id = record.get("id")
        if row_id is None:
            return None
        for candidate in self._order:
            if self._rows[candidate].get("id") == row_id:
                return candidate
        return None

    def _is_stale(self, key: Key, stamp: Optional[datetime]) -> bool:
        if stamp is None or key not in self._stamps:
            return False
        try:
            return stamp < self._stamps[key]
        except TypeError:
            # naive vs aware timestamps; fall back to delivery order
            return False

    def _mark(self, key: Key, stamp: Optional[datetime]) -> None:
        if stamp is not None:
            self._stamps[key] = stamp
        self._versions[key] = self._versions.get(key, 0) + 1

    def _put(self, key: Key, record: Dict[str, Any]) -> None:
        if key in self._rows:
            self._rows[key] = {**self._rows[key], **record}
            return
        if self.scope.descending:
            self._order.insert(0, key)
        else:
            self._order.append(key)
        self._rows[key] = dict(record)

    def _remove(self, key: Key) -> bool:
        if key not in self._rows:
            return False
        del self._rows[key]
        self._order.remove(key)
        return True

    def apply(self, event: ChangeEvent) -> bool:
        """Apply one change event to the base layer. Returns True if state changed."""
        if event.event_type == EventType.DELETE:
            key = self._locate(event.old)
            if key is None or self._is_stale(key, event.commit_timestamp):
                return False
            self._mark(key, event.commit_timestamp)
            return self._remove(key)

        record = event.new
        key = self._locate(record)
        if key is None:
            logger.debug(f"Ignoring {event.event_type.value} on {self.scope.table} without a key")
            return False
        if self._is_stale(key, event.commit_timestamp):
            logger.debug(f"Dropping stale {event.event_type.value} for {self.scope.table} {key}")
            return False

        if not self.scope.matches(record):
            # Row moved out of scope.
            self._mark(key, event.commit_timestamp)
            return self._remove(key)

        if event.event_type == EventType.UPDATE and key not in self._rows:
            return False
        self._mark(key, event.commit_timestamp)
        self._put(key, record)
        return True

    def stage(self, key: Key, record: Dict[str, Any]) -> int:
        """Overlay an optimistic version of a record. Returns a token to settle or discard it."""
        self._next_token += 1
        token = self._next_token
        previous = self._pending.get(key)
        if previous is not None:
            self._tokens.pop(previous[0], None)
        self._pending[key] = (token, dict(record), self._versions.get(key, 0))
        self._tokens[token] = key
        return token

    def settle(self, token: int, row: Optional[Dict[str, Any]] = None) -> None:
        """
        Confirm an optimistic write. The confirmed row lands in the base layer
        unless a change event for the same key arrived while the write was in
        flight, in which case the feed is already authoritative.
        """
        key = self._tokens.pop(token, None)
        entry = self._pending.get(key) if key is not None else None
        if entry is None or entry[0] != token:
            return
        del self._pending[key]
        if row is None:
            return
        if self._versions.get(key, 0) == entry[2] and self.scope.matches(row):
            self._put(key, row)

    def discard(self, token: int) -> bool:
        """Roll back an optimistic write."""
        key = self._tokens.pop(token, None)
        entry = self._pending.get(key) if key is not None else None
        if entry is None or entry[0] != token:
            return False
        del self._pending[key]
        return True

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

"""
Realtime list synchronization.

Supabase pushes row changes (realtime channel messages or database webhooks)
as INSERT/UPDATE/DELETE events. ``apply_change_event`` splices one event into
a local list: prepend on insert (lists are newest first), merge by id on
update, filter out on delete or when an updated row no longer belongs in the
list (status change).
There is no merge or conflict resolution beyond that.

``ChangeFeed`` is the in-process fan-out the webhook endpoint publishes to.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

EVENT_TYPES = ('INSERT', 'UPDATE', 'DELETE')
ALL = '*'

Predicate = Callable[[dict], bool]


@dataclass(frozen=True)
class ChangeEvent:
    event_type: str
    table: str
    record: Optional[dict] = None
    old_record: Optional[dict] = None
    schema: str = 'public'

    @classmethod
    def from_payload(cls, payload) -> 'ChangeEvent':
        """Accept database-webhook (type/record/old_record) and realtime (eventType/new/old) shapes."""
        if not isinstance(payload, dict):
            raise ValueError('Change payload must be a JSON object')
        event_type = str(payload.get('type') or payload.get('eventType') or '').upper()
        if event_type not in EVENT_TYPES:
            raise ValueError(f'Unsupported event type: {event_type or "missing"}')
        table = payload.get('table')
        if not table:
            raise ValueError('Change payload is missing the table name')

        record = payload.get('record', payload.get('new')) or None
        old_record = payload.get('old_record', payload.get('old')) or None
        if event_type in ('INSERT', 'UPDATE') and not isinstance(record, dict):
            raise ValueError(f'{event_type} payload is missing the new record')
        if event_type == 'DELETE' and not (isinstance(old_record, dict) and old_record.get('id') is not None):
            raise ValueError('DELETE payload is missing the old record id')

        return cls(event_type, table, record, old_record, payload.get('schema') or 'public')

    @property
    def row(self) -> dict:
        """The row the event is about (old row for deletes)."""
        return (self.old_record if self.event_type == 'DELETE' else self.record) or {}


def _as_text(value) -> str:
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def parse_filter(expression: Optional[str]) -> Optional[Predicate]:
    """Compile a ``column=op.value`` filter (ops: eq, neq) into a row predicate."""
    if not expression:
        return None
    column, sep, rest = expression.partition('=')
    op, dot, value = rest.partition('.')
    if not sep or not dot or not column.strip() or op not in ('eq', 'neq'):
        raise ValueError(f'Unsupported filter: {expression}')
    column = column.strip()

    if op == 'eq':
        return lambda row: _as_text(row.get(column)) == value
    return lambda row: _as_text(row.get(column)) != value


def apply_change_event(items: Iterable[dict], event: ChangeEvent,
                       keep: Optional[Predicate] = None, key: str = 'id') -> List[dict]:
    """Return a new list with ``event`` applied; ``keep`` decides list membership."""
    current = list(items or [])
    keep = keep or (lambda row: True)

    if event.event_type == 'DELETE':
        row_id = event.old_record.get(key)
        return [item for item in current if item.get(key) != row_id]

    record = event.record
    row_id = record.get(key)

    if event.event_type == 'INSERT':
        if not keep(record):
            return current
        if any(item.get(key) == row_id for item in current):
            return [dict(item, **record) if item.get(key) == row_id else item for item in current]
        return [record] + current

    # UPDATE
    if not keep(record):
        return [item for item in current if item.get(key) != row_id]
    return [dict(item, **record) if item.get(key) == row_id else item for item in current]


class Subscription:
    def __init__(self, feed: 'ChangeFeed', table: str, callback: Callable[[ChangeEvent], None],
                 predicate: Optional[Predicate], events: tuple):
        self._feed = feed
        self.table = table
        self.callback = callback
        self.predicate = predicate
        self.events = events

    def matches(self, event: ChangeEvent) -> bool:
        if self.table not in (ALL, event.table):
            return False
        if ALL not in self.events and event.event_type not in self.events:
            return False
        if self.predicate is None:
            return True
        row = event.row
        # Deleted rows usually only carry the primary key
        if event.event_type == 'DELETE' and len(row) <= 1:
            return True
        return self.predicate(row)

    def unsubscribe(self) -> None:
        self._feed.remove(self)


class ChangeFeed:
    """In-process fan-out of change events to table/filter subscriptions."""

    def __init__(self):
        self._subscriptions: List[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(self, table: str, callback: Callable[[ChangeEvent], None],
                  filter: Optional[str] = None, events: Iterable[str] = (ALL,)) -> Subscription:
        events = tuple(e.upper() if e != ALL else ALL for e in events)
        subscription = Subscription(self, table, callback, parse_filter(filter), events)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def publish(self, event: ChangeEvent) -> int:
        """Deliver ``event`` to matching subscribers; returns how many received it."""
        with self._lock:
            subscriptions = list(self._subscriptions)
        delivered = 0
        for subscription in subscriptions:
            if not subscription.matches(event):
                continue
            try:
                subscription.callback(event)
                delivered += 1
            except Exception:
                logger.exception("Change subscriber for %s failed on %s", subscription.table, event.event_type)
        return delivered

    def subscriber_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        with self._lock:
            for subscription in self._subscriptions:
                counts[subscription.table] = counts.get(subscription.table, 0) + 1
        return counts

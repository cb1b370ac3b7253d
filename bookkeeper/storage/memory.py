"""
In-memory storage.

Used by the test suite and by the `memory` storage backend for local
demos. Records are deep-copied on the way in and out so callers can
never mutate stored state by accident.
"""

import copy
from typing import Any, Optional
from uuid import UUID

from bookkeeper.models.audit import AuditEvent
from bookkeeper.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
    RecordStorageInterface,
    StorageError,
    matches_filters,
    sort_value,
    to_storage_filters,
    to_storage_value,
)


class InMemoryRecordStorage(RecordStorageInterface):
    """Dict-of-dicts record store keyed by table then id."""

    def __init__(self):
        self._tables: dict[str, dict[str, dict[str, Any]]] = {}

    def _table(self, table: str) -> dict[str, dict[str, Any]]:
        return self._tables.setdefault(table, {})

    async def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        record_id = record.get("id")
        if not record_id:
            raise StorageError(f"Cannot insert into {table} without an id")
        rows = self._table(table)
        if str(record_id) in rows:
            raise DuplicateError(f"{table} record already exists: {record_id}")
        stored = to_storage_value(copy.deepcopy(record))
        rows[str(record_id)] = stored
        return copy.deepcopy(stored)

    async def get(self, table: str, record_id: str) -> Optional[dict[str, Any]]:
        row = self._table(table).get(str(record_id))
        return copy.deepcopy(row) if row is not None else None

    async def update(
        self,
        table: str,
        record_id: str,
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        rows = self._table(table)
        if str(record_id) not in rows:
            raise NotFoundError(f"{table} record not found: {record_id}")
        rows[str(record_id)].update(to_storage_value(copy.deepcopy(changes)))
        return copy.deepcopy(rows[str(record_id)])

    async def delete(self, table: str, record_id: str) -> bool:
        return self._table(table).pop(str(record_id), None) is not None

    async def select(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        wanted = to_storage_filters(filters)
        rows = [
            row for row in self._table(table).values()
            if matches_filters(row, wanted)
        ]
        if order_by:
            present = [r for r in rows if r.get(order_by) not in (None, "")]
            missing = [r for r in rows if r.get(order_by) in (None, "")]
            present.sort(key=lambda r: sort_value(r.get(order_by)), reverse=descending)
            rows = present + missing
        rows = rows[offset:]
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    async def update_where(
        self,
        table: str,
        filters: dict[str, Any],
        changes: dict[str, Any],
    ) -> int:
        wanted = to_storage_filters(filters)
        stored_changes = to_storage_value(changes)
        count = 0
        for row in self._table(table).values():
            if matches_filters(row, wanted):
                row.update(copy.deepcopy(stored_changes))
                count += 1
        return count

    async def delete_where(self, table: str, filters: dict[str, Any]) -> int:
        wanted = to_storage_filters(filters)
        rows = self._table(table)
        doomed = [key for key, row in rows.items() if matches_filters(row, wanted)]
        for key in doomed:
            del rows[key]
        return len(doomed)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]

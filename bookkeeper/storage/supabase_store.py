"""
Supabase Storage Implementation

Supabase (hosted Postgres behind PostgREST) is the production backend.
Each logical table maps to a Postgres table of the same name; JSON
columns hold nested values (addresses, metadata, id lists).

Filtering, ordering and pagination are pushed down to PostgREST.
Failed PostgREST calls are retried with exponential backoff. Errors
raised here (not-found, duplicate, refused bulk deletes) are not.
"""

from typing import Any, Optional
from uuid import UUID

from supabase import Client, create_client
from tenacity import (
    AsyncRetrying,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from bookkeeper.config import get_settings
from bookkeeper.models.audit import AuditEvent
from bookkeeper.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    RecordStorageInterface,
    StorageError,
    to_storage_filters,
    to_storage_value,
)


AUDIT_TABLE = "audit_log"
UNIQUE_VIOLATION = "23505"


class RemoteStorageError(StorageError):
    """A PostgREST call failed; the only kind of error worth retrying."""
    pass


RETRY_POLICY: dict[str, Any] = {
    "stop": stop_after_attempt(3),
    "wait": wait_exponential(multiplier=1, min=2, max=10),
    "retry": retry_if_exception_type(RemoteStorageError),
    "reraise": True,
}

_retry_network = retry(**RETRY_POLICY)


class SupabaseClient:
    """
    Lazily created Supabase client.

    The client is only built on first use so that importing this module
    never requires credentials.
    """

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    def connect(self) -> Client:
        if self._client is None:
            settings = get_settings().supabase
            try:
                self._client = create_client(settings.url, settings.key)
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Supabase: {e}")
        return self._client


def _apply_filters(query, filters: dict[str, Any]):
    for column, value in filters.items():
        if value is None:
            query = query.is_(column, "null")
        else:
            query = query.eq(column, value)
    return query


def _raise_storage_error(action: str, error: Exception) -> None:
    if getattr(error, "code", None) == UNIQUE_VIOLATION:
        raise DuplicateError(f"Failed to {action}: {error}")
    raise RemoteStorageError(f"Failed to {action}: {error}")


class SupabaseRecordStorage(RecordStorageInterface):
    """PostgREST-backed implementation of the record interface."""

    def __init__(self, client: Optional[SupabaseClient] = None):
        self._client = client or SupabaseClient()

    async def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        """
        Insert one row.

        A unique violation on a retry means an earlier attempt reached the
        database before the connection failed; the stored row is returned.
        """
        record = to_storage_value(record)
        async for attempt in AsyncRetrying(**RETRY_POLICY):
            with attempt:
                try:
                    response = self._client.connect().table(table).insert(record).execute()
                except Exception as e:
                    if attempt.retry_state.attempt_number > 1 and getattr(e, "code", None) == UNIQUE_VIOLATION:
                        existing = await self.get(table, record["id"])
                        if existing is not None:
                            return existing
                    _raise_storage_error(f"insert into {table}", e)
                return response.data[0] if response.data else record

    @_retry_network
    async def get(self, table: str, record_id: str) -> Optional[dict[str, Any]]:
        try:
            response = (
                self._client.connect()
                .table(table)
                .select("*")
                .eq("id", str(record_id))
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise RemoteStorageError(f"Failed to get {table} record: {e}")
        return response.data[0] if response.data else None

    @_retry_network
    async def update(
        self,
        table: str,
        record_id: str,
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        try:
            response = (
                self._client.connect()
                .table(table)
                .update(to_storage_value(changes))
                .eq("id", str(record_id))
                .execute()
            )
        except Exception as e:
            _raise_storage_error(f"update {table} record", e)
        if not response.data:
            raise NotFoundError(f"{table} record not found: {record_id}")
        return response.data[0]

    @_retry_network
    async def delete(self, table: str, record_id: str) -> bool:
        try:
            response = (
                self._client.connect()
                .table(table)
                .delete()
                .eq("id", str(record_id))
                .execute()
            )
        except Exception as e:
            raise RemoteStorageError(f"Failed to delete {table} record: {e}")
        return bool(response.data)

    @_retry_network
    async def select(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        try:
            query = self._client.connect().table(table).select("*")
            query = _apply_filters(query, to_storage_filters(filters))
            if order_by:
                query = query.order(order_by, desc=descending)
            if limit is not None:
                query = query.range(offset, offset + limit - 1)
            elif offset:
                query = query.range(offset, offset + 9999)
            response = query.execute()
        except Exception as e:
            raise RemoteStorageError(f"Failed to list {table}: {e}")
        return response.data or []

    @_retry_network
    async def update_where(
        self,
        table: str,
        filters: dict[str, Any],
        changes: dict[str, Any],
    ) -> int:
        try:
            query = self._client.connect().table(table).update(to_storage_value(changes))
            response = _apply_filters(query, to_storage_filters(filters)).execute()
        except Exception as e:
            _raise_storage_error(f"update {table}", e)
        return len(response.data or [])

    @_retry_network
    async def delete_where(self, table: str, filters: dict[str, Any]) -> int:
        if not filters:
            raise StorageError(f"Refusing to delete every row of {table}")
        try:
            query = self._client.connect().table(table).delete()
            response = _apply_filters(query, to_storage_filters(filters)).execute()
        except Exception as e:
            raise RemoteStorageError(f"Failed to delete from {table}: {e}")
        return len(response.data or [])


class SupabaseAuditStorage(AuditStorageInterface):
    """Audit events in an append-only `audit_log` table."""

    def __init__(self, client: Optional[SupabaseClient] = None):
        self._client = client or SupabaseClient()

    @_retry_network
    async def append_event(self, event: AuditEvent) -> bool:
        try:
            self._client.connect().table(AUDIT_TABLE).insert(
                event.model_dump(mode="json")
            ).execute()
            return True
        except Exception as e:
            raise RemoteStorageError(f"Failed to write audit event: {e}")

    async def _query(self, **filters: Any) -> list[AuditEvent]:
        try:
            query = self._client.connect().table(AUDIT_TABLE).select("*")
            query = _apply_filters(query, filters).order("timestamp")
            response = query.execute()
        except Exception as e:
            raise RemoteStorageError(f"Failed to get audit events: {e}")
        return [AuditEvent.model_validate(row) for row in response.data or []]

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return await self._query(correlation_id=str(correlation_id))

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        return await self._query(entity_type=entity_type, entity_id=str(entity_id))

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            response = (
                self._client.connect()
                .table(AUDIT_TABLE)
                .select("*")
                .order("timestamp", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            raise RemoteStorageError(f"Failed to get audit events: {e}")
        return [AuditEvent.model_validate(row) for row in response.data or []]

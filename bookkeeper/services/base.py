"""
Shared plumbing for domain services.

Every service wraps one table of a RecordStorageInterface and converts
between stored dicts and pydantic models at this boundary only.

DESIGN DECISION: Ownership is enforced here, not in storage. A record
that exists but belongs to another user is reported exactly like a
missing one (NotFoundError), so ids never leak across users.
"""

from typing import Any, Generic, Optional, TypeVar
from uuid import UUID

from pydantic import ValidationError

from bookkeeper.audit import AuditLogger
from bookkeeper.models.base import Record, utc_now
from bookkeeper.storage.interface import (
    NotFoundError,
    RecordStorageInterface,
    deserialize_record,
    serialize_record,
    to_storage_value,
)


RecordT = TypeVar("RecordT", bound=Record)


class ServiceValidationError(ValueError):
    """Input rejected by a service before anything was written."""
    pass


class InvalidIdError(ServiceValidationError):
    """An id that is not a UUID."""
    pass


def parse_uuid(value: Any, label: str = "ID") -> UUID:
    """Validate an id coming from a caller."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise InvalidIdError(f"Invalid {label} format: {value}")


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


class BaseService(Generic[RecordT]):
    """CRUD helpers for one table holding one record model."""

    table: str
    model: type[RecordT]
    entity_type: str = "record"

    def __init__(
        self,
        storage: RecordStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger

    @property
    def storage(self) -> RecordStorageInterface:
        return self._storage

    def _to_model(self, row: dict[str, Any]) -> RecordT:
        return deserialize_record(self.model, row)

    async def _get_row(self, user_id: str, record_id: Any) -> dict[str, Any]:
        record_id = parse_uuid(record_id, f"{self.entity_type} ID")
        row = await self._storage.get(self.table, str(record_id))
        if row is None or row.get("user_id") != user_id:
            raise NotFoundError(f"{self.entity_type.capitalize()} not found: {record_id}")
        return row

    async def get(self, user_id: str, record_id: Any) -> RecordT:
        return self._to_model(await self._get_row(user_id, record_id))

    async def _insert(self, record: RecordT) -> RecordT:
        row = await self._storage.insert(self.table, serialize_record(record))
        return self._to_model(row)

    async def _apply(
        self,
        user_id: str,
        record_id: Any,
        changes: dict[str, Any],
    ) -> RecordT:
        """
        Write changes to an owned record, stamping updated_at.

        The merged record is validated first; nothing is written when the
        result would not load back as a model.
        """
        row = await self._get_row(user_id, record_id)
        changes = dict(changes)
        changes["updated_at"] = utc_now()
        try:
            merged = self.model.model_validate({**row, **to_storage_value(changes)})
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ServiceValidationError(f"Invalid {self.entity_type} update: {problems}")
        stored = serialize_record(merged)
        updated = await self._storage.update(
            self.table, row["id"], {key: stored.get(key, to_storage_value(value)) for key, value in changes.items()}
        )
        return self._to_model(updated)

    async def _remove(self, user_id: str, record_id: Any) -> bool:
        row = await self._get_row(user_id, record_id)
        return await self._storage.delete(self.table, row["id"])

    async def _select(self, user_id: str, **filters: Any) -> list[RecordT]:
        order_by = filters.pop("order_by", None)
        descending = filters.pop("descending", False)
        limit = filters.pop("limit", None)
        offset = filters.pop("offset", 0)
        rows = await self._storage.select(
            self.table,
            filters={"user_id": user_id, **filters},
            order_by=order_by,
            descending=descending,
            limit=limit,
            offset=offset,
        )
        return [self._to_model(row) for row in rows]

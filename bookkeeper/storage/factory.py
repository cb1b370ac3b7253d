"""Selects the storage backend named in AppSettings.storage_backend."""

from typing import Optional

from bookkeeper.config import Settings, get_settings
from bookkeeper.storage.interface import AuditStorageInterface, RecordStorageInterface
from bookkeeper.storage.memory import InMemoryAuditStorage, InMemoryRecordStorage


def create_storage(
    settings: Optional[Settings] = None,
) -> tuple[RecordStorageInterface, AuditStorageInterface]:
    """
    Build (record_storage, audit_storage) for the configured backend.

    Backend modules are imported on demand so a memory-only deployment
    doesn't need Supabase or Google credentials installed.

    Raises:
        ConnectionError / pydantic ValidationError: if the backend's
        settings are missing or it cannot be reached
    """
    settings = settings or get_settings()
    backend = settings.app.storage_backend

    if backend == "supabase":
        from bookkeeper.storage.supabase_store import (
            SupabaseAuditStorage,
            SupabaseClient,
            SupabaseRecordStorage,
        )
        client = SupabaseClient()
        client.connect()
        return SupabaseRecordStorage(client), SupabaseAuditStorage(client)

    if backend == "google_sheets":
        from bookkeeper.storage.google_sheets import (
            GoogleSheetsAuditStorage,
            GoogleSheetsClient,
            GoogleSheetsRecordStorage,
        )
        client = GoogleSheetsClient()
        client.connect()
        return GoogleSheetsRecordStorage(client), GoogleSheetsAuditStorage(client)

    return InMemoryRecordStorage(), InMemoryAuditStorage()

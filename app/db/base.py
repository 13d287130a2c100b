from __future__ import annotations

from functools import lru_cache

from supabase import Client, create_client

from app.core.config import StorageBackend, get_settings
from app.db.memory import InMemoryBookingStore
from app.db.store import BookingStore


@lru_cache
def get_supabase_client() -> Client:
    settings = get_settings()
    return create_client(settings.supabase_url, settings.supabase_service_key)


@lru_cache
def get_store() -> BookingStore:
    settings = get_settings()
    if settings.storage_backend == StorageBackend.SUPABASE:
        from app.db.supabase_store import SupabaseBookingStore

        return SupabaseBookingStore(get_supabase_client())
    return InMemoryBookingStore()

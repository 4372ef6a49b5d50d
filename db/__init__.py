"""Booking and practitioner profile storage."""

from typing import Optional

from config import settings

from .base import BookingStore, ProfileStore
from .memory_store import InMemoryBookingStore, InMemoryProfileStore
from .supabase_client import SupabaseClient, get_db_client

__all__ = [
    "BookingStore",
    "ProfileStore",
    "InMemoryBookingStore",
    "InMemoryProfileStore",
    "SupabaseClient",
    "get_db_client",
    "get_booking_store",
    "get_profile_store",
]

_memory_store: Optional[InMemoryBookingStore] = None


def get_booking_store() -> BookingStore:
    """Booking store for the configured backend."""
    global _memory_store
    if settings.uses_supabase:
        return get_db_client()
    if _memory_store is None:
        _memory_store = InMemoryBookingStore()
    return _memory_store


_memory_profiles: Optional[InMemoryProfileStore] = None


def get_profile_store() -> ProfileStore:
    """Practitioner profile store for the configured backend."""
    global _memory_profiles
    if settings.uses_supabase:
        return get_db_client()
    if _memory_profiles is None:
        _memory_profiles = InMemoryProfileStore()
    return _memory_profiles

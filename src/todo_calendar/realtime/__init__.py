"""Realtime merge of pushed row changes into the local cache."""

from .events import (
    LISTS_TABLE,
    TASKS_TABLE,
    ChangeEvent,
    ChangeFeed,
    ChangeType,
    Subscription,
)
from .listener import RealtimeListener
from .supabase_feed import SupabaseRealtimeFeed

__all__ = [
    "LISTS_TABLE",
    "TASKS_TABLE",
    "ChangeEvent",
    "ChangeFeed",
    "ChangeType",
    "Subscription",
    "RealtimeListener",
    "SupabaseRealtimeFeed",
]

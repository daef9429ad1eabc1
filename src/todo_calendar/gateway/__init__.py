"""Remote data gateways for the todo calendar."""

from .base import DataGateway, list_from_row, task_from_row, COPY_SUFFIX
from .memory import InMemoryBackend, InMemoryChangeFeed, InMemoryGateway
from .supabase import SupabaseClient, SupabaseGateway

__all__ = [
    "DataGateway",
    "list_from_row",
    "task_from_row",
    "COPY_SUFFIX",
    "InMemoryBackend",
    "InMemoryChangeFeed",
    "InMemoryGateway",
    "SupabaseClient",
    "SupabaseGateway",
]

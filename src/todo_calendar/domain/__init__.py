"""Domain models for the todo calendar."""

from .models import (
    Task,
    TaskList,
    TaskDraft,
    ListDraft,
    new_placeholder_id,
    is_placeholder,
    clean_title,
)

__all__ = [
    "Task",
    "TaskList",
    "TaskDraft",
    "ListDraft",
    "new_placeholder_id",
    "is_placeholder",
    "clean_title",
]

"""Todo Calendar - dated to-do lists with optimistic updates and realtime sync."""

__version__ = "0.1.0"

from .domain import Task, TaskList, TaskDraft, ListDraft
from .errors import (
    CalendarError,
    RemoteError,
    NotFoundError,
    AuthenticationError,
    NotSignedInError,
    ValidationError,
    ConfigError,
)
from .store import CalendarStore
from .coordinator import OptimisticCoordinator
from .session import CalendarSession, build_session

__all__ = [
    "__version__",
    "Task",
    "TaskList",
    "TaskDraft",
    "ListDraft",
    "CalendarError",
    "RemoteError",
    "NotFoundError",
    "AuthenticationError",
    "NotSignedInError",
    "ValidationError",
    "ConfigError",
    "CalendarStore",
    "OptimisticCoordinator",
    "CalendarSession",
    "build_session",
]

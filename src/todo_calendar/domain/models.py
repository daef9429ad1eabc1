"""List and Task data models for the todo calendar."""

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..errors import ValidationError
from ..utils.dates import normalize_day


PLACEHOLDER_PREFIX = "tmp-"

LIST_FIELDS = ("title", "date", "user_id")
TASK_FIELDS = ("title", "completed")


def new_placeholder_id() -> str:
    """Generate a temporary client-side id for an entity awaiting its server id."""
    return f"{PLACEHOLDER_PREFIX}{uuid.uuid4()}"


def is_placeholder(entity_id: Optional[str]) -> bool:
    """Check whether an id was generated locally and not yet confirmed."""
    return bool(entity_id) and entity_id.startswith(PLACEHOLDER_PREFIX)


def clean_title(title: Any, what: str = "title") -> str:
    """Strip a title and reject empty ones.

    Raises:
        ValidationError: If the title is missing or blank
    """
    if not isinstance(title, str) or not title.strip():
        raise ValidationError(f"{what.capitalize()} must not be empty")
    return title.strip()


@dataclass
class Task:
    """A titled, completable item owned by exactly one list."""

    id: str
    title: str
    completed: bool = False
    list_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camel-case representation used by renderers."""
        return {
            "id": self.id,
            "title": self.title,
            "completed": self.completed,
            "listId": self.list_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Create from the camel-case representation."""
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            completed=bool(data.get("completed", False)),
            list_id=str(data.get("listId") or ""),
        )

    def apply(self, updates: Dict[str, Any]) -> bool:
        """Merge known fields into this task.

        Returns:
            True if any field changed
        """
        changed = False
        for name in TASK_FIELDS:
            if name in updates and updates[name] is not None:
                value = bool(updates[name]) if name == "completed" else updates[name]
                if getattr(self, name) != value:
                    setattr(self, name, value)
                    changed = True
        return changed


@dataclass
class TaskList:
    """A named, dated container of tasks owned by one user.

    Task order is insertion order, which is also display order.
    """

    id: str
    title: str
    date: str
    user_id: str = ""
    tasks: List[Task] = field(default_factory=list)

    def __post_init__(self):
        self.date = normalize_day(self.date)
        for task in self.tasks:
            if not task.list_id:
                task.list_id = self.id

    def get_task(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def task_index(self, task_id: str) -> int:
        """Position of a task in this list, or -1 if absent."""
        for index, task in enumerate(self.tasks):
            if task.id == task_id:
                return index
        return -1

    def apply(self, updates: Dict[str, Any]) -> bool:
        """Merge known fields into this list; tasks are left alone.

        Returns:
            True if any field changed
        """
        changed = False
        for name in LIST_FIELDS:
            if name in updates and updates[name] is not None:
                value = updates[name]
                if name == "date":
                    value = normalize_day(value)
                if getattr(self, name) != value:
                    setattr(self, name, value)
                    changed = True
        return changed

    @property
    def completed_count(self) -> int:
        return sum(1 for task in self.tasks if task.completed)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camel-case representation used by renderers."""
        return {
            "id": self.id,
            "title": self.title,
            "date": self.date,
            "userId": self.user_id,
            "tasks": [task.to_dict() for task in self.tasks],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskList":
        """Create from the camel-case representation."""
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            date=data["date"],
            user_id=str(data.get("userId") or ""),
            tasks=[Task.from_dict(t) for t in data.get("tasks") or []],
        )


@dataclass
class TaskDraft:
    """A task that has not been created yet.

    ``id`` is set when the draft describes an existing task, as when a list
    is edited together with its tasks.
    """

    title: str
    completed: bool = False
    id: Optional[str] = None

    def __post_init__(self):
        self.title = clean_title(self.title, "task title")

    @classmethod
    def coerce(cls, value: Any) -> "TaskDraft":
        """Accept a draft, a plain title, or a mapping with title/completed."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            return cls(title=value)
        if isinstance(value, Task):
            return cls(title=value.title, completed=value.completed, id=value.id)
        if isinstance(value, dict):
            return cls(
                title=value.get("title"),
                completed=bool(value.get("completed", False)),
                id=value.get("id"),
            )
        raise ValidationError(f"Cannot build a task from {type(value).__name__}")


@dataclass
class ListDraft:
    """A list that has not been created yet."""

    title: str
    date: str
    user_id: str

    def __post_init__(self):
        self.title = clean_title(self.title, "list title")
        self.date = normalize_day(self.date)
        if not self.user_id:
            raise ValidationError("A list needs an owner")

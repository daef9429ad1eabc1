"""Abstract base class for remote data gateways.

A gateway is the only component that talks to the hosted backend. Every
operation is one asynchronous round trip that either returns the canonical
entity or raises a RemoteError subclass. Creating a list together with its
tasks is all-or-nothing from the caller's point of view: if the tasks cannot
be created the freshly created list is deleted before the failure surfaces.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from ..domain import ListDraft, Task, TaskDraft, TaskList, clean_title
from ..errors import CalendarError, NotFoundError, ValidationError
from ..utils.dates import normalize_day


COPY_SUFFIX = " (Copy)"


# Wire translation. Rows use snake-case keys (``list_id``, ``user_id``) and
# lists may carry their tasks embedded under ``tasks``.

def task_from_row(row: Dict[str, Any]) -> Task:
    """Convert a backend task row to a Task."""
    return Task(
        id=str(row["id"]),
        title=row.get("title") or "",
        completed=bool(row.get("completed", False)),
        list_id=str(row.get("list_id") or ""),
    )


def list_from_row(row: Dict[str, Any]) -> TaskList:
    """Convert a backend list row (optionally with embedded tasks) to a TaskList."""
    return TaskList(
        id=str(row["id"]),
        title=row.get("title") or "",
        date=row["date"],
        user_id=str(row.get("user_id") or ""),
        tasks=[task_from_row(t) for t in row.get("tasks") or []],
    )


def list_updates_to_row(updates: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only the list fields a caller may change, validated."""
    row = {}
    if updates.get("title") is not None:
        row["title"] = clean_title(updates["title"], "list title")
    if updates.get("date") is not None:
        row["date"] = normalize_day(updates["date"])
    if updates.get("user_id") is not None:
        row["user_id"] = updates["user_id"]
    if not row:
        raise ValidationError("No list fields to update")
    return row


def task_updates_to_row(updates: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only the task fields a caller may change, validated."""
    row = {}
    if updates.get("title") is not None:
        row["title"] = clean_title(updates["title"], "task title")
    if updates.get("completed") is not None:
        row["completed"] = bool(updates["completed"])
    if not row:
        raise ValidationError("No task fields to update")
    return row


class DataGateway(ABC):
    """Contract to the hosted relational backend.

    Subclasses implement the row-level primitives; the composite operations
    (list creation with tasks, duplication) are built here once so that the
    cleanup-on-partial-failure rule holds for every backend.
    """

    def __init__(self):
        self.logger = logging.getLogger(f"{self.__class__.__module__}.{self.__class__.__name__}")

    # Primitives that must be implemented by subclasses

    @abstractmethod
    async def fetch_range(self, user_id: str, start: str, end: str) -> List[TaskList]:
        """Fetch a user's lists dated within ``[start, end]`` inclusive.

        Returns:
            Lists with their tasks, ordered ascending by date

        Raises:
            RemoteError: If the backend cannot be reached
        """
        pass

    @abstractmethod
    async def fetch_list(self, list_id: str) -> TaskList:
        """Fetch one list with its tasks.

        Raises:
            NotFoundError: If the list does not exist
        """
        pass

    @abstractmethod
    async def insert_list(self, draft: ListDraft) -> TaskList:
        """Insert a list row and return it (without tasks)."""
        pass

    @abstractmethod
    async def insert_tasks(self, list_id: str, drafts: Sequence[TaskDraft]) -> List[Task]:
        """Insert several task rows for one list, in order, as one request."""
        pass

    @abstractmethod
    async def update_list(self, list_id: str, updates: Dict[str, Any]) -> TaskList:
        """Apply only the provided fields to a list.

        Raises:
            NotFoundError: If the list does not exist
        """
        pass

    @abstractmethod
    async def delete_list(self, list_id: str) -> None:
        """Delete a list; its tasks are removed by the backend's cascade."""
        pass

    @abstractmethod
    async def update_task(self, task_id: str, updates: Dict[str, Any]) -> Task:
        """Apply title and/or completed to a task.

        Raises:
            NotFoundError: If the task does not exist
        """
        pass

    @abstractmethod
    async def delete_task(self, task_id: str) -> None:
        pass

    # Composite operations

    async def create_list(self, draft: ListDraft,
                          initial_tasks: Sequence[TaskDraft] = ()) -> TaskList:
        """Create a list and its initial tasks as a single logical operation.

        Args:
            draft: Title, date and owner of the new list
            initial_tasks: Tasks to create inside it, in display order

        Returns:
            The created list with every requested task

        Raises:
            RemoteError: If the list or any of its tasks could not be created;
                in the latter case the list has already been removed again
        """
        created = await self.insert_list(draft)
        self.log_operation("create_list", f"{created.id} on {created.date}")
        if not initial_tasks:
            return created

        try:
            created.tasks = await self.insert_tasks(created.id, list(initial_tasks))
        except CalendarError as e:
            self.logger.warning(f"Creating tasks for list {created.id} failed, removing it: {e}")
            await self._discard_list(created.id)
            raise
        return created

    async def create_task(self, list_id: str, title: str, completed: bool = False) -> Task:
        """Create a single task in a list."""
        tasks = await self.insert_tasks(list_id, [TaskDraft(title=title, completed=completed)])
        if not tasks:
            raise NotFoundError(f"List {list_id} did not accept the task")
        self.log_operation("create_task", f"{tasks[0].id} in {list_id}")
        return tasks[0]

    async def duplicate_list(self, list_id: str, new_date: str) -> TaskList:
        """Copy a list with its tasks to another day.

        The copy is titled ``"<title> (Copy)"``, keeps the owner, and every
        copied task starts out not completed.

        Raises:
            NotFoundError: If the source list does not exist
        """
        source = await self.fetch_list(list_id)
        draft = ListDraft(
            title=f"{source.title}{COPY_SUFFIX}",
            date=new_date,
            user_id=source.user_id,
        )
        copies = [TaskDraft(title=task.title, completed=False) for task in source.tasks]
        duplicate = await self.create_list(draft, copies)
        self.log_operation("duplicate_list", f"{list_id} -> {duplicate.id}")
        return duplicate

    async def close(self):
        """Release any resources held by the gateway."""
        pass

    async def _discard_list(self, list_id: str):
        try:
            await self.delete_list(list_id)
        except CalendarError as e:
            self.logger.error(f"Cleanup of list {list_id} failed: {e}")

    def log_operation(self, operation: str, details: str = ""):
        self.logger.info(f"{operation}: {details}")


def lists_in_order(lists: Sequence[TaskList]) -> List[TaskList]:
    """Sort lists ascending by date, keeping backend order within a day."""
    return sorted(lists, key=lambda l: l.date)


def require_found(value: Optional[Any], what: str, entity_id: str) -> Any:
    if value is None:
        raise NotFoundError(f"{what} {entity_id} not found")
    return value

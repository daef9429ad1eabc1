"""In-memory cache of lists and tasks.

The store is the single source of truth for anything that renders the
calendar. It performs no I/O and its mutations never raise for missing
targets: a mutation racing with a delete is dropped instead of resurrecting
the entity. Every mutation is idempotent, because the optimistic path and the
realtime path may both apply the same underlying change.
"""

import copy
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from .domain import Task, TaskList
from .utils.dates import normalize_day


Observer = Callable[["CalendarStore"], None]


class CalendarStore:
    """Ordered collection of lists, each owning an ordered collection of tasks."""

    def __init__(self, lists: Optional[Iterable[TaskList]] = None):
        self._lists: List[TaskList] = []
        self._observers: List[Observer] = []
        self.version = 0
        self.logger = logging.getLogger(__name__)
        if lists:
            self.replace_all(lists)

    # Reads

    @property
    def lists(self) -> List[TaskList]:
        """Copy of every cached list, in cache order."""
        return copy.deepcopy(self._lists)

    def snapshot(self) -> List[Dict[str, Any]]:
        """Plain-data view of the cache, suitable for equality checks."""
        return [task_list.to_dict() for task_list in self._lists]

    def __len__(self) -> int:
        return len(self._lists)

    def __contains__(self, list_id: str) -> bool:
        return self._find(list_id) is not None

    def get_list(self, list_id: str) -> Optional[TaskList]:
        task_list = self._find(list_id)
        return copy.deepcopy(task_list) if task_list else None

    def get_task(self, list_id: str, task_id: str) -> Optional[Task]:
        task_list = self._find(list_id)
        if task_list is None:
            return None
        task = task_list.get_task(task_id)
        return copy.deepcopy(task) if task else None

    def list_index(self, list_id: str) -> int:
        """Position of a list in the cache, or -1 if absent."""
        for index, task_list in enumerate(self._lists):
            if task_list.id == list_id:
                return index
        return -1

    def locate_task(self, task_id: str) -> Optional[str]:
        """Find the id of the list that owns a task."""
        for task_list in self._lists:
            if task_list.get_task(task_id) is not None:
                return task_list.id
        return None

    def lists_for_day(self, day: str) -> List[TaskList]:
        """Lists shown in one calendar cell, matched by exact day string."""
        day = normalize_day(day)
        return [copy.deepcopy(l) for l in self._lists if l.date == day]

    def lists_in_range(self, start: str, end: str) -> List[TaskList]:
        """Lists dated within ``[start, end]`` inclusive, ordered by date."""
        start, end = normalize_day(start), normalize_day(end)
        selected = [l for l in self._lists if start <= l.date <= end]
        return copy.deepcopy(sorted(selected, key=lambda l: l.date))

    # Observers

    def add_observer(self, callback: Observer) -> Callable[[], None]:
        """Register a callback run after every effective mutation.

        Returns:
            A function that removes the observer again
        """
        self._observers.append(callback)

        def remove():
            if callback in self._observers:
                self._observers.remove(callback)

        return remove

    def _changed(self, operation: str, detail: str = ""):
        self.version += 1
        self.logger.debug(f"Store {operation} {detail} (version {self.version})")
        for callback in list(self._observers):
            try:
                callback(self)
            except Exception:
                self.logger.exception(f"Store observer failed after {operation}")

    # List mutations

    def replace_all(self, lists: Iterable[TaskList]):
        """Discard the current collection and install the given one."""
        self._lists = copy.deepcopy(list(lists))
        self._changed("replace_all", f"{len(self._lists)} lists")

    def add_list(self, task_list: TaskList):
        """Append a list.

        If the id is already cached the fields are merged instead and only
        tasks the cached list does not know yet are appended, so a pushed
        insert for a list this client already holds is harmless.
        """
        existing = self._find(task_list.id)
        if existing is None:
            self._lists.append(copy.deepcopy(task_list))
            self._changed("add_list", task_list.id)
            return

        if _merge_list(existing, task_list):
            self._changed("add_list", f"{task_list.id} (merged)")

    def insert_list(self, index: int, task_list: TaskList):
        """Put a list back at a given position; no-op if the id is cached."""
        if self._find(task_list.id) is not None:
            return
        index = max(0, min(index, len(self._lists)))
        self._lists.insert(index, copy.deepcopy(task_list))
        self._changed("insert_list", task_list.id)

    def update_list(self, list_id: str, updates: Dict[str, Any]):
        """Merge title/date/user_id into a cached list; no-op if absent."""
        task_list = self._find(list_id)
        if task_list is None:
            return
        if task_list.apply(updates):
            self._changed("update_list", list_id)

    def replace_list(self, old_id: str, task_list: TaskList):
        """Swap a placeholder list for its authoritative version.

        If the authoritative id is already cached (a pushed insert got there
        first) the placeholder is dropped and the cached list merged, so
        exactly one list carries the server id afterwards.
        """
        old_index = self.list_index(old_id)
        existing = self._find(task_list.id) if task_list.id != old_id else None
        if existing is not None:
            if old_index >= 0:
                del self._lists[old_index]
            _merge_list(existing, task_list)
            self._changed("replace_list", f"{old_id} -> {task_list.id} (merged)")
            return
        if old_index < 0:
            self.add_list(task_list)
            return
        self._lists[old_index] = copy.deepcopy(task_list)
        self._changed("replace_list", f"{old_id} -> {task_list.id}")

    def delete_list(self, list_id: str):
        """Remove a list and its tasks; no-op if absent."""
        index = self.list_index(list_id)
        if index < 0:
            return
        del self._lists[index]
        self._changed("delete_list", list_id)

    # Task mutations

    def add_task(self, list_id: str, task: Task):
        """Append a task to a list.

        Dropped if the list is not cached. A task id the list already holds
        is merged instead of duplicated.
        """
        task_list = self._find(list_id)
        if task_list is None:
            self.logger.debug(f"Dropping task {task.id}: list {list_id} not cached")
            return
        existing = task_list.get_task(task.id)
        if existing is not None:
            if existing.apply(_task_fields(task)):
                self._changed("add_task", f"{task.id} (merged)")
            return
        added = copy.deepcopy(task)
        added.list_id = list_id
        task_list.tasks.append(added)
        self._changed("add_task", task.id)

    def insert_task(self, list_id: str, index: int, task: Task):
        """Put a task back at a given position; no-op if list absent or task cached."""
        task_list = self._find(list_id)
        if task_list is None or task_list.get_task(task.id) is not None:
            return
        index = max(0, min(index, len(task_list.tasks)))
        restored = copy.deepcopy(task)
        restored.list_id = list_id
        task_list.tasks.insert(index, restored)
        self._changed("insert_task", task.id)

    def update_task(self, list_id: str, task_id: str, updates: Dict[str, Any]):
        """Merge title/completed into a task; no-op if list or task absent."""
        task_list = self._find(list_id)
        if task_list is None:
            return
        task = task_list.get_task(task_id)
        if task is None:
            return
        if task.apply(updates):
            self._changed("update_task", task_id)

    def replace_task(self, list_id: str, old_id: str, task: Task):
        """Swap a placeholder task for its authoritative version."""
        task_list = self._find(list_id)
        if task_list is None:
            return
        old_index = task_list.task_index(old_id)
        if task.id != old_id and task_list.get_task(task.id) is not None:
            if old_index >= 0:
                del task_list.tasks[old_index]
            task_list.get_task(task.id).apply(_task_fields(task))
            self._changed("replace_task", f"{old_id} -> {task.id} (merged)")
            return
        if old_index < 0:
            self.add_task(list_id, task)
            return
        replacement = copy.deepcopy(task)
        replacement.list_id = list_id
        task_list.tasks[old_index] = replacement
        self._changed("replace_task", f"{old_id} -> {task.id}")

    def delete_task(self, list_id: str, task_id: str):
        """Remove a task; no-op if list or task absent."""
        task_list = self._find(list_id)
        if task_list is None:
            return
        index = task_list.task_index(task_id)
        if index < 0:
            return
        del task_list.tasks[index]
        self._changed("delete_task", task_id)

    def _find(self, list_id: str) -> Optional[TaskList]:
        for task_list in self._lists:
            if task_list.id == list_id:
                return task_list
        return None


def _list_fields(task_list: TaskList) -> Dict[str, Any]:
    return {"title": task_list.title, "date": task_list.date, "user_id": task_list.user_id or None}


def _task_fields(task: Task) -> Dict[str, Any]:
    return {"title": task.title, "completed": task.completed}


def _merge_list(existing: TaskList, incoming: TaskList) -> bool:
    changed = existing.apply(_list_fields(incoming))
    for task in incoming.tasks:
        if existing.get_task(task.id) is None:
            merged = copy.deepcopy(task)
            merged.list_id = existing.id
            existing.tasks.append(merged)
            changed = True
    return changed

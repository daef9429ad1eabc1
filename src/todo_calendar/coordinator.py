"""Optimistic updates against the remote gateway.

Every user-initiated mutation goes through :meth:`OptimisticCoordinator.execute`:

1. the action's local effect is applied to the store straight away, using a
   placeholder id when the entity has no server id yet;
2. the matching gateway operation runs;
3. on success the store is reconciled with the returned entity (placeholders
   are swapped for server ids); on failure the action undoes exactly what it
   changed and the error propagates to the caller.

Rollback is targeted rather than a whole-store snapshot, so changes that
arrived from the realtime feed while the call was in flight are kept.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from .auth import IdentityProvider
from .domain import (
    ListDraft,
    Task,
    TaskDraft,
    TaskList,
    clean_title,
    is_placeholder,
    new_placeholder_id,
)
from .errors import NotFoundError, ValidationError
from .gateway.base import COPY_SUFFIX, DataGateway, list_updates_to_row, task_updates_to_row
from .store import CalendarStore
from .utils.dates import month_range, normalize_day



class OptimisticAction(ABC):
    """One mutation with its local effect, remote call, reconciliation and undo."""

    name = "action"

    @abstractmethod
    def apply(self, store: CalendarStore) -> None:
        """Apply the optimistic effect; checks must run before anything changes."""
        pass

    @abstractmethod
    async def call(self, gateway: DataGateway) -> Any:
        pass

    def reconcile(self, store: CalendarStore, result: Any) -> None:
        """Bring the store in line with the authoritative result."""
        pass

    @abstractmethod
    def rollback(self, store: CalendarStore) -> None:
        """Undo the optimistic effect."""
        pass

    def describe(self) -> str:
        return self.name


class CreateListAction(OptimisticAction):
    name = "create_list"

    def __init__(self, draft: ListDraft, tasks: Sequence[TaskDraft]):
        self.draft = draft
        self.tasks = list(tasks)
        self.placeholder_id = new_placeholder_id()

    def apply(self, store):
        store.add_list(TaskList(
            id=self.placeholder_id,
            title=self.draft.title,
            date=self.draft.date,
            user_id=self.draft.user_id,
            tasks=[
                Task(id=new_placeholder_id(), title=t.title, completed=t.completed,
                     list_id=self.placeholder_id)
                for t in self.tasks
            ],
        ))

    async def call(self, gateway):
        return await gateway.create_list(self.draft, self.tasks)

    def reconcile(self, store, result: TaskList):
        store.replace_list(self.placeholder_id, result)

    def rollback(self, store):
        store.delete_list(self.placeholder_id)

    def describe(self):
        return f"{self.name} {self.draft.title!r} on {self.draft.date}"


class UpdateListAction(OptimisticAction):
    name = "update_list"

    def __init__(self, list_id: str, updates: Dict[str, Any]):
        self.list_id = list_id
        self.updates = list_updates_to_row(updates)
        self.previous: Dict[str, Any] = {}

    def apply(self, store):
        current = store.get_list(self.list_id)
        if current is not None:
            self.previous = {name: getattr(current, name) for name in self.updates}
        store.update_list(self.list_id, self.updates)

    async def call(self, gateway):
        return await gateway.update_list(self.list_id, self.updates)

    def reconcile(self, store, result: TaskList):
        store.update_list(self.list_id, {
            "title": result.title,
            "date": result.date,
            "user_id": result.user_id or None,
        })

    def rollback(self, store):
        if self.previous:
            store.update_list(self.list_id, self.previous)

    def describe(self):
        return f"{self.name} {self.list_id}"


class DeleteListAction(OptimisticAction):
    name = "delete_list"

    def __init__(self, list_id: str):
        self.list_id = list_id
        self.removed: Optional[TaskList] = None
        self.index = -1

    def apply(self, store):
        self.index = store.list_index(self.list_id)
        self.removed = store.get_list(self.list_id)
        store.delete_list(self.list_id)

    async def call(self, gateway):
        await gateway.delete_list(self.list_id)

    def reconcile(self, store, result):
        store.delete_list(self.list_id)

    def rollback(self, store):
        if self.removed is not None:
            store.insert_list(self.index, self.removed)

    def describe(self):
        return f"{self.name} {self.list_id}"


class DuplicateListAction(OptimisticAction):
    name = "duplicate_list"

    def __init__(self, list_id: str, new_date: str):
        self.list_id = list_id
        self.new_date = normalize_day(new_date)
        self.placeholder_id: Optional[str] = None

    def apply(self, store):
        source = store.get_list(self.list_id)
        if source is None:
            return
        self.placeholder_id = new_placeholder_id()
        store.add_list(TaskList(
            id=self.placeholder_id,
            title=f"{source.title}{COPY_SUFFIX}",
            date=self.new_date,
            user_id=source.user_id,
            tasks=[
                Task(id=new_placeholder_id(), title=t.title, completed=False,
                     list_id=self.placeholder_id)
                for t in source.tasks
            ],
        ))

    async def call(self, gateway):
        return await gateway.duplicate_list(self.list_id, self.new_date)

    def reconcile(self, store, result: TaskList):
        if self.placeholder_id:
            store.replace_list(self.placeholder_id, result)
        else:
            store.add_list(result)

    def rollback(self, store):
        if self.placeholder_id:
            store.delete_list(self.placeholder_id)

    def describe(self):
        return f"{self.name} {self.list_id} to {self.new_date}"


class CreateTaskAction(OptimisticAction):
    name = "create_task"

    def __init__(self, list_id: str, draft: TaskDraft):
        self.list_id = list_id
        self.draft = draft
        self.placeholder_id = new_placeholder_id()

    def apply(self, store):
        store.add_task(self.list_id, Task(
            id=self.placeholder_id,
            title=self.draft.title,
            completed=self.draft.completed,
            list_id=self.list_id,
        ))

    async def call(self, gateway):
        return await gateway.create_task(self.list_id, self.draft.title, self.draft.completed)

    def reconcile(self, store, result: Task):
        store.replace_task(self.list_id, self.placeholder_id, result)

    def rollback(self, store):
        store.delete_task(self.list_id, self.placeholder_id)

    def describe(self):
        return f"{self.name} {self.draft.title!r} in {self.list_id}"


class UpdateTaskAction(OptimisticAction):
    """Rename a task and/or set its completion.

    Rollback restores the values captured before the change.
    """

    name = "update_task"

    def __init__(self, list_id: str, task_id: str, updates: Dict[str, Any]):
        self.list_id = list_id
        self.task_id = task_id
        self.updates = task_updates_to_row(updates)
        self.previous: Dict[str, Any] = {}

    def apply(self, store):
        current = store.get_task(self.list_id, self.task_id)
        if current is not None:
            self.previous = {name: getattr(current, name) for name in self.updates}
        store.update_task(self.list_id, self.task_id, self.updates)

    async def call(self, gateway):
        return await gateway.update_task(self.task_id, self.updates)

    def reconcile(self, store, result: Task):
        store.update_task(self.list_id, self.task_id, {
            "title": result.title,
            "completed": result.completed,
        })

    def rollback(self, store):
        if self.previous:
            store.update_task(self.list_id, self.task_id, self.previous)

    def describe(self):
        return f"{self.name} {self.task_id} {self.updates}"


class DeleteTaskAction(OptimisticAction):
    name = "delete_task"

    def __init__(self, list_id: str, task_id: str):
        self.list_id = list_id
        self.task_id = task_id
        self.removed: Optional[Task] = None
        self.index = -1

    def apply(self, store):
        task_list = store.get_list(self.list_id)
        if task_list is not None:
            self.index = task_list.task_index(self.task_id)
            self.removed = task_list.get_task(self.task_id)
        store.delete_task(self.list_id, self.task_id)

    async def call(self, gateway):
        await gateway.delete_task(self.task_id)

    def reconcile(self, store, result):
        store.delete_task(self.list_id, self.task_id)

    def rollback(self, store):
        if self.removed is not None:
            store.insert_task(self.list_id, self.index, self.removed)

    def describe(self):
        return f"{self.name} {self.task_id}"


class OptimisticCoordinator:
    """Runs user mutations against the store and the gateway."""

    def __init__(self, store: CalendarStore, gateway: DataGateway, identity: IdentityProvider):
        self.store = store
        self.gateway = gateway
        self.identity = identity
        self.logger = logging.getLogger(__name__)

    async def execute(self, action: OptimisticAction) -> Any:
        """Apply an action optimistically, then confirm or roll it back.

        Raises:
            NotSignedInError: If nobody is signed in (the store is untouched)
            RemoteError: If the gateway call failed (the store is rolled back)
        """
        await self.identity.ensure_fresh()
        self.identity.require_user()
        action.apply(self.store)
        try:
            result = await action.call(self.gateway)
        except Exception as e:
            action.rollback(self.store)
            self.logger.warning(f"{action.describe()} failed, rolled back: {e}")
            raise
        action.reconcile(self.store, result)
        self.logger.debug(f"{action.describe()} confirmed")
        return result

    # Loading

    async def load_range(self, start: str, end: str) -> List[TaskList]:
        """Replace the cache with the signed-in user's lists in ``[start, end]``.

        Skipped (returns an empty list, cache untouched) when nobody is signed in.
        """
        await self.identity.ensure_fresh()
        user = self.identity.current_user()
        if user is None:
            self.logger.debug("No user signed in, skipping range load")
            return []
        start, end = normalize_day(start), normalize_day(end)
        lists = await self.gateway.fetch_range(user.id, start, end)
        self.store.replace_all(lists)
        self.logger.info(f"Loaded {len(lists)} lists for {start}..{end}")
        return lists

    async def load_month(self, year: int, month: int) -> List[TaskList]:
        start, end = month_range(year, month)
        return await self.load_range(start, end)

    async def ensure_list(self, list_id: str) -> TaskList:
        """Return a cached list, fetching it into the cache when absent.

        Raises:
            NotFoundError: If the backend does not know the list
        """
        cached = self.store.get_list(list_id)
        if cached is not None:
            return cached
        await self.identity.ensure_fresh()
        self.identity.require_user()
        fetched = await self.gateway.fetch_list(list_id)
        self.store.add_list(fetched)
        return self.store.get_list(list_id)

    # Lists

    async def create_list(self, title: str, date: str,
                          tasks: Sequence[Any] = ()) -> TaskList:
        """Create a list with initial tasks (drafts, titles, or dicts)."""
        user = self.identity.require_user()
        draft = ListDraft(title=title, date=date, user_id=user.id)
        drafts = [TaskDraft.coerce(t) for t in tasks]
        return await self.execute(CreateListAction(draft, drafts))

    async def update_list(self, list_id: str, title: Optional[str] = None,
                          date: Optional[str] = None) -> TaskList:
        self._check_saved(list_id, "List")
        return await self.execute(UpdateListAction(list_id, {"title": title, "date": date}))

    async def delete_list(self, list_id: str) -> None:
        self._check_saved(list_id, "List")
        await self.execute(DeleteListAction(list_id))

    async def duplicate_list(self, list_id: str, new_date: str) -> TaskList:
        self._check_saved(list_id, "List")
        return await self.execute(DuplicateListAction(list_id, new_date))

    async def edit_list(self, list_id: str, title: Optional[str] = None,
                        date: Optional[str] = None,
                        tasks: Optional[Sequence[Any]] = None) -> TaskList:
        """Edit a list together with its task set.

        Tasks missing from ``tasks`` are deleted, drafts without an id are
        created, and surviving tasks are updated where they differ. Each step
        is its own optimistic action; a failure stops the edit, leaving the
        steps already confirmed by the backend in place.
        """
        self._check_saved(list_id, "List")
        drafts = [TaskDraft.coerce(t) for t in tasks] if tasks is not None else None
        if title is not None:
            title = clean_title(title, "list title")
        if date is not None:
            date = normalize_day(date)

        current = await self.ensure_list(list_id)
        for draft in drafts or []:
            if draft.id is not None and current.get_task(draft.id) is None:
                raise NotFoundError(f"Task {draft.id} is not part of list {list_id}")

        if (title is not None and title != current.title) or (date is not None and date != current.date):
            await self.update_list(list_id, title=title, date=date)

        if drafts is not None:
            keep = {d.id for d in drafts if d.id}
            for task in current.tasks:
                if task.id not in keep:
                    await self.delete_task(list_id, task.id)
            for draft in drafts:
                if draft.id is None:
                    await self.create_task(list_id, draft.title, completed=draft.completed)
                    continue
                existing = current.get_task(draft.id)
                changes = {}
                if draft.title != existing.title:
                    changes["title"] = draft.title
                if draft.completed != existing.completed:
                    changes["completed"] = draft.completed
                if changes:
                    await self.execute(UpdateTaskAction(list_id, draft.id, changes))

        return self.store.get_list(list_id)

    # Tasks

    async def create_task(self, list_id: str, title: str, completed: bool = False) -> Task:
        self._check_saved(list_id, "List")
        draft = TaskDraft(title=title, completed=completed)
        return await self.execute(CreateTaskAction(list_id, draft))

    async def update_task(self, list_id: str, task_id: str, title: Optional[str] = None,
                          completed: Optional[bool] = None) -> Task:
        self._check_saved(task_id, "Task")
        return await self.execute(UpdateTaskAction(
            list_id, task_id, {"title": title, "completed": completed}))

    async def toggle_task(self, list_id: str, task_id: str,
                          completed: Optional[bool] = None) -> Task:
        """Set a task's completion, flipping the cached value when not given.

        Raises:
            NotFoundError: If ``completed`` is omitted and the task is not cached
        """
        self._check_saved(task_id, "Task")
        if completed is None:
            current = self.store.get_task(list_id, task_id)
            if current is None:
                raise NotFoundError(f"Task {task_id} is not loaded")
            completed = not current.completed
        return await self.execute(UpdateTaskAction(list_id, task_id, {"completed": completed}))

    async def delete_task(self, list_id: str, task_id: str) -> None:
        self._check_saved(task_id, "Task")
        await self.execute(DeleteTaskAction(list_id, task_id))

    @staticmethod
    def _check_saved(entity_id: str, what: str):
        if is_placeholder(entity_id):
            raise ValidationError(f"{what} {entity_id} is still being saved")

"""In-process backend for local use and tests.

Behaves like the hosted service as far as the client can tell: ids are
assigned on insert, deleting a list cascades to its tasks, and every row
change is published on a change feed. Failures can be injected per
operation.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional, Sequence

from ..domain import ListDraft, Task, TaskDraft, TaskList
from ..errors import RemoteError
from ..realtime.events import (
    LISTS_TABLE,
    TASKS_TABLE,
    ChangeEvent,
    ChangeFeed,
    ChangeType,
    Subscription,
)
from .base import (
    DataGateway,
    list_from_row,
    list_updates_to_row,
    lists_in_order,
    require_found,
    task_from_row,
    task_updates_to_row,
)


logger = logging.getLogger(__name__)


class InMemoryChangeFeed(ChangeFeed):
    """Fans backend row changes out to subscribed queues."""

    def __init__(self):
        self._queues: Dict[str, List[asyncio.Queue]] = {}

    async def subscribe(self, table: str, queue: asyncio.Queue) -> Subscription:
        self._queues.setdefault(table, []).append(queue)
        logger.debug(f"Subscribed to {table}")
        return _MemorySubscription(self, table, queue)

    def publish(self, event: ChangeEvent):
        for queue in self._queues.get(event.table, []):
            queue.put_nowait(event)

    def subscriber_count(self, table: str) -> int:
        return len(self._queues.get(table, []))

    def _remove(self, table: str, queue: asyncio.Queue):
        queues = self._queues.get(table, [])
        if queue in queues:
            queues.remove(queue)


class _MemorySubscription(Subscription):

    def __init__(self, feed: InMemoryChangeFeed, table: str, queue: asyncio.Queue):
        self.feed = feed
        self.table = table
        self.queue = queue

    async def unsubscribe(self) -> None:
        self.feed._remove(self.table, self.queue)


class InMemoryBackend:
    """Two tables of rows plus a change feed."""

    def __init__(self):
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {
            LISTS_TABLE: {},
            TASKS_TABLE: {},
        }
        self.feed = InMemoryChangeFeed()
        self._failures: Dict[str, RemoteError] = {}
        self.calls: List[str] = []

    def fail(self, operation: str, error: Optional[RemoteError] = None):
        """Make the next call to ``operation`` raise ``error``."""
        self._failures[operation] = error or RemoteError(f"Injected failure in {operation}")

    def check(self, operation: str):
        self.calls.append(operation)
        error = self._failures.pop(operation, None)
        if error is not None:
            raise error

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        stored = dict(row)
        stored["id"] = str(uuid.uuid4())
        self.tables[table][stored["id"]] = stored
        self.feed.publish(ChangeEvent(table, ChangeType.INSERT, new=dict(stored)))
        return dict(stored)

    def update(self, table: str, row_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        current = self.tables[table].get(row_id)
        if current is None:
            return None
        old = dict(current)
        current.update(fields)
        self.feed.publish(ChangeEvent(table, ChangeType.UPDATE, new=dict(current), old=old))
        return dict(current)

    def delete(self, table: str, row_id: str) -> Optional[Dict[str, Any]]:
        removed = self.tables[table].pop(row_id, None)
        if removed is None:
            return None
        if table == LISTS_TABLE:
            for task_id in [t["id"] for t in self.tables[TASKS_TABLE].values()
                            if t["list_id"] == row_id]:
                self.delete(TASKS_TABLE, task_id)
        self.feed.publish(ChangeEvent(table, ChangeType.DELETE, old=dict(removed)))
        return removed

    def list_row(self, list_id: str) -> Optional[Dict[str, Any]]:
        row = self.tables[LISTS_TABLE].get(list_id)
        if row is None:
            return None
        row = dict(row)
        row["tasks"] = [dict(t) for t in self.tables[TASKS_TABLE].values()
                        if t["list_id"] == list_id]
        return row


class InMemoryGateway(DataGateway):
    """Gateway backed by an InMemoryBackend."""

    def __init__(self, backend: Optional[InMemoryBackend] = None):
        super().__init__()
        self.backend = backend or InMemoryBackend()

    async def fetch_range(self, user_id: str, start: str, end: str) -> List[TaskList]:
        await self._round_trip("fetch_range")
        lists = []
        for row in self.backend.tables[LISTS_TABLE].values():
            if row["user_id"] == user_id and start <= row["date"] <= end:
                lists.append(list_from_row(self.backend.list_row(row["id"])))
        return lists_in_order(lists)

    async def fetch_list(self, list_id: str) -> TaskList:
        await self._round_trip("fetch_list")
        row = require_found(self.backend.list_row(list_id), "List", list_id)
        return list_from_row(row)

    async def insert_list(self, draft: ListDraft) -> TaskList:
        await self._round_trip("insert_list")
        row = self.backend.insert(LISTS_TABLE, {
            "title": draft.title,
            "date": draft.date,
            "user_id": draft.user_id,
        })
        return list_from_row(row)

    async def insert_tasks(self, list_id: str, drafts: Sequence[TaskDraft]) -> List[Task]:
        await self._round_trip("insert_tasks")
        require_found(self.backend.tables[LISTS_TABLE].get(list_id), "List", list_id)
        return [
            task_from_row(self.backend.insert(TASKS_TABLE, {
                "title": draft.title,
                "completed": draft.completed,
                "list_id": list_id,
            }))
            for draft in drafts
        ]

    async def update_list(self, list_id: str, updates: Dict[str, Any]) -> TaskList:
        fields = list_updates_to_row(updates)
        await self._round_trip("update_list")
        require_found(self.backend.update(LISTS_TABLE, list_id, fields), "List", list_id)
        return list_from_row(self.backend.list_row(list_id))

    async def delete_list(self, list_id: str) -> None:
        await self._round_trip("delete_list")
        self.backend.delete(LISTS_TABLE, list_id)

    async def update_task(self, task_id: str, updates: Dict[str, Any]) -> Task:
        fields = task_updates_to_row(updates)
        await self._round_trip("update_task")
        row = require_found(self.backend.update(TASKS_TABLE, task_id, fields), "Task", task_id)
        return task_from_row(row)

    async def delete_task(self, task_id: str) -> None:
        await self._round_trip("delete_task")
        self.backend.delete(TASKS_TABLE, task_id)

    async def _round_trip(self, operation: str):
        # Yield once so callers interleave as they would with real I/O.
        await asyncio.sleep(0)
        self.backend.check(operation)

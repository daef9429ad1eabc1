"""Apply pushed row changes to the local cache.

Changes made by other clients (and echoes of this client's own optimistic
edits) arrive on the feed. They are queued and applied by one dispatcher task
through the store's idempotent mutations, so a redundant event is harmless
and ordering follows arrival. Nothing is buffered while unsubscribed; the
next range load closes any gap.
"""

import asyncio
import logging
from typing import List, Optional

from ..gateway.base import list_from_row, task_from_row
from ..store import CalendarStore
from .events import LISTS_TABLE, TASKS_TABLE, ChangeEvent, ChangeFeed, ChangeType, Subscription



class RealtimeListener:
    """Subscribes to list and task changes and merges them into a store."""

    TABLES = (LISTS_TABLE, TASKS_TABLE)

    def __init__(self, store: CalendarStore, feed: ChangeFeed):
        self.store = store
        self.feed = feed
        self.queue: "asyncio.Queue[ChangeEvent]" = asyncio.Queue()
        self._subscriptions: List[Subscription] = []
        self._dispatcher: Optional[asyncio.Task] = None
        self.applied = 0
        self.logger = logging.getLogger(__name__)

    @property
    def running(self) -> bool:
        return self._dispatcher is not None and not self._dispatcher.done()

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()

    async def start(self):
        """Subscribe to every table once and start dispatching."""
        if self.running:
            return
        self._dispatcher = asyncio.create_task(self._dispatch_loop())
        try:
            for table in self.TABLES:
                self._subscriptions.append(await self.feed.subscribe(table, self.queue))
        except Exception:
            await self.stop()
            raise
        self.logger.info(f"Realtime listener subscribed to {', '.join(self.TABLES)}")

    async def stop(self):
        """Unsubscribe and stop the dispatcher; queued events are discarded."""
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            try:
                await subscription.unsubscribe()
            except Exception as e:
                self.logger.warning(f"Unsubscribe failed: {e}")
        if self._dispatcher is not None:
            self._dispatcher.cancel()
            try:
                await self._dispatcher
            except asyncio.CancelledError:
                pass
            self._dispatcher = None
        while not self.queue.empty():
            self.queue.get_nowait()
            self.queue.task_done()

    async def join(self):
        """Wait until every queued event has been applied."""
        await self.queue.join()

    async def _dispatch_loop(self):
        while True:
            event = await self.queue.get()
            try:
                self.apply(event)
            except Exception:
                self.logger.exception(f"Could not apply {event.type.value} on {event.table}")
            finally:
                self.queue.task_done()

    def apply(self, event: ChangeEvent):
        """Merge one change event into the store."""
        if event.table == LISTS_TABLE:
            self._apply_list(event)
        elif event.table == TASKS_TABLE:
            self._apply_task(event)
        else:
            self.logger.debug(f"Ignoring event for table {event.table}")
            return
        self.applied += 1

    def _apply_list(self, event: ChangeEvent):
        if event.type == ChangeType.INSERT:
            self.store.add_list(list_from_row(event.new))
        elif event.type == ChangeType.UPDATE:
            self.store.update_list(event.record_id, {
                "title": event.new.get("title"),
                "date": event.new.get("date"),
                "user_id": event.new.get("user_id"),
            })
        elif event.type == ChangeType.DELETE:
            self.store.delete_list(event.record_id)

    def _apply_task(self, event: ChangeEvent):
        if event.type == ChangeType.INSERT:
            task = task_from_row(event.new)
            self.store.add_task(task.list_id, task)
            return

        task_id = event.record_id
        # Old records often carry only the primary key.
        list_id = event.old.get("list_id") or event.new.get("list_id") or self.store.locate_task(task_id)
        if not list_id:
            self.logger.debug(f"Task {task_id} is not cached, ignoring {event.type.value}")
            return
        list_id = str(list_id)

        if event.type == ChangeType.UPDATE:
            owner = self.store.locate_task(task_id)
            if owner is not None and owner != list_id:
                self.logger.warning(f"Ignoring move of task {task_id} from {owner} to {list_id}")
                list_id = owner
            self.store.update_task(list_id, task_id, {
                "title": event.new.get("title"),
                "completed": event.new.get("completed"),
            })
        elif event.type == ChangeType.DELETE:
            self.store.delete_task(list_id, task_id)

"""Typed change events and the push feed contract.

A feed delivers row-level changes for one table into an asyncio queue. The
listener consumes that queue on a single task, so events are applied to the
store one at a time in arrival order.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


LISTS_TABLE = "lists"
TASKS_TABLE = "tasks"


class ChangeType(Enum):
    """Kinds of row changes delivered by the push feed."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass
class ChangeEvent:
    """One row change with its before/after snapshots (wire format rows)."""

    table: str
    type: ChangeType
    new: Dict[str, Any] = field(default_factory=dict)
    old: Dict[str, Any] = field(default_factory=dict)

    @property
    def record_id(self) -> Optional[str]:
        """Identity of the changed row; ids never change across an update."""
        source = self.old if self.old.get("id") is not None else self.new
        value = source.get("id")
        return str(value) if value is not None else None

    @classmethod
    def from_payload(cls, table: str, payload: Dict[str, Any]) -> "ChangeEvent":
        """Build an event from a ``{eventType|type, new|record, old|old_record}`` payload."""
        kind = payload.get("eventType") or payload.get("type")
        return cls(
            table=payload.get("table") or table,
            type=ChangeType(str(kind).upper()),
            new=dict(payload.get("new") or payload.get("record") or {}),
            old=dict(payload.get("old") or payload.get("old_record") or {}),
        )


class Subscription(ABC):
    """Handle for one live table subscription."""

    @abstractmethod
    async def unsubscribe(self) -> None:
        pass


class ChangeFeed(ABC):
    """Backend push feed, subscribed to per table."""

    @abstractmethod
    async def subscribe(self, table: str, queue: "asyncio.Queue[ChangeEvent]") -> Subscription:
        """Start delivering change events for ``table`` into ``queue``."""
        pass

    async def close(self) -> None:
        """Tear down any shared connection."""
        pass

"""Tests for the gateway contract, run against the in-process backend."""

from unittest.mock import AsyncMock

import pytest

from todo_calendar.domain import ListDraft, TaskDraft
from todo_calendar.errors import NotFoundError, RemoteError, ValidationError


async def test_create_list_with_tasks(gateway, backend, user):
    draft = ListDraft(title="Groceries", date="2024-06-01", user_id=user.id)
    created = await gateway.create_list(draft, [TaskDraft("Milk"), TaskDraft("Eggs", completed=True)])

    assert created.title == "Groceries"
    assert [t.title for t in created.tasks] == ["Milk", "Eggs"]
    assert [t.completed for t in created.tasks] == [False, True]
    assert all(t.list_id == created.id for t in created.tasks)
    assert backend.list_row(created.id)["tasks"][1]["title"] == "Eggs"


async def test_failed_task_insert_removes_the_list(gateway, backend, user):
    backend.fail("insert_tasks")
    draft = ListDraft(title="Groceries", date="2024-06-01", user_id=user.id)

    with pytest.raises(RemoteError):
        await gateway.create_list(draft, [TaskDraft("Milk")])

    assert backend.tables["lists"] == {}
    assert backend.tables["tasks"] == {}
    assert backend.calls == ["insert_list", "insert_tasks", "delete_list"]


async def test_failed_cleanup_still_reports_original_error(gateway, backend, user):
    gateway.delete_list = AsyncMock(side_effect=RemoteError("offline"))
    backend.fail("insert_tasks", RemoteError("tasks rejected"))
    draft = ListDraft(title="Groceries", date="2024-06-01", user_id=user.id)

    with pytest.raises(RemoteError, match="tasks rejected"):
        await gateway.create_list(draft, [TaskDraft("Milk")])
    gateway.delete_list.assert_awaited_once()


async def test_create_list_without_tasks_makes_one_call(gateway, backend, user):
    await gateway.create_list(ListDraft(title="Empty", date="2024-06-01", user_id=user.id))
    assert backend.calls == ["insert_list"]


async def test_fetch_range_is_inclusive_and_ordered(gateway, seed, user):
    seed("Late", "2024-06-30")
    seed("Early", "2024-06-01", tasks=[("Milk", False)])
    seed("Before", "2024-05-31")
    seed("Someone else", "2024-06-10", user_id="user-2")

    lists = await gateway.fetch_range(user.id, "2024-06-01", "2024-06-30")

    assert [l.title for l in lists] == ["Early", "Late"]
    assert lists[0].tasks[0].title == "Milk"


async def test_duplicate_list_copies_tasks_as_open(gateway, seed):
    source = seed("Groceries", "2024-06-01", tasks=[("Milk", True), ("Eggs", False)])

    duplicate = await gateway.duplicate_list(source["id"], "2024-06-08")

    assert duplicate.title == "Groceries (Copy)"
    assert duplicate.date == "2024-06-08"
    assert duplicate.user_id == source["user_id"]
    assert [(t.title, t.completed) for t in duplicate.tasks] == [("Milk", False), ("Eggs", False)]
    assert duplicate.id != source["id"]


async def test_duplicate_missing_list(gateway):
    with pytest.raises(NotFoundError):
        await gateway.duplicate_list("missing", "2024-06-08")


async def test_update_list_applies_only_given_fields(gateway, seed):
    row = seed("Groceries", "2024-06-01", tasks=[("Milk", False)])

    updated = await gateway.update_list(row["id"], {"date": "2024-06-02", "title": None})

    assert updated.title == "Groceries"
    assert updated.date == "2024-06-02"
    assert len(updated.tasks) == 1


async def test_update_missing_rows(gateway):
    with pytest.raises(NotFoundError):
        await gateway.update_list("missing", {"title": "x"})
    with pytest.raises(NotFoundError):
        await gateway.update_task("missing", {"completed": True})


async def test_update_validates_before_calling(gateway, backend):
    with pytest.raises(ValidationError):
        await gateway.update_task("any", {"title": "  "})
    assert backend.calls == []


async def test_delete_list_cascades_to_tasks(gateway, backend, seed):
    row = seed("Groceries", "2024-06-01", tasks=[("Milk", False), ("Eggs", False)])
    await gateway.delete_list(row["id"])
    assert backend.tables["tasks"] == {}


async def test_deleting_unknown_ids_succeeds(gateway):
    await gateway.delete_list("missing")
    await gateway.delete_task("missing")


async def test_create_task_in_missing_list(gateway):
    with pytest.raises(NotFoundError):
        await gateway.create_task("missing", "Milk")

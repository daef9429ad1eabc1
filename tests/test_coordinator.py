"""Tests for the optimistic-update coordinator."""

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from todo_calendar.auth import StaticIdentity, SupabaseAuth
from todo_calendar.coordinator import OptimisticCoordinator
from todo_calendar.domain import Task, TaskList, is_placeholder
from todo_calendar.errors import (
    AuthenticationError,
    NotFoundError,
    NotSignedInError,
    RemoteError,
    ValidationError,
)
from todo_calendar.gateway.supabase import SupabaseClient, SupabaseGateway


async def load_seeded(coordinator, seed, **kwargs):
    row = seed("Groceries", "2024-06-01", tasks=[("Milk", False), ("Eggs", True)], **kwargs)
    await coordinator.load_month(2024, 6)
    return row


class TestCreate:

    async def test_placeholder_is_visible_before_the_call_returns(self, store, gateway, identity):
        seen = []
        real_create = gateway.create_list

        async def create_list(draft, tasks):
            seen.append(store.lists_for_day("2024-06-01"))
            return await real_create(draft, tasks)

        gateway.create_list = create_list
        coordinator = OptimisticCoordinator(store, gateway, identity)
        created = await coordinator.create_list("Groceries", "2024-06-01", ["Milk", "Eggs"])

        optimistic = seen[0][0]
        assert is_placeholder(optimistic.id)
        assert [t.title for t in optimistic.tasks] == ["Milk", "Eggs"]
        assert all(is_placeholder(t.id) for t in optimistic.tasks)

        cached = store.lists_for_day("2024-06-01")
        assert [l.id for l in cached] == [created.id]
        assert not is_placeholder(created.id)
        assert not any(is_placeholder(t.id) for t in cached[0].tasks)

    async def test_failed_task_creation_leaves_nothing_behind(self, coordinator, store, backend):
        backend.fail("insert_tasks")
        before = store.snapshot()

        with pytest.raises(RemoteError):
            await coordinator.create_list("Groceries", "2024-06-01", ["Milk", "Eggs"])

        assert store.snapshot() == before
        assert backend.tables["lists"] == {}
        assert backend.tables["tasks"] == {}

    async def test_invalid_input_touches_nothing(self, coordinator, store, backend):
        with pytest.raises(ValidationError):
            await coordinator.create_list("  ", "2024-06-01")
        with pytest.raises(ValidationError):
            await coordinator.create_list("Work", "someday")
        assert len(store) == 0
        assert backend.calls == []

    async def test_create_task_reconciles_placeholder(self, coordinator, store, seed):
        row = await load_seeded(coordinator, seed)
        task = await coordinator.create_task(row["id"], "Bread")
        titles = [(t.id, t.title) for t in store.get_list(row["id"]).tasks]
        assert titles[-1] == (task.id, "Bread")
        assert len(titles) == 3


class TestRollback:

    async def test_toggle_failure_restores_previous_value(self, coordinator, store, backend, seed):
        row = await load_seeded(coordinator, seed)
        milk = next(t for t in row["tasks"] if t["title"] == "Milk")
        backend.fail("update_task")

        with pytest.raises(RemoteError):
            await coordinator.toggle_task(row["id"], milk["id"])

        assert store.get_task(row["id"], milk["id"]).completed is False

    async def test_toggle_flips_cached_value(self, coordinator, store, seed):
        row = await load_seeded(coordinator, seed)
        eggs = next(t for t in row["tasks"] if t["title"] == "Eggs")
        task = await coordinator.toggle_task(row["id"], eggs["id"])
        assert task.completed is False
        assert store.get_task(row["id"], eggs["id"]).completed is False

    async def test_toggle_of_unknown_task(self, coordinator, seed):
        row = await load_seeded(coordinator, seed)
        with pytest.raises(NotFoundError):
            await coordinator.toggle_task(row["id"], "missing")

    @pytest.mark.parametrize("operation", ["update_list", "delete_list", "duplicate_list",
                                           "update_task", "delete_task", "create_task"])
    async def test_failed_mutation_restores_cache(self, coordinator, store, backend, seed, operation):
        row = await load_seeded(coordinator, seed)
        task_id = row["tasks"][0]["id"]
        before = store.snapshot()
        backend.fail({"duplicate_list": "fetch_list", "create_task": "insert_tasks"}.get(operation, operation))

        calls = {
            "update_list": lambda: coordinator.update_list(row["id"], title="Food"),
            "delete_list": lambda: coordinator.delete_list(row["id"]),
            "duplicate_list": lambda: coordinator.duplicate_list(row["id"], "2024-06-08"),
            "update_task": lambda: coordinator.update_task(row["id"], task_id, title="Oat milk"),
            "delete_task": lambda: coordinator.delete_task(row["id"], task_id),
            "create_task": lambda: coordinator.create_task(row["id"], "Bread"),
        }
        with pytest.raises(RemoteError):
            await calls[operation]()

        assert store.snapshot() == before

    async def test_rollback_keeps_unrelated_concurrent_changes(self, store, identity, seed, gateway):
        coordinator = OptimisticCoordinator(store, gateway, identity)
        row = await load_seeded(coordinator, seed)
        other = TaskList(id="other", title="Work", date="2024-06-03", user_id="user-1")

        async def failing_update(list_id, updates):
            store.add_list(other)
            raise RemoteError("offline")

        gateway.update_list = AsyncMock(side_effect=failing_update)

        with pytest.raises(RemoteError):
            await coordinator.update_list(row["id"], title="Food")

        assert store.get_list(row["id"]).title == "Groceries"
        assert "other" in store

    async def test_delete_rollback_restores_position(self, coordinator, store, backend, seed):
        seed("First", "2024-06-01")
        middle = seed("Middle", "2024-06-02")
        seed("Last", "2024-06-03")
        await coordinator.load_month(2024, 6)
        backend.fail("delete_list")

        with pytest.raises(RemoteError):
            await coordinator.delete_list(middle["id"])

        assert [l.title for l in store.lists] == ["First", "Middle", "Last"]


class TestListOperations:

    async def test_update_list_moves_it_to_another_day(self, coordinator, store, seed):
        row = await load_seeded(coordinator, seed)
        await coordinator.update_list(row["id"], date="2024-06-05")
        assert store.lists_for_day("2024-06-01") == []
        assert store.lists_for_day("2024-06-05")[0].id == row["id"]

    async def test_duplicate_list(self, coordinator, store, seed):
        row = await load_seeded(coordinator, seed)
        duplicate = await coordinator.duplicate_list(row["id"], "2024-06-08")

        assert duplicate.title == "Groceries (Copy)"
        cached = store.lists_for_day("2024-06-08")
        assert [l.id for l in cached] == [duplicate.id]
        assert [t.completed for t in cached[0].tasks] == [False, False]
        assert len(store) == 2

    async def test_duplicate_of_uncached_list_is_added_on_success(self, coordinator, store, seed):
        row = seed("Groceries", "2024-05-01", tasks=[("Milk", True)])
        duplicate = await coordinator.duplicate_list(row["id"], "2024-06-08")
        assert store.get_list(duplicate.id).tasks[0].completed is False

    async def test_delete_list(self, coordinator, store, backend, seed):
        row = await load_seeded(coordinator, seed)
        await coordinator.delete_list(row["id"])
        assert row["id"] not in store
        assert backend.tables["tasks"] == {}

    async def test_edit_list_applies_task_set(self, coordinator, store, backend, seed):
        row = await load_seeded(coordinator, seed)
        milk, eggs = row["tasks"]

        edited = await coordinator.edit_list(row["id"], title="Food", tasks=[
            {"id": milk["id"], "title": "Oat milk", "completed": False},
            "Bread",
        ])

        assert edited.title == "Food"
        assert [t.title for t in edited.tasks] == ["Oat milk", "Bread"]
        assert eggs["id"] not in backend.tables["tasks"]
        stored = sorted(t["title"] for t in backend.tables["tasks"].values())
        assert stored == ["Bread", "Oat milk"]
        assert not any(is_placeholder(t.id) for t in edited.tasks)

    async def test_edit_list_rejects_foreign_task_ids(self, coordinator, seed):
        row = await load_seeded(coordinator, seed)
        with pytest.raises(NotFoundError):
            await coordinator.edit_list(row["id"], tasks=[{"id": "foreign", "title": "x"}])

    async def test_mutating_placeholders_is_rejected(self, coordinator):
        with pytest.raises(ValidationError):
            await coordinator.delete_list("tmp-123")


class TestLoading:

    async def test_load_range_replaces_cache(self, coordinator, store, seed):
        store.add_list(TaskList(id="stale", title="Stale", date="2024-06-01", user_id="user-1"))
        await load_seeded(coordinator, seed)
        assert "stale" not in store
        assert [l.title for l in store.lists] == ["Groceries"]

    async def test_loads_are_skipped_without_user(self, store, gateway, backend, seed):
        coordinator = OptimisticCoordinator(store, gateway, StaticIdentity())
        seed("Groceries", "2024-06-01")
        store.add_list(TaskList(id="kept", title="Kept", date="2024-06-01"))

        assert await coordinator.load_month(2024, 6) == []
        assert "kept" in store
        assert backend.calls == []

    async def test_mutations_require_user(self, store, gateway, groceries):
        coordinator = OptimisticCoordinator(store, gateway, StaticIdentity())
        store.add_list(groceries)
        before = store.snapshot()

        with pytest.raises(NotSignedInError):
            await coordinator.create_list("Work", "2024-06-01")
        with pytest.raises(NotSignedInError):
            await coordinator.toggle_task("list-1", "task-1")
        assert store.snapshot() == before

    async def test_ensure_list_fetches_missing_list(self, coordinator, store, seed):
        row = seed("Groceries", "2024-05-01", tasks=[("Milk", False)])
        fetched = await coordinator.ensure_list(row["id"])
        assert fetched.tasks[0].title == "Milk"
        assert row["id"] in store


async def test_failures_are_logged(coordinator, backend, caplog, seed):
    row = await load_seeded(coordinator, seed)
    backend.fail("delete_list")
    with pytest.raises(RemoteError):
        await coordinator.delete_list(row["id"])
    assert "rolled back" in caplog.text


class TestTokenRefresh:

    @staticmethod
    def make_coordinator(store, handler):
        auth = []
        client = SupabaseClient(
            "https://project.supabase.co", "anon-key",
            token_provider=lambda: auth[0].access_token,
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        auth.append(SupabaseAuth(client))
        return OptimisticCoordinator(store, SupabaseGateway(client), auth[0]), auth[0]

    async def test_expiring_token_is_refreshed_before_a_mutation(self, store, groceries):
        store.add_list(groceries)
        seen = []

        def handler(request):
            seen.append((request.url.path, request.headers["authorization"]))
            if request.url.path == "/auth/v1/token":
                grant = request.url.params["grant_type"]
                token = "fresh-token" if grant == "refresh_token" else "old-token"
                expires_in = 3600 if grant == "refresh_token" else 10
                return httpx.Response(200, json={
                    "access_token": token,
                    "refresh_token": "refresh-1",
                    "expires_in": expires_in,
                    "user": {"id": "user-1", "email": "ada@example.com"},
                })
            assert json.loads(request.content) == {"completed": True}
            return httpx.Response(200, json=[
                {"id": "task-1", "title": "Milk", "completed": True, "list_id": "list-1"}])

        coordinator, auth = self.make_coordinator(store, handler)
        await auth.sign_in("ada@example.com", "secret")
        assert auth.access_token == "old-token"

        await coordinator.toggle_task("list-1", "task-1")

        assert [path for path, _ in seen] == ["/auth/v1/token", "/auth/v1/token", "/rest/v1/tasks"]
        assert seen[-1][1] == "Bearer fresh-token"
        assert store.get_task("list-1", "task-1").completed is True

    async def test_failed_refresh_leaves_cache_untouched(self, store, groceries):
        store.add_list(groceries)
        before = store.snapshot()

        def handler(request):
            if request.url.params["grant_type"] == "refresh_token":
                return httpx.Response(401, json={"msg": "Invalid Refresh Token"})
            return httpx.Response(200, json={
                "access_token": "old-token",
                "refresh_token": "refresh-1",
                "expires_in": 10,
                "user": {"id": "user-1", "email": "ada@example.com"},
            })

        coordinator, auth = self.make_coordinator(store, handler)
        await auth.sign_in("ada@example.com", "secret")

        with pytest.raises(AuthenticationError):
            await coordinator.toggle_task("list-1", "task-1")
        assert store.snapshot() == before
        assert auth.current_user() is None

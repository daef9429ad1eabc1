"""Pytest configuration and shared fixtures."""

import sys
import asyncio
import inspect
from pathlib import Path

import pytest

# Ensure src directory is in Python path for all tests
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from todo_calendar.auth import StaticIdentity, User
from todo_calendar.config import Config, ConfigModel
from todo_calendar.coordinator import OptimisticCoordinator
from todo_calendar.domain import Task, TaskList
from todo_calendar.gateway import InMemoryBackend, InMemoryGateway
from todo_calendar.store import CalendarStore


USER = User(id="user-1", email="ada@example.com")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem):
    """Execute async tests without external plugins."""
    testfunction = pyfuncitem.obj
    if inspect.iscoroutinefunction(testfunction):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            sig = inspect.signature(testfunction)
            call_kwargs = {name: pyfuncitem.funcargs[name] for name in sig.parameters}
            loop.run_until_complete(testfunction(**call_kwargs))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep tests away from the real data directory and environment."""
    import os
    for name in list(os.environ):
        if name.startswith("TODO_CALENDAR_"):
            monkeypatch.delenv(name)
    monkeypatch.setenv("TODO_CALENDAR_DATA_DIR", str(tmp_path / "data"))
    Config._instance = None
    yield
    Config._instance = None


@pytest.fixture
def user():
    return USER


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def gateway(backend):
    return InMemoryGateway(backend)


@pytest.fixture
def store():
    return CalendarStore()


@pytest.fixture
def identity(user):
    return StaticIdentity(user)


@pytest.fixture
def coordinator(store, gateway, identity):
    return OptimisticCoordinator(store, gateway, identity)


@pytest.fixture
def memory_config(tmp_path):
    return ConfigModel(backend="memory", data_dir=str(tmp_path / "data"))


@pytest.fixture
def groceries():
    """A saved list with two tasks."""
    return TaskList(
        id="list-1",
        title="Groceries",
        date="2024-06-01",
        user_id=USER.id,
        tasks=[
            Task(id="task-1", title="Milk", completed=False),
            Task(id="task-2", title="Eggs", completed=True),
        ],
    )


@pytest.fixture
def seed(backend):
    """Insert a list with tasks straight into the backend; returns the list row."""
    def seed_list(title, date, user_id=USER.id, tasks=()):
        row = backend.insert("lists", {"title": title, "date": date, "user_id": user_id})
        for task_title, completed in tasks:
            backend.insert("tasks", {"title": task_title, "completed": completed, "list_id": row["id"]})
        return backend.list_row(row["id"])

    return seed_list

"""Tests for the calendar session and its wiring."""

from datetime import date
from unittest.mock import AsyncMock

import pytest

from todo_calendar.auth import StaticIdentity, SupabaseAuth
from todo_calendar.config import ConfigModel
from todo_calendar.errors import ConfigError
from todo_calendar.gateway import InMemoryGateway, SupabaseGateway
from todo_calendar.realtime import SupabaseRealtimeFeed
from todo_calendar.session import LOCAL_USER, CalendarSession, build_session


@pytest.fixture
def session(store, gateway, identity, backend):
    session = CalendarSession(store, gateway, identity, feed=backend.feed)
    session.year, session.month = 2024, 6
    return session


class TestNavigation:

    async def test_month_navigation_loads_each_month(self, session, seed):
        seed("June", "2024-06-15")
        seed("July", "2024-07-01")

        await session.reload()
        assert [l.title for l in session.store.lists] == ["June"]

        await session.next_month()
        assert session.visible_month == "2024-07"
        assert [l.title for l in session.store.lists] == ["July"]

        await session.previous_month()
        await session.previous_month()
        assert session.visible_month == "2024-05"
        assert len(session.store) == 0

    async def test_today_returns_to_current_month(self, session):
        await session.today()
        now = date.today()
        assert (session.year, session.month) == (now.year, now.month)
        assert session.selected_date == now.strftime("%Y-%m-%d")

    async def test_select_date_and_day_lists(self, session, seed):
        seed("Groceries", "2024-06-01")
        seed("Work", "2024-06-03")
        await session.reload()

        session.select_date("2024-06-03")
        assert [l.title for l in session.lists_for_day()] == ["Work"]
        assert [l.title for l in session.lists_for_day("2024-06-01")] == ["Groceries"]
        assert session.visible_month == "2024-06"

    def test_month_grid_uses_first_day_of_week(self, store, gateway, identity):
        session = CalendarSession(store, gateway, identity, first_day_of_week=0)
        session.year, session.month = 2024, 6
        assert session.month_grid()[0][5] == "2024-06-01"


class TestLifecycle:

    async def test_start_loads_and_listens(self, session, seed, backend):
        await session.start()
        assert session.listener.running

        seed("Pushed", "2024-06-20", user_id="user-1")
        await session.listener.join()
        assert [l.title for l in session.store.lists_for_day("2024-06-20")] == ["Pushed"]

        await session.close()
        assert not session.listener.running
        assert backend.feed.subscriber_count("lists") == 0

    async def test_start_without_user_stays_empty(self, store, gateway, backend, seed):
        seed("Groceries", "2024-06-01")
        session = CalendarSession(store, gateway, StaticIdentity(), feed=backend.feed)
        assert await session.start() == []
        assert not session.listener.running
        await session.close()

    async def test_sign_out_clears_cache(self, session, seed, backend):
        seed("Groceries", "2024-06-01")
        backend.feed.close = AsyncMock()
        await session.start()
        await session.sign_out()
        assert len(session.store) == 0
        assert session.user is None
        assert not session.listener.running
        backend.feed.close.assert_awaited_once()
        await session.close()

    async def test_sign_in_after_sign_out_resumes_realtime(self, session, backend):
        await session.start()
        await session.sign_out()
        assert backend.feed.subscriber_count("lists") == 0

        await session.sign_in("ada@example.com", "secret")
        assert session.listener.running
        assert backend.feed.subscriber_count("lists") == 1
        await session.close()


class TestBuildSession:

    def test_memory_backend(self, memory_config):
        session = build_session(memory_config)
        assert isinstance(session.gateway, InMemoryGateway)
        assert session.user == LOCAL_USER
        assert session.listener is not None

    def test_memory_backend_without_realtime(self, tmp_path):
        config = ConfigModel(backend="memory", realtime_enabled=False, data_dir=str(tmp_path))
        assert build_session(config).listener is None

    def test_supabase_backend(self, tmp_path):
        config = ConfigModel(
            backend="supabase",
            supabase_url="https://abc.supabase.co",
            supabase_anon_key="anon",
            data_dir=str(tmp_path),
        )
        session = build_session(config)
        assert isinstance(session.gateway, SupabaseGateway)
        assert isinstance(session.identity, SupabaseAuth)
        assert isinstance(session.feed, SupabaseRealtimeFeed)
        assert session.identity.session_file == tmp_path / "session.json"
        assert session.user is None

    def test_supabase_backend_requires_project(self, tmp_path):
        with pytest.raises(ConfigError):
            build_session(ConfigModel(backend="supabase", data_dir=str(tmp_path)))

"""Calendar session: wiring plus month view state.

A session owns one store, gateway, identity provider, coordinator and, when
realtime is enabled, one listener. It also tracks which month is on screen
and which day is selected, the state the calendar page keeps between
renders.
"""

import logging
from datetime import date
from typing import Any, Callable, List, Optional

from .auth import IdentityProvider, StaticIdentity, SupabaseAuth, User
from .config import ConfigModel
from .coordinator import OptimisticCoordinator
from .domain import TaskList
from .gateway import InMemoryBackend, InMemoryGateway, SupabaseClient, SupabaseGateway
from .gateway.base import DataGateway
from .realtime import ChangeFeed, RealtimeListener, SupabaseRealtimeFeed
from .store import CalendarStore
from .utils.dates import (
    format_month,
    month_grid,
    month_range,
    normalize_day,
    parse_month,
    shift_month,
    today,
)


logger = logging.getLogger(__name__)

LOCAL_USER = User(id="local", email="local@localhost")


class CalendarSession:
    """Everything a renderer needs to show and edit one user's calendar."""

    def __init__(self, store: CalendarStore, gateway: DataGateway,
                 identity: IdentityProvider, feed: Optional[ChangeFeed] = None,
                 first_day_of_week: int = 6):
        self.store = store
        self.gateway = gateway
        self.identity = identity
        self.feed = feed
        self.first_day_of_week = first_day_of_week
        self.coordinator = OptimisticCoordinator(store, gateway, identity)
        self.listener = RealtimeListener(store, feed) if feed is not None else None
        self.year, self.month = parse_month()
        self.selected_date = today()
        self.logger = logging.getLogger(__name__)

    @property
    def user(self) -> Optional[User]:
        return self.identity.current_user()

    @property
    def visible_month(self) -> str:
        return format_month(self.year, self.month)

    @property
    def visible_range(self):
        return month_range(self.year, self.month)

    # Lifecycle

    async def start(self) -> List[TaskList]:
        """Load the visible month and start realtime, if someone is signed in."""
        await self.identity.ensure_fresh()
        if self.user is None:
            self.logger.info("Not signed in; calendar stays empty")
            return []
        lists = await self.reload()
        if self.listener is not None:
            await self.listener.start()
        return lists

    async def close(self):
        """Stop realtime and release network resources."""
        if self.listener is not None:
            await self.listener.stop()
        if self.feed is not None:
            await self.feed.close()
        await self.gateway.close()

    async def sign_in(self, email: str, password: str) -> User:
        user = await self.identity.sign_in(email, password)
        await self.start()
        return user

    async def sign_up(self, email: str, password: str) -> User:
        user = await self.identity.sign_up(email, password)
        if self.user is not None:
            await self.start()
        return user

    async def sign_out(self):
        """Sign out, stop realtime and forget the cached calendar."""
        if self.listener is not None:
            await self.listener.stop()
        if self.feed is not None:
            await self.feed.close()
        await self.identity.sign_out()
        self.store.replace_all([])

    # Month navigation

    async def reload(self) -> List[TaskList]:
        return await self.coordinator.load_month(self.year, self.month)

    async def show_month(self, value: str) -> List[TaskList]:
        """Jump to ``YYYY-MM`` and load it."""
        self.year, self.month = parse_month(value)
        return await self.reload()

    async def next_month(self) -> List[TaskList]:
        self.year, self.month = shift_month(self.year, self.month, 1)
        return await self.reload()

    async def previous_month(self) -> List[TaskList]:
        self.year, self.month = shift_month(self.year, self.month, -1)
        return await self.reload()

    async def today(self) -> List[TaskList]:
        """Show the current month with today selected."""
        now = date.today()
        self.selected_date = today()
        if (self.year, self.month) == (now.year, now.month):
            return self.store.lists
        self.year, self.month = now.year, now.month
        return await self.reload()

    def select_date(self, day: Any) -> str:
        """Select a day; the visible month does not change."""
        self.selected_date = normalize_day(day)
        return self.selected_date

    # Views

    def month_grid(self):
        return month_grid(self.year, self.month, self.first_day_of_week)

    def lists_for_day(self, day: Optional[Any] = None) -> List[TaskList]:
        """Lists shown in one cell; the selected day when none is given."""
        return self.store.lists_for_day(day if day is not None else self.selected_date)

    def add_observer(self, callback: Callable[[CalendarStore], None]) -> Callable[[], None]:
        return self.store.add_observer(callback)


def build_session(config: ConfigModel, backend: Optional[InMemoryBackend] = None) -> CalendarSession:
    """Wire a session for the configured backend.

    Args:
        config: Loaded configuration
        backend: Shared in-process backend for the ``memory`` backend; a
            fresh one is created when omitted

    Raises:
        ConfigError: If the hosted backend is selected but not configured
    """
    store = CalendarStore()

    if config.backend == "memory":
        backend = backend or InMemoryBackend()
        feed = backend.feed if config.realtime_enabled else None
        logger.debug("Using in-memory backend")
        return CalendarSession(
            store, InMemoryGateway(backend), StaticIdentity(LOCAL_USER),
            feed=feed, first_day_of_week=config.first_day_of_week,
        )

    config.require_supabase()
    identity_ref: List[SupabaseAuth] = []

    def token() -> Optional[str]:
        return identity_ref[0].access_token if identity_ref else None

    client = SupabaseClient(
        config.supabase_url, config.supabase_anon_key,
        token_provider=token, timeout=config.request_timeout,
    )
    identity = SupabaseAuth(client, session_file=config.get_session_path())
    identity_ref.append(identity)

    feed = None
    if config.realtime_enabled:
        feed = SupabaseRealtimeFeed(
            config.supabase_url, config.supabase_anon_key,
            token_provider=token, heartbeat_interval=config.heartbeat_interval,
        )
    logger.debug(f"Using Supabase project {config.supabase_url}")
    return CalendarSession(
        store, SupabaseGateway(client), identity,
        feed=feed, first_day_of_week=config.first_day_of_week,
    )
